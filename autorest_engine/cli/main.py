"""
Command line interface for AUTOREST_ENGINE.

Usage:
    autorest validate catalog.json
    autorest serve --manifest catalog.json
"""

import click

from .. import __version__
from .commands.discover import discover
from .commands.keys import apikey, encrypt, keygen
from .commands.serve import serve
from .commands.show import show
from .commands.validate import validate


@click.group()
@click.version_option(__version__, prog_name="autorest")
def cli() -> None:
    """Auto-REST engine tools."""


cli.add_command(validate)
cli.add_command(show)
cli.add_command(discover)
cli.add_command(keygen)
cli.add_command(encrypt)
cli.add_command(apikey)
cli.add_command(serve)


if __name__ == "__main__":
    cli()
