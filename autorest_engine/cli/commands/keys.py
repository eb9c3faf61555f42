"""
Secret helpers for CLI: master keys, encrypted passwords and API keys.
"""

import click

from ...exceptions import ConfigurationError
from ...security import PasswordCipher, generate_api_key, hash_api_key


@click.command()
def keygen() -> None:
    """
    Generate a master key for connection password encryption.

    Store it in AUTOREST_MASTER_KEY.
    """
    click.echo(PasswordCipher.generate_master_key())


@click.command()
@click.argument("password")
@click.option(
    "--master-key",
    envvar="AUTOREST_MASTER_KEY",
    help="Base64 master key (defaults to AUTOREST_MASTER_KEY)",
)
def encrypt(password: str, master_key: str | None) -> None:
    """
    Encrypt a connection password for a manifest.

    Examples:
        AUTOREST_MASTER_KEY=... autorest encrypt 's3cret'
    """
    try:
        cipher = PasswordCipher(master_key or None)
        if not cipher.has_key:
            raise click.ClickException(
                "No master key: pass --master-key or set AUTOREST_MASTER_KEY"
            )
        click.echo(cipher.encrypt(password))
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e


@click.command()
def apikey() -> None:
    """
    Generate an application API key and the hash to store in the catalog.
    """
    key = generate_api_key()
    click.echo(f"api_key:      {key}")
    click.echo(f"api_key_hash: {hash_api_key(key)}")
