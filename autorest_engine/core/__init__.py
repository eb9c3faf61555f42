"""
Core AUTOREST_ENGINE components.

This module contains the AutoRestEngine class that wires the catalog,
the driver registry and the request-handling service together.
"""

from .engine import AutoRestEngine

__all__ = [
    "AutoRestEngine",
]
