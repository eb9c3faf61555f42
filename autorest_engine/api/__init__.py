"""
REST surface of the engine: FastAPI router, dependencies and app factory.
"""

from .app import create_app
from .dependencies import get_engine, get_principal, get_service
from .routes import create_router

__all__ = [
    "create_app",
    "create_router",
    "get_engine",
    "get_principal",
    "get_service",
]
