"""
FastAPI dependencies for the auto-REST router.

Usage:
    from fastapi import Depends
    from autorest_engine.api.dependencies import get_principal, get_service

    @router.get("/{service}/_table")
    async def list_entities(
        service: str,
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        return await autorest.list_entities(principal, service)
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from fastapi import Request

from ..constants import API_KEY_HEADER, API_KEY_QUERY_PARAM
from ..exceptions import AuthenticationError, InitializationError
from ..observability import bind_log_context
from ..service import AutoRestService, RequestPrincipal

if TYPE_CHECKING:
    from ..core.engine import AutoRestEngine

logger = logging.getLogger(__name__)


async def get_engine(request: Request) -> "AutoRestEngine":
    """Get the AutoRestEngine instance from app state."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None or not engine.initialized:
        raise InitializationError("Engine not initialized")
    return engine


async def get_service(request: Request) -> AutoRestService:
    engine = await get_engine(request)
    return engine.service


def get_api_key(request: Request) -> str | None:
    """API key from the ``X-API-Key`` header, else the ``api_key`` query parameter."""
    return request.headers.get(API_KEY_HEADER) or request.query_params.get(API_KEY_QUERY_PARAM)


def _role_from_user(user: Any) -> str | None:
    if isinstance(user, Mapping):
        return user.get("role_id")
    return getattr(user, "role_id", None)


async def get_principal(request: Request) -> RequestPrincipal:
    """
    Resolve the calling application.

    A user authenticated upstream (``request.state.user``) is attached to the
    principal so row policies can reference it; its ``role_id`` wins over
    the application's default role.

    Raises:
        AuthenticationError: If the key is missing or unknown
    """
    api_key = get_api_key(request)
    if not api_key:
        raise AuthenticationError("API key required")

    engine = await get_engine(request)
    application = await engine.authenticate(api_key)
    if application is None:
        logger.info(f"Rejected unknown API key on {request.url.path}")
        raise AuthenticationError("Invalid API key")

    user = getattr(request.state, "user", None)
    bind_log_context(organization_id=application.organization_id, application=application.id)
    return RequestPrincipal(application=application, user=user, role_id=_role_from_user(user))
