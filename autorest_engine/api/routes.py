"""
Auto-REST routes.

The router is mounted under the configured API prefix (``/api/v2`` by
default). Static path segments (``_schema``, ``_count``) are registered
before the ``{row_id}`` routes so they are never read as primary keys.
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from ..service import AutoRestService, ListParams, RequestPrincipal
from .dependencies import get_principal, get_service
from .models import (ERROR_RESPONSES, ExposeRequest, ExposeResult, RowCount,
                     RowPage)


def _group_discovered(objects: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    groups: dict[str, list[dict[str, Any]]] = {"tables": [], "views": [], "collections": []}
    for obj in objects:
        groups[f"{obj['type'].lower()}s"].append(obj)
    return groups


def create_router() -> APIRouter:
    """Build the auto-REST router."""
    router = APIRouter(responses=ERROR_RESPONSES)

    @router.get("/{service}/_discover")
    async def discover(
        service: str,
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        objects = await autorest.discover_tables(principal, service)
        groups = _group_discovered(objects)
        return {
            "data": groups,
            "total": len(objects),
            "exposed": sum(1 for o in objects if o["isExposed"]),
            "counts": {kind: len(items) for kind, items in groups.items()},
        }

    @router.post("/{service}/_expose", response_model=ExposeResult)
    async def expose(
        service: str,
        payload: Optional[ExposeRequest] = None,
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        tables = payload.tables if payload is not None else None
        return await autorest.expose_tables(principal, service, tables)

    @router.get("/{service}/_table")
    async def list_entities(
        service: str,
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        return await autorest.list_entities(principal, service)

    @router.get("/{service}/_table/{entity}/_schema")
    async def entity_schema(
        service: str,
        entity: str,
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        return await autorest.handle_schema(principal, service, entity)

    @router.get("/{service}/_table/{entity}/_count", response_model=RowCount)
    async def count_rows(
        service: str,
        entity: str,
        filter: Optional[str] = None,
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        return await autorest.handle_count(principal, service, entity, filter)

    @router.get("/{service}/_table/{entity}", response_model=RowPage)
    async def list_rows(
        service: str,
        entity: str,
        page: Optional[str] = None,
        page_size: Optional[str] = Query(default=None, alias="pageSize"),
        limit: Optional[str] = None,
        fields: Optional[str] = None,
        sort: Optional[str] = None,
        filter: Optional[str] = None,
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        params = ListParams(
            page=page,
            page_size=page_size if page_size is not None else limit,
            fields=fields,
            sort=sort,
            filter=filter,
        )
        return await autorest.handle_list(principal, service, entity, params)

    @router.get("/{service}/_table/{entity}/{row_id}")
    async def get_row(
        service: str,
        entity: str,
        row_id: str,
        fields: Optional[str] = None,
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        return await autorest.handle_by_id(principal, service, entity, row_id, fields)

    @router.post("/{service}/_table/{entity}", status_code=status.HTTP_201_CREATED)
    async def create_row(
        service: str,
        entity: str,
        payload: Any = Body(default=None),
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        return await autorest.handle_create(principal, service, entity, payload)

    @router.patch("/{service}/_table/{entity}/{row_id}")
    async def update_row(
        service: str,
        entity: str,
        row_id: str,
        payload: Any = Body(default=None),
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        return await autorest.handle_update(principal, service, entity, row_id, payload)

    @router.delete("/{service}/_table/{entity}/{row_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_row(
        service: str,
        entity: str,
        row_id: str,
        principal: RequestPrincipal = Depends(get_principal),
        autorest: AutoRestService = Depends(get_service),
    ):
        await autorest.handle_delete(principal, service, entity, row_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router
