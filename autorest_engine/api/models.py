"""
Request and response models of the auto-REST API.

Rows stay plain dicts since their columns depend on the exposed table and
the caller's field policy.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail


class RowPage(BaseModel):
    """One page of rows as returned by ``GET /{service}/_table/{entity}``."""

    model_config = ConfigDict(populate_by_name=True)

    data: list[dict[str, Any]]
    page: int
    page_size: int = Field(alias="pageSize")
    total: int
    has_next: bool = Field(alias="hasNext")


class RowCount(BaseModel):
    total: int


class ExposeRequest(BaseModel):
    """Body of ``POST /{service}/_expose``; names may be schema-qualified."""

    tables: Optional[list[str]] = None


class ExposedTable(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    path_slug: str = Field(alias="pathSlug")
    endpoint: str


class ExposeResult(BaseModel):
    exposed: list[ExposedTable]
    errors: list[str]
    total: int


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status_code: {"model": ErrorResponse}
    for status_code in (400, 401, 403, 404, 405, 409, 502)
}
