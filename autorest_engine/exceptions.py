"""
Custom exceptions for AUTOREST_ENGINE.

Every exception carries the HTTP status and error code used when it
reaches the REST layer, while remaining a RuntimeError for callers that
use the engine directly.
"""

from typing import Any, Dict, List, Optional


class AutoRestError(RuntimeError):
    """
    Base exception for Auto-REST engine errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (service,
                 entity, organization_id, etc.)
        status_code: HTTP status used by the API layer
        code: Machine readable error code
    """

    status_code: int = 500
    code: str = "SERVER_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Render the error envelope returned to API clients."""
        return {"error": {"code": self.code, "message": self.message}}


class InitializationError(AutoRestError):
    """
    Raised when engine initialization fails.

    Attributes:
        message: Error message
        catalog_uri: Catalog connection URI (if available)
        context: Additional context information
    """

    status_code = 503
    code = "INITIALIZATION_ERROR"

    def __init__(
        self,
        message: str,
        catalog_uri: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if catalog_uri:
            context["catalog_uri"] = catalog_uri
        super().__init__(message, context=context)
        self.catalog_uri = catalog_uri


class ConfigurationError(AutoRestError):
    """
    Raised when configuration is invalid or missing.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    status_code = 500
    code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class ManifestValidationError(AutoRestError):
    """
    Raised when a catalog manifest fails validation.

    Attributes:
        message: Error message
        error_paths: List of JSON paths with validation errors
        schema_version: Schema version used for validation (if available)
    """

    status_code = 400
    code = "INVALID_MANIFEST"

    def __init__(
        self,
        message: str,
        error_paths: Optional[List[str]] = None,
        schema_version: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if error_paths:
            context["error_paths"] = error_paths
        if schema_version:
            context["schema_version"] = schema_version
        super().__init__(message, context=context)
        self.error_paths = error_paths
        self.schema_version = schema_version


class AuthenticationError(AutoRestError):
    """Raised when a request carries no valid API key."""

    status_code = 401
    code = "UNAUTHORIZED"


class PermissionDeniedError(AutoRestError):
    """Raised when the calling application may not perform an action."""

    status_code = 403
    code = "FORBIDDEN"


class ServiceNotFoundError(AutoRestError):
    """Raised when a service name does not resolve to an active service."""

    status_code = 404
    code = "SERVICE_NOT_FOUND"

    def __init__(self, service_name: str, context: Optional[Dict[str, Any]] = None) -> None:
        context = context or {}
        context["service"] = service_name
        super().__init__("Service not found or inactive", context=context)
        self.service_name = service_name


class EntityNotFoundError(AutoRestError):
    """Raised when an entity is not exposed or not readable."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity_name: str, context: Optional[Dict[str, Any]] = None) -> None:
        context = context or {}
        context["entity"] = entity_name
        super().__init__("Entity not found or not readable", context=context)
        self.entity_name = entity_name


class RowNotFoundError(AutoRestError):
    """Raised when a primary key lookup matches no visible row."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, row_id: Any, context: Optional[Dict[str, Any]] = None) -> None:
        context = context or {}
        context["id"] = row_id
        super().__init__("Row not found", context=context)
        self.row_id = row_id


class OperationNotAllowedError(AutoRestError):
    """Raised when an entity does not allow the requested write."""

    status_code = 405
    code = "OPERATION_NOT_ALLOWED"

    def __init__(
        self,
        operation: str,
        entity_name: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        context.update({"operation": operation, "entity": entity_name})
        super().__init__(f"Operation '{operation}' is not allowed on this entity", context=context)
        self.operation = operation
        self.entity_name = entity_name


class QueryValidationError(AutoRestError):
    """
    Raised when filter, sort, field or pagination input is invalid.

    Attributes:
        query_type: Which part of the query failed (filter, sort, fields, ...)
        field: Offending field name (if any)
        operator: Offending operator (if any)
    """

    status_code = 400
    code = "INVALID_QUERY"

    def __init__(
        self,
        message: str,
        query_type: Optional[str] = None,
        field: Optional[str] = None,
        operator: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if query_type:
            context["query_type"] = query_type
        if field:
            context["field"] = field
        if operator:
            context["operator"] = operator
        super().__init__(message, context=context)
        self.query_type = query_type
        self.field = field
        self.operator = operator


class UnsupportedDatabaseError(AutoRestError):
    """Raised for connection types the engine has no driver for."""

    status_code = 400
    code = "UNSUPPORTED_DATABASE"

    def __init__(
        self,
        db_type: str,
        supported: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = f"Database type {db_type} not supported"
        if supported:
            message += f". Supported types: {', '.join(supported)}"
        super().__init__(message, context=context)
        self.db_type = db_type


class DriverError(AutoRestError):
    """Raised when the underlying database rejects or fails a statement."""

    status_code = 502
    code = "DATABASE_ERROR"


class ConstraintViolationError(DriverError):
    """Raised when a write breaks a unique, foreign key or not-null constraint."""

    status_code = 409
    code = "CONSTRAINT_VIOLATION"
