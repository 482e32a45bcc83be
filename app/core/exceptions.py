"""
Application-wide exception hierarchy.

Services raise these types; the app factory registers one JSON handler per
type so every blueprint gets consistent HTTP status codes.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="CaseStudy", resource_id=42)
    raise ValidationError("customer_name is required", details={"customer_name": "required"})
"""


class UnauthorizedError(Exception):
    """Raised when no authenticated user is attached to the request.

    Maps to HTTP 401.
    """

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the authenticated user lacks the role or ownership required.

    Maps to HTTP 403.
    """

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "CaseStudy").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422 in the error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names;
                 values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class TransitionError(Exception):
    """Raised when a case study status transition is not allowed.

    Maps to HTTP 409.
    """

    def __init__(self, entity_id, action: str, current: str, reason: str | None = None):
        msg = f"Cannot '{action}' case study {entity_id} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.entity_id = entity_id
        self.action = action
        self.current_status = current
        self.reason = reason


class IntegrationError(Exception):
    """Raised when an external provider (translation, CRM) call fails.

    Best-effort side effects catch and log it; endpoints that invoke the
    provider explicitly surface it as HTTP 502.

    Args:
        provider: Short provider name ("insightly", "google", "deepl", "llm").
        message: Provider error detail.
        status_code: Upstream HTTP status, when one was received.
    """

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")
