"""
Service-layer exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from atelier.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Phase", resource_id=42)
    raise ValidationError("Phase name is required")
    raise ValidationError(
        "Cannot start phase - blocked by dependencies",
        details={"blocking_phases": ["Concept Design"]},
    )
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant access
    attempts; a 403 would confirm the resource exists, a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Phase").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)

    @property
    def public_message(self) -> str:
        return f"{self.resource} not found"


class ValidationError(Exception):
    """Raised when input fails a business rule. Maps to HTTP 400.

    Raised before any write, so a rejected request leaves the store untouched.

    Args:
        message: Human-readable explanation of what failed.
        details: Extra keys merged into the JSON error body
                 (e.g. ``blocking_phases`` for a dependency block).
        code: Machine-readable error code override (``E.*``).
    """

    def __init__(self, message: str, details: dict | None = None, code: str | None = None) -> None:
        self.details = details or {}
        self.code = code
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation collides with existing state. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field that would be duplicated, if any.
        value: The conflicting value (full value in logs only).
        message: Overrides the generated "already exists" message.
        details: Extra keys merged into the JSON error body.
    """

    def __init__(
        self,
        resource: str,
        field: str | None = None,
        value: str | None = None,
        *,
        message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        self.details = details or {}
        if message is None:
            message = f"{resource} with {field}={value!r} already exists"
        super().__init__(message)
