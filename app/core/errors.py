"""Engine error taxonomy.

Services raise these; the HTTP layer (app/api/errors.py) maps each one to a
status code and a JSON body built from ``to_dict()``.  Every error carries a
machine-readable ``code`` so clients can branch without parsing messages.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base class for every failure the engine reports to its callers."""

    code = "engine_error"
    status_code = 400

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.context}


class UnauthorizedError(EngineError):
    """No usable identity or membership for the requested organization."""

    code = "unauthorized"
    status_code = 401


class ForbiddenError(EngineError):
    code = "forbidden"
    status_code = 403

    def __init__(self, permission: str) -> None:
        super().__init__(
            "Insufficient permissions", context={"required_permission": permission}
        )
        self.permission = permission


class ModuleUnavailableError(EngineError):
    """Identity and permission are fine but the organization's license is not.

    ``reason`` is one of: unknown_module, module_inactive, not_enabled,
    expired, organization_expired.
    """

    code = "module_unavailable"
    status_code = 402

    def __init__(self, module_key: str | None, reason: str) -> None:
        super().__init__(
            "Module is not available for this organization",
            context={"module_key": module_key, "reason": reason},
        )
        self.module_key = module_key
        self.reason = reason


class LimitViolationError(EngineError):
    code = "limit_exceeded"
    status_code = 409

    def __init__(
        self,
        resource: str,
        *,
        current_count: int,
        cap: int,
        requested: int = 0,
    ) -> None:
        super().__init__(
            f"Organization {resource} limit reached",
            context={
                "resource": resource,
                "current_count": current_count,
                "cap": cap,
                "requested": requested,
            },
        )
        self.resource = resource
        self.current_count = current_count
        self.cap = cap
        self.requested = requested


class NotFoundError(EngineError):
    code = "not_found"
    status_code = 404


class ConflictError(EngineError):
    code = "conflict"
    status_code = 409


class ValidationError(EngineError):
    code = "validation_error"
    status_code = 422


class PaymentProviderError(EngineError):
    code = "payment_provider_error"
    status_code = 502
