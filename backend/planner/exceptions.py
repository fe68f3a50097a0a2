"""
Planner exception hierarchy.

Expected failures inside services are returned as result models; these
exceptions cover conditions that must stop the current operation.
"""

from typing import Any


class PlannerError(Exception):
    """Base exception for all planner errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class NotFoundError(PlannerError):
    """Raised when a referenced project, brainstorm, snapshot or output does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found", {"id": str(entity_id)})
        self.entity = entity
        self.entity_id = entity_id


class ProviderError(PlannerError):
    """Raised when the AI provider call fails (network, auth, quota, malformed reply)."""

    def __init__(self, provider_id: str, message: str, status_code: int | None = None):
        details: dict[str, Any] = {"provider": provider_id}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.provider_id = provider_id
        self.status_code = status_code


class UnsupportedProviderError(PlannerError, ValueError):
    """Raised when a provider id has no registered implementation."""

    def __init__(self, provider_id: str, supported: list[str]):
        super().__init__(
            f"Unsupported AI provider '{provider_id}'. Expected one of: {', '.join(supported)}",
            {"provider": provider_id},
        )
        self.provider_id = provider_id
