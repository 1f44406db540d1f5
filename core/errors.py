"""Error types shared by the webhook surface and the orchestration engine."""

from typing import Any, Dict, Optional


class BadgeOrchestratorError(Exception):
    code = "INTERNAL_ERROR"

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": str(self), "code": self.code}


class RemoteCallError(BadgeOrchestratorError):
    """A call to the community platform failed (network, auth, rate limit or GraphQL error)."""

    code = "NETWORK_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PayloadError(BadgeOrchestratorError):
    """An inbound event is missing fields the handler needs."""

    code = "BUSINESS_LOGIC_ERROR"


class ConfigValidationError(BadgeOrchestratorError):
    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        super().__init__(f"Validation failed for field: {field}")
        self.field = field
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["details"] = {"field": self.field, "message": self.message}
        return data
