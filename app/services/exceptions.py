"""Domain errors raised by the provisioning and signup-review services."""

from __future__ import annotations


class ProvisioningDomainError(Exception):
    code = "domain_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> dict | None:
        return None


class ValidationError(ProvisioningDomainError):
    """A request field is missing or malformed; raised before any side effect."""

    code = "validation_error"

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"{field} is required")
        self.field = field

    def details(self) -> dict:
        return {"field": self.field}


class ProvisioningError(ProvisioningDomainError):
    """A step with no safe fallback failed; earlier rows are not rolled back."""

    code = "provisioning_failed"

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage

    def details(self) -> dict:
        return {"stage": self.stage}


class TransitionError(ProvisioningDomainError):
    code = "illegal_transition"

    def __init__(self, request_id: str, current_status: str, target_status: str):
        super().__init__(f"Signup request {request_id} is already {current_status}; cannot mark it {target_status}")
        self.request_id = request_id
        self.current_status = current_status
        self.target_status = target_status

    def details(self) -> dict:
        return {"current_status": self.current_status, "target_status": self.target_status}


class NotFoundError(ProvisioningDomainError):
    code = "not_found"
