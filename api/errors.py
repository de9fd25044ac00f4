from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base for errors rendered as ``{"error", "category", "details"}``."""

    category = "error"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "category": self.category}
        if self.details:
            payload["details"] = self.details
        return payload


class RequestValidationError(PipelineError):
    category = "validation"
    status_code = 400


class BusinessRuleError(PipelineError):
    category = "business_rule"
    status_code = 400


class EligibilityBlocked(PipelineError):
    category = "eligibility"
    status_code = 403


class NotFoundError(PipelineError):
    category = "not_found"
    status_code = 404


class ConflictError(PipelineError):
    category = "conflict"
    status_code = 409


class InvalidTransition(PipelineError):
    category = "invalid_transition"
    status_code = 400


class TerminalStateError(InvalidTransition):
    category = "terminal_state"


class Unauthorized(PipelineError):
    category = "unauthorized"
    status_code = 401


class RateLimited(PipelineError):
    category = "rate_limited"
    status_code = 429


class ProviderError(PipelineError):
    category = "provider"
    status_code = 502


class ProviderTimeout(ProviderError):
    category = "provider_timeout"
    status_code = 504
