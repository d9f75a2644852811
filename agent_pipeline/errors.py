"""Error taxonomy shared by the pipeline components and the HTTP boundary.

Every error carries a stable ``code`` and the HTTP status the request boundary
should answer with.  Components raise these; only ``routes.errors`` turns them
into responses.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PipelineError(RuntimeError):
    """Base class for every failure the pipeline reports to callers."""

    code = "PIPELINE_ERROR"
    status_code = 500
    label = "Internal server error"

    def __init__(self, message: str = "", *, details: Optional[str] = None) -> None:
        super().__init__(message or self.label)
        self.details = details if details is not None else (message or None)

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.label, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PipelineError):
    """Missing or malformed request fields; the caller can correct them."""

    code = "INVALID_REQUEST"
    status_code = 400
    label = "Invalid request"


class RateLimitExceeded(PipelineError):
    """Admission control denied the call."""

    code = "RATE_LIMITED"
    status_code = 429
    label = "Rate limit exceeded"

    def __init__(self, *, reset_time: int, remaining: int = 0) -> None:
        super().__init__("Rate limit exceeded", details=None)
        self.reset_time = reset_time
        self.remaining = remaining

    def payload(self) -> Dict[str, Any]:
        body = super().payload()
        body["resetTime"] = self.reset_time
        return body

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time),
        }


class UpstreamModelError(PipelineError):
    """The language-model call failed or produced no content."""

    code = "UPSTREAM_MODEL_ERROR"
    status_code = 502
    label = "Language model request failed"


class SchemaViolation(PipelineError):
    """Model output did not parse into the declared schema."""

    code = "SCHEMA_VIOLATION"
    status_code = 502
    label = "Language model returned an invalid payload"

    def __init__(self, message: str, *, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class SafetyRejection(PipelineError):
    """The safety gate refused the compiled plan."""

    code = "SAFETY_REJECTED"
    status_code = 403
    label = "Safety check failed"

    def __init__(self, reason: str, *, requires_approval: bool, rule: Optional[str] = None) -> None:
        super().__init__(reason, details=None)
        self.reason = reason
        self.requires_approval = requires_approval
        self.rule = rule

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.label,
            "code": self.rule or self.code,
            "reason": self.reason,
            "requiresApproval": self.requires_approval,
        }
        return body


class SimulationFailure(PipelineError):
    """The dry run reported a failure for the built transaction."""

    code = "SIMULATION_FAILED"
    status_code = 400
    label = "Transaction simulation failed"


class UnsupportedOperation(PipelineError):
    """A plan operation kind has no lowering."""

    code = "UNSUPPORTED_OPERATION"
    status_code = 500


class MalformedArguments(PipelineError):
    """A plan operation's arguments do not match the shape its kind requires."""

    code = "MALFORMED_ARGUMENTS"
    status_code = 500


class UnknownExecution(PipelineError):
    """No step enumeration exists for the requested execution id."""

    code = "EXECUTION_NOT_FOUND"
    status_code = 404
    label = "Execution not found"


class TranscriptionUnavailable(PipelineError):
    """No transcription collaborator is configured."""

    code = "TRANSCRIPTION_UNAVAILABLE"
    status_code = 503
    label = "Transcription service unavailable"


class TranscriptionError(PipelineError):
    """The transcription collaborator failed or answered with garbage."""

    code = "TRANSCRIPTION_FAILED"
    status_code = 502
    label = "Transcription failed"


__all__ = [
    "MalformedArguments",
    "PipelineError",
    "RateLimitExceeded",
    "SafetyRejection",
    "SchemaViolation",
    "SimulationFailure",
    "TranscriptionError",
    "TranscriptionUnavailable",
    "UnknownExecution",
    "UnsupportedOperation",
    "UpstreamModelError",
    "ValidationError",
]
