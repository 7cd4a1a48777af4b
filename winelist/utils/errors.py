"""
Error taxonomy for the wine list pipeline.

Configuration and upstream request errors block the pipeline and propagate with
context attached. Validation problems are never raised: they are collected in a
ClassificationResult by the validation service.
"""

import asyncio
from enum import Enum
from typing import Any, Optional

import httpx

# =============================================================================
# Base
# =============================================================================

class AppError(Exception):
    """Base application exception carrying a message and diagnostic details."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(AppError):
    """A required identifier or credential is missing."""

    def __init__(self, message: str, parameter: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.parameter = parameter


class InputFormatError(AppError):
    """Malformed input such as an unparseable date or a non-object fields payload."""
    pass


class AttachmentTooLargeError(InputFormatError):
    pass


class AmbiguousLookupError(AppError):
    """A lookup expected to match one record matched several."""
    pass


class ZoneResolutionError(AppError):
    pass


# =============================================================================
# Upstream (Airtable) errors
# =============================================================================

class AirtableRequestError(AppError):
    """Non-success response from the Airtable API."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        status_text: Optional[str] = None,
        payload: Any = None,
        url: Optional[str] = None,
    ):
        super().__init__(
            message,
            details={"status": status, "status_text": status_text, "payload": payload, "url": url},
        )
        self.status = status
        self.status_text = status_text
        self.payload = payload
        self.url = url
        self.retryable = False


class AirtableAuthError(AirtableRequestError):
    pass


class AirtableNotFoundError(AirtableRequestError):
    pass


class AirtableRateLimitError(AirtableRequestError):
    def __init__(self, *args, retry_after: Optional[float] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.retry_after = retry_after
        self.retryable = True


class AirtableServerError(AirtableRequestError):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.retryable = True


class AirtableClientError(AirtableRequestError):
    pass


class AirtableNetworkError(AirtableRequestError):
    """Transport-level failure (DNS, connection reset, timeout)."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message, url=url)
        self.retryable = True


def error_from_response(response: httpx.Response, payload: Any) -> AirtableRequestError:
    """Map an Airtable error response to the matching exception class."""
    status = response.status_code
    status_text = response.reason_phrase
    message = None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            message = error.get("message") or error.get("type")
        elif isinstance(error, str):
            message = error
        message = message or payload.get("message")
    message = message or f"Airtable request failed ({status} {status_text})"

    kwargs = {
        "status": status,
        "status_text": status_text,
        "payload": payload,
        "url": str(response.request.url) if response.request is not None else None,
    }
    if status in (401, 403):
        return AirtableAuthError(message, **kwargs)
    if status == 404:
        return AirtableNotFoundError(message, **kwargs)
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        try:
            seconds = float(retry_after) if retry_after else None
        except ValueError:
            seconds = None
        return AirtableRateLimitError(message, retry_after=seconds, **kwargs)
    if status >= 500:
        return AirtableServerError(message, **kwargs)
    return AirtableClientError(message, **kwargs)


# =============================================================================
# Publishing and pipeline errors
# =============================================================================

class PublishStep(str, Enum):
    """Steps of the attachment publishing workflow."""
    VALIDATE_INPUT = "validate_input"
    RESOLVE_SOURCE = "resolve_source"
    CREATE_RECORD = "create_record"
    CONFIRM_RECORD = "confirm_record"
    UPLOAD_ATTACHMENT = "upload_attachment"
    VERIFY_ATTACHMENT = "verify_attachment"


class PublishError(AppError):
    """Failure inside the publish workflow, tagged with the step it happened in."""

    def __init__(
        self,
        message: str,
        step: PublishStep,
        details: Optional[dict[str, Any]] = None,
        hints: Optional[list[str]] = None,
    ):
        super().__init__(message, details)
        self.step = step
        self.hints = hints or []

    def __str__(self) -> str:
        text = f"[{self.step.value}] {self.message}"
        if self.hints:
            text += " | Hints: " + "; ".join(self.hints)
        return text


class AttachmentVerificationError(PublishError):
    """The uploaded attachment is not observable on the re-fetched record."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, step=PublishStep.VERIFY_ATTACHMENT, details=details)


class PipelineError(AppError):
    """A pipeline stage aborted the run."""

    def __init__(self, message: str, stage: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)
        self.stage = stage

    def __str__(self) -> str:
        return f"Stage '{self.stage}' failed: {self.message}"


# =============================================================================
# Error Handler
# =============================================================================

class ErrorHandler:
    """Centralized error categorization for operator-facing output."""

    @staticmethod
    def categorize_error(error: Exception) -> str:
        """Categorize errors for appropriate handling."""
        if isinstance(error, PipelineError) and isinstance(error.__cause__, Exception):
            return ErrorHandler.categorize_error(error.__cause__)
        if isinstance(error, ConfigurationError):
            return "CONFIGURATION_ERROR"
        if isinstance(error, AttachmentVerificationError):
            return "VERIFICATION_ERROR"
        if isinstance(error, PublishError):
            if isinstance(error.__cause__, Exception):
                return ErrorHandler.categorize_error(error.__cause__)
            return "PUBLISH_ERROR"
        if isinstance(error, AirtableAuthError):
            return "AUTH_ERROR"
        if isinstance(error, AirtableRateLimitError):
            return "RATE_LIMIT_ERROR"
        if isinstance(error, (AirtableNetworkError, ConnectionError)):
            return "NETWORK_ERROR"
        if isinstance(error, AirtableRequestError):
            return "UPSTREAM_ERROR"
        if isinstance(error, InputFormatError):
            return "FORMAT_ERROR"
        if isinstance(error, asyncio.TimeoutError):
            return "TIMEOUT_ERROR"
        return "UNKNOWN_ERROR"
