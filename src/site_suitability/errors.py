"""Typed failures raised by the analysis pipeline."""

import traceback
from typing import Any

from pydantic import BaseModel, Field as PydanticField


class SiteAnalysisError(Exception):
    """Base class for pipeline failures.

    :param message: Human-readable message
    """

    kind = "analysis_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(SiteAnalysisError):
    """Malformed bbox or missing location parameters."""

    kind = "invalid_input"
    status_code = 400


class CatalogUnavailable(SiteAnalysisError):
    """Catalog search unreachable or erroring after retries."""

    kind = "catalog_unavailable"
    status_code = 503
    retryable = True


class NoImageryFound(SiteAnalysisError):
    """Search succeeded but no item passed the quality filters."""

    kind = "no_imagery_found"
    status_code = 404


class RasterFetchError(SiteAnalysisError):
    """Band read failed after retries."""

    kind = "raster_fetch_error"
    status_code = 502
    retryable = True

    def __init__(self, message: str, href: str, attempts: int, last_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.href = href
        self.attempts = attempts
        self.last_error = last_error


class MissingBandError(SiteAnalysisError):
    """Chosen item lacks the bands required for the indices."""

    kind = "missing_band"
    status_code = 422

    def __init__(self, missing: list[str], available: list[str] | None = None) -> None:
        super().__init__(f"Missing required bands {missing}. Available: {available or []}")
        self.missing = missing
        self.available = available or []


class VisualizationError(SiteAnalysisError):
    """No usable asset for map URLs; handled inside the visualization step."""

    kind = "visualization_error"


class AnalysisTimeout(SiteAnalysisError):
    """The whole analysis exceeded its ceiling."""

    kind = "timeout"
    status_code = 504
    retryable = True

    def __init__(self, message: str, timeout: float) -> None:
        super().__init__(message)
        self.timeout = timeout


class AnalysisCancelled(SiteAnalysisError):
    """The caller abandoned the request."""

    kind = "cancelled"
    status_code = 499


class AnalysisFailure(BaseModel):
    """Structured failure returned to callers instead of a result."""

    success: bool = PydanticField(default=False, description="Always False")
    error: str = PydanticField(..., description="Error kind")
    message: str = PydanticField(..., description="Human-readable message")
    status_code: int = PydanticField(..., description="Suggested HTTP status for the outer layer")
    retryable: bool = PydanticField(default=False, description="Whether retrying later may succeed")
    traceback: str | None = PydanticField(default=None, description="Only populated in development")


def failure_from_exception(exc: BaseException, include_traceback: bool = False) -> AnalysisFailure:
    """Convert an exception into a structured failure.

    Untyped exceptions are reported with a generic message unless tracebacks are enabled.

    :param exc: Raised exception
    :param include_traceback: Attach the formatted traceback (development only)
    :returns: AnalysisFailure instance
    """
    details: dict[str, Any] = {}
    if include_traceback:
        details["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    if isinstance(exc, SiteAnalysisError):
        return AnalysisFailure(
            error=exc.kind,
            message=exc.message,
            status_code=exc.status_code,
            retryable=exc.retryable,
            **details,
        )

    message = str(exc) if include_traceback else "Analysis failed. Please try again."
    return AnalysisFailure(error=SiteAnalysisError.kind, message=message, status_code=500, **details)
