"""
Exchange Prices Exceptions - Error taxonomy for price aggregation.

Only the input-validation errors (InvalidRequestError and subclasses)
escape the public API. Everything else is caught by the orchestrator and
degrades to "fewer sources" or gap buckets.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class PriceSourceError(Exception):
    """Base exception for all exchange price errors."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.source_name = source_name
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source_name": self.source_name,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.source_name:
            parts.append(f"[source={self.source_name}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class InvalidRequestError(PriceSourceError, ValueError):
    """Caller supplied invalid request parameters."""


class InvalidTimeframeError(InvalidRequestError):
    """Timeframe is not a whole number of minutes or exceeds one hour."""

    def __init__(
        self,
        message: str,
        timeframe: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context=context)
        self.timeframe = timeframe

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["timeframe"] = self.timeframe
        return data


class InvalidNumberError(PriceSourceError, ValueError):
    """Value cannot be converted to a finite fixed-point number."""

    def __init__(
        self,
        message: str,
        value: Any = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, original_error=original_error)
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["value"] = repr(self.value)
        return data


class TimestampMismatchError(PriceSourceError):
    """
    Reconciled series does not follow the requested slot grid.

    Indicates upstream data corruption or a pagination bug. Not retried.
    """

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, context=context)
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "expected": self.expected,
            "actual": self.actual,
        })
        return data


class MarketLoadError(PriceSourceError):
    """Exchange market list could not be loaded."""
    pass


class FetchError(PriceSourceError):
    """Error during data fetching from an exchange API."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data

    def is_rate_limited(self) -> bool:
        """Check if error is due to rate limiting."""
        return self.status_code == 429

    def is_server_error(self) -> bool:
        """Check if error is server-side."""
        return self.status_code is not None and 500 <= self.status_code < 600


class RateLimitError(FetchError):
    """Rate limit exceeded error."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            source_name,
            status_code=429,
            request_url=request_url,
            original_error=original_error,
            context=context,
        )
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class IncompleteCandleError(PriceSourceError):
    """A candle in the returned series is still forming. Retryable."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        pair_name: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, context=context)
        self.pair_name = pair_name

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["pair_name"] = self.pair_name
        return data
