"""
FeedMirror Custom Exceptions
===========================

Exception hierarchy for the feed refresh pipeline with error codes,
context information, and user-facing messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"

    # Upstream feed errors (F001-F099)
    FEED_FETCH_TIMEOUT = "F001"
    FEED_NETWORK_ERROR = "F002"
    FEED_BAD_STATUS = "F003"
    FEED_PARSE_ERROR = "F004"

    # Media errors (M001-M099)
    MEDIA_FETCH_FAILED = "M001"
    MEDIA_DOWNLOAD_EXHAUSTED = "M002"

    # Serving errors (H001-H099)
    SERVING_FIRST_FETCH_FAILED = "H001"
    SERVING_LISTENER_FAILED = "H002"


class FeedMirrorError(Exception):
    """Base exception for all FeedMirror errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize FeedMirror error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _split_kwargs(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(FeedMirrorError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error
            **kwargs: Additional arguments for FeedMirrorError
        """
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_split_kwargs(kwargs, "context", "error_code", "user_message"),
        )


class TransientFetchError(FeedMirrorError):
    """An upstream feed or media fetch failed; worth retrying."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status: Optional[int] = None,
        **kwargs,
    ):
        """Initialize fetch error.

        Args:
            message: Error message
            url: URL that failed
            status: HTTP status code, when a response was received
            **kwargs: Additional arguments for FeedMirrorError
        """
        context = kwargs.get("context", {})
        if url:
            context["url"] = url
        if status is not None:
            context["status"] = status

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get("user_message", "Upstream fetch failed"),
            recoverable=kwargs.get("recoverable", True),
            **_split_kwargs(
                kwargs, "context", "error_code", "user_message", "recoverable"
            ),
        )


class FeedParseError(FeedMirrorError):
    """Raw document does not have the expected RSS shape."""

    def __init__(self, message: str, source_id: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if source_id:
            context["source_id"] = source_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_PARSE_ERROR),
            context=context,
            user_message=kwargs.get("user_message", "Feed could not be parsed"),
            recoverable=kwargs.get("recoverable", True),
            **_split_kwargs(
                kwargs, "context", "error_code", "user_message", "recoverable"
            ),
        )


class DownloadFailedError(FeedMirrorError):
    """Media download exhausted its retries."""

    def __init__(
        self,
        message: str,
        source_id: Optional[str] = None,
        post_key: Optional[int] = None,
        url: Optional[str] = None,
        **kwargs,
    ):
        """Initialize download error.

        Args:
            message: Error message
            source_id: Source the media belongs to
            post_key: Ordering key of the post
            url: Remote media URL
            **kwargs: Additional arguments for FeedMirrorError
        """
        context = kwargs.get("context", {})
        if source_id:
            context["source_id"] = source_id
        if post_key is not None:
            context["post_key"] = post_key
        if url:
            context["url"] = url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.MEDIA_DOWNLOAD_EXHAUSTED),
            context=context,
            user_message=kwargs.get("user_message", "Media download failed"),
            recoverable=kwargs.get("recoverable", False),
            **_split_kwargs(
                kwargs, "context", "error_code", "user_message", "recoverable"
            ),
        )


class ServingError(FeedMirrorError):
    """No cached entry and the synchronous first fetch failed."""

    def __init__(self, message: str, source_id: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if source_id:
            context["source_id"] = source_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.SERVING_FIRST_FETCH_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Error generating RSS feed."),
            **_split_kwargs(kwargs, "context", "error_code", "user_message"),
        )


# Exception handling utilities


def is_retryable_error(exception: Exception) -> bool:
    """Check if an error is worth retrying.

    Non-FeedMirror exceptions are treated as transient, since upstream
    libraries raise their own types for network trouble.
    """
    if not isinstance(exception, FeedMirrorError):
        return True

    if not exception.recoverable:
        return False

    retryable_codes = {
        ErrorCode.FEED_FETCH_TIMEOUT,
        ErrorCode.FEED_NETWORK_ERROR,
        ErrorCode.FEED_BAD_STATUS,
        ErrorCode.FEED_PARSE_ERROR,
        ErrorCode.MEDIA_FETCH_FAILED,
    }

    return exception.error_code in retryable_codes


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, FeedMirrorError):
        return exception.user_message

    return "Internal server error"
