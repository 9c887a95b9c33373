#!/usr/bin/env python3
"""
FeedMirror Error Reporting
=========================

Classifies and records failures that the service absorbs instead of
propagating: exhausted source refreshes, failed first fetches, degraded
media downloads and unhandled task exceptions.
"""

import traceback
import time
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, asdict

from ..utils.logging import get_logger_for_component
from ..utils.exceptions import (
    FeedMirrorError,
    TransientFetchError,
    FeedParseError,
    DownloadFailedError,
    ServingError,
    ConfigurationError,
    is_retryable_error,
)


class ErrorSeverity(Enum):
    """Error severity levels for classification and prioritization."""

    LOW = "low"  # Degraded output, service unaffected
    MEDIUM = "medium"  # A source is temporarily stale
    HIGH = "high"  # A request could not be served
    CRITICAL = "critical"  # The listener or the process is at risk


class ErrorCategory(Enum):
    """Categories for error classification."""

    NETWORK = "network"
    FEED = "feed"
    MEDIA = "media"
    SERVING = "serving"
    CONFIGURATION = "configuration"
    RESOURCE = "resource"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Contextual information about an error occurrence."""

    component: str
    operation: str
    source_id: Optional[str] = None
    url: Optional[str] = None
    post_key: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ErrorEvent:
    """Structured representation of an error event."""

    id: str
    timestamp: datetime
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    exception_type: str
    stack_trace: Optional[str]
    context: ErrorContext
    retryable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["category"] = self.category.value
        data["severity"] = self.severity.value
        return data


class ErrorClassifier:
    """Classifies exceptions into categories and severity levels."""

    CATEGORY_MAPPING = {
        TransientFetchError: ErrorCategory.NETWORK,
        FeedParseError: ErrorCategory.FEED,
        DownloadFailedError: ErrorCategory.MEDIA,
        ServingError: ErrorCategory.SERVING,
        ConfigurationError: ErrorCategory.CONFIGURATION,
        ConnectionError: ErrorCategory.NETWORK,
        TimeoutError: ErrorCategory.NETWORK,
        OSError: ErrorCategory.RESOURCE,
        MemoryError: ErrorCategory.RESOURCE,
    }

    @classmethod
    def classify(
        cls, exception: BaseException, context: ErrorContext
    ) -> tuple[ErrorCategory, ErrorSeverity]:
        """Classify an exception into category and severity."""
        category = ErrorCategory.UNKNOWN
        for exc_type, mapped in cls.CATEGORY_MAPPING.items():
            if isinstance(exception, exc_type):
                category = mapped
                break

        return category, cls._determine_severity(exception, category, context)

    @classmethod
    def _determine_severity(
        cls, exception: BaseException, category: ErrorCategory, context: ErrorContext
    ) -> ErrorSeverity:
        if isinstance(exception, MemoryError) or context.component == "gateway_server":
            return ErrorSeverity.CRITICAL

        if category in (ErrorCategory.SERVING, ErrorCategory.CONFIGURATION):
            return ErrorSeverity.HIGH

        if category == ErrorCategory.MEDIA:
            return ErrorSeverity.LOW

        if category in (ErrorCategory.NETWORK, ErrorCategory.FEED):
            return ErrorSeverity.MEDIUM

        return ErrorSeverity.HIGH


class ErrorHandler:
    """
    Central sink for absorbed failures.

    Logs each error with its structured context, keeps a bounded history
    in memory and maintains per-category and per-source counters for the
    status endpoint.
    """

    MAX_EVENTS = 1000

    def __init__(self):
        self.logger = get_logger_for_component("error_handler")
        self.classifier = ErrorClassifier()
        self.error_events: List[ErrorEvent] = []
        self.error_counts: Dict[str, int] = {}

    def handle_error(self, exception: BaseException, context: ErrorContext) -> ErrorEvent:
        """Record an error occurrence and log it at a level matching its severity."""
        category, severity = self.classifier.classify(exception, context)

        error_event = ErrorEvent(
            id=f"{context.component}_{int(time.time() * 1000)}",
            timestamp=datetime.now(),
            category=category,
            severity=severity,
            message=str(exception),
            exception_type=type(exception).__name__,
            stack_trace="".join(
                traceback.format_exception(type(exception), exception, exception.__traceback__)
            ),
            context=context,
            retryable=isinstance(exception, Exception) and is_retryable_error(exception),
        )

        self._log_error(error_event, exception)
        self._store_error_event(error_event)
        return error_event

    def _log_error(self, error_event: ErrorEvent, exception: BaseException) -> None:
        log_data = {
            "error_id": error_event.id,
            "category": error_event.category.value,
            "severity": error_event.severity.value,
            "operation": error_event.context.operation,
        }
        if error_event.context.source_id:
            log_data["source_id"] = error_event.context.source_id
        if error_event.context.url:
            log_data["url"] = error_event.context.url
        if isinstance(exception, FeedMirrorError):
            log_data["error_code"] = exception.error_code.value if exception.error_code else None

        message = f"{error_event.context.component}.{error_event.context.operation}: {error_event.message}"
        if error_event.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(message, extra=log_data)
        elif error_event.severity == ErrorSeverity.HIGH:
            self.logger.error(message, extra=log_data)
        elif error_event.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(message, extra=log_data)
        else:
            self.logger.info(message, extra=log_data)

        if error_event.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
            self.logger.debug(f"Stack trace for {error_event.id}:\n{error_event.stack_trace}")

    def _store_error_event(self, error_event: ErrorEvent) -> None:
        self.error_events.append(error_event)
        if len(self.error_events) > self.MAX_EVENTS:
            self.error_events = self.error_events[-self.MAX_EVENTS:]

        keys = [
            f"category_{error_event.category.value}",
            f"severity_{error_event.severity.value}",
        ]
        if error_event.context.source_id:
            keys.append(f"source_{error_event.context.source_id}")
        for key in keys:
            self.error_counts[key] = self.error_counts.get(key, 0) + 1

    def get_error_statistics(self, hours: int = 24) -> Dict[str, Any]:
        """Get error statistics for the specified time period."""
        cutoff_time = datetime.now() - timedelta(hours=hours)
        recent_errors = [e for e in self.error_events if e.timestamp > cutoff_time]

        by_category: Dict[str, int] = {}
        by_source: Dict[str, int] = {}
        for error in recent_errors:
            by_category[error.category.value] = by_category.get(error.category.value, 0) + 1
            if error.context.source_id:
                by_source[error.context.source_id] = by_source.get(error.context.source_id, 0) + 1

        return {
            "time_period_hours": hours,
            "total_errors": len(recent_errors),
            "by_category": by_category,
            "by_source": by_source,
        }

    def get_recent_errors(self, count: int = 50) -> List[ErrorEvent]:
        return self.error_events[-count:]
