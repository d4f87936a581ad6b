"""Pipeline error taxonomy and structured logging."""
import logging
import json
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from sitephotos.core.config import settings


class UploadPipelineError(Exception):
    """Base class for per-item upload failures."""
    pass


class CompressionError(UploadPipelineError):
    """The source image could not be compressed. Never retried."""
    pass


class TransferError(UploadPipelineError):
    """The object store rejected every upload attempt."""
    pass


class MetadataRecordError(UploadPipelineError):
    """The object was stored but its metadata row could not be written."""
    pass


class InvalidTransitionError(Exception):
    """An upload item was asked to move backwards or out of a terminal state."""
    pass


def error_message(error: BaseException) -> str:
    """Non-empty human readable message for an exception."""
    message = str(error).strip()
    return message or type(error).__name__


class StructuredLogger:
    """Structured logging for better observability."""

    def __init__(self, name: str = None):
        self.logger = logging.getLogger(name or __name__)
        self.logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    def _log_structured(
        self,
        level: str,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None
    ):
        """Log with structured data."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
            "service": "sitephotos",
        }

        if extra:
            log_data.update(extra)

        if exception:
            log_data["exception"] = {
                "type": type(exception).__name__,
                "message": str(exception),
                "traceback": "".join(traceback.format_exception(type(exception), exception, exception.__traceback__))
            }

        # Log as JSON for structured logging
        log_message = json.dumps(log_data, default=str)
        self.logger.log(getattr(logging, level.upper(), logging.INFO), log_message)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None, exception: Optional[BaseException] = None):
        """Log error message."""
        self._log_structured("ERROR", message, extra, exception)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None, exception: Optional[BaseException] = None):
        """Log warning message."""
        self._log_structured("WARNING", message, extra, exception)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None):
        """Log info message."""
        self._log_structured("INFO", message, extra)


# Global instance
structured_logger = StructuredLogger("sitephotos")
