"""
Structured JSON Logger
=====================

Bounded Context: Observability Infrastructure

This module provides a structured logger that outputs JSON logs for production systems.

Design:
- JSON output (compatible with log aggregators)
- Thread-safe (uses standard logging module)
- Contextual metadata (component, coordinator, participant_id, etc.)
- Type-safe events (LogEvent enum)

Example:
    >>> logger = StructuredLogger(component="coordinator")
    >>> logger.warning(
    ...     event=LogEvent.PARTICIPANT_TIMEOUT,
    ...     message="Participant did not register in time",
    ...     metadata={'coordinator': 'server:srv', 'participant_id': 'lamp'}
    ... )

Output:
    {
        "timestamp": "2025-10-24T15:30:45.123456",
        "level": "WARNING",
        "component": "coordinator",
        "event": "participant.timeout",
        "message": "Participant did not register in time",
        "metadata": {"coordinator": "server:srv", "participant_id": "lamp"}
    }
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from .events import LogEvent


class StructuredLogger:
    """
    JSON structured logger for production observability.

    Wraps Python's logging module with structured metadata support.

    Attributes:
        component: Component name (e.g., "coordinator", "lifecycle")
        logger: Underlying Python logger instance

    Thread Safety:
        Thread-safe via Python's logging module.
    """

    def __init__(
        self,
        component: str,
        level: int = logging.INFO,
        logger_name: Optional[str] = None
    ):
        """
        Initialize structured logger.

        Args:
            component: Component identifier (e.g., "coordinator")
            level: Logging level (default: INFO)
            logger_name: Custom logger name (default: hearth.<component>)
        """
        self.component = component
        self.logger_name = logger_name or f"hearth.{component}"
        self.logger = logging.getLogger(self.logger_name)
        self.logger.setLevel(level)

        # Configure JSON formatter if not already configured
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)

    def _log(
        self,
        level: str,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        """
        Internal log method with structured format.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            event: Typed log event
            message: Human-readable message
            metadata: Additional context (coordinator, participant_id, etc.)
            exc_info: Exception for ERROR logs
        """
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level,
            'component': self.component,
            'event': event.value,
            'message': message,
        }

        if metadata:
            log_entry['metadata'] = metadata

        if exc_info:
            log_entry['exception'] = {
                'type': type(exc_info).__name__,
                'message': str(exc_info)
            }

        log_level = getattr(logging, level)
        self.logger.log(
            log_level,
            json.dumps(log_entry, default=str),
            exc_info=exc_info if level == 'ERROR' else None
        )

    def debug(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log DEBUG level message."""
        self._log('DEBUG', event, message, metadata)

    def info(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log INFO level message.

        Example:
            >>> logger.info(
            ...     event=LogEvent.PARTICIPANT_REGISTERED,
            ...     message="Participant registered",
            ...     metadata={'participant_id': 'lamp'}
            ... )
        """
        self._log('INFO', event, message, metadata)

    def warning(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log WARNING level message."""
        self._log('WARNING', event, message, metadata)

    def error(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        """
        Log ERROR level message.

        Example:
            >>> try:
            ...     server.start()
            ... except OSError as e:
            ...     logger.error(
            ...         event=LogEvent.RESOURCE_START_ERROR,
            ...         message="Server failed to start",
            ...         exc_info=e,
            ...         metadata={'coordinator': 'server:srv'}
            ...     )
        """
        self._log('ERROR', event, message, metadata, exc_info)

    def set_level(self, level: int) -> None:
        """Change logging level dynamically."""
        self.logger.setLevel(level)


class JSONFormatter(logging.Formatter):
    """
    Pass-through formatter: StructuredLogger already renders JSON.
    """

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


def create_logger(
    component: str,
    level: int = logging.INFO
) -> StructuredLogger:
    """
    Factory function to create configured StructuredLogger.

    Example:
        >>> logger = create_logger("coordinator", level=logging.DEBUG)
    """
    return StructuredLogger(component=component, level=level)
