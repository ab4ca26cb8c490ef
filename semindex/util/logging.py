"""
Structured logging for indexing, search and pattern operations.
All output goes to stderr so it never mixes with returned data.
"""

import logging
from typing import Any, Dict, List, Optional

from ..core.config import debug_enabled


class StructuredLogger:
    """Structured logger for index, search, pattern and model events."""

    def __init__(self, name: str = "semindex"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if debug_enabled() else logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_index_operation(self, operation: str, project_id: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log an indexing operation."""
        log_details = {"project_id": project_id}
        if details:
            log_details.update(details)

        self.log_operation(f"index.{operation}", status, log_details)

    def log_search(self, scope: str, query: str, candidates: int, matches: int, status: str = "success"):
        """Log a ranking run. The query text is truncated."""
        log_details = {
            "scope": scope,
            "query": sanitize_payload(query),
            "candidates": candidates,
            "matches": matches,
        }
        self.log_operation("search", status, log_details)

    def log_pattern_operation(self, operation: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a pattern store operation."""
        self.log_operation(f"pattern.{operation}", status, sanitize_payload(details or {}))

    def log_model_event(self, event: str, model_name: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log embedding model lifecycle events (load, download, failure)."""
        log_details = {"model": model_name}
        if details:
            log_details.update(details)

        self.log_operation(f"model.{event}", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, max_length: int = 100, redact_fields: Optional[List[str]] = None) -> Any:
    """Truncate long strings and redact named fields before logging."""
    if redact_fields is None:
        redact_fields = []

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if k in redact_fields:
                sanitized[k] = "[REDACTED]"
            else:
                sanitized[k] = sanitize_payload(v, max_length, redact_fields)
        return sanitized
    elif isinstance(payload, str):
        return payload[:max_length] + "..." if len(payload) > max_length else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, max_length, redact_fields) for item in payload]
    else:
        return payload
