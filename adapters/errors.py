from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class RoutePlannerError(Exception):
    """Base error: a stable code plus whatever context the raiser had at hand."""
    code = "ROUTE_PLANNER_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": str(self),
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class ParseError(RoutePlannerError):
    """Raised when an address string matches neither the full nor the short form."""
    code = "PARSE_ERROR"


class ValidationError(RoutePlannerError):
    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.field = field
        super().__init__(f"Validation failed for {field}: {message}", {"field": field, **(context or {})})


class NetworkError(RoutePlannerError):
    """Raised when the topology proxy is unreachable or answers with a bad payload."""
    code = "NETWORK_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, context: Optional[Dict[str, Any]] = None) -> None:
        self.status_code = status_code
        super().__init__(message, {"status_code": status_code, **(context or {})})


class ExecutionError(RoutePlannerError):
    code = "EXECUTION_ERROR"


class CancellationError(RoutePlannerError):
    # Only ever recorded on an item result; the processor never raises it.
    code = "CANCELLED"


__all__ = [
    "RoutePlannerError",
    "ParseError",
    "ValidationError",
    "NetworkError",
    "ExecutionError",
    "CancellationError",
]
