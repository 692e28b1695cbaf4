"""Exceptions raised by the serviceability engine"""

from typing import Any, Dict, List, Optional


class ServiceabilityError(Exception):
    """Base exception for serviceability errors."""
    code = "SERVICEABILITY_ERROR"


class InvalidQueryError(ServiceabilityError, ValueError):
    """Raised when a query is missing required fields or carries bad values."""
    code = "INVALID_QUERY"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class UpstreamUnavailableError(ServiceabilityError):
    """Raised when a data dependency cannot be read. Callers may retry."""
    code = "UPSTREAM_UNAVAILABLE"


class CatalogUnavailableError(UpstreamUnavailableError):
    """Raised when geofence or base location records cannot be fetched."""
    code = "CATALOG_UNAVAILABLE"


class CapacityUnavailableError(UpstreamUnavailableError):
    """Raised when the capacity counter cannot be read or incremented."""
    code = "CAPACITY_UNAVAILABLE"


class ShapeValidationError(ServiceabilityError, ValueError):
    """Raised when an authored geofence or base location is malformed."""
    code = "MALFORMED_SHAPE"

    def __init__(self, record_id: Optional[str], problems: List[str]):
        self.record_id = record_id
        self.problems = problems
        super().__init__(
            f"Record {record_id or '<new>'} is malformed: {'; '.join(problems)}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"record_id": self.record_id, "problems": list(self.problems)}
