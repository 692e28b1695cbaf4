"""Pydantic schemas for API requests and responses"""

from .common import ErrorResponse, PointSchema
from .serviceability import (
    ServiceabilityRequest, ServiceabilityResponse, AssignmentResponse,
    ExplainResponse, GeofenceEvaluationResponse, BaseLocationEvaluationResponse,
    FeePreviewResponse, MalformedRecordResponse, CatalogSummaryResponse
)

__all__ = [
    "ErrorResponse", "PointSchema",
    "ServiceabilityRequest", "ServiceabilityResponse", "AssignmentResponse",
    "ExplainResponse", "GeofenceEvaluationResponse", "BaseLocationEvaluationResponse",
    "FeePreviewResponse", "MalformedRecordResponse", "CatalogSummaryResponse",
]
