"""Common Pydantic schemas"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response schema"""
    error: str = Field(..., description="Error message")
    code: Optional[str] = Field(None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    trace_id: Optional[str] = Field(None, description="Request trace ID")


class PointSchema(BaseModel):
    """WGS-84 decimal-degree coordinate"""
    lat: float = Field(..., description="Latitude")
    lng: float = Field(..., description="Longitude")
