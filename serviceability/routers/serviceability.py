"""API endpoints for serviceability decisions"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
import structlog

from serviceability.auth import verify_api_key
from serviceability.dependencies import get_serviceability_service
from serviceability.services.serviceability import ServiceabilityService
from serviceability.schemas.serviceability import (
    ServiceabilityRequest, ServiceabilityResponse, ExplainResponse
)

logger = structlog.get_logger()

router = APIRouter()


@router.post("/check", response_model=ServiceabilityResponse)
def check_serviceability(
    request: ServiceabilityRequest,
    service: ServiceabilityService = Depends(get_serviceability_service),
    api_key: str = Depends(verify_api_key)
):
    """
    Decide whether a point can be served.

    Resolution order:
    1. Highest-priority geofence that contains the point, is open and has capacity
    2. Nearest active base location with its distance-tiered fee
    3. Not serviceable, with NO_ACTIVE_SHAPES or OUTSIDE_COVERAGE

    Capacity is read but not consumed; use /assign to take a slot.
    """
    result = service.check(
        (request.lat, request.lng),
        request.service_type,
        order_value=request.order_value,
        at_time=request.at_time,
    )
    return ServiceabilityResponse.from_result(result)


@router.get("/check", response_model=ServiceabilityResponse)
def check_serviceability_get(
    lat: float = Query(..., description="Latitude in decimal degrees"),
    lng: float = Query(..., description="Longitude in decimal degrees"),
    service_type: str = Query(..., description="delivery or lab_collection"),
    order_value: Optional[Decimal] = Query(None, description="Order amount"),
    at_time: Optional[datetime] = Query(None, description="Evaluation time (ISO 8601)"),
    service: ServiceabilityService = Depends(get_serviceability_service),
    api_key: str = Depends(verify_api_key)
):
    """Same decision as POST /check, for clients that can only issue GETs"""
    result = service.check((lat, lng), service_type, order_value=order_value, at_time=at_time)
    return ServiceabilityResponse.from_result(result)


@router.post("/assign", response_model=ServiceabilityResponse)
def assign_serviceability(
    request: ServiceabilityRequest,
    service: ServiceabilityService = Depends(get_serviceability_service),
    api_key: str = Depends(verify_api_key)
):
    """
    Decide and reserve one daily capacity slot on the winning geofence.

    If another request takes the last slot first, the next matching geofence
    is tried, then the base-location fallback.
    """
    result = service.assign(
        (request.lat, request.lng),
        request.service_type,
        order_value=request.order_value,
        at_time=request.at_time,
    )
    if result.assignment is not None:
        logger.info(
            "Assignment made",
            kind=result.assignment.kind,
            service_type=result.service_type,
        )
    return ServiceabilityResponse.from_result(result)


@router.get("/explain", response_model=ExplainResponse)
def explain_serviceability(
    lat: float = Query(..., description="Latitude in decimal degrees"),
    lng: float = Query(..., description="Longitude in decimal degrees"),
    service_type: str = Query(..., description="delivery or lab_collection"),
    order_value: Optional[Decimal] = Query(None, description="Order amount"),
    at_time: Optional[datetime] = Query(None, description="Evaluation time (ISO 8601)"),
    service: ServiceabilityService = Depends(get_serviceability_service),
    api_key: str = Depends(verify_api_key)
):
    """
    Every geofence and base location considered for the point, with the
    verdict for each. Diagnostic only: never reserves capacity.
    """
    report = service.explain((lat, lng), service_type, order_value=order_value, at_time=at_time)
    return ExplainResponse.from_report(report)
