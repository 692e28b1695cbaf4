"""Pydantic schemas for the serviceability API"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from serviceability.config import settings
from serviceability.services.serviceability import ExplainReport, ServiceabilityResult
from .common import PointSchema


class ServiceabilityRequest(BaseModel):
    """Request schema for check and assign"""
    lat: float = Field(..., description="Latitude in decimal degrees")
    lng: float = Field(..., description="Longitude in decimal degrees")
    service_type: str = Field(..., description="delivery or lab_collection (aliases: medicine, lab)")
    order_value: Optional[Decimal] = Field(None, description="Order amount, compared against geofence minimums")
    at_time: Optional[datetime] = Field(None, description="Evaluation time; defaults to now, naive values are service-local")

    @field_validator('service_type')
    @classmethod
    def validate_service_type(cls, v):
        if not v or not v.strip():
            raise ValueError('service_type must not be blank')
        return v.strip()


class PartnerRefResponse(BaseModel):
    kind: str = Field(..., description="store or center")
    id: str = Field(..., description="Partner identifier")


class AssignmentResponse(BaseModel):
    """Who serves the point and at what fee"""
    kind: str = Field(..., description="geofence or base_location")
    fee: Decimal = Field(..., description="Fee in currency units")
    currency: str = Field(default="INR", description="Currency code")
    geofence_id: Optional[str] = Field(None, description="Winning geofence")
    geofence_name: Optional[str] = None
    priority: Optional[int] = None
    partner_ref: Optional[PartnerRefResponse] = Field(None, description="Store or center owning the geofence")
    base_location_id: Optional[str] = Field(None, description="Fallback hub")
    base_location_name: Optional[str] = None
    distance_km: Optional[float] = Field(None, description="Great-circle distance to the hub")


class ServiceabilityResponse(BaseModel):
    """Response schema for check and assign"""
    is_serviceable: bool = Field(..., description="Whether the point can be served")
    service_type: str = Field(..., description="Normalised service type")
    coverage: str = Field(..., description="has_partners, available_no_partner or out_of_area")
    assignment: Optional[AssignmentResponse] = None
    reason: Optional[str] = Field(None, description="Why the point is not serviceable")
    reason_code: Optional[str] = Field(None, description="NO_ACTIVE_SHAPES or OUTSIDE_COVERAGE")
    candidates: List[str] = Field(default_factory=list, description="Matching geofence ids, winner first")
    far_from_hub: bool = Field(False, description="Fallback hub is beyond the configured distance policy")
    catalog_version: str = Field(..., description="Digest of the catalog snapshot used")

    @classmethod
    def from_result(cls, result: ServiceabilityResult) -> "ServiceabilityResponse":
        assignment = None
        if result.assignment is not None:
            data = {
                "kind": result.assignment.kind,
                "fee": result.assignment.fee,
                "currency": settings.currency,
            }
            if result.assignment.kind == "geofence":
                partner = result.assignment.partner_ref
                data.update(
                    geofence_id=result.assignment.geofence_id,
                    geofence_name=result.assignment.geofence_name,
                    priority=result.assignment.priority,
                    partner_ref=PartnerRefResponse(kind=partner.kind, id=partner.id) if partner else None,
                )
            else:
                data.update(
                    base_location_id=result.assignment.base_location_id,
                    base_location_name=result.assignment.base_location_name,
                    distance_km=result.assignment.distance_km,
                )
            assignment = AssignmentResponse(**data)

        return cls(
            is_serviceable=result.is_serviceable,
            service_type=result.service_type,
            coverage=result.coverage.value,
            assignment=assignment,
            reason=result.reason,
            reason_code=result.reason_code.value if result.reason_code else None,
            candidates=list(result.candidates),
            far_from_hub=result.far_from_hub,
            catalog_version=result.catalog_version,
        )


class GeofenceEvaluationResponse(BaseModel):
    id: str
    name: str
    priority: int
    shape_type: str
    area_m2: float
    verdict: str = Field(..., description="SELECTED, OUTRANKED, INACTIVE, CLOSED, BELOW_MIN_ORDER, OUTSIDE_SHAPE or CAPACITY_EXHAUSTED")
    detail: str = ""


class BaseLocationEvaluationResponse(BaseModel):
    id: str
    name: str
    priority: int
    is_default: bool
    distance_km: float
    fee: Decimal
    verdict: str = Field(..., description="SELECTED, FARTHER or INACTIVE")
    detail: str = ""


class MalformedRecordResponse(BaseModel):
    record_id: str
    kind: str
    verdict: str = "MALFORMED_SHAPE"
    problems: List[str]


class FeePreviewResponse(BaseModel):
    """Fee the base-location fallback would charge"""
    base_location_id: str
    distance_km: float
    fee: Decimal
    currency: str


class ExplainResponse(BaseModel):
    """Diagnostic breakdown of one lookup"""
    point: PointSchema
    service_type: str
    order_value: Optional[Decimal] = None
    evaluated_at: datetime
    catalog_version: str
    geofences: List[GeofenceEvaluationResponse]
    base_locations: List[BaseLocationEvaluationResponse]
    malformed: List[MalformedRecordResponse]
    fee_preview: Optional[FeePreviewResponse] = None
    decision: ServiceabilityResponse

    @classmethod
    def from_report(cls, report: ExplainReport) -> "ExplainResponse":
        fee_preview = None
        if report.fee_preview is not None:
            fee_preview = FeePreviewResponse(
                base_location_id=report.fee_preview.base_location.id,
                distance_km=round(report.fee_preview.distance_km, 3),
                fee=report.fee_preview.fee,
                currency=settings.currency,
            )

        return cls(
            point=PointSchema(lat=report.query.point.lat, lng=report.query.point.lng),
            service_type=report.query.service_type.value,
            order_value=report.query.order_value,
            evaluated_at=report.evaluated_at,
            catalog_version=report.catalog_version,
            geofences=[
                GeofenceEvaluationResponse(
                    id=e.geofence.id,
                    name=e.geofence.name,
                    priority=e.geofence.priority,
                    shape_type=e.geofence.shape_type.value,
                    area_m2=round(e.geofence.area_m2, 1),
                    verdict=e.verdict.value,
                    detail=e.detail,
                )
                for e in report.geofences
            ],
            base_locations=[
                BaseLocationEvaluationResponse(
                    id=e.base_location.id,
                    name=e.base_location.name,
                    priority=e.base_location.priority,
                    is_default=e.base_location.is_default,
                    distance_km=round(e.distance_km, 3),
                    fee=e.fee,
                    verdict=e.verdict,
                    detail=e.detail,
                )
                for e in report.base_locations
            ],
            malformed=[
                MalformedRecordResponse(record_id=m.record_id, kind=m.kind, problems=list(m.problems))
                for m in report.malformed
            ],
            fee_preview=fee_preview,
            decision=ServiceabilityResponse.from_result(report.decision),
        )


class CatalogSummaryResponse(BaseModel):
    """What a snapshot of one service type holds"""
    service_type: str
    version: str
    fetched_at: datetime
    at_time: datetime
    configured_geofences: int
    open_geofences: List[str] = Field(..., description="Active geofences open at at_time")
    configured_base_locations: int
    active_base_locations: List[str]
    malformed: List[MalformedRecordResponse]
