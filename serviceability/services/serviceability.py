"""
Serviceability service

Orchestrates one lookup: geofence first, base-location fallback second,
one normalised result either way.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Tuple, Union

import structlog

from serviceability.config import settings
from serviceability.metrics import CAPACITY_RACES_LOST, SERVICEABILITY_DECISIONS
from serviceability.services.base_location_resolver import (
    BaseLocationEvaluation, BaseLocationMatch, BaseLocationResolver
)
from serviceability.services.capacity import CapacityCounter, InMemoryCapacityCounter
from serviceability.services.catalog import CatalogSnapshot, ShapeCatalog
from serviceability.services.domain import (
    Geofence, LatLng, MalformedRecord, PartnerRef, ServiceabilityQuery, normalize_service_type
)
from serviceability.services.errors import InvalidQueryError
from serviceability.services.geofence_resolver import GeofenceEvaluation, GeofenceResolver

logger = structlog.get_logger()


class ReasonCode(str, Enum):
    NO_ACTIVE_SHAPES = "NO_ACTIVE_SHAPES"
    OUTSIDE_COVERAGE = "OUTSIDE_COVERAGE"


class CoverageStatus(str, Enum):
    HAS_PARTNERS = "has_partners"
    AVAILABLE_NO_PARTNER = "available_no_partner"
    OUT_OF_AREA = "out_of_area"


@dataclass(frozen=True)
class GeofenceAssignment:
    geofence_id: str
    geofence_name: str
    partner_ref: Optional[PartnerRef]
    fee: Decimal
    priority: int
    kind: str = "geofence"


@dataclass(frozen=True)
class BaseLocationAssignment:
    base_location_id: str
    base_location_name: str
    fee: Decimal
    distance_km: float
    kind: str = "base_location"


Assignment = Union[GeofenceAssignment, BaseLocationAssignment]


@dataclass(frozen=True)
class ServiceabilityResult:
    is_serviceable: bool
    service_type: str
    coverage: CoverageStatus
    assignment: Optional[Assignment] = None
    reason: Optional[str] = None
    reason_code: Optional[ReasonCode] = None
    candidates: Tuple[str, ...] = ()
    far_from_hub: bool = False
    catalog_version: str = ""


@dataclass(frozen=True)
class ExplainReport:
    """Everything that was considered for one lookup and why"""
    query: ServiceabilityQuery
    evaluated_at: datetime
    catalog_version: str
    geofences: Tuple[GeofenceEvaluation, ...]
    base_locations: Tuple[BaseLocationEvaluation, ...]
    malformed: Tuple[MalformedRecord, ...]
    fee_preview: Optional[BaseLocationMatch]
    decision: ServiceabilityResult


def _coerce_coordinate(value, name: str, bound: float) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidQueryError(f"{name} is required", field=name)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidQueryError(f"{name} must be a number, got {value!r}", field=name)
    if math.isnan(number) or not -bound <= number <= bound:
        raise InvalidQueryError(f"{name} must be between -{bound:g} and {bound:g}", field=name)
    return number


def build_query(point, service_type, order_value=None, at_time: Optional[datetime] = None) -> ServiceabilityQuery:
    """
    Validate raw inputs into a ServiceabilityQuery

    Args:
        point: (lat, lng) pair in WGS-84 decimal degrees
        service_type: service type or one of its aliases
        order_value: optional non-negative amount
        at_time: optional datetime; naive values are read as service-local time

    Raises:
        InvalidQueryError: on any missing or out-of-range input
    """
    if point is None:
        raise InvalidQueryError("point is required", field="point")
    try:
        raw_lat, raw_lng = point
    except (TypeError, ValueError):
        raise InvalidQueryError("point must be a (lat, lng) pair", field="point")

    lat = _coerce_coordinate(raw_lat, "lat", 90.0)
    lng = _coerce_coordinate(raw_lng, "lng", 180.0)
    service = normalize_service_type(service_type)

    amount = None
    if order_value is not None:
        try:
            amount = Decimal(str(order_value))
        except InvalidOperation:
            raise InvalidQueryError(f"order_value must be a number, got {order_value!r}", field="order_value")
        if not amount.is_finite() or amount < 0:
            raise InvalidQueryError("order_value must be a non-negative amount", field="order_value")

    if at_time is not None and not isinstance(at_time, datetime):
        raise InvalidQueryError("at_time must be a datetime", field="at_time")

    return ServiceabilityQuery(LatLng(lat, lng), service, amount, at_time)


class ServiceabilityService:
    """Entry point for check, assign and explain"""

    def __init__(
        self,
        catalog: ShapeCatalog,
        capacity_counter: Optional[CapacityCounter] = None,
        geofence_resolver: Optional[GeofenceResolver] = None,
        base_location_resolver: Optional[BaseLocationResolver] = None,
        geofence_fee: Optional[Decimal] = None,
        max_fallback_distance_km: Optional[float] = None,
    ):
        self.catalog = catalog
        self.capacity_counter = capacity_counter or InMemoryCapacityCounter()
        self.geofence_resolver = geofence_resolver or GeofenceResolver(self.capacity_counter)
        self.base_location_resolver = base_location_resolver or BaseLocationResolver()
        fee = settings.geofence_flat_fee if geofence_fee is None else geofence_fee
        quantum = Decimal(1).scaleb(-settings.currency_minor_units)
        self.geofence_fee = Decimal(str(fee)).quantize(quantum, rounding=ROUND_HALF_UP)
        self.max_fallback_distance_km = (
            settings.max_fallback_distance_km if max_fallback_distance_km is None else max_fallback_distance_km
        )
        self.logger = logger.bind(service="serviceability")

    def check(self, point, service_type, order_value=None, at_time: Optional[datetime] = None) -> ServiceabilityResult:
        """Decide serviceability without touching capacity state"""
        query = build_query(point, service_type, order_value, at_time)
        snapshot = self.catalog.snapshot(query.service_type, query.at_time)
        ranked = self.geofence_resolver.rank(query, snapshot)
        winner = ranked[0] if ranked else None
        return self._finish(query, snapshot, winner, ranked)

    def assign(self, point, service_type, order_value=None, at_time: Optional[datetime] = None) -> ServiceabilityResult:
        """
        Decide and take one daily capacity slot on the winning geofence

        When a concurrent request takes the last slot first, the next
        candidate is tried, then the base-location fallback.
        """
        query = build_query(point, service_type, order_value, at_time)
        snapshot = self.catalog.snapshot(query.service_type, query.at_time)
        ranked = self.geofence_resolver.rank(query, snapshot)
        day = snapshot.at_time.date()

        winner = None
        for geofence in ranked:
            if geofence.capacity_per_day is None:
                winner = geofence
                break
            if self.capacity_counter.try_reserve(geofence.id, day, geofence.capacity_per_day):
                winner = geofence
                break
            CAPACITY_RACES_LOST.labels(snapshot.service_type.value).inc()
            self.logger.info("Capacity race lost", geofence_id=geofence.id, day=day.isoformat())

        return self._finish(query, snapshot, winner, ranked)

    def explain(self, point, service_type, order_value=None, at_time: Optional[datetime] = None) -> ExplainReport:
        """Diagnostic breakdown; reads capacity but never reserves"""
        query = build_query(point, service_type, order_value, at_time)
        snapshot = self.catalog.snapshot(query.service_type, query.at_time)
        ranked = self.geofence_resolver.rank(query, snapshot)
        decision = self._finish(query, snapshot, ranked[0] if ranked else None, ranked, record=False)

        return ExplainReport(
            query=query,
            evaluated_at=snapshot.at_time,
            catalog_version=snapshot.version,
            geofences=tuple(self.geofence_resolver.evaluate(query, snapshot)),
            base_locations=tuple(self.base_location_resolver.evaluate(query, snapshot)),
            malformed=snapshot.malformed,
            fee_preview=self.base_location_resolver.resolve(query, snapshot),
            decision=decision,
        )

    def _finish(
        self,
        query: ServiceabilityQuery,
        snapshot: CatalogSnapshot,
        winner: Optional[Geofence],
        ranked: List[Geofence],
        record: bool = True,
    ) -> ServiceabilityResult:
        service_type = snapshot.service_type.value
        candidates = tuple(g.id for g in ranked)

        if winner is not None:
            result = ServiceabilityResult(
                is_serviceable=True,
                service_type=service_type,
                coverage=CoverageStatus.HAS_PARTNERS,
                assignment=GeofenceAssignment(
                    geofence_id=winner.id,
                    geofence_name=winner.name,
                    partner_ref=winner.partner_ref,
                    fee=self.geofence_fee,
                    priority=winner.priority,
                ),
                candidates=candidates,
                catalog_version=snapshot.version,
            )
            if record:
                self._record(result, geofence_id=winner.id, candidates=len(candidates))
            return result

        match = self.base_location_resolver.resolve(query, snapshot)
        if match is not None:
            far = (
                self.max_fallback_distance_km is not None
                and match.distance_km > self.max_fallback_distance_km
            )
            result = ServiceabilityResult(
                is_serviceable=True,
                service_type=service_type,
                coverage=CoverageStatus.AVAILABLE_NO_PARTNER,
                assignment=BaseLocationAssignment(
                    base_location_id=match.base_location.id,
                    base_location_name=match.base_location.name,
                    fee=match.fee,
                    distance_km=round(match.distance_km, 3),
                ),
                candidates=candidates,
                far_from_hub=far,
                catalog_version=snapshot.version,
            )
            if record:
                self._record(
                    result,
                    base_location_id=match.base_location.id,
                    distance_km=round(match.distance_km, 3),
                    far_from_hub=far,
                )
            return result

        if snapshot.has_active_shapes:
            code = ReasonCode.OUTSIDE_COVERAGE
            reason = f"No {service_type} geofence covers this location and no base location is active"
        else:
            code = ReasonCode.NO_ACTIVE_SHAPES
            reason = f"No active geofences or base locations for {service_type}"

        result = ServiceabilityResult(
            is_serviceable=False,
            service_type=service_type,
            coverage=CoverageStatus.OUT_OF_AREA,
            reason=reason,
            reason_code=code,
            catalog_version=snapshot.version,
        )
        if record:
            self._record(result, reason=code.value)
        return result

    def _record(self, result: ServiceabilityResult, **context):
        outcome = result.assignment.kind if result.assignment else result.reason_code.value
        SERVICEABILITY_DECISIONS.labels(result.service_type, outcome).inc()
        self.logger.info(
            "Serviceability decided",
            service_type=result.service_type,
            outcome=outcome,
            **context,
        )
