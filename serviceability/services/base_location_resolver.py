"""Base location resolver: nearest-hub fallback with distance-tiered fees"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

import structlog

from serviceability.config import settings
from serviceability.services.catalog import CatalogSnapshot
from serviceability.services.domain import BaseLocation, ServiceabilityQuery
from serviceability.services.geometry import haversine_distance

logger = structlog.get_logger()


@dataclass(frozen=True)
class BaseLocationMatch:
    base_location: BaseLocation
    fee: Decimal
    distance_km: float


@dataclass(frozen=True)
class BaseLocationEvaluation:
    """Diagnostic line for one hub"""
    base_location: BaseLocation
    distance_km: float
    fee: Decimal
    verdict: str  # SELECTED | FARTHER | INACTIVE
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.verdict == "SELECTED"


def compute_fee(base_location: BaseLocation, distance_km: float, minor_units: Optional[int] = None) -> Decimal:
    """
    Distance-tiered fee for one hub

    base_fare covers the first base_km; every km beyond is charged per_km_fee
    pro rata. Rounded half-up to the currency minor unit and never below
    base_fare.
    """
    if minor_units is None:
        minor_units = settings.currency_minor_units

    distance = Decimal(str(max(distance_km, 0.0)))
    covered = Decimal(str(base_location.base_km))
    fee = base_location.base_fare
    if distance > covered:
        fee = base_location.base_fare + base_location.per_km_fee * (distance - covered)

    quantum = Decimal(1).scaleb(-minor_units)
    return max(fee, base_location.base_fare).quantize(quantum, rounding=ROUND_HALF_UP)


def _tie_break_key(hub: BaseLocation):
    return (-hub.priority, not hub.is_default, hub.id)


class BaseLocationResolver:
    """Never rejects a point for being far away; any cap is caller policy"""

    def __init__(self, tie_epsilon_meters: Optional[float] = None, minor_units: Optional[int] = None):
        self.tie_epsilon_meters = (
            settings.hub_tie_epsilon_meters if tie_epsilon_meters is None else tie_epsilon_meters
        )
        self.minor_units = settings.currency_minor_units if minor_units is None else minor_units
        self.logger = logger.bind(service="base_location_resolver")

    def _nearest(self, query: ServiceabilityQuery, hubs):
        distances = [(hub, haversine_distance(query.point, hub.point)) for hub in hubs]
        closest = min(d for _, d in distances)
        tied = [(hub, d) for hub, d in distances if d - closest <= self.tie_epsilon_meters]
        return min(tied, key=lambda pair: _tie_break_key(pair[0]))

    def resolve(self, query: ServiceabilityQuery, snapshot: CatalogSnapshot) -> Optional[BaseLocationMatch]:
        """Nearest active hub and its fee, or None when no hub is active"""
        if not snapshot.base_locations:
            return None

        hub, distance_m = self._nearest(query, snapshot.base_locations)
        distance_km = distance_m / 1000.0
        fee = compute_fee(hub, distance_km, self.minor_units)

        self.logger.debug(
            "Base location selected",
            base_location_id=hub.id,
            distance_km=round(distance_km, 3),
            fee=str(fee),
        )
        return BaseLocationMatch(hub, fee, distance_km)

    def evaluate(self, query: ServiceabilityQuery, snapshot: CatalogSnapshot) -> List[BaseLocationEvaluation]:
        """Distance and fee preview for every configured hub"""
        active_ids = {hub.id for hub in snapshot.base_locations}
        selected_id = None
        if snapshot.base_locations:
            selected, _ = self._nearest(query, snapshot.base_locations)
            selected_id = selected.id

        evaluations = []
        for hub in snapshot.configured_base_locations:
            distance_km = haversine_distance(query.point, hub.point) / 1000.0
            fee = compute_fee(hub, distance_km, self.minor_units)
            if hub.id not in active_ids:
                verdict, detail = "INACTIVE", "hub is deactivated"
            elif hub.id == selected_id:
                verdict, detail = "SELECTED", ""
            else:
                verdict, detail = "FARTHER", f"hub {selected_id} is nearer or wins the tie-break"
            evaluations.append(BaseLocationEvaluation(hub, distance_km, fee, verdict, detail))

        return sorted(evaluations, key=lambda e: (e.distance_km, _tie_break_key(e.base_location)))
