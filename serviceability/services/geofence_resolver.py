"""Geofence resolver: picks the one geofence that owns a point"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import structlog

from serviceability.services.capacity import CapacityCounter
from serviceability.services.catalog import CatalogSnapshot
from serviceability.services.domain import Geofence, ServiceabilityQuery

logger = structlog.get_logger()


class GeofenceVerdict(str, Enum):
    SELECTED = "SELECTED"
    OUTRANKED = "OUTRANKED"
    INACTIVE = "INACTIVE"
    CLOSED = "CLOSED"
    BELOW_MIN_ORDER = "BELOW_MIN_ORDER"
    OUTSIDE_SHAPE = "OUTSIDE_SHAPE"
    CAPACITY_EXHAUSTED = "CAPACITY_EXHAUSTED"


@dataclass(frozen=True)
class GeofenceEvaluation:
    """Why one geofence was or was not chosen"""
    geofence: Geofence
    verdict: GeofenceVerdict
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.verdict == GeofenceVerdict.SELECTED


def ranking_key(geofence: Geofence):
    """Highest priority, then the smaller (more specific) area, then smallest id"""
    return (-geofence.priority, geofence.area_m2, geofence.id)


class GeofenceResolver:
    """Stateless; capacity state lives in the counter it is handed"""

    def __init__(self, capacity_counter: Optional[CapacityCounter] = None):
        self.capacity_counter = capacity_counter
        self.logger = logger.bind(service="geofence_resolver")

    def _has_capacity(self, geofence: Geofence, snapshot: CatalogSnapshot) -> bool:
        if geofence.capacity_per_day is None or self.capacity_counter is None:
            return True
        return self.capacity_counter.has_capacity(
            geofence.id, snapshot.at_time.date(), geofence.capacity_per_day
        )

    def rank(self, query: ServiceabilityQuery, snapshot: CatalogSnapshot) -> List[Geofence]:
        """
        Every geofence that could serve the query, best first

        Args:
            query: the lookup being resolved
            snapshot: catalog view fetched once for this lookup

        Returns:
            Eligible geofences ordered by ranking_key; empty if none
        """
        eligible = [g for g in snapshot.geofences if g.accepts_order_value(query.order_value)]
        containing = [g for g in eligible if g.contains(query.point)]
        if not containing:
            return []

        with_capacity = [g for g in containing if self._has_capacity(g, snapshot)]
        dropped = len(containing) - len(with_capacity)
        if dropped:
            self.logger.info(
                "Geofences skipped for exhausted capacity",
                service_type=snapshot.service_type.value,
                skipped=dropped,
            )
        return sorted(with_capacity, key=ranking_key)

    def resolve(self, query: ServiceabilityQuery, snapshot: CatalogSnapshot) -> Optional[Geofence]:
        """The winning geofence, or None"""
        ranked = self.rank(query, snapshot)
        if not ranked:
            return None

        winner = ranked[0]
        self.logger.debug(
            "Geofence selected",
            geofence_id=winner.id,
            priority=winner.priority,
            candidates=len(ranked),
        )
        return winner

    def evaluate(self, query: ServiceabilityQuery, snapshot: CatalogSnapshot) -> List[GeofenceEvaluation]:
        """Verdict for every configured geofence; diagnostic only, reads capacity but never reserves"""
        open_ids = {g.id for g in snapshot.geofences}
        ranked = self.rank(query, snapshot)
        winner_id = ranked[0].id if ranked else None
        ranked_ids = {g.id for g in ranked}

        evaluations = []
        for geofence in sorted(snapshot.configured_geofences, key=ranking_key):
            if not geofence.is_active:
                evaluations.append(GeofenceEvaluation(geofence, GeofenceVerdict.INACTIVE, "geofence is deactivated"))
            elif geofence.id not in open_ids:
                evaluations.append(GeofenceEvaluation(
                    geofence, GeofenceVerdict.CLOSED,
                    f"outside working hours at {snapshot.at_time.strftime('%A %H:%M')}",
                ))
            elif not geofence.accepts_order_value(query.order_value):
                evaluations.append(GeofenceEvaluation(
                    geofence, GeofenceVerdict.BELOW_MIN_ORDER,
                    f"order value {query.order_value} below minimum {geofence.min_order_value}",
                ))
            elif not geofence.contains(query.point):
                evaluations.append(GeofenceEvaluation(geofence, GeofenceVerdict.OUTSIDE_SHAPE, "point is outside the shape"))
            elif geofence.id not in ranked_ids:
                evaluations.append(GeofenceEvaluation(
                    geofence, GeofenceVerdict.CAPACITY_EXHAUSTED,
                    f"daily capacity of {geofence.capacity_per_day} reached",
                ))
            elif geofence.id == winner_id:
                evaluations.append(GeofenceEvaluation(geofence, GeofenceVerdict.SELECTED))
            else:
                evaluations.append(GeofenceEvaluation(
                    geofence, GeofenceVerdict.OUTRANKED, f"outranked by geofence {winner_id}",
                ))
        return evaluations
