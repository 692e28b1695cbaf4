"""Authoring-time validation for geofences and base locations

The authoring subsystem is expected to reject malformed shapes before they
are stored. The catalog runs the same checks on load so that a bad record
that slipped through is skipped instead of breaking resolution.
"""

import math
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from serviceability.services.domain import (
    BaseLocation, Geofence, ServiceType, ShapeType, WorkingInterval,
    normalize_weekday, parse_clock
)
from serviceability.services.errors import ShapeValidationError

MIN_PRIORITY = 1
MAX_PRIORITY = 10

# Partner column each service type must use
PARTNER_KIND_BY_SERVICE = {
    ServiceType.DELIVERY: "store",
    ServiceType.LAB_COLLECTION: "center",
}


def close_ring(points: Sequence[Sequence[float]]) -> Tuple[Tuple[float, float], ...]:
    """Return the ring with its first vertex repeated at the end if missing"""
    ring = tuple((float(p[0]), float(p[1])) for p in points)
    if ring and ring[0] != ring[-1]:
        ring = ring + (ring[0],)
    return ring


def parse_working_hours(raw: Any) -> Optional[Dict[str, Tuple[WorkingInterval, ...]]]:
    """
    Parse the stored working-hours document

    Accepts {"Monday": [{"start": "09:00", "end": "18:00", "enabled": true}]}
    with full or three-letter weekday names in any case.

    Raises:
        ValueError: unknown weekday, bad clock time or wrong structure
    """
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ValueError("working_hours must be an object keyed by weekday")

    parsed: Dict[str, Tuple[WorkingInterval, ...]] = {}
    for day_name, slots in raw.items():
        day = normalize_weekday(str(day_name))
        if day is None:
            raise ValueError(f"Unknown weekday in working_hours: {day_name!r}")
        if not isinstance(slots, (list, tuple)):
            raise ValueError(f"working_hours[{day_name!r}] must be a list")

        intervals = []
        for slot in slots:
            intervals.append(WorkingInterval(
                start=parse_clock(slot["start"]),
                end=parse_clock(slot["end"]),
                enabled=bool(slot.get("enabled", True)),
            ))
        parsed[day] = parsed.get(day, ()) + tuple(intervals)

    return parsed


def _cross(o, a, b) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def _on_segment(p, q, r) -> bool:
    return (min(p[0], r[0]) <= q[0] <= max(p[0], r[0])
            and min(p[1], r[1]) <= q[1] <= max(p[1], r[1]))


def segments_intersect(p1, p2, q1, q2) -> bool:
    """Planar intersection test for two lat/lng segments, touching included"""
    d1 = _cross(q1, q2, p1)
    d2 = _cross(q1, q2, p2)
    d3 = _cross(p1, p2, q1)
    d4 = _cross(p1, p2, q2)

    if ((d1 > 0) != (d2 > 0) and d1 != 0 and d2 != 0
            and (d3 > 0) != (d4 > 0) and d3 != 0 and d4 != 0):
        return True

    if d1 == 0 and _on_segment(q1, p1, q2):
        return True
    if d2 == 0 and _on_segment(q1, p2, q2):
        return True
    if d3 == 0 and _on_segment(p1, q1, p2):
        return True
    if d4 == 0 and _on_segment(p1, q2, p2):
        return True
    return False


def is_simple_ring(ring: Sequence[Tuple[float, float]]) -> bool:
    """True if no two non-adjacent edges of a closed ring touch"""
    # A repeated vertex (double click while drawing) is not an edge
    ring = [p for i, p in enumerate(ring) if i == 0 or tuple(p) != tuple(ring[i - 1])]
    edges = [(ring[i], ring[i + 1]) for i in range(len(ring) - 1)]
    count = len(edges)
    for i in range(count):
        for j in range(i + 1, count):
            # Neighbouring edges share a vertex by construction
            if j == i + 1 or (i == 0 and j == count - 1):
                continue
            if segments_intersect(edges[i][0], edges[i][1], edges[j][0], edges[j][1]):
                return False
    return True


def _coordinate_problems(label: str, lat: float, lng: float) -> List[str]:
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return [f"{label} coordinates ({lat}, {lng}) are not finite"]
    problems = []
    if not -90.0 <= lat <= 90.0:
        problems.append(f"{label} latitude {lat} out of range")
    if not -180.0 <= lng <= 180.0:
        problems.append(f"{label} longitude {lng} out of range")
    return problems


def _amount_problems(label: str, value: Optional[Decimal]) -> List[str]:
    # NaN raises on ordering comparisons, so finiteness is checked first
    if value is None:
        return []
    if not value.is_finite():
        return [f"{label} must be a finite amount, got {value}"]
    if value < 0:
        return [f"{label} must not be negative"]
    return []


def _working_hours_problems(working_hours) -> List[str]:
    problems = []
    for day, intervals in (working_hours or {}).items():
        enabled = sorted((i for i in intervals if i.enabled), key=lambda i: i.start)
        for interval in enabled:
            if not interval.runs_to_midnight and interval.end <= interval.start:
                problems.append(f"{day}: interval {interval.start}-{interval.end} ends before it starts")
        for previous, current in zip(enabled, enabled[1:]):
            if previous.runs_to_midnight or current.start < previous.end:
                problems.append(f"{day}: intervals starting {previous.start} and {current.start} overlap")
    return problems


def geofence_problems(geofence: Geofence) -> List[str]:
    """Every reason the geofence is unusable; empty when it is valid"""
    problems: List[str] = []

    if not MIN_PRIORITY <= geofence.priority <= MAX_PRIORITY:
        problems.append(f"priority {geofence.priority} outside {MIN_PRIORITY}-{MAX_PRIORITY}")

    if geofence.shape_type == ShapeType.POLYGON:
        ring = geofence.polygon
        if len(ring) < 2 or tuple(ring[0]) != tuple(ring[-1]):
            problems.append("polygon ring is not closed")
        distinct = {tuple(p) for p in ring}
        if len(distinct) < 3:
            problems.append(f"polygon needs at least 3 distinct vertices, got {len(distinct)}")
        for lat, lng in distinct:
            problems.extend(_coordinate_problems("vertex", lat, lng))
        if ring and max(p[1] for p in ring) - min(p[1] for p in ring) > 180.0:
            problems.append("polygon spans the antimeridian")
        if not problems and not is_simple_ring(ring):
            problems.append("polygon ring self-intersects")
    elif geofence.shape_type == ShapeType.CIRCLE:
        if geofence.circle_center is None:
            problems.append("circle is missing its center")
        else:
            problems.extend(_coordinate_problems("center", *geofence.circle_center))
        radius = geofence.radius_meters
        if radius is not None and not math.isfinite(radius):
            problems.append(f"circle radius {radius} is not finite")
        elif radius is None or radius <= 0:
            problems.append("circle radius must be greater than 0")
    else:
        problems.append(f"unknown shape_type {geofence.shape_type!r}")

    if geofence.capacity_per_day is not None and geofence.capacity_per_day <= 0:
        problems.append("capacity_per_day must be positive when set")
    problems.extend(_amount_problems("min_order_value", geofence.min_order_value))

    partner = geofence.partner_ref
    if partner is None:
        problems.append("exactly one of store_id or center_id must be set")
    elif partner.kind != PARTNER_KIND_BY_SERVICE.get(geofence.service_type):
        problems.append(f"{geofence.service_type.value} geofences must reference a "
                        f"{PARTNER_KIND_BY_SERVICE.get(geofence.service_type)}, not a {partner.kind}")

    problems.extend(_working_hours_problems(geofence.working_hours))
    return problems


def base_location_problems(base_location: BaseLocation) -> List[str]:
    """Every reason the hub is unusable; empty when it is valid"""
    problems = _coordinate_problems("hub", base_location.base_lat, base_location.base_lng)
    if not MIN_PRIORITY <= base_location.priority <= MAX_PRIORITY:
        problems.append(f"priority {base_location.priority} outside {MIN_PRIORITY}-{MAX_PRIORITY}")
    problems.extend(_amount_problems("base_fare", base_location.base_fare))
    problems.extend(_amount_problems("per_km_fee", base_location.per_km_fee))
    if not math.isfinite(base_location.base_km):
        problems.append(f"base_km {base_location.base_km} is not finite")
    elif base_location.base_km < 0:
        problems.append("base_km must not be negative")
    return problems


def ensure_valid_geofence(geofence: Geofence) -> Geofence:
    """Authoring entry point: raise instead of returning problems"""
    problems = geofence_problems(geofence)
    if problems:
        raise ShapeValidationError(geofence.id, problems)
    return geofence


def default_hub_conflicts(base_locations: Iterable[BaseLocation]) -> Dict[str, List[str]]:
    """Service types with more than one active default hub, mapped to the hub ids"""
    defaults: Dict[str, List[str]] = defaultdict(list)
    for hub in base_locations:
        if hub.is_default and hub.is_active:
            defaults[hub.service_type.value].append(hub.id)
    return {service: sorted(ids) for service, ids in defaults.items() if len(ids) > 1}


def ensure_valid_base_location(base_location: BaseLocation) -> BaseLocation:
    problems = base_location_problems(base_location)
    if problems:
        raise ShapeValidationError(base_location.id, problems)
    return base_location
