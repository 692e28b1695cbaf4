"""Domain records consumed by the resolvers

These are immutable views of what the authoring subsystem stored. The ORM
models in serviceability.models are converted into these before any
resolution happens.
"""

from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple

from serviceability.services.errors import InvalidQueryError
from serviceability.services.geometry import (
    LatLng, circle_area, point_in_circle, point_in_polygon, polygon_area
)


class ServiceType(str, Enum):
    DELIVERY = "delivery"
    LAB_COLLECTION = "lab_collection"


class ShapeType(str, Enum):
    POLYGON = "polygon"
    CIRCLE = "circle"


# Legacy names still sent by older clients
SERVICE_TYPE_ALIASES = {
    "medicine": ServiceType.DELIVERY,
    "lab": ServiceType.LAB_COLLECTION,
}

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def normalize_service_type(value) -> ServiceType:
    """Map a service type or one of its aliases to ServiceType"""
    if isinstance(value, ServiceType):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidQueryError("service_type is required", field="service_type")

    key = value.strip().lower()
    if key in SERVICE_TYPE_ALIASES:
        return SERVICE_TYPE_ALIASES[key]
    try:
        return ServiceType(key)
    except ValueError:
        raise InvalidQueryError(f"Unknown service_type: {value!r}", field="service_type")


def normalize_weekday(value: str) -> Optional[str]:
    """'Monday', 'mon', 'MONDAY' -> 'monday'; None for anything else"""
    key = value.strip().lower()
    for day in WEEKDAYS:
        if key == day or key == day[:3]:
            return day
    return None


def parse_clock(value) -> time:
    """Parse 'HH:MM' (or 'HH:MM:SS'); '24:00' is returned as midnight"""
    if isinstance(value, time):
        return value
    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid clock time: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    if hour == 24 and minute == 0 and second == 0:
        return time(0, 0)
    return time(hour, minute, second)


@dataclass(frozen=True)
class WorkingInterval:
    """One opening window on a weekday; an end of 00:00 runs to midnight"""
    start: time
    end: time
    enabled: bool = True

    @property
    def runs_to_midnight(self) -> bool:
        return self.end == time(0, 0)

    def covers(self, moment: time) -> bool:
        if not self.enabled:
            return False
        if self.runs_to_midnight:
            return moment >= self.start
        return self.start <= moment < self.end


@dataclass(frozen=True)
class PartnerRef:
    """The store (delivery) or diagnostic center (lab_collection) owning a geofence"""
    kind: str  # store | center
    id: str


@dataclass(frozen=True)
class Geofence:
    id: str
    name: str
    service_type: ServiceType
    shape_type: ShapeType
    priority: int
    is_active: bool = True
    polygon: Tuple[LatLng, ...] = ()
    circle_center: Optional[LatLng] = None
    radius_meters: Optional[float] = None
    capacity_per_day: Optional[int] = None
    min_order_value: Optional[Decimal] = None
    # None means no schedule was authored: open around the clock
    working_hours: Optional[Dict[str, Tuple[WorkingInterval, ...]]] = None
    store_id: Optional[str] = None
    center_id: Optional[str] = None

    @property
    def partner_ref(self) -> Optional[PartnerRef]:
        if self.store_id and not self.center_id:
            return PartnerRef("store", self.store_id)
        if self.center_id and not self.store_id:
            return PartnerRef("center", self.center_id)
        return None

    @property
    def area_m2(self) -> float:
        if self.shape_type == ShapeType.CIRCLE:
            return circle_area(self.radius_meters or 0.0)
        return polygon_area(self.polygon)

    def contains(self, point: Tuple[float, float]) -> bool:
        if self.shape_type == ShapeType.CIRCLE:
            return point_in_circle(point, self.circle_center, self.radius_meters)
        return point_in_polygon(point, self.polygon)

    def is_open_at(self, local_time: datetime) -> bool:
        """Working-hours check against a datetime already in service-local time"""
        # None and an empty {} both mean no schedule; a day missing from a non-empty one is closed
        if not self.working_hours:
            return True
        intervals = self.working_hours.get(WEEKDAYS[local_time.weekday()], ())
        moment = local_time.time()
        return any(interval.covers(moment) for interval in intervals)

    def accepts_order_value(self, order_value: Optional[Decimal]) -> bool:
        if order_value is None or self.min_order_value is None:
            return True
        return self.min_order_value <= order_value


@dataclass(frozen=True)
class BaseLocation:
    id: str
    name: str
    service_type: ServiceType
    base_lat: float
    base_lng: float
    base_fare: Decimal
    base_km: float
    per_km_fee: Decimal
    priority: int = 1
    is_active: bool = True
    is_default: bool = False

    @property
    def point(self) -> LatLng:
        return LatLng(self.base_lat, self.base_lng)


@dataclass(frozen=True)
class ServiceabilityQuery:
    """One checkout-time lookup; never persisted"""
    point: LatLng
    service_type: ServiceType
    order_value: Optional[Decimal] = None
    at_time: Optional[datetime] = None


@dataclass(frozen=True)
class MalformedRecord:
    """A stored record that failed validation and is never matched"""
    record_id: str
    kind: str  # geofence | base_location
    problems: Tuple[str, ...]


@dataclass(frozen=True)
class CatalogRecords:
    """Everything a source returned for one service type in a single fetch"""
    geofences: Tuple[Geofence, ...] = ()
    base_locations: Tuple[BaseLocation, ...] = ()
    malformed: Tuple[MalformedRecord, ...] = ()
