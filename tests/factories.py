"""Builders for geofences, hubs and services used across the test suite"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from serviceability.services.capacity import InMemoryCapacityCounter
from serviceability.services.catalog import InMemoryCatalogSource, ShapeCatalog
from serviceability.services.domain import (
    BaseLocation, Geofence, LatLng, ServiceType, ShapeType
)
from serviceability.services.serviceability import ServiceabilityService
from serviceability.services.shape_validation import parse_working_hours

# Monday 2024-06-17 10:00 service-local time
WEEKDAY_MORNING = datetime(2024, 6, 17, 10, 0)
# Saturday 2024-06-15 10:00 service-local time
SATURDAY_MORNING = datetime(2024, 6, 15, 10, 0)

OFFICE_HOURS = {
    day: [{"start": "09:00", "end": "18:00", "enabled": True}]
    for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
}


def square(lat: float, lng: float, half_side_deg: float):
    """Closed square ring centred on (lat, lng)"""
    return (
        LatLng(lat - half_side_deg, lng - half_side_deg),
        LatLng(lat - half_side_deg, lng + half_side_deg),
        LatLng(lat + half_side_deg, lng + half_side_deg),
        LatLng(lat + half_side_deg, lng - half_side_deg),
        LatLng(lat - half_side_deg, lng - half_side_deg),
    )


def make_polygon_geofence(
    geofence_id: str,
    ring,
    priority: int = 5,
    service_type: ServiceType = ServiceType.DELIVERY,
    partner_id: Optional[str] = None,
    working_hours: Optional[dict] = None,
    **kwargs,
) -> Geofence:
    partner_id = partner_id or f"partner-{geofence_id}"
    partner = {"store_id": partner_id} if service_type == ServiceType.DELIVERY else {"center_id": partner_id}
    return Geofence(
        id=geofence_id,
        name=f"Geofence {geofence_id}",
        service_type=service_type,
        shape_type=ShapeType.POLYGON,
        priority=priority,
        polygon=tuple(ring),
        working_hours=parse_working_hours(working_hours),
        **partner,
        **kwargs,
    )


def make_circle_geofence(
    geofence_id: str,
    center,
    radius_meters: float,
    priority: int = 5,
    service_type: ServiceType = ServiceType.DELIVERY,
    partner_id: Optional[str] = None,
    **kwargs,
) -> Geofence:
    partner_id = partner_id or f"partner-{geofence_id}"
    partner = {"store_id": partner_id} if service_type == ServiceType.DELIVERY else {"center_id": partner_id}
    return Geofence(
        id=geofence_id,
        name=f"Geofence {geofence_id}",
        service_type=service_type,
        shape_type=ShapeType.CIRCLE,
        priority=priority,
        circle_center=LatLng(*center),
        radius_meters=radius_meters,
        **partner,
        **kwargs,
    )


def make_hub(
    hub_id: str,
    lat: float,
    lng: float,
    base_fare: str = "20",
    base_km: float = 5.0,
    per_km_fee: str = "5",
    service_type: ServiceType = ServiceType.DELIVERY,
    **kwargs,
) -> BaseLocation:
    return BaseLocation(
        id=hub_id,
        name=f"Hub {hub_id}",
        service_type=service_type,
        base_lat=lat,
        base_lng=lng,
        base_fare=Decimal(base_fare),
        base_km=base_km,
        per_km_fee=Decimal(per_km_fee),
        **kwargs,
    )


def build_test_service(
    geofences: Iterable[Geofence] = (),
    base_locations: Iterable[BaseLocation] = (),
    **service_kwargs,
) -> ServiceabilityService:
    """Service over an in-memory catalog with caching disabled"""
    source = InMemoryCatalogSource(geofences, base_locations)
    catalog = ShapeCatalog(source, cache_ttl_seconds=0)
    return ServiceabilityService(catalog, capacity_counter=InMemoryCapacityCounter(), **service_kwargs)


