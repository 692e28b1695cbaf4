"""Shape catalog: versioned read model of geofences and base locations"""

import hashlib
import json
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.exc import SQLAlchemyError

from serviceability.cache import TTLCache
from serviceability.config import settings
from serviceability.database import SessionLocal
from serviceability.metrics import MALFORMED_RECORDS
from serviceability.models.geofence import BaseLocationRecord, GeofenceRecord
from serviceability.services.domain import (
    BaseLocation, CatalogRecords, Geofence, LatLng, MalformedRecord,
    ServiceType, ShapeType, normalize_service_type
)
from serviceability.services.errors import CatalogUnavailableError
from serviceability.services.shape_validation import (
    base_location_problems, close_ring, default_hub_conflicts, ensure_valid_base_location,
    ensure_valid_geofence, geofence_problems, parse_working_hours
)

logger = structlog.get_logger()


def _decimal_or_none(value) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


def problems_or_error(check: Callable, record) -> List[str]:
    """Run a validator; a record it cannot even inspect counts as malformed"""
    try:
        return check(record)
    except (ArithmeticError, ValueError, TypeError) as e:
        return [f"unreadable record: {e}"]


def geofence_from_record(record: GeofenceRecord) -> Geofence:
    """
    Convert a stored geofence row to the domain record

    The polygon column is kept exactly as authored (no auto-closing) so that
    an unclosed ring is reported as malformed rather than silently repaired.

    Raises:
        ValueError, TypeError, KeyError: when a column cannot be interpreted
    """
    shape_type = ShapeType(record.shape_type)
    polygon: Tuple[LatLng, ...] = ()
    circle_center = None
    if shape_type == ShapeType.POLYGON:
        polygon = tuple(LatLng(float(p[0]), float(p[1])) for p in (record.polygon or ()))
    elif record.circle_lat is not None and record.circle_lng is not None:
        circle_center = LatLng(float(record.circle_lat), float(record.circle_lng))

    return Geofence(
        id=str(record.id),
        name=record.name,
        service_type=ServiceType(record.service_type),
        shape_type=shape_type,
        priority=int(record.priority),
        is_active=bool(record.is_active),
        polygon=polygon,
        circle_center=circle_center,
        radius_meters=None if record.radius_meters is None else float(record.radius_meters),
        capacity_per_day=record.capacity_per_day,
        min_order_value=_decimal_or_none(record.min_order_value),
        # An empty {} document means no schedule was authored, same as NULL: always open
        working_hours=parse_working_hours(record.working_hours) or None,
        store_id=record.store_id,
        center_id=record.center_id,
    )


def base_location_from_record(record: BaseLocationRecord) -> BaseLocation:
    """Convert a stored hub row to the domain record"""
    return BaseLocation(
        id=str(record.id),
        name=record.name,
        service_type=ServiceType(record.service_type),
        base_lat=float(record.base_lat),
        base_lng=float(record.base_lng),
        base_fare=Decimal(str(record.base_fare)),
        base_km=float(record.base_km or 0.0),
        per_km_fee=Decimal(str(record.per_km_fee)),
        priority=int(record.priority),
        is_active=bool(record.is_active),
        is_default=bool(record.is_default),
    )


class CatalogSource(ABC):
    """Where the authoring subsystem's records are read from"""

    @abstractmethod
    def load(self, service_type: ServiceType) -> CatalogRecords:
        """Return every geofence and base location for the service type in one fetch"""


class InMemoryCatalogSource(CatalogSource):
    """
    Catalog held in process memory; edits replace whole records

    Records passed to the constructor are stored as given. upsert_* are the
    authoring path: polygon rings are closed and malformed records rejected.
    """

    def __init__(self, geofences: Iterable[Geofence] = (), base_locations: Iterable[BaseLocation] = ()):
        self._lock = threading.Lock()
        self._geofences: Dict[str, Geofence] = {g.id: g for g in geofences}
        self._base_locations: Dict[str, BaseLocation] = {b.id: b for b in base_locations}

    def upsert_geofence(self, geofence: Geofence) -> Geofence:
        """
        Raises:
            ShapeValidationError: when the geofence is malformed
        """
        if geofence.shape_type == ShapeType.POLYGON and geofence.polygon:
            geofence = replace(geofence, polygon=tuple(LatLng(*p) for p in close_ring(geofence.polygon)))
        ensure_valid_geofence(geofence)
        with self._lock:
            self._geofences[geofence.id] = geofence
        return geofence

    def remove_geofence(self, geofence_id: str):
        with self._lock:
            self._geofences.pop(geofence_id, None)

    def upsert_base_location(self, base_location: BaseLocation) -> BaseLocation:
        ensure_valid_base_location(base_location)
        with self._lock:
            self._base_locations[base_location.id] = base_location
        return base_location

    def remove_base_location(self, base_location_id: str):
        with self._lock:
            self._base_locations.pop(base_location_id, None)

    def load(self, service_type: ServiceType) -> CatalogRecords:
        with self._lock:
            return CatalogRecords(
                geofences=tuple(g for g in self._geofences.values() if g.service_type == service_type),
                base_locations=tuple(b for b in self._base_locations.values() if b.service_type == service_type),
            )


class SqlCatalogSource(CatalogSource):
    """Catalog read from the geofences and base_locations tables"""

    def __init__(self, session_factory: Callable = SessionLocal):
        self.session_factory = session_factory

    def load(self, service_type: ServiceType) -> CatalogRecords:
        geofences: List[Geofence] = []
        base_locations: List[BaseLocation] = []
        malformed: List[MalformedRecord] = []

        db = self.session_factory()
        try:
            geofence_rows = db.query(GeofenceRecord).filter(
                GeofenceRecord.service_type == service_type.value
            ).all()
            hub_rows = db.query(BaseLocationRecord).filter(
                BaseLocationRecord.service_type == service_type.value
            ).all()
        except SQLAlchemyError as e:
            logger.error("Catalog fetch failed", service_type=service_type.value, error=str(e))
            raise CatalogUnavailableError(f"Could not read catalog for {service_type.value}: {e}") from e
        finally:
            db.close()

        for row in geofence_rows:
            try:
                geofences.append(geofence_from_record(row))
            except (ValueError, TypeError, KeyError, IndexError) as e:
                malformed.append(MalformedRecord(str(row.id), "geofence", (f"unreadable record: {e}",)))

        for row in hub_rows:
            try:
                base_locations.append(base_location_from_record(row))
            except (ValueError, TypeError, ArithmeticError) as e:
                malformed.append(MalformedRecord(str(row.id), "base_location", (f"unreadable record: {e}",)))

        return CatalogRecords(tuple(geofences), tuple(base_locations), tuple(malformed))


@dataclass(frozen=True)
class CatalogSnapshot:
    """
    Immutable view of the catalog for one service type at one instant

    geofences holds only active geofences open at at_time; base_locations
    holds only active hubs. The configured_* tuples keep every valid record
    so diagnostics can say why something was not considered.
    """
    service_type: ServiceType
    at_time: datetime
    fetched_at: datetime
    version: str
    geofences: Tuple[Geofence, ...]
    base_locations: Tuple[BaseLocation, ...]
    configured_geofences: Tuple[Geofence, ...] = ()
    configured_base_locations: Tuple[BaseLocation, ...] = ()
    malformed: Tuple[MalformedRecord, ...] = ()

    @property
    def has_active_shapes(self) -> bool:
        return bool(self.geofences or self.base_locations)


@dataclass(frozen=True)
class _LoadedCatalog:
    records: CatalogRecords
    version: str
    fetched_at: datetime


def catalog_digest(records: CatalogRecords) -> str:
    """Stable SHA256 over the validated records, used as the snapshot version"""
    payload = {
        "geofences": sorted((asdict(g) for g in records.geofences), key=lambda g: g["id"]),
        "base_locations": sorted((asdict(b) for b in records.base_locations), key=lambda b: b["id"]),
    }
    encoded = json.dumps(payload, sort_keys=True, default=str).encode()
    return hashlib.sha256(encoded).hexdigest()


class ShapeCatalog:
    """Hands out consistent snapshots; resolvers never read the source directly"""

    def __init__(
        self,
        source: CatalogSource,
        cache_ttl_seconds: Optional[float] = None,
        tz_name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.source = source
        self.tz = ZoneInfo(tz_name or settings.service_timezone)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        ttl = settings.catalog_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
        self.cache = TTLCache(max_items=len(ServiceType) * 2, ttl_seconds=ttl)

    def local_time(self, at_time: Optional[datetime] = None) -> datetime:
        """Express at_time in the service timezone; naive values are taken as local"""
        if at_time is None:
            return self.clock().astimezone(self.tz)
        if at_time.tzinfo is None:
            return at_time.replace(tzinfo=self.tz)
        return at_time.astimezone(self.tz)

    def _load(self, service_type: ServiceType) -> _LoadedCatalog:
        cached = self.cache.get(service_type.value)
        if cached is not None:
            return cached

        try:
            raw = self.source.load(service_type)
        except OSError as e:
            logger.error("Catalog source unreachable", service_type=service_type.value, error=str(e))
            raise CatalogUnavailableError(f"Catalog source unreachable: {e}") from e

        malformed = list(raw.malformed)
        geofences = []
        for geofence in raw.geofences:
            problems = problems_or_error(geofence_problems, geofence)
            if problems:
                malformed.append(MalformedRecord(geofence.id, "geofence", tuple(problems)))
                continue
            geofences.append(geofence)

        base_locations = []
        for hub in raw.base_locations:
            problems = problems_or_error(base_location_problems, hub)
            if problems:
                malformed.append(MalformedRecord(hub.id, "base_location", tuple(problems)))
                continue
            base_locations.append(hub)

        for record in malformed:
            MALFORMED_RECORDS.labels(record.kind).inc()
            logger.warning(
                "Malformed record skipped",
                service_type=service_type.value,
                record_id=record.record_id,
                kind=record.kind,
                problems=list(record.problems),
            )

        for conflict_service, hub_ids in default_hub_conflicts(base_locations).items():
            # Resolution stays deterministic through the id tie-break
            logger.warning("Multiple default base locations", service_type=conflict_service, base_location_ids=hub_ids)

        records = CatalogRecords(tuple(geofences), tuple(base_locations), tuple(malformed))
        loaded = _LoadedCatalog(records, catalog_digest(records), self.clock())
        self.cache.put(service_type.value, loaded)

        logger.info(
            "Catalog loaded",
            service_type=service_type.value,
            geofences=len(geofences),
            base_locations=len(base_locations),
            malformed=len(malformed),
            version=loaded.version[:12],
        )
        return loaded

    def snapshot(self, service_type, at_time: Optional[datetime] = None) -> CatalogSnapshot:
        """One consistent, time-stamped view for a single resolution"""
        service_type = normalize_service_type(service_type)
        local = self.local_time(at_time)
        loaded = self._load(service_type)
        records = loaded.records

        return CatalogSnapshot(
            service_type=service_type,
            at_time=local,
            fetched_at=loaded.fetched_at,
            version=loaded.version,
            geofences=tuple(g for g in records.geofences if g.is_active and g.is_open_at(local)),
            base_locations=tuple(b for b in records.base_locations if b.is_active),
            configured_geofences=records.geofences,
            configured_base_locations=records.base_locations,
            malformed=records.malformed,
        )

    def active_geofences(self, service_type, at_time: Optional[datetime] = None) -> List[Geofence]:
        return list(self.snapshot(service_type, at_time).geofences)

    def active_base_locations(self, service_type) -> List[BaseLocation]:
        return list(self.snapshot(service_type).base_locations)

    def invalidate(self, service_type=None):
        """Drop cached records so the next snapshot re-reads the source"""
        key = None if service_type is None else normalize_service_type(service_type).value
        self.cache.invalidate(key)
