"""Per-geofence daily capacity accounting"""

import threading
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Callable, Dict, Tuple

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from serviceability.database import SessionLocal
from serviceability.models.capacity import GeofenceDailyCapacity
from serviceability.services.errors import CapacityUnavailableError

logger = structlog.get_logger()


class CapacityCounter(ABC):
    """Counter keyed by (geofence_id, calendar day)"""

    @abstractmethod
    def assigned(self, geofence_id: str, day: date) -> int:
        """Assignments already taken for the day"""

    @abstractmethod
    def try_reserve(self, geofence_id: str, day: date, capacity: int) -> bool:
        """Atomically take one slot if fewer than capacity are taken"""

    def has_capacity(self, geofence_id: str, day: date, capacity: int) -> bool:
        return self.assigned(geofence_id, day) < capacity


class InMemoryCapacityCounter(CapacityCounter):
    """Lock-guarded counter for single-process deployments and tests"""

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[Tuple[str, date], int] = {}

    def assigned(self, geofence_id: str, day: date) -> int:
        with self._lock:
            return self._counts.get((geofence_id, day), 0)

    def try_reserve(self, geofence_id: str, day: date, capacity: int) -> bool:
        key = (geofence_id, day)
        with self._lock:
            taken = self._counts.get(key, 0)
            if taken >= capacity:
                return False
            self._counts[key] = taken + 1
            return True


class SqlCapacityCounter(CapacityCounter):
    """
    Counter stored in geofence_daily_capacity

    The increment is a single conditional UPDATE, so the database decides
    which of several racing requests gets the last slot.
    """

    def __init__(self, session_factory: Callable = SessionLocal):
        self.session_factory = session_factory

    def assigned(self, geofence_id: str, day: date) -> int:
        db = self.session_factory()
        try:
            count = db.execute(
                select(GeofenceDailyCapacity.assigned_count).where(
                    GeofenceDailyCapacity.geofence_id == geofence_id,
                    GeofenceDailyCapacity.service_date == day,
                )
            ).scalar()
            return count or 0
        except SQLAlchemyError as e:
            logger.error("Capacity read failed", geofence_id=geofence_id, day=day.isoformat(), error=str(e))
            raise CapacityUnavailableError(f"Could not read capacity for {geofence_id}: {e}") from e
        finally:
            db.close()

    def _ensure_row(self, db, geofence_id: str, day: date):
        exists = db.execute(
            select(GeofenceDailyCapacity.geofence_id).where(
                GeofenceDailyCapacity.geofence_id == geofence_id,
                GeofenceDailyCapacity.service_date == day,
            )
        ).first()
        if exists:
            return
        try:
            db.add(GeofenceDailyCapacity(geofence_id=geofence_id, service_date=day, assigned_count=0))
            db.commit()
        except IntegrityError:
            # Another request created the row first
            db.rollback()

    def try_reserve(self, geofence_id: str, day: date, capacity: int) -> bool:
        db = self.session_factory()
        try:
            self._ensure_row(db, geofence_id, day)
            result = db.execute(
                update(GeofenceDailyCapacity)
                .where(
                    GeofenceDailyCapacity.geofence_id == geofence_id,
                    GeofenceDailyCapacity.service_date == day,
                    GeofenceDailyCapacity.assigned_count < capacity,
                )
                .values(
                    assigned_count=GeofenceDailyCapacity.assigned_count + 1,
                    updated_at=datetime.utcnow(),
                )
            )
            db.commit()
            reserved = result.rowcount == 1
            logger.info(
                "Capacity reservation",
                geofence_id=geofence_id,
                day=day.isoformat(),
                capacity=capacity,
                reserved=reserved,
            )
            return reserved
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Capacity reservation failed", geofence_id=geofence_id, day=day.isoformat(), error=str(e))
            raise CapacityUnavailableError(f"Could not reserve capacity for {geofence_id}: {e}") from e
        finally:
            db.close()
