"""Geofence and base location records written by the authoring subsystem"""

import uuid
from datetime import datetime

from sqlalchemy import Column, String, Integer, Float, Boolean, Numeric, DateTime, JSON, Index
from serviceability.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class GeofenceRecord(Base):
    """Hand-drawn service area (polygon or circle) owned by one partner"""

    __tablename__ = "geofences"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    service_type = Column(String(20), nullable=False)  # delivery | lab_collection
    shape_type = Column(String(10), nullable=False)  # polygon | circle

    # Closed ring of [lat, lng] pairs (polygon only)
    polygon = Column(JSON, nullable=True)

    # Circle only
    circle_lat = Column(Float, nullable=True)
    circle_lng = Column(Float, nullable=True)
    radius_meters = Column(Float, nullable=True)

    priority = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    capacity_per_day = Column(Integer, nullable=True)
    min_order_value = Column(Numeric(12, 2), nullable=True)

    # {"Monday": [{"start": "09:00", "end": "18:00", "enabled": true}], ...}
    working_hours = Column(JSON, nullable=True)

    store_id = Column(String(64), nullable=True)
    center_id = Column(String(64), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_geofences_service_active", "service_type", "is_active"),
        Index("idx_geofences_priority", "priority"),
    )

    def __repr__(self):
        return f"<GeofenceRecord(id='{self.id}', name='{self.name}', shape_type='{self.shape_type}', priority={self.priority})>"


class BaseLocationRecord(Base):
    """Hub anchoring the distance-tiered fallback fee"""

    __tablename__ = "base_locations"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    service_type = Column(String(20), nullable=False)
    base_lat = Column(Float, nullable=False)
    base_lng = Column(Float, nullable=False)
    base_fare = Column(Numeric(12, 2), nullable=False)
    base_km = Column(Float, nullable=False, default=0.0)
    per_km_fee = Column(Numeric(12, 2), nullable=False)
    priority = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_base_locations_service_active", "service_type", "is_active"),
    )

    def __repr__(self):
        return f"<BaseLocationRecord(id='{self.id}', name='{self.name}', lat={self.base_lat}, lng={self.base_lng})>"
