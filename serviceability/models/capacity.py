"""Daily assignment counters for capacity-limited geofences"""

from datetime import datetime

from sqlalchemy import Column, String, Integer, Date, DateTime
from serviceability.database import Base


class GeofenceDailyCapacity(Base):
    """Assignments taken by one geofence on one calendar day"""

    __tablename__ = "geofence_daily_capacity"

    geofence_id = Column(String(64), primary_key=True)
    service_date = Column(Date, primary_key=True)
    assigned_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<GeofenceDailyCapacity(geofence_id='{self.geofence_id}', service_date={self.service_date}, assigned_count={self.assigned_count})>"
