"""Database models for the Serviceability API"""

from .geofence import GeofenceRecord, BaseLocationRecord
from .capacity import GeofenceDailyCapacity

__all__ = [
    "GeofenceRecord", "BaseLocationRecord",
    "GeofenceDailyCapacity",
]
