"""FastAPI dependencies that hand out the shared engine"""

from typing import Callable, Optional

import structlog

from serviceability.database import SessionLocal
from serviceability.services.capacity import SqlCapacityCounter
from serviceability.services.catalog import ShapeCatalog, SqlCatalogSource
from serviceability.services.serviceability import ServiceabilityService

logger = structlog.get_logger()

_service: Optional[ServiceabilityService] = None


def build_service(session_factory: Callable = SessionLocal) -> ServiceabilityService:
    """Wire the engine to the SQL catalog and capacity tables"""
    catalog = ShapeCatalog(SqlCatalogSource(session_factory))
    return ServiceabilityService(catalog, capacity_counter=SqlCapacityCounter(session_factory))


def get_serviceability_service() -> ServiceabilityService:
    """Dependency to get the process-wide serviceability service"""
    global _service
    if _service is None:
        _service = build_service()
        logger.info("Serviceability service initialised")
    return _service


def get_shape_catalog() -> ShapeCatalog:
    """Dependency to get the catalog behind the serviceability service"""
    return get_serviceability_service().catalog
