"""Catalog inspection endpoints"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
import structlog

from serviceability.auth import verify_admin_key, verify_api_key
from serviceability.dependencies import get_shape_catalog
from serviceability.services.catalog import ShapeCatalog
from serviceability.schemas.serviceability import CatalogSummaryResponse, MalformedRecordResponse

logger = structlog.get_logger()

router = APIRouter()


@router.get("/{service_type}", response_model=CatalogSummaryResponse)
def get_catalog_summary(
    service_type: str,
    at_time: Optional[datetime] = Query(None, description="Evaluate working hours at this time"),
    catalog: ShapeCatalog = Depends(get_shape_catalog),
    api_key: str = Depends(verify_api_key)
):
    """Summarise the snapshot a lookup would see right now"""
    snapshot = catalog.snapshot(service_type, at_time)
    return CatalogSummaryResponse(
        service_type=snapshot.service_type.value,
        version=snapshot.version,
        fetched_at=snapshot.fetched_at,
        at_time=snapshot.at_time,
        configured_geofences=len(snapshot.configured_geofences),
        open_geofences=sorted(g.id for g in snapshot.geofences),
        configured_base_locations=len(snapshot.configured_base_locations),
        active_base_locations=sorted(b.id for b in snapshot.base_locations),
        malformed=[
            MalformedRecordResponse(record_id=m.record_id, kind=m.kind, problems=list(m.problems))
            for m in snapshot.malformed
        ],
    )


@router.post("/{service_type}/invalidate")
def invalidate_catalog(
    service_type: str,
    catalog: ShapeCatalog = Depends(get_shape_catalog),
    api_key: str = Depends(verify_admin_key)
):
    """Drop cached records after an authoring edit"""
    catalog.invalidate(service_type)
    logger.info("Catalog invalidated via API", service_type=service_type)
    return {"status": "invalidated", "service_type": service_type}
