"""Health check endpoints"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import text
from serviceability.database import get_db
from serviceability.dependencies import get_shape_catalog
from serviceability.services.catalog import ShapeCatalog

router = APIRouter()


@router.get("/healthz")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "serviceability-api"}


@router.get("/readyz")
def readiness_check(
    db: Session = Depends(get_db),
    catalog: ShapeCatalog = Depends(get_shape_catalog)
):
    """Readiness check with dependencies"""
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Service not ready: {str(e)}"
        )

    return {
        "status": "ready",
        "service": "serviceability-api",
        "dependencies": {
            "database": "healthy",
            "catalog_cache": catalog.cache.get_stats()
        }
    }
