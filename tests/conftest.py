"""
Test configuration and fixtures for the Serviceability API test suite.

Engine tests run against the in-memory catalog source; SQL adapter tests
use an in-memory SQLite database.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FORMAT", "console")

from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from serviceability.config import settings
from serviceability.database import Base, build_engine
from serviceability.dependencies import get_serviceability_service, get_shape_catalog
from serviceability.main import app
from serviceability.services.capacity import InMemoryCapacityCounter
from serviceability.services.catalog import InMemoryCatalogSource, ShapeCatalog
from serviceability.services.domain import ServiceType
from serviceability.services.serviceability import ServiceabilityService

from factories import make_circle_geofence, make_hub, make_polygon_geofence, square


@pytest.fixture(scope="session")
def test_engine():
    """Create an in-memory SQLite engine with all tables"""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test engine; tables are emptied after each test"""
    factory = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    yield factory

    with test_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="function")
def api_key() -> str:
    """Provide a valid API key for authenticated requests"""
    keys = settings.get_api_keys()
    if not keys:
        raise RuntimeError("No API keys configured for tests")
    return keys[0]


@pytest.fixture(scope="function")
def admin_key() -> str:
    keys = [k for k in settings.get_admin_api_keys() if k in settings.get_api_keys()]
    if not keys:
        raise RuntimeError("No admin API keys configured for tests")
    return keys[0]


@pytest.fixture(scope="function")
def delhi_catalog_source() -> InMemoryCatalogSource:
    """
    Two overlapping delivery polygons around (28.70, 77.10), one lab circle
    and one hub for each service type
    """
    return InMemoryCatalogSource(
        geofences=[
            make_polygon_geofence("P1", square(28.70, 77.10, 0.05), priority=3, partner_id="S1"),
            make_polygon_geofence("P2", square(28.70, 77.10, 0.02), priority=7, partner_id="S2"),
            make_circle_geofence(
                "L1", (28.70, 77.10), 3000.0, priority=5,
                service_type=ServiceType.LAB_COLLECTION, partner_id="C1",
            ),
        ],
        base_locations=[
            make_hub("H1", 28.60, 77.20),
            make_hub("LH1", 28.60, 77.20, service_type=ServiceType.LAB_COLLECTION,
                     base_fare="50", base_km=3.0, per_km_fee="10"),
        ],
    )


@pytest.fixture(scope="function")
def service(delhi_catalog_source) -> ServiceabilityService:
    catalog = ShapeCatalog(delhi_catalog_source, cache_ttl_seconds=0)
    return ServiceabilityService(catalog, capacity_counter=InMemoryCapacityCounter())


@pytest.fixture(scope="function")
def client(api_key: str, service: ServiceabilityService) -> TestClient:
    """FastAPI TestClient with default auth headers, backed by the in-memory catalog"""
    app.dependency_overrides[get_serviceability_service] = lambda: service
    app.dependency_overrides[get_shape_catalog] = lambda: service.catalog

    with TestClient(app) as test_client:
        test_client.headers.update({"X-API-Key": api_key})
        yield test_client

    app.dependency_overrides.pop(get_serviceability_service, None)
    app.dependency_overrides.pop(get_shape_catalog, None)


@pytest.fixture(scope="function")
def anonymous_client(service: ServiceabilityService) -> TestClient:
    """TestClient without an API key"""
    app.dependency_overrides[get_serviceability_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_serviceability_service, None)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "geography: mark test as geometry or resolution test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as HTTP API test"
    )


DOMAIN_MARKER_PATTERNS: Dict[str, tuple] = {
    "geography": ("tests/geography",),
    "api": ("tests/api",),
}


def pytest_collection_modifyitems(config, items):
    """Add domain markers based on file paths"""
    for item in items:
        fspath = str(item.fspath).replace(os.sep, "/")
        for marker, patterns in DOMAIN_MARKER_PATTERNS.items():
            if any(pattern in fspath for pattern in patterns):
                item.add_marker(getattr(pytest.mark, marker))
