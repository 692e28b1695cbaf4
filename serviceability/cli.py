"""Command-line interface for the Serviceability API"""

import sys
from datetime import datetime
from typing import Optional

import click
import structlog

from serviceability.config import settings
from serviceability.database import Base, engine
from serviceability.dependencies import build_service
from serviceability.schemas.serviceability import ExplainResponse, ServiceabilityResponse
from serviceability.services.catalog import SqlCatalogSource, problems_or_error
from serviceability.services.domain import ServiceType
from serviceability.services.errors import ServiceabilityError
from serviceability.services.shape_validation import (
    base_location_problems, default_hub_conflicts, geofence_problems
)

logger = structlog.get_logger()


def _parse_at(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"not an ISO 8601 datetime: {value}", param_hint="--at")


def _query_options(command):
    command = click.option('--at', 'at_time', help='Evaluation time, ISO 8601 (naive = service-local)')(command)
    command = click.option('--order-value', type=str, help='Order amount')(command)
    command = click.option('--service-type', '-s', required=True, help='delivery or lab_collection')(command)
    command = click.option('--lng', required=True, type=float, help='Longitude')(command)
    command = click.option('--lat', required=True, type=float, help='Latitude')(command)
    return command


@click.group()
def cli():
    """Serviceability API Management CLI"""
    pass


@cli.command()
@_query_options
def check(lat: float, lng: float, service_type: str, order_value: Optional[str], at_time: Optional[str]):
    """Decide serviceability for one point"""
    try:
        result = build_service().check((lat, lng), service_type, order_value=order_value, at_time=_parse_at(at_time))
    except ServiceabilityError as e:
        click.echo(f"❌ {e.code}: {e}", err=True)
        sys.exit(2)

    click.echo(ServiceabilityResponse.from_result(result).model_dump_json(indent=2))


@cli.command()
@_query_options
def explain(lat: float, lng: float, service_type: str, order_value: Optional[str], at_time: Optional[str]):
    """Show every geofence and base location considered for one point"""
    try:
        report = build_service().explain((lat, lng), service_type, order_value=order_value, at_time=_parse_at(at_time))
    except ServiceabilityError as e:
        click.echo(f"❌ {e.code}: {e}", err=True)
        sys.exit(2)

    click.echo(ExplainResponse.from_report(report).model_dump_json(indent=2))


@cli.command('validate-catalog')
@click.option('--service-type', '-s', type=click.Choice([s.value for s in ServiceType]),
              help='Only validate this service type')
def validate_catalog(service_type: Optional[str]):
    """Report malformed geofences and base locations in the database"""
    service_types = [ServiceType(service_type)] if service_type else list(ServiceType)
    source = SqlCatalogSource()
    failures = 0

    for service in service_types:
        try:
            records = source.load(service)
        except ServiceabilityError as e:
            click.echo(f"❌ {e.code}: {e}", err=True)
            sys.exit(2)
        click.echo(f"🔎 {service.value}: {len(records.geofences)} geofences, "
                   f"{len(records.base_locations)} base locations")

        for record in records.malformed:
            failures += 1
            click.echo(f"   ❌ {record.kind} {record.record_id}: {'; '.join(record.problems)}")
        for geofence in records.geofences:
            problems = problems_or_error(geofence_problems, geofence)
            if problems:
                failures += 1
                click.echo(f"   ❌ geofence {geofence.id}: {'; '.join(problems)}")
        for hub in records.base_locations:
            problems = problems_or_error(base_location_problems, hub)
            if problems:
                failures += 1
                click.echo(f"   ❌ base_location {hub.id}: {'; '.join(problems)}")
        for conflict_service, hub_ids in default_hub_conflicts(records.base_locations).items():
            failures += 1
            click.echo(f"   ❌ {conflict_service} has {len(hub_ids)} default hubs: {', '.join(hub_ids)}")

    if failures:
        click.echo(f"⚠️  {failures} problem(s) found")
        logger.warning("Catalog validation failed", problems=failures)
        sys.exit(1)
    click.echo("✅ Catalog is valid")


@cli.command('init-db')
def init_db():
    """Create the catalog and capacity tables"""
    Base.metadata.create_all(bind=engine)
    click.echo(f"✅ Tables created on {engine.url.render_as_string(hide_password=True)}")


@cli.command()
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', default=8000, type=int, help='Port')
@click.option('--reload', is_flag=True, help='Reload on code changes')
def serve(host: str, port: int, reload: bool):
    """Run the API server"""
    import uvicorn
    uvicorn.run(
        "serviceability.main:app",
        host=host,
        port=port,
        reload=reload or settings.debug,
        log_level=settings.log_level.lower()
    )


if __name__ == '__main__':
    cli()
