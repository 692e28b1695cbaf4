"""Tests for geofence ranking and selection"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from serviceability.services.capacity import CapacityCounter, InMemoryCapacityCounter
from serviceability.services.catalog import InMemoryCatalogSource, ShapeCatalog
from serviceability.services.domain import LatLng, ServiceabilityQuery, ServiceType
from serviceability.services.geofence_resolver import GeofenceResolver, GeofenceVerdict, ranking_key

from factories import (
    OFFICE_HOURS, SATURDAY_MORNING, WEEKDAY_MORNING,
    make_circle_geofence, make_polygon_geofence, square
)

CENTER = LatLng(28.70, 77.10)


def _query(point=CENTER, order_value=None, at_time=WEEKDAY_MORNING):
    return ServiceabilityQuery(point, ServiceType.DELIVERY, order_value, at_time)


def _snapshot(*geofences, at_time=WEEKDAY_MORNING):
    catalog = ShapeCatalog(InMemoryCatalogSource(geofences), cache_ttl_seconds=0)
    return catalog.snapshot(ServiceType.DELIVERY, at_time)


class TestGeofenceResolution:
    """Winner selection"""

    def setup_method(self):
        self.resolver = GeofenceResolver(InMemoryCapacityCounter())

    def test_higher_priority_wins(self):
        """Scenario A: P2 (priority 7) beats P1 (priority 3)"""
        snapshot = _snapshot(
            make_polygon_geofence("P1", square(28.70, 77.10, 0.05), priority=3, partner_id="S1"),
            make_polygon_geofence("P2", square(28.70, 77.10, 0.05), priority=7, partner_id="S2"),
        )
        winner = self.resolver.resolve(_query(), snapshot)
        assert winner.id == "P2"
        assert winner.partner_ref.id == "S2"

    def test_priority_beats_smaller_area(self):
        snapshot = _snapshot(
            make_polygon_geofence("big-8", square(28.70, 77.10, 0.05), priority=8),
            make_polygon_geofence("small-5", square(28.70, 77.10, 0.01), priority=5),
        )
        assert self.resolver.resolve(_query(), snapshot).id == "big-8"

    def test_equal_priority_smaller_area_wins(self):
        snapshot = _snapshot(
            make_polygon_geofence("city", square(28.70, 77.10, 0.05), priority=5),
            make_circle_geofence("block", (28.70, 77.10), 500.0, priority=5),
        )
        assert self.resolver.resolve(_query(), snapshot).id == "block"

    def test_full_tie_smallest_id_wins(self):
        ring = square(28.70, 77.10, 0.05)
        snapshot = _snapshot(
            make_polygon_geofence("zeta", ring, priority=5),
            make_polygon_geofence("alpha", ring, priority=5),
        )
        assert self.resolver.resolve(_query(), snapshot).id == "alpha"

    def test_point_outside_all(self):
        snapshot = _snapshot(make_polygon_geofence("P1", square(28.70, 77.10, 0.05)))
        assert self.resolver.resolve(_query(point=LatLng(19.07, 72.87)), snapshot) is None

    def test_empty_snapshot(self):
        assert self.resolver.resolve(_query(), _snapshot()) is None

    def test_min_order_value_filters(self):
        """Scenario C: minimum 500 rejects an order of 300"""
        snapshot = _snapshot(
            make_polygon_geofence("premium", square(28.70, 77.10, 0.05), min_order_value=Decimal("500"))
        )
        assert self.resolver.resolve(_query(order_value=Decimal("300")), snapshot) is None
        assert self.resolver.resolve(_query(order_value=Decimal("500")), snapshot).id == "premium"

    def test_missing_order_value_passes_minimum(self):
        snapshot = _snapshot(
            make_polygon_geofence("premium", square(28.70, 77.10, 0.05), min_order_value=Decimal("500"))
        )
        assert self.resolver.resolve(_query(order_value=None), snapshot).id == "premium"

    def test_closed_geofence_not_matched(self):
        """Scenario D: weekday-only geofence is closed on Saturday"""
        geofence = make_polygon_geofence("office", square(28.70, 77.10, 0.05), working_hours=OFFICE_HOURS)
        assert self.resolver.resolve(_query(at_time=SATURDAY_MORNING), _snapshot(geofence, at_time=SATURDAY_MORNING)) is None
        assert self.resolver.resolve(_query(), _snapshot(geofence)).id == "office"

    def test_exhausted_capacity_skipped(self):
        counter = InMemoryCapacityCounter()
        resolver = GeofenceResolver(counter)
        snapshot = _snapshot(
            make_polygon_geofence("busy", square(28.70, 77.10, 0.02), priority=9, capacity_per_day=1),
            make_polygon_geofence("spare", square(28.70, 77.10, 0.05), priority=4),
        )
        assert resolver.resolve(_query(), snapshot).id == "busy"

        assert counter.try_reserve("busy", snapshot.at_time.date(), 1) is True
        assert resolver.resolve(_query(), snapshot).id == "spare"

    def test_capacity_read_uses_service_local_day(self):
        counter = Mock(spec=CapacityCounter)
        counter.has_capacity.return_value = True
        resolver = GeofenceResolver(counter)
        snapshot = _snapshot(make_polygon_geofence("busy", square(28.70, 77.10, 0.05), capacity_per_day=10))

        resolver.resolve(_query(), snapshot)

        counter.has_capacity.assert_called_once_with("busy", WEEKDAY_MORNING.date(), 10)

    def test_rank_orders_all_candidates(self):
        snapshot = _snapshot(
            make_polygon_geofence("low", square(28.70, 77.10, 0.05), priority=2),
            make_polygon_geofence("high", square(28.70, 77.10, 0.05), priority=9),
            make_circle_geofence("mid", (28.70, 77.10), 800.0, priority=5),
            make_circle_geofence("elsewhere", (19.07, 72.87), 800.0, priority=10),
        )
        assert [g.id for g in self.resolver.rank(_query(), snapshot)] == ["high", "mid", "low"]

    def test_resolution_is_deterministic(self):
        geofences = [
            make_polygon_geofence(f"g{i}", square(28.70, 77.10, 0.01 * (i + 1)), priority=5)
            for i in range(5)
        ]
        first = self.resolver.resolve(_query(), _snapshot(*geofences))
        second = self.resolver.resolve(_query(), _snapshot(*reversed(geofences)))
        assert first.id == second.id == "g0"


class TestRankingKey:

    def test_key_orders_priority_then_area_then_id(self):
        a = make_circle_geofence("a", (0, 0), 100.0, priority=5)
        b = make_circle_geofence("b", (0, 0), 100.0, priority=5)
        c = make_circle_geofence("c", (0, 0), 50.0, priority=5)
        d = make_circle_geofence("d", (0, 0), 1000.0, priority=6)
        assert sorted([a, b, c, d], key=ranking_key) == [d, c, a, b]


class TestGeofenceEvaluation:
    """Diagnostic verdicts"""

    def test_every_configured_geofence_gets_a_verdict(self):
        counter = InMemoryCapacityCounter()
        resolver = GeofenceResolver(counter)
        snapshot = _snapshot(
            make_polygon_geofence("winner", square(28.70, 77.10, 0.02), priority=9),
            make_polygon_geofence("loser", square(28.70, 77.10, 0.05), priority=3),
            make_polygon_geofence("retired", square(28.70, 77.10, 0.05), is_active=False),
            make_polygon_geofence("weekend", square(28.70, 77.10, 0.05),
                                  working_hours={"Saturday": [{"start": "09:00", "end": "18:00"}]}),
            make_polygon_geofence("premium", square(28.70, 77.10, 0.05), min_order_value=Decimal("1000")),
            make_circle_geofence("far", (19.07, 72.87), 800.0),
            make_polygon_geofence("full", square(28.70, 77.10, 0.05), priority=10, capacity_per_day=1),
        )
        counter.try_reserve("full", snapshot.at_time.date(), 1)

        verdicts = {
            e.geofence.id: e.verdict
            for e in resolver.evaluate(_query(order_value=Decimal("250")), snapshot)
        }

        assert verdicts == {
            "winner": GeofenceVerdict.SELECTED,
            "loser": GeofenceVerdict.OUTRANKED,
            "retired": GeofenceVerdict.INACTIVE,
            "weekend": GeofenceVerdict.CLOSED,
            "premium": GeofenceVerdict.BELOW_MIN_ORDER,
            "far": GeofenceVerdict.OUTSIDE_SHAPE,
            "full": GeofenceVerdict.CAPACITY_EXHAUSTED,
        }

    def test_evaluate_never_reserves(self):
        counter = InMemoryCapacityCounter()
        resolver = GeofenceResolver(counter)
        snapshot = _snapshot(make_polygon_geofence("capped", square(28.70, 77.10, 0.05), capacity_per_day=1))

        for _ in range(3):
            resolver.evaluate(_query(), snapshot)

        assert counter.assigned("capped", snapshot.at_time.date()) == 0
        assert resolver.resolve(_query(), snapshot).id == "capped"
