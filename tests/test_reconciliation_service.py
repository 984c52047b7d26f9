"""Unit tests for ReconciliationService and the id partition."""

import logging
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from mmbot.core.errors import GatewayError
from mmbot.core.types import RemoteOrder, Side, TrackedOrder
from mmbot.execution.order_manager import OrderManager
from mmbot.execution.reconciliation_service import (
    ReconciliationConfig,
    ReconciliationService,
    reconcile,
)


def _tracked(oid, side=Side.BUY, level_index=0):
    return TrackedOrder(id=oid, side=side, price=Decimal("0.01"), quantity=Decimal("200"), placed_at=0.0, level_index=level_index)


def _remote(oid, side=Side.BUY):
    return RemoteOrder(id=oid, side=side, price=Decimal("0.01"), quantity=Decimal("200"))


class TestReconcile:
    @pytest.mark.parametrize("tracked,remote", [
        (set(), set()),
        ({"a", "b"}, set()),
        (set(), {"x"}),
        ({"a", "b", "c"}, {"b", "c", "d"}),
        ({"a"}, {"a"}),
    ])
    def test_partition_laws(self, tracked, remote):
        """confirmed|orphaned covers tracked, confirmed|unexpected covers remote, all disjoint."""
        r = reconcile(tracked, remote)
        assert r.confirmed | r.orphaned == tracked
        assert r.confirmed | r.unexpected == remote
        assert not (r.confirmed & r.orphaned)
        assert not (r.confirmed & r.unexpected)
        assert not (r.orphaned & r.unexpected)

    def test_accepts_order_objects(self):
        r = reconcile([_tracked("a"), _tracked("b", level_index=1)], [_remote("b"), _remote("z")])
        assert r.confirmed == {"b"}
        assert r.orphaned == {"a"}
        assert r.unexpected == {"z"}


class TestReconciliationService:
    """Test ReconciliationService against a mocked gateway."""

    @pytest.fixture
    def order_manager(self):
        om = OrderManager()
        om.register(_tracked("a", Side.BUY, 0))
        om.register(_tracked("b", Side.SELL, 0))
        return om

    @pytest.fixture
    def gateway(self):
        gw = MagicMock()
        gw.get_open_orders = AsyncMock(return_value=[_remote("b", Side.SELL), _remote("x")])
        return gw

    @pytest.fixture
    def events(self):
        return []

    @pytest.fixture
    def service(self, gateway, order_manager, events):
        config = ReconciliationConfig(log_event_callback=lambda event, **kw: events.append((event, kw)))
        return ReconciliationService("ILMTUSDT", gateway, order_manager, config=config, clock=lambda: 123.0)

    @pytest.mark.asyncio
    async def test_orphan_dropped(self, service, order_manager):
        """Tracked orders missing remotely leave the book."""
        result = await service.reconcile_orders()

        assert result.success is True
        assert result.orders_removed == 1
        assert [o.id for o in result.orphaned_orders] == ["a"]
        assert "a" not in order_manager
        assert order_manager.at_slot(Side.BUY, 0) is None

    @pytest.mark.asyncio
    async def test_confirmed_kept(self, service, order_manager):
        result = await service.reconcile_orders()

        assert result.result.confirmed == {"b"}
        assert order_manager.get("b") is not None

    @pytest.mark.asyncio
    async def test_unexpected_logged_not_tracked(self, service, order_manager, gateway, events):
        """Foreign remote orders are reported and never adopted or cancelled."""
        result = await service.reconcile_orders()

        assert result.unexpected_count == 1
        assert "x" not in order_manager
        assert ("unexpected_order", {"level": logging.WARNING, "order_ids": ["x"], "count": 1}) in events
        gateway.cancel_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_failure_leaves_book_untouched(self, service, order_manager, gateway):
        gateway.get_open_orders = AsyncMock(side_effect=GatewayError("boom", code=500))

        result = await service.reconcile_orders()

        assert result.success is False
        assert result.error == "boom"
        assert order_manager.ids() == {"a", "b"}
        assert service.last_reconcile_at == 0.0

    @pytest.mark.asyncio
    async def test_records_reconcile_time(self, service):
        await service.reconcile_orders()
        assert service.last_reconcile_at == 123.0
        service.reset_timers()
        assert service.last_reconcile_at == 0.0

    @pytest.mark.asyncio
    async def test_works_against_paper_exchange(self, paper):
        """A fill on the exchange turns the tracked order into an orphan."""
        om = OrderManager()
        remote = await paper.place_order("ILMTUSDT", Side.BUY, "0.009950", "200")
        om.register(_tracked(remote.id))
        paper.fill_order("ILMTUSDT", remote.id)

        result = await ReconciliationService("ILMTUSDT", paper, om).reconcile_orders()

        assert result.orders_removed == 1
        assert len(om) == 0
