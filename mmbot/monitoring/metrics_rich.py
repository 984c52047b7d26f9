"""
Prometheus metrics for the trading engines.

Organized into: cycles, orders, reconciliation, volume, lifecycle.
Every metric carries a `pair` label so several engines can share one registry.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class EngineMetrics:
    """Metrics shared by the market-making and volume engines."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()

        # === Cycle Metrics ===
        self.cycles = Counter(
            'mmbot_cycles_total',
            'Engine cycles by outcome',
            labelnames=['pair', 'engine', 'outcome'],
            registry=reg
        )
        self.cycle_duration = Histogram(
            'mmbot_cycle_duration_seconds',
            'Wall time of one engine cycle',
            labelnames=['pair', 'engine'],
            buckets=[0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30],
            registry=reg
        )

        # === Order Metrics ===
        self.orders_placed = Counter(
            'mmbot_orders_placed_total',
            'Ladder orders placed',
            labelnames=['pair', 'side'],
            registry=reg
        )
        self.orders_cancelled = Counter(
            'mmbot_orders_cancelled_total',
            'Orders cancelled by the engine',
            labelnames=['pair', 'reason'],
            registry=reg
        )
        self.cancel_failures = Counter(
            'mmbot_cancel_failures_total',
            'Cancels that failed and will be retried',
            labelnames=['pair'],
            registry=reg
        )
        self.gateway_errors = Counter(
            'mmbot_gateway_errors_total',
            'Gateway call failures',
            labelnames=['pair', 'op'],
            registry=reg
        )
        self.tracked_orders = Gauge(
            'mmbot_tracked_orders',
            'Orders currently tracked in the local book',
            labelnames=['pair'],
            registry=reg
        )

        # === Reconciliation Metrics ===
        self.orders_orphaned = Counter(
            'mmbot_orders_orphaned_total',
            'Tracked orders found gone from the exchange',
            labelnames=['pair'],
            registry=reg
        )
        self.orders_unexpected = Counter(
            'mmbot_orders_unexpected_total',
            'Remote orders seen that the engine never placed',
            labelnames=['pair'],
            registry=reg
        )
        self.reprices_selected = Counter(
            'mmbot_reprices_selected_total',
            'Orders selected for repricing',
            labelnames=['pair'],
            registry=reg
        )

        # === Volume Metrics ===
        self.volume_trades = Counter(
            'mmbot_volume_trades_total',
            'Volume trades executed',
            labelnames=['pair', 'side', 'mode'],
            registry=reg
        )
        self.volume_traded = Counter(
            'mmbot_volume_traded_total',
            'Base-asset volume traded',
            labelnames=['pair', 'mode'],
            registry=reg
        )

        # === Lifecycle ===
        self.engine_running = Gauge(
            'mmbot_engine_running',
            'Engine running (1) or stopped (0)',
            labelnames=['pair', 'engine'],
            registry=reg
        )

        self.registry = reg

    def get_registry(self):
        """Return the Prometheus registry for export."""
        return self.registry


def start_metrics_server(port: int, metrics: EngineMetrics) -> None:
    """Expose the registry over HTTP on a background thread."""
    start_http_server(port, registry=metrics.registry)
