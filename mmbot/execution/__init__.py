"""
Execution layer.

- OrderManager: the tracked order book, indexed by id and by ladder slot
- ReconciliationService: partitions tracked vs remote orders and applies it
- ExecutionGateway: placement/cancellation with bookkeeping, logging, metrics
- MonitoringSimulator: where order actions go when monitoring_mode is set
"""

from mmbot.execution.execution_gateway import CancelResult, ExecutionGateway, ExecutionGatewayConfig, SubmitResult
from mmbot.execution.order_manager import OrderManager, SlotOccupied
from mmbot.execution.reconciliation_service import (
    OrderReconcileResult,
    ReconciliationConfig,
    ReconciliationResult,
    ReconciliationService,
    reconcile,
)
from mmbot.execution.simulator import MonitoringSimulator, SimulatedAction

__all__ = [
    "CancelResult",
    "ExecutionGateway",
    "ExecutionGatewayConfig",
    "SubmitResult",
    "OrderManager",
    "SlotOccupied",
    "OrderReconcileResult",
    "ReconciliationConfig",
    "ReconciliationResult",
    "ReconciliationService",
    "reconcile",
    "MonitoringSimulator",
    "SimulatedAction",
]
