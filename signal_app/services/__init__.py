"""Business services."""

from signal_app.services.execution import ExecutionCoordinator
from signal_app.services.notifier import Event, EventPublisher
from signal_app.services.order_service import OrderService
from signal_app.services.signal_lifecycle import SignalLifecycleManager
from signal_app.services.signal_service import SignalService

__all__ = [
    "ExecutionCoordinator",
    "Event",
    "EventPublisher",
    "OrderService",
    "SignalLifecycleManager",
    "SignalService",
]
