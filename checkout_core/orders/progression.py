"""
Demo order status progression.

Advances demo orders PENDING -> CONFIRMED -> PROCESSING -> SHIPPED ->
DELIVERED on a fixed delay. Each order has at most one scheduled advance,
kept in a table keyed by order id with its wake time; a single polling
loop fires the due ones. Time comes from an injected clock.
"""
import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set

import structlog

from ..config.models import OrderProgressionSettings
from ..monitoring.metrics import metrics
from .models import STATUS_PROGRESSION, Order, OrderStatus, OrderStatusChange

logger = structlog.get_logger(__name__)

AUTO_ADVANCE_NOTE = "Auto-advanced for demo purposes"
DEMO_PAYMENT_PREFIX = "demo-"

StatusUpdater = Callable[[str, OrderStatus, str], Awaitable[Order]]
StatusObserver = Callable[[OrderStatusChange], Any]


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class ScheduledAdvance:
    order_id: str
    from_status: OrderStatus
    to_status: OrderStatus
    wake_at: datetime


class OrderProgressionEngine:
    """
    Scheduled-advance table driven by one polling loop.

    Features:
    - Idempotent restart: one schedule per order id
    - Stop is a safe no-op for unknown orders
    - Stopping while an update is in flight prevents re-arming
    - Observers are notified after every successful update
    """

    def __init__(
        self,
        update_status: StatusUpdater,
        settings: Optional[OrderProgressionSettings] = None,
        clock: Optional[Clock] = None,
        poll_interval_seconds: float = 1.0,
        demo_mode: bool = True,
    ):
        """
        Initialize progression engine.

        Args:
            update_status: Collaborator that applies a status change and
                returns the updated order
            settings: Feature flag and advancement delay
            clock: Time source
            poll_interval_seconds: Sleep between polling loop ticks
            demo_mode: Whether the application runs in demo mode; orders
                never advance outside it
        """
        self._update_status = update_status
        self.settings = settings or OrderProgressionSettings()
        self.clock: Clock = clock or SystemClock()
        self.poll_interval_seconds = poll_interval_seconds
        self.demo_mode = demo_mode
        self._schedule: Dict[str, ScheduledAdvance] = {}
        self._in_flight: Set[str] = set()
        self._observers: List[StatusObserver] = []
        self._running = False

    # Progression table

    @staticmethod
    def get_next_status(current_status: OrderStatus) -> Optional[OrderStatus]:
        if current_status not in STATUS_PROGRESSION:
            return None
        index = STATUS_PROGRESSION.index(current_status)
        if index >= len(STATUS_PROGRESSION) - 1:
            return None
        return STATUS_PROGRESSION[index + 1]

    @classmethod
    def can_advance_status(cls, current_status: OrderStatus) -> bool:
        return cls.get_next_status(current_status) is not None

    # Scheduling

    def _arm(self, order_id: str, current_status: OrderStatus) -> bool:
        next_status = self.get_next_status(current_status)
        if next_status is None:
            return False

        wake_at = self.clock.now() + timedelta(milliseconds=self.settings.advancement_delay_ms)
        self._schedule[order_id] = ScheduledAdvance(
            order_id=order_id,
            from_status=current_status,
            to_status=next_status,
            wake_at=wake_at,
        )
        metrics.set_scheduled_advances(len(self._schedule))
        logger.debug(
            "order_advance_scheduled",
            order_id=order_id,
            next_status=next_status.value,
            wake_at=wake_at.isoformat(),
        )
        return True

    def start_auto_advancement(self, order: Order) -> bool:
        """
        Schedule the next status change for a demo order.

        Args:
            order: Order whose current status is the starting point

        Returns:
            bool: True when an advance was scheduled
        """
        if not (self.demo_mode and self.settings.auto_advance_enabled):
            return False
        if not (order.payment_method or "").startswith(DEMO_PAYMENT_PREFIX):
            return False

        self.stop_auto_advancement(order.id)
        return self._arm(order.id, order.status)

    def stop_auto_advancement(self, order_id: str) -> None:
        removed = self._schedule.pop(order_id, None)
        self._in_flight.discard(order_id)
        if removed is not None:
            metrics.set_scheduled_advances(len(self._schedule))
            logger.debug("order_advance_cancelled", order_id=order_id)

    def scheduled_order_ids(self) -> List[str]:
        return list(self._schedule)

    def get_estimated_next_update(self, order_id: str) -> Optional[datetime]:
        scheduled = self._schedule.get(order_id)
        return scheduled.wake_at if scheduled else None

    # Observers

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        """
        Register a status change observer.

        Returns:
            Callable[[], None]: Removes the observer when called
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def _notify(self, change: OrderStatusChange) -> None:
        for observer in list(self._observers):
            try:
                result = observer(change)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("order_observer_failed", order_id=change.order.id, error=str(e))

    # Firing

    async def _advance(self, scheduled: ScheduledAdvance) -> None:
        order_id = scheduled.order_id
        try:
            updated = await self._update_status(order_id, scheduled.to_status, AUTO_ADVANCE_NOTE)
        except Exception as e:
            self._in_flight.discard(order_id)
            metrics.record_order_advance(scheduled.to_status.value, False)
            logger.error(
                "order_auto_advance_failed",
                order_id=order_id,
                next_status=scheduled.to_status.value,
                error=str(e),
            )
            return

        metrics.record_order_advance(scheduled.to_status.value, True)
        logger.info(
            "order_auto_advanced",
            order_id=order_id,
            previous_status=scheduled.from_status.value,
            new_status=updated.status.value,
        )

        if order_id in self._in_flight:
            self._in_flight.discard(order_id)
            if updated.status != OrderStatus.DELIVERED:
                self._arm(order_id, updated.status)

        await self._notify(
            OrderStatusChange(
                order=updated,
                previous_status=scheduled.from_status,
                new_status=updated.status,
                changed_at=self.clock.now(),
            )
        )

    async def tick(self) -> int:
        """
        Fire every scheduled advance whose wake time has passed.

        Returns:
            int: Number of advances fired
        """
        now = self.clock.now()
        due = [advance for advance in self._schedule.values() if advance.wake_at <= now]
        for advance in due:
            self._schedule.pop(advance.order_id, None)
            self._in_flight.add(advance.order_id)
        if due:
            metrics.set_scheduled_advances(len(self._schedule))

        for advance in due:
            await self._advance(advance)
        return len(due)

    async def run(self) -> None:
        """Polling loop; runs until ``stop`` or ``shutdown`` is called."""
        self._running = True
        logger.info("order_progression_started", poll_interval=self.poll_interval_seconds)

        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.error("order_progression_tick_error", error=str(e))
            await asyncio.sleep(self.poll_interval_seconds)

        logger.info("order_progression_stopped")

    def stop(self) -> None:
        self._running = False

    def shutdown(self) -> None:
        """Cancel every scheduled advance and stop the polling loop."""
        cancelled = len(self._schedule)
        self._schedule.clear()
        self._in_flight.clear()
        self.stop()
        metrics.set_scheduled_advances(0)
        logger.info("order_progression_shutdown", cancelled=cancelled)

    cleanup = shutdown

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def update_status_callable(self) -> StatusUpdater:
        return self._update_status

    # Configuration

    def update_config(self, **changes: Any) -> OrderProgressionSettings:
        """
        Replace settings fields, e.g. ``update_config(advancement_delay_ms=5000)``.

        Existing schedules keep their wake times.
        """
        self.settings = self.settings.model_copy(update=changes)
        return self.settings

    def get_config(self) -> Dict[str, Any]:
        return {
            **self.settings.model_dump(),
            "status_progression": [status.value for status in STATUS_PROGRESSION],
        }
