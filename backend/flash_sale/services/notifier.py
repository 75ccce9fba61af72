import asyncio
import enum
import threading
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from flash_sale.utils.logs import get_logger

log = get_logger("notifier")


class EventKind(str, enum.Enum):
    ITEM_STOCK_CHANGED = "item.stock_changed"
    RESERVATION_CREATED_OR_EXTENDED = "reservation.created_or_extended"
    RESERVATION_COMPLETED = "reservation.completed"
    RESERVATION_CANCELLED = "reservation.cancelled"
    RESERVATION_EXPIRED = "reservation.expired"


class ChangeEvent(BaseModel):
    """A committed state change, handed out after the transaction that made it."""

    kind: EventKind
    item_id: str
    reservation_id: Optional[str] = None
    actor_id: Optional[str] = None
    quantity: Optional[int] = None
    available_quantity: Optional[int] = None
    status: Optional[str] = None
    expires_at: Optional[datetime] = None
    refreshed_reservation_ids: List[str] = Field(default_factory=list)
    occurred_at: datetime

    @classmethod
    def for_item(cls, item_id: str, available_quantity: int, at: datetime) -> "ChangeEvent":
        return cls(
            kind=EventKind.ITEM_STOCK_CHANGED,
            item_id=item_id,
            available_quantity=available_quantity,
            occurred_at=at,
        )

    @classmethod
    def for_reservation(cls, kind: EventKind, reservation, at: datetime, **extra) -> "ChangeEvent":
        return cls(
            kind=kind,
            item_id=reservation.item_id,
            reservation_id=reservation.id,
            actor_id=reservation.actor_id,
            quantity=reservation.quantity,
            status=reservation.status.value,
            expires_at=reservation.expires_at,
            occurred_at=at,
            **extra,
        )


class Notifier:
    """Default sink: facts are only logged."""

    def publish(self, event: ChangeEvent) -> None:
        log.debug("%s item=%s reservation=%s", event.kind.value, event.item_id, event.reservation_id)


class Subscription:
    def __init__(self, loop: asyncio.AbstractEventLoop, actor_id: Optional[str], maxsize: int):
        self.loop = loop
        self.actor_id = actor_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def wants(self, event: ChangeEvent) -> bool:
        # stock facts go to everyone, reservation facts only to their actor
        if self.actor_id is None or event.kind is EventKind.ITEM_STOCK_CHANGED:
            return True
        return event.actor_id == self.actor_id

    def _offer(self, event: ChangeEvent) -> None:
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(event)

    async def get(self) -> ChangeEvent:
        return await self.queue.get()


class BroadcastNotifier(Notifier):
    """
    Fans facts out to in-process subscribers (the websocket endpoint).

    publish() is called from worker threads (sync routes, scheduler jobs);
    delivery hops onto each subscriber's event loop. A slow subscriber
    loses its oldest facts instead of blocking publishers.
    """

    def __init__(self, queue_size: int = 1000):
        self.queue_size = queue_size
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self, loop: asyncio.AbstractEventLoop, actor_id: Optional[str] = None
    ) -> Subscription:
        sub = Subscription(loop, actor_id, self.queue_size)
        with self._lock:
            self._subscribers.append(sub)
        log.info("subscriber added actor=%s total=%d", actor_id, len(self._subscribers))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)
        log.info("subscriber removed actor=%s dropped=%d", sub.actor_id, sub.dropped)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: ChangeEvent) -> None:
        super().publish(event)
        with self._lock:
            targets = [s for s in self._subscribers if s.wants(event)]
        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(sub._offer, event)
            except RuntimeError:
                # loop already closed; the websocket handler will unsubscribe
                log.warning("subscriber loop closed, dropping %s", event.kind.value)
