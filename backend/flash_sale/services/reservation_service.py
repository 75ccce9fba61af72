from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from flash_sale.config import settings
from flash_sale.models.item import Item
from flash_sale.models.reservation import Reservation, ReservationStatus
from flash_sale.repositories.item_repo import StockLedger
from flash_sale.repositories.reservation_repo import ReservationStore
from flash_sale.services.errors import InvalidQuantity, InvalidState, StockCorruption
from flash_sale.services.notifier import ChangeEvent, EventKind, Notifier
from flash_sale.utils.locks import RowLocks
from flash_sale.utils.logs import get_logger
from flash_sale.utils.transactions import unit_of_work, utcnow

log = get_logger("reservations")

DeadlineHook = Callable[[str, datetime], None]


def _attach(reservation: Reservation, item: Item) -> None:
    """Give a reservation its item snapshot without marking anything dirty."""
    set_committed_value(reservation, "item", item)


class ReservationService:
    """
    Reservation lifecycle: create/extend, complete, cancel and expire.

    Every operation is one unit of work on its own session, run under the
    lock of the item involved. A reservation never changes item, so the item
    lock also serializes everything done to that reservation. Facts go to
    the notifier only after commit.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        notifier: Optional[Notifier] = None,
        locks: Optional[RowLocks] = None,
        clock: Optional[Callable[[], datetime]] = None,
        ttl_seconds: Optional[int] = None,
        on_deadline: Optional[DeadlineHook] = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier or Notifier()
        self.locks = locks or RowLocks()
        self.clock = clock or utcnow
        self.ttl_seconds = settings.RESERVATION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        # called with (reservation_id, expires_at) after a hold moves deadlines
        self.on_deadline = on_deadline

    def _now(self) -> datetime:
        return self.clock()

    # -- reads -------------------------------------------------------------

    def list_items(self) -> List[Item]:
        with unit_of_work(self.session_factory) as db:
            return StockLedger(db).list_items()

    def list_for_actor(self, actor_id: str) -> List[Reservation]:
        with unit_of_work(self.session_factory) as db:
            return ReservationStore(db).list_by_actor(actor_id)

    def get(self, reservation_id: str) -> Reservation:
        with unit_of_work(self.session_factory) as db:
            return ReservationStore(db).find_by_id(reservation_id)

    def _item_id_of(self, reservation_id: str) -> str:
        with unit_of_work(self.session_factory) as db:
            return ReservationStore(db).item_id_of(reservation_id)

    # -- transitions -------------------------------------------------------

    def create_or_extend(self, actor_id: str, item_id: str, quantity: int) -> Reservation:
        """
        Hold `quantity` more units of an item for an actor.

        Repeat holds on the same item merge into the actor's ACTIVE reservation.
        Every ACTIVE reservation of the actor, on any item, gets the new
        deadline: one hold window per actor.
        """
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise InvalidQuantity(quantity)

        with self.locks.item(item_id):
            now = self._now()
            deadline = now + timedelta(seconds=self.ttl_seconds)
            with unit_of_work(self.session_factory) as db:
                ledger = StockLedger(db)
                store = ReservationStore(db)

                item = ledger.try_deduct(item_id, quantity)
                reservation = store.find_active(actor_id, item_id)
                if reservation is not None:
                    reservation.quantity += quantity
                    reservation.expires_at = deadline
                    store.save(reservation)
                else:
                    reservation = store.create(actor_id, item_id, quantity, deadline)
                    _attach(reservation, item)
                refreshed = store.refresh_actor_deadlines(actor_id, deadline, now)
                available = item.available_quantity
            # committed

        log.info(
            "hold actor=%s item=%s +%d -> reservation=%s qty=%d available=%d deadline=%s",
            actor_id, item_id, quantity, reservation.id, reservation.quantity,
            available, deadline.isoformat(),
        )
        self._emit(
            ChangeEvent.for_item(item_id, available, now),
            ChangeEvent.for_reservation(
                EventKind.RESERVATION_CREATED_OR_EXTENDED, reservation, now,
                available_quantity=available,
                refreshed_reservation_ids=refreshed,
            ),
        )
        if self.on_deadline is not None:
            for rid in refreshed:
                self.on_deadline(rid, deadline)
        return reservation

    def complete(self, reservation_id: str) -> Reservation:
        """
        Mark an ACTIVE reservation paid. Stock was already taken at hold time.
        The status seen under the lock decides: a reservation whose deadline
        has passed but that nobody has expired yet still completes.
        """
        item_id = self._item_id_of(reservation_id)
        with self.locks.item(item_id):
            now = self._now()
            with unit_of_work(self.session_factory) as db:
                store = ReservationStore(db)
                reservation = store.find_by_id(reservation_id, for_update=True)
                if reservation.status is not ReservationStatus.ACTIVE:
                    log.info(
                        "complete rejected reservation=%s status=%s",
                        reservation_id, reservation.status.value,
                    )
                    raise InvalidState(reservation_id, reservation.status)
                reservation.status = ReservationStatus.COMPLETED
                reservation.updated_at = now
                store.save(reservation)
                _attach(reservation, StockLedger(db).require(item_id))

        log.info("completed reservation=%s qty=%d", reservation_id, reservation.quantity)
        self._emit(
            ChangeEvent.for_reservation(EventKind.RESERVATION_COMPLETED, reservation, now)
        )
        return reservation

    def cancel(self, reservation_id: str) -> Reservation:
        """Release an ACTIVE hold now. Calling it on a terminal reservation changes nothing."""
        item_id = self._item_id_of(reservation_id)
        with self.locks.item(item_id):
            now = self._now()
            with unit_of_work(self.session_factory) as db:
                store = ReservationStore(db)
                reservation = store.find_by_id(reservation_id, for_update=True)
                if reservation.status is not ReservationStatus.ACTIVE:
                    _attach(reservation, StockLedger(db).require(item_id))
                    log.debug(
                        "cancel no-op reservation=%s status=%s",
                        reservation_id, reservation.status.value,
                    )
                    return reservation
                item = self._restore(db, reservation)
                reservation.status = ReservationStatus.EXPIRED
                reservation.expires_at = now
                reservation.updated_at = now
                store.save(reservation)
                _attach(reservation, item)
                available = item.available_quantity

        log.info(
            "cancelled reservation=%s released=%d available=%d",
            reservation_id, reservation.quantity, available,
        )
        self._emit(
            ChangeEvent.for_item(item_id, available, now),
            ChangeEvent.for_reservation(
                EventKind.RESERVATION_CANCELLED, reservation, now,
                available_quantity=available,
            ),
        )
        return reservation

    def expire(
        self, reservation_id: str, expected_deadline: Optional[datetime] = None
    ) -> bool:
        """
        Expire a reservation if, under the lock, it is still ACTIVE and past its
        deadline. Returns True only when a transition happened. Safe to call
        any number of times from any trigger.
        """
        item_id = self._item_id_of(reservation_id)
        with self.locks.item(item_id):
            now = self._now()
            with unit_of_work(self.session_factory) as db:
                store = ReservationStore(db)
                reservation = store.find_by_id(reservation_id, for_update=True)
                if not reservation.is_due(now):
                    if (
                        expected_deadline is not None
                        and reservation.status is ReservationStatus.ACTIVE
                        and reservation.expires_at != expected_deadline
                    ):
                        log.debug(
                            "stale expiry trigger reservation=%s expected=%s current=%s",
                            reservation_id, expected_deadline.isoformat(),
                            reservation.expires_at.isoformat(),
                        )
                    return False
                if not store.expire_if_due(reservation_id, now):
                    return False
                item = self._restore(db, reservation)
                _attach(reservation, item)
                available = item.available_quantity

        log.info(
            "expired reservation=%s released=%d available=%d",
            reservation_id, reservation.quantity, available,
        )
        self._emit(
            ChangeEvent.for_item(item_id, available, now),
            ChangeEvent.for_reservation(
                EventKind.RESERVATION_EXPIRED, reservation, now,
                available_quantity=available,
            ),
        )
        return True

    # -- helpers -----------------------------------------------------------

    def _restore(self, db: Session, reservation: Reservation) -> Item:
        try:
            return StockLedger(db).restore(reservation.item_id, reservation.quantity)
        except StockCorruption as e:
            log.critical("STOCK CORRUPTION reservation=%s: %s", reservation.id, e.message)
            raise

    def _emit(self, *events: ChangeEvent) -> None:
        for event in events:
            self.notifier.publish(event)
