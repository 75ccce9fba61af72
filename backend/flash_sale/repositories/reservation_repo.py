from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from flash_sale.models.reservation import Reservation, ReservationStatus
from flash_sale.services.errors import NotFound


class ReservationStore:
    def __init__(self, db: Session):
        self.db = db

    def find_active(self, actor_id: str, item_id: str) -> Optional[Reservation]:
        return (
            self.db.query(Reservation)
            .filter(
                Reservation.actor_id == actor_id,
                Reservation.item_id == item_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
            .populate_existing()
            .first()
        )

    def find_by_id(self, reservation_id: str, for_update: bool = False) -> Reservation:
        qry = self.db.query(Reservation).filter(Reservation.id == reservation_id)
        if for_update:
            # joined eager load of the item would put FOR UPDATE on items too
            qry = qry.enable_eagerloads(False).with_for_update()
        r = qry.populate_existing().first()
        if r is None:
            raise NotFound("Reservation", reservation_id)
        return r

    def item_id_of(self, reservation_id: str) -> str:
        """Unlocked peek; item_id never changes once a reservation exists."""
        item_id = (
            self.db.query(Reservation.item_id)
            .filter(Reservation.id == reservation_id)
            .scalar()
        )
        if item_id is None:
            raise NotFound("Reservation", reservation_id)
        return item_id

    def list_by_actor(self, actor_id: str) -> List[Reservation]:
        return (
            self.db.query(Reservation)
            .filter(Reservation.actor_id == actor_id)
            .order_by(Reservation.created_at.desc())
            .all()
        )

    def list_overdue(self, now: datetime, limit: Optional[int] = None) -> List[Reservation]:
        qry = (
            self.db.query(Reservation)
            .filter(
                Reservation.status == ReservationStatus.ACTIVE,
                Reservation.expires_at <= now,
            )
            .order_by(Reservation.expires_at)
        )
        if limit:
            qry = qry.limit(limit)
        return qry.all()

    def create(
        self, actor_id: str, item_id: str, quantity: int, expires_at: datetime
    ) -> Reservation:
        r = Reservation(
            actor_id=actor_id,
            item_id=item_id,
            quantity=quantity,
            status=ReservationStatus.ACTIVE,
            expires_at=expires_at,
        )
        self.db.add(r)
        self.db.flush()
        return r

    def save(self, reservation: Reservation) -> Reservation:
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def refresh_actor_deadlines(
        self, actor_id: str, expires_at: datetime, now: datetime
    ) -> List[str]:
        """
        Move the deadline of every ACTIVE reservation of the actor to expires_at.
        Returns the ids that were moved.
        """
        ids = [
            rid
            for (rid,) in self.db.query(Reservation.id).filter(
                Reservation.actor_id == actor_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
        ]
        if ids:
            self.db.execute(
                update(Reservation)
                .where(
                    Reservation.id.in_(ids),
                    Reservation.status == ReservationStatus.ACTIVE,
                )
                .values(expires_at=expires_at, updated_at=now)
                .execution_options(synchronize_session="fetch")
            )
        return ids

    def expire_if_due(self, reservation_id: str, now: datetime) -> bool:
        """
        Guarded transition ACTIVE -> EXPIRED. The WHERE clause re-checks status
        and deadline in the same statement that writes, so a deadline pushed
        forward by a concurrent hold is never overwritten.
        """
        result = self.db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == ReservationStatus.ACTIVE,
                Reservation.expires_at <= now,
            )
            .values(status=ReservationStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1
