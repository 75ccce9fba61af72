import enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from flash_sale.db import Base
from flash_sale.models.item import Item
from flash_sale.utils.transactions import utcnow


class ReservationStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not ReservationStatus.ACTIVE


def _new_id() -> str:
    return uuid4().hex


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_reservations_quantity_positive"),
        # repeat holds merge into one row; the database refuses a second ACTIVE one
        Index(
            "uq_reservations_active_actor_item",
            "actor_id",
            "item_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
        Index("ix_reservations_status_expires_at", "status", "expires_at"),
    )

    id = Column(String(32), primary_key=True, default=_new_id)
    actor_id = Column(String(128), nullable=False, index=True)
    item_id = Column(
        String(64), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False)
    status = Column(
        Enum(ReservationStatus, native_enum=False, length=16),
        nullable=False,
        default=ReservationStatus.ACTIVE,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    # only compared against the clock while status is ACTIVE
    expires_at = Column(DateTime, nullable=False)

    item = relationship(Item, lazy="joined")

    def is_due(self, now) -> bool:
        return self.status is ReservationStatus.ACTIVE and self.expires_at <= now

    def __repr__(self):
        return (
            f"<Reservation id={self.id} actor={self.actor_id} item={self.item_id} "
            f"qty={self.quantity} status={self.status.value}>"
        )
