from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from flash_sale.db import Base
from flash_sale.utils.transactions import utcnow


class Item(Base):
    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_items_available_non_negative"),
        CheckConstraint(
            "available_quantity <= total_quantity", name="ck_items_available_within_total"
        ),
    )

    id = Column(String(64), primary_key=True)
    name = Column(String(256), nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)
    # administratively set stock; only changed by catalog updates
    total_quantity = Column(Integer, nullable=False, default=0)
    # mutated only by the reservation engine while holding the item lock
    available_quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Item id={self.id} available={self.available_quantity}/{self.total_quantity}>"
