from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from flash_sale.models.item import Item
from flash_sale.models.reservation import Reservation
from flash_sale.services.errors import InsufficientStock, ItemInUse, NotFound, StockCorruption


class StockLedger:
    """
    Owns Item rows. The only code that writes available_quantity.

    try_deduct/restore expect to run inside the caller's transaction while
    the caller holds the item lock, so the lock spans the whole unit.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, item_id: str, for_update: bool = False) -> Optional[Item]:
        qry = self.db.query(Item).filter(Item.id == item_id)
        if for_update:
            # FOR UPDATE is dropped by dialects without row locks (SQLite)
            qry = qry.with_for_update().populate_existing()
        return qry.first()

    def require(self, item_id: str, for_update: bool = False) -> Item:
        item = self.get(item_id, for_update=for_update)
        if item is None:
            raise NotFound("Item", item_id)
        return item

    def list_items(self) -> List[Item]:
        return self.db.query(Item).order_by(Item.name, Item.id).all()

    def try_deduct(self, item_id: str, quantity: int) -> Item:
        item = self.require(item_id, for_update=True)
        if item.available_quantity < quantity:
            raise InsufficientStock(item_id, quantity, item.available_quantity)
        item.available_quantity -= quantity
        self.db.flush()
        return item

    def restore(self, item_id: str, quantity: int) -> Item:
        item = self.require(item_id, for_update=True)
        if item.available_quantity + quantity > item.total_quantity:
            raise StockCorruption(
                item_id, item.available_quantity, quantity, item.total_quantity
            )
        item.available_quantity += quantity
        self.db.flush()
        return item

    def create_or_update(
        self, item_id: str, name: str, price_cents: int, total_quantity: int
    ) -> Item:
        """
        Catalog maintenance. Changing total_quantity moves available_quantity by
        the same delta, so stock currently held or sold stays accounted for.
        Like every other write here, the caller holds the item lock.
        """
        item = self.get(item_id, for_update=True)
        if item is None:
            item = Item(
                id=item_id,
                name=name,
                price_cents=price_cents,
                total_quantity=total_quantity,
                available_quantity=total_quantity,
            )
            self.db.add(item)
        else:
            delta = total_quantity - item.total_quantity
            if item.available_quantity + delta < 0:
                raise InsufficientStock(item_id, -delta, item.available_quantity)
            item.name = name
            item.price_cents = price_cents
            item.total_quantity = total_quantity
            item.available_quantity += delta
        self.db.flush()
        return item

    def delete_item(self, item_id: str) -> None:
        """Items with reservation history are never deleted."""
        item = self.require(item_id, for_update=True)
        refs = (
            self.db.query(func.count(Reservation.id))
            .filter(Reservation.item_id == item_id)
            .scalar()
            or 0
        )
        if refs:
            raise ItemInUse(item_id, int(refs))
        self.db.delete(item)
        self.db.flush()
