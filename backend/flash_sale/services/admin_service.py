from contextlib import ExitStack
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import delete, func
from sqlalchemy.orm import Session

from flash_sale.models.item import Item
from flash_sale.models.reservation import Reservation
from flash_sale.repositories.item_repo import StockLedger
from flash_sale.utils.locks import RowLocks
from flash_sale.utils.logs import get_logger
from flash_sale.utils.transactions import unit_of_work

log = get_logger("admin")

# Demo catalog loaded into an empty database and by the admin reset.
DEFAULT_CATALOG: List[Dict] = [
    {"id": "sneaker-limited", "name": "Limited Edition Sneakers", "price_cents": 12999, "quantity": 5},
    {"id": "headphones-pro", "name": "Wireless Headphones Pro", "price_cents": 8999, "quantity": 10},
    {"id": "smartwatch-s2", "name": "Smartwatch Series 2", "price_cents": 19999, "quantity": 3},
    {"id": "backpack-urban", "name": "Urban Backpack", "price_cents": 4999, "quantity": 20},
    {"id": "keyboard-mech", "name": "Mechanical Keyboard", "price_cents": 7499, "quantity": 8},
]


def _item_fields(entry: Dict) -> Dict:
    return {
        "item_id": str(entry["id"]),
        "name": entry.get("name") or str(entry["id"]),
        "price_cents": int(entry.get("price_cents", 0) or 0),
        "total_quantity": int(entry.get("quantity", 0) or 0),
    }


def load_catalog(
    session_factory: Callable[[], Session],
    catalog: Iterable[Dict],
    locks: Optional[RowLocks] = None,
) -> int:
    """
    Create or update catalog items, each in its own unit of work under that
    item's lock, so a live hold never interleaves with a stock change.
    """
    locks = locks or RowLocks()
    count = 0
    for entry in catalog:
        fields = _item_fields(entry)
        with locks.item(fields["item_id"]):
            with unit_of_work(session_factory) as db:
                StockLedger(db).create_or_update(**fields)
        count += 1
    return count


def seed_if_empty(
    session_factory: Callable[[], Session],
    catalog: Iterable[Dict] = None,
    locks: Optional[RowLocks] = None,
) -> int:
    with unit_of_work(session_factory) as db:
        if db.query(func.count(Item.id)).scalar():
            return 0
    return load_catalog(session_factory, DEFAULT_CATALOG if catalog is None else catalog, locks)


def reset_catalog(
    session_factory: Callable[[], Session],
    catalog: Iterable[Dict] = None,
    locks: Optional[RowLocks] = None,
) -> Dict:
    """
    Wipe every reservation and item, then load the catalog again.
    Reservations go first: items with reservation history cannot be deleted.
    Every affected item lock is held (in sorted order) for the whole unit.
    Not part of normal operation; the HTTP route guarding it is off by default.
    """
    entries = [_item_fields(e) for e in (DEFAULT_CATALOG if catalog is None else catalog)]
    locks = locks or RowLocks()
    with unit_of_work(session_factory) as db:
        existing = [item_id for (item_id,) in db.query(Item.id).all()]
    item_ids = sorted(set(existing) | {e["item_id"] for e in entries})

    with ExitStack() as stack:
        for item_id in item_ids:
            stack.enter_context(locks.item(item_id))
        with unit_of_work(session_factory) as db:
            removed_reservations = db.execute(delete(Reservation)).rowcount
            removed_items = db.execute(delete(Item)).rowcount
            ledger = StockLedger(db)
            for fields in entries:
                ledger.create_or_update(**fields)
    log.warning(
        "catalog reset: removed %s reservations, %s items; loaded %d items",
        removed_reservations, removed_items, len(entries),
    )
    return {
        "reservations_removed": removed_reservations,
        "items_removed": removed_items,
        "items_created": len(entries),
    }
