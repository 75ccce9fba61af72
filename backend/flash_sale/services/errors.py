from typing import Optional


class ReservationError(Exception):
    """Base class for everything the reservation engine reports to callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ReservationError):
    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class InvalidQuantity(ReservationError):
    def __init__(self, quantity):
        super().__init__(f"Quantity must be positive, got {quantity}")
        self.quantity = quantity


class InsufficientStock(ReservationError):
    def __init__(self, item_id: str, requested: int, available: int):
        super().__init__(f"Not enough stock. Available={available}")
        self.item_id = item_id
        self.requested = requested
        self.available = available


class InvalidState(ReservationError):
    """Raised by complete() on a reservation that is no longer ACTIVE."""

    def __init__(self, reservation_id: str, current_status):
        status = getattr(current_status, "value", current_status)
        super().__init__(f"Reservation {reservation_id} already {str(status).lower()}")
        self.reservation_id = reservation_id
        self.current_status = current_status


class LockTimeout(ReservationError):
    """Transient: the row lock could not be acquired in time. Safe to retry."""

    def __init__(self, kind: str, key: str, timeout: Optional[float] = None):
        super().__init__(f"Could not acquire {kind} lock for {key}; try again")
        self.kind = kind
        self.key = key
        self.timeout = timeout


class ItemInUse(ReservationError):
    def __init__(self, item_id: str, reservations: int):
        super().__init__(
            f"Item {item_id} is referenced by {reservations} reservation(s) and cannot be deleted"
        )
        self.item_id = item_id
        self.reservations = reservations


class StockCorruption(ReservationError):
    """
    Fatal. A restore would push available stock above the item's total.
    This is never a normal rejection: the conservation invariant has been
    broken upstream and the item needs inspection.
    """

    def __init__(self, item_id: str, available: int, restoring: int, total: int):
        super().__init__(
            f"Restoring {restoring} to item {item_id} would exceed total stock "
            f"(available={available}, total={total})"
        )
        self.item_id = item_id
        self.available = available
        self.restoring = restoring
        self.total = total
