from fastapi import HTTPException

from flash_sale.services.errors import (
    InsufficientStock,
    InvalidQuantity,
    InvalidState,
    ItemInUse,
    LockTimeout,
    NotFound,
    ReservationError,
    StockCorruption,
)
from flash_sale.utils.logs import get_logger

log = get_logger("api")


def to_http(e: ReservationError) -> HTTPException:
    """Map engine errors onto HTTP responses. Corruption is never a normal rejection."""
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, InvalidQuantity):
        return HTTPException(status_code=422, detail=e.message)
    if isinstance(e, (InsufficientStock, InvalidState, ItemInUse)):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, LockTimeout):
        return HTTPException(status_code=503, detail=e.message, headers={"Retry-After": "1"})
    if isinstance(e, StockCorruption):
        log.critical("inventory invariant violated: %s", e.message)
        return HTTPException(
            status_code=500,
            detail="Inventory invariant violated; the item has been flagged for inspection",
        )
    log.error("unmapped reservation error %s: %s", type(e).__name__, e.message)
    return HTTPException(status_code=500, detail="Internal error")
