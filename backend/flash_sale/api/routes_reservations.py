from fastapi import APIRouter, Depends

from flash_sale.api.deps import get_reservation_service
from flash_sale.api.errors import to_http
from flash_sale.schemas.reservation_schema import ReservationIn, ReservationOut
from flash_sale.services.errors import ReservationError
from flash_sale.services.reservation_service import ReservationService

router = APIRouter(prefix="/api/reservations", tags=["reservations"])


def _out(r):
    return ReservationOut.model_validate(r).model_dump(by_alias=True)


@router.post("", summary="Reserve items, or add to the actor's existing hold")
def create_or_extend(
    payload: ReservationIn, svc: ReservationService = Depends(get_reservation_service)
):
    """
    payload: { "userId": "u1", "productId": "sneaker-limited", "quantity": 2 }
    Every active hold of the user gets the new deadline.
    """
    try:
        r = svc.create_or_extend(payload.actor_id, payload.item_id, payload.quantity)
    except ReservationError as e:
        raise to_http(e)
    return _out(r)


@router.get("/user/{actor_id}", summary="All reservations of a user, any status")
def list_for_actor(actor_id: str, svc: ReservationService = Depends(get_reservation_service)):
    return [_out(r) for r in svc.list_for_actor(actor_id)]


@router.get("/{reservation_id}", summary="Get one reservation")
def get_reservation(reservation_id: str, svc: ReservationService = Depends(get_reservation_service)):
    try:
        return _out(svc.get(reservation_id))
    except ReservationError as e:
        raise to_http(e)


@router.post("/{reservation_id}/complete", summary="Complete (mock payment) a reservation")
def complete(reservation_id: str, svc: ReservationService = Depends(get_reservation_service)):
    try:
        return _out(svc.complete(reservation_id))
    except ReservationError as e:
        raise to_http(e)


@router.post("/{reservation_id}/cancel", summary="Release a reservation; no-op if already closed")
def cancel(reservation_id: str, svc: ReservationService = Depends(get_reservation_service)):
    try:
        return _out(svc.cancel(reservation_id))
    except ReservationError as e:
        raise to_http(e)
