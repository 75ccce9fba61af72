from fastapi import Request

from flash_sale.services.expiry_scheduler import ExpirationScheduler
from flash_sale.services.reservation_service import ReservationService


def get_reservation_service(request: Request) -> ReservationService:
    return request.app.state.reservations


def get_scheduler(request: Request) -> ExpirationScheduler:
    return getattr(request.app.state, "scheduler", None)
