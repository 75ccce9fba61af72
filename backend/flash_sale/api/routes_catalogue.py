from fastapi import APIRouter, Depends

from flash_sale.api.deps import get_reservation_service
from flash_sale.schemas.reservation_schema import ItemOut
from flash_sale.services.reservation_service import ReservationService

router = APIRouter(tags=["catalogue"])


@router.get("", summary="List items with their available quantity")
def list_products(svc: ReservationService = Depends(get_reservation_service)):
    return [ItemOut.model_validate(i).model_dump(by_alias=True) for i in svc.list_items()]
