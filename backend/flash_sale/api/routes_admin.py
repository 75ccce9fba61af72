from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from flash_sale.api.deps import get_scheduler
from flash_sale.config import settings
from flash_sale.services.admin_service import reset_catalog
from flash_sale.services.expiry_scheduler import ExpirationScheduler

router = APIRouter(prefix="/api/admin", tags=["admin"])


def require_admin(x_admin_token: Optional[str] = Header(None)):
    # disabled unless explicitly switched on with a token configured
    if not settings.ADMIN_RESET_ENABLED or not settings.ADMIN_TOKEN:
        raise HTTPException(status_code=404, detail="Not found")
    if x_admin_token != settings.ADMIN_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid admin token")


@router.post("/reset", summary="Delete all reservations and items, reseed the demo catalog")
def reset(
    request: Request,
    _: None = Depends(require_admin),
    scheduler: ExpirationScheduler = Depends(get_scheduler),
):
    service = request.app.state.reservations
    result = reset_catalog(service.session_factory, locks=service.locks)
    if scheduler is not None:
        result["deferred_jobs_cleared"] = scheduler.clear_deferred()
    return result
