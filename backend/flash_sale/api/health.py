from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from flash_sale.api.deps import get_scheduler
from flash_sale.db import engine
from flash_sale.services.expiry_scheduler import ExpirationScheduler

router = APIRouter()


@router.get("/health", tags=["health"])
def health(scheduler: ExpirationScheduler = Depends(get_scheduler)):
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except SQLAlchemyError:
        db_ok = False
    scheduler_ok = scheduler is not None and scheduler.running

    return {
        "status": "ok" if db_ok else "degraded",
        "db": db_ok,
        "scheduler": scheduler_ok,
    }
