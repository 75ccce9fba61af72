from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flash_sale.api.health import router as health_router
from flash_sale.api.routes_admin import router as admin_router
from flash_sale.api.routes_catalogue import router as catalogue_router
from flash_sale.api.routes_events import router as events_router
from flash_sale.api.routes_reservations import router as reservations_router
from flash_sale.config import settings
from flash_sale.db import SessionLocal, init_db
from flash_sale.services.expiry_scheduler import ExpirationScheduler
from flash_sale.services.notifier import BroadcastNotifier
from flash_sale.services.reservation_service import ReservationService
from flash_sale.utils.logs import get_logger

log = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    init_db(reset=settings.RESET_DB)

    app.state.notifier = BroadcastNotifier()
    app.state.reservations = ReservationService(SessionLocal, notifier=app.state.notifier)
    app.state.scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = ExpirationScheduler(app.state.reservations)
        scheduler.start()
        # reclaim anything that expired while the process was down
        scheduler.sweep()
        app.state.scheduler = scheduler
    else:
        log.warning("expiration scheduler disabled; overdue holds will not be released")

    try:
        yield
    finally:
        if app.state.scheduler is not None:
            app.state.scheduler.shutdown()


app = FastAPI(title="Flash Sale Reservations", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(catalogue_router, prefix="/api/products", tags=["catalogue"])

app.include_router(reservations_router, tags=["reservations"])

app.include_router(admin_router, tags=["admin"])

app.include_router(events_router, tags=["events"])
