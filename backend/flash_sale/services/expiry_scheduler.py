from datetime import datetime, timezone
from typing import List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from flash_sale.config import settings
from flash_sale.repositories.reservation_repo import ReservationStore
from flash_sale.services.errors import LockTimeout, NotFound, StockCorruption
from flash_sale.services.reservation_service import ReservationService
from flash_sale.utils.logs import get_logger
from flash_sale.utils.transactions import unit_of_work

log = get_logger("expiry")

SWEEP_JOB_ID = "expire_reservations"
DEFERRED_PREFIX = "expire:"


class ExpirationScheduler:
    """
    Reclaims stock from abandoned holds. Two triggers feed the same
    ReservationService.expire():

      - a periodic sweep over ACTIVE reservations past their deadline, which
        also picks up anything missed across restarts;
      - optional one-shot jobs at each reservation's deadline, registered
        after every hold, for faster reclamation.

    A trigger that fires for a deadline which has since moved is a no-op,
    because expire() re-checks under the row lock.
    """

    def __init__(
        self,
        service: ReservationService,
        interval_seconds: Optional[int] = None,
        batch_size: Optional[int] = None,
        deferred: Optional[bool] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.service = service
        self.interval_seconds = interval_seconds or settings.EXPIRE_SWEEP_INTERVAL_SECONDS
        self.batch_size = batch_size or settings.EXPIRE_SWEEP_BATCH_SIZE
        self.deferred = settings.DEFERRED_EXPIRY_ENABLED if deferred is None else deferred
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self, paused: bool = False) -> None:
        self.scheduler.add_job(
            self.sweep,
            "interval",
            seconds=self.interval_seconds,
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if self.deferred:
            self.service.on_deadline = self.schedule
        self.scheduler.start(paused=paused)
        log.info(
            "expiration scheduler started (sweep every %ss, deferred=%s, paused=%s)",
            self.interval_seconds, self.deferred, paused,
        )

    def shutdown(self) -> None:
        if self.service.on_deadline == self.schedule:
            self.service.on_deadline = None
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        log.info("expiration scheduler stopped")

    def sweep(self) -> List[str]:
        """
        Expire every overdue reservation, one at a time. Returns expired ids.
        A corrupted item is skipped for the rest of the cycle; lock timeouts
        are left for the next cycle.
        """
        now = self.service.clock()
        with unit_of_work(self.service.session_factory) as db:
            overdue = [
                (r.id, r.item_id, r.expires_at)
                for r in ReservationStore(db).list_overdue(now, limit=self.batch_size)
            ]
        if not overdue:
            return []

        expired: List[str] = []
        halted = set()
        for rid, item_id, deadline in overdue:
            if item_id in halted:
                continue
            try:
                if self.service.expire(rid, expected_deadline=deadline):
                    expired.append(rid)
            except NotFound:
                log.info("reservation %s vanished before expiry", rid)
            except LockTimeout as e:
                log.warning("sweep skipped reservation=%s: %s", rid, e.message)
            except StockCorruption as e:
                halted.add(item_id)
                log.critical(
                    "halting expiry for item=%s this cycle: %s", item_id, e.message
                )
        log.info("sweep: %d overdue, %d expired", len(overdue), len(expired))
        return expired

    def schedule(self, reservation_id: str, expires_at: datetime) -> None:
        """Register (or move) the one-shot expiry trigger for a reservation."""
        run_at = expires_at.replace(tzinfo=timezone.utc)
        self.scheduler.add_job(
            self._fire,
            "date",
            run_date=run_at,
            args=[reservation_id, expires_at],
            id=DEFERRED_PREFIX + reservation_id,
            replace_existing=True,
            misfire_grace_time=None,
        )

    def clear_deferred(self) -> int:
        jobs = [j for j in self.scheduler.get_jobs() if j.id.startswith(DEFERRED_PREFIX)]
        for job in jobs:
            job.remove()
        return len(jobs)

    def _fire(self, reservation_id: str, expected_deadline: datetime) -> None:
        try:
            self.service.expire(reservation_id, expected_deadline=expected_deadline)
        except NotFound:
            log.info("deferred expiry: reservation %s no longer exists", reservation_id)
        except LockTimeout as e:
            # the periodic sweep picks it up
            log.warning("deferred expiry deferred to sweep: %s", e.message)
