import os
import tempfile
import threading
from datetime import timedelta

import pytest

# must be set before flash_sale.config is imported
_TMP = tempfile.mkdtemp(prefix="flash_sale_tests_")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TMP, "test.db")
os.environ["LOCK_DIR"] = _TMP
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ADMIN_RESET_ENABLED"] = "false"
os.environ["RESET_DB"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from flash_sale.db import SessionLocal, init_db  # noqa: E402
from flash_sale.models.reservation import Reservation, ReservationStatus  # noqa: E402
from flash_sale.repositories.item_repo import StockLedger  # noqa: E402
from flash_sale.services.notifier import Notifier  # noqa: E402
from flash_sale.services.reservation_service import ReservationService  # noqa: E402
from flash_sale.utils.locks import RowLocks  # noqa: E402
from flash_sale.utils.transactions import unit_of_work, utcnow  # noqa: E402

TTL = 120


class FakeClock:
    def __init__(self):
        self.now = utcnow().replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.kind.value for e in self.events]


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True, seed=False)
    yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(clock, notifier):
    return ReservationService(
        SessionLocal,
        notifier=notifier,
        locks=RowLocks(lock_dir=_TMP, timeout=30),
        clock=clock,
        ttl_seconds=TTL,
    )


@pytest.fixture
def lock_root():
    return _TMP


@pytest.fixture
def impatient_service(clock, notifier):
    """Same engine, but gives up on a busy item lock after a fraction of a second."""
    return ReservationService(
        SessionLocal,
        notifier=notifier,
        locks=RowLocks(lock_dir=_TMP, timeout=0.2),
        clock=clock,
        ttl_seconds=TTL,
    )


@pytest.fixture
def hold_item_lock():
    """Hold an item lock from another thread. Returns a callable that releases it."""
    running = []

    def _hold(item_id):
        acquired = threading.Event()
        release = threading.Event()

        def worker():
            with RowLocks(lock_dir=_TMP, timeout=5).item(item_id):
                acquired.set()
                release.wait(30)

        t = threading.Thread(target=worker)
        t.start()
        assert acquired.wait(5)
        running.append((release, t))

        def _release():
            release.set()
            t.join(5)

        return _release

    yield _hold
    for release, t in running:
        release.set()
        t.join(5)


@pytest.fixture
def make_item():
    def _make(item_id, quantity, name=None, price_cents=100):
        with unit_of_work(SessionLocal) as db:
            item = StockLedger(db).create_or_update(
                item_id, name or item_id, price_cents, quantity
            )
            return item

    return _make


@pytest.fixture
def stock():
    def _stock(item_id):
        with unit_of_work(SessionLocal) as db:
            return StockLedger(db).require(item_id).available_quantity

    return _stock


@pytest.fixture
def active_held():
    """Sum of quantities of ACTIVE reservations on an item."""

    def _held(item_id):
        with unit_of_work(SessionLocal) as db:
            rows = (
                db.query(Reservation)
                .filter(
                    Reservation.item_id == item_id,
                    Reservation.status == ReservationStatus.ACTIVE,
                )
                .all()
            )
            return sum(r.quantity for r in rows)

    return _held
