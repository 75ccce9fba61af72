from datetime import timezone

import pytest
from sqlalchemy import update

from flash_sale.db import SessionLocal
from flash_sale.models.item import Item
from flash_sale.models.reservation import ReservationStatus
from flash_sale.services.expiry_scheduler import DEFERRED_PREFIX, SWEEP_JOB_ID, ExpirationScheduler
from flash_sale.utils.transactions import unit_of_work

TTL = 120


@pytest.fixture
def expiry(service):
    sched = ExpirationScheduler(service, interval_seconds=3600, deferred=True)
    yield sched
    sched.shutdown()


def test_sweep_expires_only_overdue_holds(service, expiry, make_item, clock, stock):
    make_item("A", 10)
    make_item("B", 10)
    old = service.create_or_extend("u1", "A", 2)
    refreshed = service.create_or_extend("u2", "A", 3)
    clock.advance(TTL + 1)
    # u2 comes back before the sweep; both of u2's holds get a new deadline
    service.create_or_extend("u2", "B", 1)

    expired = expiry.sweep()

    assert expired == [old.id]
    assert service.get(old.id).status is ReservationStatus.EXPIRED
    assert service.get(refreshed.id).status is ReservationStatus.ACTIVE
    assert stock("A") == 7
    assert expiry.sweep() == []


def test_sweep_with_nothing_to_do(expiry):
    assert expiry.sweep() == []


def test_sweep_halts_a_corrupted_item_but_continues_others(service, expiry, make_item, clock, stock):
    make_item("BAD", 10)
    make_item("OK", 10)
    service.create_or_extend("u1", "BAD", 2)
    clock.advance(1)
    service.create_or_extend("u2", "BAD", 2)
    clock.advance(1)
    healthy = service.create_or_extend("u3", "OK", 2)
    # simulate a bug elsewhere that handed the held stock back already
    with unit_of_work(SessionLocal) as db:
        db.execute(update(Item).where(Item.id == "BAD").values(available_quantity=10))
    clock.advance(TTL + 1)

    expired = expiry.sweep()

    assert expired == [healthy.id]
    assert stock("OK") == 10
    assert stock("BAD") == 10
    active_bad = [
        r for r in service.list_for_actor("u1") + service.list_for_actor("u2")
        if r.status is ReservationStatus.ACTIVE
    ]
    assert len(active_bad) == 2


def test_sweep_respects_batch_size(service, make_item, clock):
    make_item("A", 10)
    for i in range(3):
        service.create_or_extend(f"u{i}", "A", 1)
    clock.advance(TTL)
    sched = ExpirationScheduler(service, interval_seconds=3600, batch_size=2, deferred=False)
    assert len(sched.sweep()) == 2
    assert len(sched.sweep()) == 1


def test_deferred_trigger_follows_the_latest_deadline(service, expiry, make_item, clock):
    make_item("A", 10)
    make_item("B", 10)
    expiry.start(paused=True)

    a = service.create_or_extend("u1", "A", 1)
    job = expiry.scheduler.get_job(DEFERRED_PREFIX + a.id)
    assert job.next_run_time == a.expires_at.replace(tzinfo=timezone.utc)

    clock.advance(30)
    b = service.create_or_extend("u1", "B", 1)
    job = expiry.scheduler.get_job(DEFERRED_PREFIX + a.id)
    assert job.args[1] == b.expires_at
    assert expiry.scheduler.get_job(DEFERRED_PREFIX + b.id) is not None
    assert expiry.scheduler.get_job(SWEEP_JOB_ID) is not None


def test_deferred_trigger_expires_when_due(service, expiry, make_item, clock, stock):
    make_item("A", 5)
    r = service.create_or_extend("u1", "A", 2)

    expiry._fire(r.id, r.expires_at)
    assert service.get(r.id).status is ReservationStatus.ACTIVE

    clock.advance(TTL)
    expiry._fire(r.id, r.expires_at)
    assert service.get(r.id).status is ReservationStatus.EXPIRED
    assert stock("A") == 5


def test_deferred_trigger_for_vanished_reservation_is_harmless(expiry, clock):
    expiry._fire("gone", clock.now)


def test_start_and_shutdown_manage_the_deadline_hook(service, make_item):
    sched = ExpirationScheduler(service, interval_seconds=3600, deferred=True)
    sched.start(paused=True)
    try:
        assert sched.running
        assert service.on_deadline == sched.schedule
    finally:
        sched.shutdown()
    assert service.on_deadline is None
    assert not sched.running


def test_clear_deferred(service, expiry, make_item):
    make_item("A", 5)
    expiry.start(paused=True)
    service.create_or_extend("u1", "A", 1)
    service.create_or_extend("u2", "A", 1)
    assert expiry.clear_deferred() == 2
    assert expiry.scheduler.get_job(SWEEP_JOB_ID) is not None


def test_sweep_skips_a_busy_item_and_expires_the_rest(
    impatient_service, make_item, clock, stock, hold_item_lock
):
    make_item("BUSY", 5)
    make_item("FREE", 5)
    stuck = impatient_service.create_or_extend("u1", "BUSY", 2)
    free = impatient_service.create_or_extend("u2", "FREE", 2)
    clock.advance(TTL + 1)
    sweeper = ExpirationScheduler(impatient_service, interval_seconds=3600, deferred=False)
    release = hold_item_lock("BUSY")

    assert sweeper.sweep() == [free.id]
    assert impatient_service.get(stuck.id).status is ReservationStatus.ACTIVE
    assert stock("BUSY") == 3
    assert stock("FREE") == 5

    release()
    assert sweeper.sweep() == [stuck.id]
    assert stock("BUSY") == 5


def test_deferred_trigger_on_a_busy_item_leaves_it_for_the_sweep(
    impatient_service, make_item, clock, hold_item_lock
):
    make_item("BUSY", 5)
    r = impatient_service.create_or_extend("u1", "BUSY", 1)
    clock.advance(TTL)
    sweeper = ExpirationScheduler(impatient_service, interval_seconds=3600, deferred=True)
    release = hold_item_lock("BUSY")

    sweeper._fire(r.id, r.expires_at)
    assert impatient_service.get(r.id).status is ReservationStatus.ACTIVE

    release()
    assert sweeper.sweep() == [r.id]
