"""Integration tests for the distribution scheduler's batch jobs"""

import threading
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from compensation_engine.domain.exceptions import UnknownJobError
from compensation_engine.domain.models import WalletType
from compensation_engine.infrastructure.database.repositories import LevelRepository, TransactionRepository
from compensation_engine.services.ledger import WalletLedger
from compensation_engine.services.scheduler import (
    DAILY_LEVEL_SNAPSHOT,
    SELF_INCOME,
    WEEKLY_LEVEL_RECALCULATION,
)

# 12:00 in Asia/Kolkata
NOON = datetime(2024, 3, 10, 6, 30, tzinfo=timezone.utc)


def make_cycle(db, make_member):
    """Two members referring each other, as corrupted data would"""
    first = make_member(balance="100")
    second = make_member(referrer=first, balance="100")
    first.referred_by_id = second.id
    db.commit()
    return first, second


def test_daily_snapshot_classifies_and_stores_income(db, scheduler, make_member):
    root = make_member(balance="1000")
    for _ in range(5):
        make_member(referrer=root, balance="100")

    summary = scheduler.run_daily_snapshot(NOON)

    assert summary.status == "completed"
    assert summary.total == 6
    assert summary.processed == 6
    assert summary.errors == 0
    db.expire_all()
    level = LevelRepository(db).get(root.id)
    assert level.digit_current == "Lvl1"
    assert level.daily_digit_income == Decimal("3.50")
    assert level.daily_income_calculated_at is not None


def test_daily_snapshot_skips_inactive_members(scheduler, make_member):
    make_member(balance="100")
    make_member(balance="100", is_active=False)

    summary = scheduler.run_daily_snapshot(NOON)

    assert summary.total == 1


def test_batch_survives_corrupted_members(db, scheduler, make_member):
    """N members, M of them on a referral cycle: N-M processed, M errors"""
    healthy = [make_member(balance="100") for _ in range(3)]
    first, second = make_cycle(db, make_member)

    summary = scheduler.run_weekly_recalculation(NOON)

    assert summary.total == 5
    assert summary.processed == 3
    assert summary.errors == 2
    assert sorted(summary.failed_member_ids) == sorted([first.id, second.id])
    db.expire_all()
    for member in healthy:
        assert LevelRepository(db).get(member.id).character_current == "A"


def test_weekly_recalculation_refreshes_uplines(db, scheduler, make_member):
    root = make_member()
    child = make_member(referrer=root)
    grandchild = make_member(referrer=child)

    summary = scheduler.run_weekly_recalculation(NOON)

    assert summary.errors == 0
    db.expire_all()
    repo = LevelRepository(db)
    assert [repo.get(m.id).character_current for m in (root, child, grandchild)] == ["A", "B", "C"]


def test_weekly_recalculation_retries_upline_after_failed_commit(db, scheduler, make_member, monkeypatch):
    """A member whose commit fails is still refreshed later as someone's upline"""
    root = make_member()
    child = make_member(referrer=root)
    original_factory = scheduler.session_factory
    opened = []

    def factory():
        session = original_factory()
        opened.append(session)
        # sessions: id loader, root, child
        if len(opened) == 2:
            def failing_commit():
                raise RuntimeError("commit lost")

            session.commit = failing_commit
        return session

    monkeypatch.setattr(scheduler, "session_factory", factory)

    summary = scheduler.run_weekly_recalculation(NOON)

    assert summary.errors == 1
    assert summary.failed_member_ids == [root.id]
    db.expire_all()
    repo = LevelRepository(db)
    assert repo.get(child.id).character_current == "B"
    assert repo.get(root.id).character_current == "A"


def test_self_income_credits_once_per_local_day(db, scheduler, make_member):
    funded = make_member(balance="1000")
    make_member(balance="0")
    blocked = make_member(balance="500")
    blocked.is_blocked = True
    db.commit()

    summary = scheduler.run_self_income(NOON)

    assert summary.total == 2  # blocked member excluded up front
    assert summary.updated == 1
    assert summary.skipped == 1
    assert summary.total_amount == Decimal("5.00")
    db.expire_all()
    assert funded.normal_balance == Decimal("1005.00")
    assert funded.self_income_today_earned == Decimal("5.00")
    assert WalletLedger(db).balance_matches_history(funded, WalletType.NORMAL)

    rerun = scheduler.run_self_income(NOON + timedelta(hours=3))
    assert rerun.updated == 0
    db.expire_all()
    assert TransactionRepository(db).count_by_type(funded.id, WalletType.NORMAL, "daily_income") == 1

    next_day = scheduler.run_self_income(NOON + timedelta(days=1))
    assert next_day.updated == 1
    db.expire_all()
    assert funded.self_income_total_earned == Decimal("10.025")  # 5.00 + 0.5% of 1005.00


def test_self_income_credits_small_balance(db, scheduler, make_member):
    member = make_member(balance="0.80")

    summary = scheduler.run_self_income(NOON)

    assert summary.updated == 1
    assert summary.total_amount == Decimal("0.004")
    db.expire_all()
    assert member.normal_balance == Decimal("0.804")
    assert member.self_income_today_earned == Decimal("0.004")
    assert WalletLedger(db).balance_matches_history(member, WalletType.NORMAL)


def test_job_is_skipped_while_running(scheduler, make_member):
    make_member(balance="100")
    lock = scheduler._locks[SELF_INCOME]
    lock.acquire()
    try:
        assert scheduler.is_running(SELF_INCOME)
        summary = scheduler.run_self_income(NOON)
    finally:
        lock.release()

    assert summary.status == "skipped"
    assert summary.processed == 0


def test_concurrent_trigger_runs_job_once(db, scheduler, make_member, monkeypatch):
    make_member(balance="1000")
    started = threading.Event()
    release = threading.Event()
    results = []

    original = scheduler._run_batch

    def slow_batch(*args, **kwargs):
        started.set()
        release.wait(timeout=5)
        return original(*args, **kwargs)

    monkeypatch.setattr(scheduler, "_run_batch", slow_batch)
    worker = threading.Thread(target=lambda: results.append(scheduler.trigger(SELF_INCOME, NOON)))
    worker.start()
    started.wait(timeout=5)

    second = scheduler.trigger(SELF_INCOME, NOON)
    release.set()
    worker.join(timeout=10)

    assert second.status == "skipped"
    assert results[0].status == "completed"
    assert results[0].updated == 1


def test_trigger_unknown_job(scheduler):
    with pytest.raises(UnknownJobError):
        scheduler.trigger("lucky_draw")


def test_status_lists_every_job(scheduler):
    names = [entry["name"] for entry in scheduler.status()]
    assert DAILY_LEVEL_SNAPSHOT in names
    assert WEEKLY_LEVEL_RECALCULATION in names
    assert all(entry["next_run_time"] is None for entry in scheduler.status())


def test_start_registers_cron_jobs(scheduler):
    scheduler.start()
    try:
        status = {entry["name"]: entry for entry in scheduler.status()}
        assert status[SELF_INCOME]["next_run_time"] is not None
        assert status[WEEKLY_LEVEL_RECALCULATION]["next_run_time"].weekday() == 6  # Sunday
    finally:
        scheduler.shutdown()
