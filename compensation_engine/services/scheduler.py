"""Distribution scheduler: periodic level snapshots, recalculation, self-income and outbox relay"""

import logging
import threading
import time
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session, sessionmaker

from compensation_engine.config import Settings, settings
from compensation_engine.domain.exceptions import GraphCycleError, UnknownJobError
from compensation_engine.domain.income import ZERO, self_income
from compensation_engine.domain.models import JobRunSummary, TransactionType, WalletType
from compensation_engine.domain.plan import CompensationPlan
from compensation_engine.infrastructure.database.repositories import MemberRepository
from compensation_engine.infrastructure.observability.logging import log_job_run
from compensation_engine.infrastructure.observability.metrics import record_income, record_job_run
from compensation_engine.services.deposits import OutboxRelay
from compensation_engine.services.ledger import WalletLedger
from compensation_engine.services.levels import LevelService
from compensation_engine.utils.date_utils import as_utc, same_local_day, utc_now

logger = logging.getLogger(__name__)

DAILY_LEVEL_SNAPSHOT = "daily_level_snapshot"
WEEKLY_LEVEL_RECALCULATION = "weekly_level_recalculation"
SELF_INCOME = "self_income"
OUTBOX_RELAY = "outbox_relay"


class MemberOutcome(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


MemberHandler = Callable[[Session, int, datetime], Tuple[MemberOutcome, Decimal]]


class DistributionScheduler:
    """
    Runs the batch jobs, either on their cron triggers or on demand.

    Every member is handled in its own session and transaction: a failure
    rolls back that member only, is counted and logged, and the run moves
    on. A job that is still running when triggered again is skipped rather
    than queued.
    """

    def __init__(self, session_factory: sessionmaker, plan: CompensationPlan, config: Settings = settings):
        self.session_factory = session_factory
        self.plan = plan
        self.config = config
        self.tz = config.tz
        self.relay = OutboxRelay(session_factory, max_attempts=config.outbox_max_attempts)
        self._scheduler: Optional[BackgroundScheduler] = None
        self._jobs: Dict[str, Callable[[Optional[datetime]], JobRunSummary]] = {
            DAILY_LEVEL_SNAPSHOT: self.run_daily_snapshot,
            WEEKLY_LEVEL_RECALCULATION: self.run_weekly_recalculation,
            SELF_INCOME: self.run_self_income,
            OUTBOX_RELAY: self.run_outbox_relay,
        }
        self._locks: Dict[str, threading.Lock] = {name: threading.Lock() for name in self._jobs}

    @property
    def job_names(self) -> List[str]:
        return list(self._jobs)

    def is_running(self, job_name: str) -> bool:
        lock = self._locks.get(job_name)
        return lock is not None and lock.locked()

    def _run_exclusive(self, job_name: str, body: Callable[[], JobRunSummary]) -> JobRunSummary:
        lock = self._locks[job_name]
        if not lock.acquire(blocking=False):
            logger.warning(f"Job {job_name} is already running, skipping this trigger", extra={"job": job_name})
            summary = JobRunSummary(job=job_name, status="skipped", started_at=utc_now())
            record_job_run(summary)
            return summary

        start = time.time()
        try:
            summary = body()
        finally:
            lock.release()

        summary.duration_seconds = time.time() - start
        log_job_run(summary)
        record_job_run(summary)
        return summary

    def _run_batch(
        self,
        job_name: str,
        id_loader: Callable[[Session], List[int]],
        handler: MemberHandler,
        now: datetime,
        after_commit: Optional[Callable[[int], None]] = None,
    ) -> JobRunSummary:
        summary = JobRunSummary(job=job_name, started_at=now)

        with self.session_factory() as db:
            member_ids = id_loader(db)
        summary.total = len(member_ids)

        for member_id in member_ids:
            with self.session_factory() as db:
                try:
                    outcome, amount = handler(db, member_id, now)
                    db.commit()
                except GraphCycleError as e:
                    db.rollback()
                    summary.errors += 1
                    summary.failed_member_ids.append(member_id)
                    logger.error(
                        f"Referral cycle while processing member {member_id}: {e}",
                        extra={"job": job_name, "member_id": member_id, "path": e.path},
                    )
                    continue
                except Exception as e:
                    db.rollback()
                    summary.errors += 1
                    summary.failed_member_ids.append(member_id)
                    logger.error(
                        f"Failed to process member {member_id}: {e}",
                        extra={"job": job_name, "member_id": member_id},
                    )
                    continue

            if after_commit is not None:
                after_commit(member_id)
            summary.processed += 1
            if outcome is MemberOutcome.UPDATED:
                summary.updated += 1
                summary.total_amount += amount
            elif outcome is MemberOutcome.SKIPPED:
                summary.skipped += 1

        return summary

    # Jobs

    def run_daily_snapshot(self, now: Optional[datetime] = None) -> JobRunSummary:
        """Recompute every active member's levels and store today's income amounts"""
        now = as_utc(now) if now else utc_now()

        def handle(db: Session, member_id: int, moment: datetime) -> Tuple[MemberOutcome, Decimal]:
            service = LevelService(db, self.plan, self.tz)
            change = service.recalculate_levels(member_id, moment)
            service.refresh_daily_income(member_id, moment)
            return (MemberOutcome.UPDATED if change.changed else MemberOutcome.UNCHANGED), ZERO

        return self._run_exclusive(
            DAILY_LEVEL_SNAPSHOT,
            lambda: self._run_batch(
                DAILY_LEVEL_SNAPSHOT,
                lambda db: MemberRepository(db).list_ids(active_only=True),
                handle,
                now,
            ),
        )

    def run_weekly_recalculation(self, now: Optional[datetime] = None) -> JobRunSummary:
        """Full recalculation of every member, then their uplines"""
        now = as_utc(now) if now else utc_now()
        # Ancestors whose refresh is committed during this run
        refreshed: Set[int] = set()
        # Refreshed by the member in flight, merged only once its commit succeeds
        pending: Dict[int, Set[int]] = {}

        def handle(db: Session, member_id: int, moment: datetime) -> Tuple[MemberOutcome, Decimal]:
            service = LevelService(db, self.plan, self.tz)
            change = service.recalculate_levels(member_id, moment)
            seen = set(refreshed)
            seen.add(member_id)
            upline_changed = service.propagate_upline(member_id, moment, seen)
            db.flush()
            pending[member_id] = seen
            changed = change.changed or upline_changed > 0
            return (MemberOutcome.UPDATED if changed else MemberOutcome.UNCHANGED), ZERO

        def committed(member_id: int) -> None:
            refreshed.update(pending.pop(member_id, ()))

        return self._run_exclusive(
            WEEKLY_LEVEL_RECALCULATION,
            lambda: self._run_batch(
                WEEKLY_LEVEL_RECALCULATION,
                lambda db: MemberRepository(db).list_ids(),
                handle,
                now,
                after_commit=committed,
            ),
        )

    def run_self_income(self, now: Optional[datetime] = None) -> JobRunSummary:
        """Credit the flat self-income to every eligible member, once per local day"""
        now = as_utc(now) if now else utc_now()

        def handle(db: Session, member_id: int, moment: datetime) -> Tuple[MemberOutcome, Decimal]:
            member = MemberRepository(db).get_for_update(member_id)
            if not member.is_active or member.is_blocked:
                return MemberOutcome.SKIPPED, ZERO
            if same_local_day(member.self_income_last_credited_at, moment, self.tz):
                return MemberOutcome.SKIPPED, ZERO

            balance = member.normal_balance
            amount = self_income(balance, self.plan)
            if amount <= 0:
                return MemberOutcome.SKIPPED, ZERO

            WalletLedger(db).credit(
                member,
                WalletType.NORMAL,
                amount,
                TransactionType.DAILY_INCOME,
                f"Daily self-income ({self.plan.self_income_percentage}% of wallet balance: {balance})",
                moment,
            )
            member.self_income_total_earned = (member.self_income_total_earned or ZERO) + amount
            member.self_income_today_earned = amount
            member.self_income_last_credited_at = moment
            db.flush()
            return MemberOutcome.UPDATED, amount

        summary = self._run_exclusive(
            SELF_INCOME,
            lambda: self._run_batch(
                SELF_INCOME,
                lambda db: MemberRepository(db).list_ids(active_only=True, exclude_blocked=True),
                handle,
                now,
            ),
        )
        if summary.total_amount > 0:
            record_income(TransactionType.DAILY_INCOME.value, summary.total_amount)
        return summary

    def run_outbox_relay(self, now: Optional[datetime] = None) -> JobRunSummary:
        now = as_utc(now) if now else utc_now()
        return self._run_exclusive(OUTBOX_RELAY, lambda: self.relay.process_pending(now=now))

    def trigger(self, job_name: str, now: Optional[datetime] = None) -> JobRunSummary:
        """Run a job synchronously on demand"""
        job = self._jobs.get(job_name)
        if job is None:
            raise UnknownJobError(f"Unknown job {job_name!r}; known jobs: {', '.join(self._jobs)}")
        logger.info(f"Manually triggering {job_name}", extra={"job": job_name})
        return job(now)

    # Lifecycle

    def start(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            return

        scheduler = BackgroundScheduler(timezone=self.tz)
        cron_jobs = {
            DAILY_LEVEL_SNAPSHOT: self.config.daily_snapshot_cron,
            WEEKLY_LEVEL_RECALCULATION: self.config.weekly_recalculation_cron,
            SELF_INCOME: self.config.self_income_cron,
        }
        for name, expression in cron_jobs.items():
            scheduler.add_job(
                self._jobs[name],
                CronTrigger.from_crontab(expression, timezone=self.tz),
                id=name,
                name=name,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        scheduler.add_job(
            self.run_outbox_relay,
            IntervalTrigger(seconds=self.config.outbox_interval_seconds, timezone=self.tz),
            id=OUTBOX_RELAY,
            name=OUTBOX_RELAY,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Distribution scheduler started", extra={"jobs": self.job_names, "timezone": str(self.tz)})

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Distribution scheduler stopped")
        self._scheduler = None

    def status(self) -> List[dict]:
        """Registered jobs with their next fire time and whether a run is in progress"""
        next_runs: Dict[str, Optional[datetime]] = {}
        if self._scheduler is not None:
            for job in self._scheduler.get_jobs():
                next_runs[job.id] = job.next_run_time
        return [
            {
                "name": name,
                "running": self.is_running(name),
                "next_run_time": next_runs.get(name),
            }
            for name in self._jobs
        ]
