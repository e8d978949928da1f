"""Prometheus metrics for claims, credited income and batch job health"""

from decimal import Decimal

from prometheus_client import Counter, Histogram

from compensation_engine.domain.models import JobRunSummary

# Claim metrics
claim_counter = Counter(
    "compensation_claim_total",
    "Income claim attempts",
    ["kind", "outcome"],  # kind: daily | team; outcome: credited | already_claimed | no_income | ...
)

income_credited_counter = Counter(
    "compensation_income_credited_total",
    "Income credited to wallets by transaction type",
    ["type"],
)

# Batch job metrics
job_run_counter = Counter(
    "compensation_job_runs_total",
    "Batch job runs",
    ["job", "status"],  # completed | skipped
)

job_member_counter = Counter(
    "compensation_job_members_total",
    "Members handled by batch jobs",
    ["job", "result"],  # updated | unchanged | skipped | error
)

job_duration_histogram = Histogram(
    "compensation_job_duration_seconds",
    "Batch job run time",
    ["job"],
    buckets=[0.1, 1.0, 5.0, 30.0, 60.0, 300.0, 900.0, 3600.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_income(txn_type: str, amount: Decimal) -> None:
    """Record credited income amount for payout monitoring"""
    income_credited_counter.labels(type=txn_type).inc(float(amount))


def record_job_run(summary: JobRunSummary) -> None:
    """Record one batch run: status, per-member results and duration"""
    job_run_counter.labels(job=summary.job, status=summary.status).inc()
    if summary.status != "completed":
        return

    unchanged = summary.processed - summary.updated - summary.skipped
    job_member_counter.labels(job=summary.job, result="updated").inc(summary.updated)
    job_member_counter.labels(job=summary.job, result="unchanged").inc(max(unchanged, 0))
    job_member_counter.labels(job=summary.job, result="skipped").inc(summary.skipped)
    job_member_counter.labels(job=summary.job, result="error").inc(summary.errors)
    job_duration_histogram.labels(job=summary.job).observe(summary.duration_seconds)
