"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache

from fastapi import Request

from compensation_engine.config import settings
from compensation_engine.domain.plan import CompensationPlan, load_plan
from compensation_engine.infrastructure.database.session import SessionLocal
from compensation_engine.services.scheduler import DistributionScheduler


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


@lru_cache(maxsize=1)
def get_plan() -> CompensationPlan:
    """Compensation plan, loaded once from PLAN_CONFIG_PATH or the built-in tables"""
    return load_plan(settings.plan_config_path)


@lru_cache(maxsize=1)
def get_scheduler() -> DistributionScheduler:
    """Process-wide scheduler shared by the lifespan hook and the jobs endpoints"""
    return DistributionScheduler(SessionLocal, get_plan())
