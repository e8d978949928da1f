"""Pytest fixtures for testing"""

import os

os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from decimal import Decimal
from typing import Callable, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from compensation_engine.api.dependencies import get_plan, get_scheduler
from compensation_engine.api.main import create_app
from compensation_engine.domain.models import TransactionType, WalletType
from compensation_engine.domain.plan import CompensationPlan, default_plan
from compensation_engine.infrastructure.database.models import Base, Member
from compensation_engine.infrastructure.database.repositories import MemberRepository
from compensation_engine.infrastructure.database.session import get_db
from compensation_engine.services.ledger import WalletLedger
from compensation_engine.services.scheduler import DistributionScheduler


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    """File-backed SQLite database per test, shared by every session of the test"""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create test session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def plan() -> CompensationPlan:
    return default_plan()


@pytest.fixture
def scheduler(session_factory: sessionmaker, plan: CompensationPlan) -> DistributionScheduler:
    return DistributionScheduler(session_factory, plan)


@pytest.fixture
def client(db: Session, plan: CompensationPlan, scheduler: DistributionScheduler) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_plan] = lambda: plan
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    return TestClient(app)


@pytest.fixture
def make_member(db: Session) -> Callable[..., Member]:
    """
    Factory creating a committed member, optionally under a referrer and
    with an opening normal-wallet deposit.
    """
    counter = {"n": 0}

    def _make(
        referrer: Optional[Member] = None,
        balance: str = "0",
        name: Optional[str] = None,
        is_active: bool = True,
    ) -> Member:
        counter["n"] += 1
        member = MemberRepository(db).create(
            name=name or f"member-{counter['n']}",
            email=f"member{counter['n']}@example.com",
            referred_by_id=referrer.id if referrer is not None else None,
            is_active=is_active,
        )
        if Decimal(balance) > 0:
            WalletLedger(db).credit(
                member, WalletType.NORMAL, Decimal(balance), TransactionType.DEPOSIT, "Opening deposit"
            )
        db.commit()
        return member

    return _make
