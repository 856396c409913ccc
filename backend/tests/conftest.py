# backend/tests/conftest.py
"""
Shared pytest fixtures.

Every test runs against a fresh in-memory SQLite database holding the full
schema. Services receive a FrozenClock so time-dependent behaviour (refund
tiers, booking windows, sweeps) is deterministic.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import os
from typing import Any, Callable, Dict, Iterator, List, Optional

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("IS_TESTING", "true")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from classcredits.database import Base
import classcredits.models  # noqa: F401 - register tables on Base.metadata
from classcredits.models.class_instance import ClassInstance
from classcredits.models.user import User
from classcredits.services.booking_service import BookingService
from classcredits.services.credit_service import CreditService
from tests.factories.common import BUSINESS_ID, NOW, FrozenClock


@pytest.fixture
def engine() -> Iterator[Engine]:
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(test_engine)
        test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    def _make(
        name: str = "Test Customer",
        email: Optional[str] = None,
        business_id: Optional[str] = None,
    ) -> User:
        user = User(
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@example.com",
            business_id=business_id,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_class_instance(db: Session) -> Callable[..., ClassInstance]:
    def _make(
        start_in: timedelta = timedelta(hours=48),
        duration: timedelta = timedelta(hours=1),
        price: Optional[int] = 2000,
        capacity: Optional[int] = 10,
        cancellation_window_hours: Optional[int] = 24,
        requires_confirmation: Optional[bool] = False,
        discount_rules: Optional[List[Dict[str, Any]]] = None,
        template_snapshot: Optional[Dict[str, Any]] = None,
        business_id: str = BUSINESS_ID,
        now: datetime = NOW,
        **overrides: Any,
    ) -> ClassInstance:
        start = now + start_in
        instance = ClassInstance(
            business_id=business_id,
            name=overrides.pop("name", "Morning Flow"),
            venue_name=overrides.pop("venue_name", "Riverside Studio"),
            start_time=start,
            end_time=start + duration,
            price=price,
            capacity=capacity,
            cancellation_window_hours=cancellation_window_hours,
            requires_confirmation=requires_confirmation,
            discount_rules=discount_rules,
            template_snapshot=template_snapshot or {},
            booked_count=overrides.pop("booked_count", 0),
            **overrides,
        )
        db.add(instance)
        db.commit()
        return instance

    return _make


@pytest.fixture
def credit_service(db: Session, clock: FrozenClock) -> CreditService:
    return CreditService(db, clock)


@pytest.fixture
def booking_service(db: Session, clock: FrozenClock) -> BookingService:
    return BookingService(db, clock)


@pytest.fixture
def fund(credit_service: CreditService) -> Callable[[str, int], None]:
    def _fund(user_id: str, amount: int) -> None:
        credit_service.gift_credits(user_id, amount, description="Welcome gift")

    return _fund
