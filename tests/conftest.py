"""Pytest fixtures for testing"""

from datetime import datetime, timedelta
from typing import Callable, Generator, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from finsight.domain.models import (
    Category,
    Currency,
    Location,
    TransactionRecord,
    TransactionType,
)
from finsight.infrastructure.database.models import Base

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed clock so windows and month boundaries are deterministic
NOW = datetime(2024, 6, 15, 12, 0)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Session factory bound to the test database (tables already created)"""
    return TestingSessionLocal


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_record() -> Callable[..., TransactionRecord]:
    """Factory for transaction records with sensible defaults"""
    counter = {"n": 0}

    def _make(
        amount: float,
        date: datetime = NOW,
        type: TransactionType = TransactionType.EXPENSE,
        category: Category = Category.FOOD,
        description: str = "",
        merchant: str | None = None,
        location: str | None = None,
        currency: Currency = Currency.HTG,
    ) -> TransactionRecord:
        counter["n"] += 1
        return TransactionRecord(
            transaction_id=f"tx_{counter['n']}",
            amount=amount,
            type=type,
            category=category,
            date=date,
            description=description,
            location=Location(name=location) if location else None,
            merchant=merchant,
            currency=currency,
        )

    return _make


@pytest.fixture
def monthly_history(make_record) -> List[TransactionRecord]:
    """Six months of salary plus weekly groceries and transport ending at NOW"""
    records = []
    start = NOW - timedelta(days=180)
    for month in range(6):
        records.append(
            make_record(
                60000,
                date=start + timedelta(days=month * 30 + 1),
                type=TransactionType.INCOME,
                category=Category.SALARY,
                description="Salary",
            )
        )
    for week in range(26):
        day = start + timedelta(days=week * 7 + 2)
        records.append(make_record(3000, date=day, category=Category.FOOD, description="Marché Salomon"))
        records.append(make_record(500, date=day + timedelta(hours=2), category=Category.TRANSPORT, description="Tap-tap"))
    return records
