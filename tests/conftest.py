"""
Pytest fixtures and configuration for Telem tests.

Provides an in-memory database, a test client wired to it, users of both
roles with bearer tokens, and small factories for catalog and scenario data.
"""

import os

# Must be set before telem is imported: the engine and the lifespan read them at import time
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CREATE_TABLES_ON_STARTUP"] = "false"
os.environ["SECRET_KEY"] = "telem-test-secret"

import pytest
from datetime import date
from decimal import Decimal
from typing import Generator, Callable, Dict

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from telem.main import app
from telem.auth import create_access_token
from telem.db.core import get_db, Base, UserDB, UserRole, PropertyDB, CalculatorDB, InvestmentDB
from telem.crud import crud_user, crud_property, crud_calculator, crud_investment
from telem.models.user import UserCreate
from telem.models.property import PropertyCreate
from telem.models.calculator import CalculatorCreate
from telem.models.investment import InvestmentCreate


# Test password used by every fixture user
TEST_PASSWORD = "testpassword123"

engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """
    Create a test client with overridden database dependency.
    """
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _make_user(db: Session, username: str, name: str, role: UserRole) -> UserDB:
    return crud_user.create_db_user(
        db,
        UserCreate(
            username=username,
            password=TEST_PASSWORD,
            name=name,
            email=f"{username}@example.com",
            phone="0501234567",
        ),
        role=role,
    )


@pytest.fixture
def advisor(db_session: Session) -> UserDB:
    return _make_user(db_session, "advisor", "Dana Advisor", UserRole.ADVISOR)


@pytest.fixture
def investor(db_session: Session) -> UserDB:
    return _make_user(db_session, "investor", "Avi Investor", UserRole.INVESTOR)


@pytest.fixture
def other_investor(db_session: Session) -> UserDB:
    return _make_user(db_session, "other", "Noa Other", UserRole.INVESTOR)


def _headers(user: UserDB) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def advisor_headers(advisor: UserDB) -> Dict[str, str]:
    return _headers(advisor)


@pytest.fixture
def investor_headers(investor: UserDB) -> Dict[str, str]:
    return _headers(investor)


@pytest.fixture
def other_investor_headers(other_investor: UserDB) -> Dict[str, str]:
    return _headers(other_investor)


@pytest.fixture
def make_property(db_session: Session) -> Callable[..., PropertyDB]:
    """Factory for catalog properties."""
    counter = {"n": 0}

    def _make(price: str = "200000", rent: str = "1000", **overrides) -> PropertyDB:
        counter["n"] += 1
        data = {
            "name": f"Seaview {counter['n']}",
            "price_without_vat": Decimal(price),
            "monthly_rent": Decimal(rent),
            "guaranteed_rent": False,
            "delivery_date": date(2027, 6, 1),
            "bedrooms": 2,
            "location": "Limassol",
        }
        data.update(overrides)
        return crud_property.create_db_property(db_session, PropertyCreate(**data))

    return _make


@pytest.fixture
def make_calculator(db_session: Session, investor: UserDB) -> Callable[..., CalculatorDB]:
    """Factory for calculators, owned by the investor fixture unless told otherwise."""

    def _make(name: str = "Base scenario", user: UserDB = None, **overrides) -> CalculatorDB:
        data = {"user_id": (user or investor).id, "name": name, "self_equity": Decimal("60000")}
        data.update(overrides)
        return crud_calculator.create_db_calculator(db_session, CalculatorCreate(**data))

    return _make


@pytest.fixture
def make_investment(db_session: Session, make_property) -> Callable[..., InvestmentDB]:
    """Factory for investment options; creates a fresh property when none is given."""

    def _make(calculator: CalculatorDB, prop: PropertyDB = None, **overrides) -> InvestmentDB:
        data = {"calculator_id": calculator.id, "property_id": (prop or make_property()).id}
        data.update(overrides)
        return crud_investment.create_db_investment(db_session, InvestmentCreate(**data))

    return _make


@pytest.fixture
def calculator(make_calculator) -> CalculatorDB:
    return make_calculator()
