"""
Shared test fixtures for Barback tests

Provides an in-memory database and a session per test
"""
import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from barback.db.base import Base
from tests.factories import reset_sequences


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    # Import all models to ensure they're registered with Base
    from barback.models import (  # noqa: F401
        Ingredient, InventoryCount, InventoryAlert, Recipe, PrepRecipe,
        RecipeComponent, PrepRecipeComponent, SalesAggregate, RecalculationRun,
    )

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)
    reset_sequences()

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


@pytest.fixture
def t0():
    """Reference instant for a scenario: the last physical count"""
    return datetime(2025, 3, 14, 16, 0, 0)


@pytest.fixture
def hours(t0):
    """Offset helper: hours(2) -> t0 + 2h"""
    def _at(n):
        return t0 + timedelta(hours=n)
    return _at


@pytest.fixture
def session_factory(db_session):
    """Session factory bound to the test database, for code that opens its own sessions"""
    return TestingSessionLocal
