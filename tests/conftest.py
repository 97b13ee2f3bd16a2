"""Shared test fixtures for the Horsai signal engine test suite."""

import pytest
from datetime import date, datetime, timedelta, timezone

import database.connection as _conn_mod
from database.connection import DatabaseConnection
from database.schema import initialize_database

RUN_DATE = date(2026, 3, 20)
NOW = datetime(2026, 3, 20, 22, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_db(tmp_path):
    """Create a fresh isolated test database with schema initialized."""
    db_path = tmp_path / "test.db"
    # Bypass the singleton to get a fresh DB per test
    db = DatabaseConnection(db_path)
    initialize_database(db)
    # Temporarily replace the global singleton so any code calling
    # get_connection() without arguments also uses the test DB
    old_db = _conn_mod._db
    _conn_mod._db = db
    yield db
    _conn_mod._db = old_db


@pytest.fixture
def regime_dao(test_db):
    from database.models import RegimeDAO
    return RegimeDAO(db=test_db)


@pytest.fixture
def portfolio_dao(test_db):
    from database.models import PortfolioDAO
    return PortfolioDAO(db=test_db)


@pytest.fixture
def profile_dao(test_db):
    from database.models import UserProfileDAO
    return UserProfileDAO(db=test_db)


@pytest.fixture
def score_dao(test_db):
    from database.models import PortfolioScoreDAO
    return PortfolioScoreDAO(db=test_db)


@pytest.fixture
def signal_dao(test_db):
    from database.models import SignalDAO
    return SignalDAO(db=test_db)


@pytest.fixture
def outcome_dao(test_db):
    from database.models import SignalOutcomeDAO
    return SignalOutcomeDAO(db=test_db)


@pytest.fixture
def policy_dao(test_db):
    from database.models import ConvictionPolicyDAO
    return ConvictionPolicyDAO(db=test_db)


@pytest.fixture
def job_dao(test_db):
    from database.models import JobRunDAO
    return JobRunDAO(db=test_db)


@pytest.fixture
def service(test_db):
    from engine.signal_service import SignalService
    return SignalService(db=test_db, timezone="UTC")


@pytest.fixture
def seeded_portfolio(portfolio_dao):
    """One active portfolio p1 owned by u1."""
    portfolio_dao.create("p1", "u1", "Core")
    return {"portfolio_id": "p1", "user_id": "u1"}


@pytest.fixture
def low_score_setup(regime_dao, portfolio_dao, score_dao, seeded_portfolio):
    """Alignment 20 against a historical average of 90 under a confident risk_off regime.

    Consistency is 100 - 70 * 1.25 = 12.5, so the score total is 16.25 (level 3).
    """
    regime_dao.upsert(RUN_DATE.isoformat(), "risk_off", "normal", 0.8)
    portfolio_dao.upsert_alignment("p1", RUN_DATE.isoformat(), 20)
    score_dao.upsert("u1", "p1", (RUN_DATE - timedelta(days=30)).isoformat(), 90, 90, 90)
    return seeded_portfolio


def make_signal_row(signal_dao, signal_id="s1", user_id="u1", portfolio_id="p1",
                    shown_date=RUN_DATE - timedelta(days=1), **overrides):
    """Insert a signal row directly, bypassing the lifecycle engine."""
    row = {
        "id": signal_id,
        "user_id": user_id,
        "portfolio_id": portfolio_id,
        "score": 10.0,
        "suggestion_level": 3,
        "confidence": 0.8,
        "regime": "risk_off",
        "volatility_regime": "normal",
        "diagnosis": "low zone",
        "risk_impact": "Context risk_off",
        "adjustment": {"focus": "defensive_rotation"},
        "specific_assets": [],
        "consecutive_display_days": 1,
        "shown_date": shown_date.isoformat(),
        "shown_at": f"{shown_date.isoformat()}T22:00:00+00:00",
        "reactivated_at": None,
    }
    row.update(overrides)
    signal_dao.insert(row)
    return row


def seed_values(portfolio_dao, portfolio_id, start: date, values):
    """Store one total-value observation per day starting at *start*."""
    for i, value in enumerate(values):
        portfolio_dao.upsert_value(portfolio_id, (start + timedelta(days=i)).isoformat(), value)
