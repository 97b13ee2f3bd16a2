"""Tests for the signal store DAOs and connection error handling."""

import pytest
from datetime import timedelta

from conftest import RUN_DATE, make_signal_row
from utils.errors import StorageError


class TestPortfolioDAO:
    def test_list_active_skips_deleted(self, portfolio_dao):
        portfolio_dao.create("p1", "u1")
        portfolio_dao.create("p2", "u2")
        portfolio_dao.soft_delete("p2")
        rows = portfolio_dao.list_active()
        assert [(r["portfolio_id"], r["user_id"]) for r in rows] == [("p1", "u1")]

    def test_latest_alignment(self, portfolio_dao):
        portfolio_dao.create("p1", "u1")
        assert portfolio_dao.get_latest_alignment("p1") is None
        portfolio_dao.upsert_alignment("p1", "2026-03-18", 40)
        portfolio_dao.upsert_alignment("p1", "2026-03-19", 35)
        assert portfolio_dao.get_latest_alignment("p1") == 35

    def test_value_series_is_inclusive_and_ordered(self, portfolio_dao):
        portfolio_dao.create("p1", "u1")
        for day, value in [("2026-03-03", 103), ("2026-03-01", 101), ("2026-03-05", 105)]:
            portfolio_dao.upsert_value("p1", day, value)
        rows = portfolio_dao.get_value_series("p1", "2026-03-01", "2026-03-03")
        assert [r["total_value"] for r in rows] == [101, 103]


class TestPortfolioScoreDAO:
    def test_historical_average_excludes_the_day(self, score_dao, seeded_portfolio):
        score_dao.upsert("u1", "p1", "2026-03-18", 0, 0, 40)
        score_dao.upsert("u1", "p1", "2026-03-19", 0, 0, 60)
        score_dao.upsert("u1", "p1", "2026-03-20", 0, 0, 5)
        assert score_dao.get_historical_average("u1", "p1", "2026-03-20") == 50
        assert score_dao.get_historical_average("u1", "p1", "2026-03-18") is None

    def test_unique_per_day(self, score_dao, seeded_portfolio):
        score_dao.upsert("u1", "p1", "2026-03-20", 10, 10, 10)
        score_dao.upsert("u1", "p1", "2026-03-20", 20, 20, 20)
        assert score_dao.count("u1", "p1") == 1


class TestSignalDAO:
    def test_latest_orders_by_shown_date(self, signal_dao, seeded_portfolio):
        make_signal_row(signal_dao, signal_id="a", shown_date=RUN_DATE - timedelta(days=1))
        make_signal_row(signal_dao, signal_id="b", shown_date=RUN_DATE - timedelta(days=3))
        assert signal_dao.get_latest("u1", "p1")["id"] == "a"

    def test_update_action_is_owner_scoped(self, signal_dao, seeded_portfolio):
        make_signal_row(signal_dao)
        assert signal_dao.update_action("s1", "u2", "dismissed", 1, "2026-04-01") == 0
        assert signal_dao.update_action("s1", "u1", "dismissed", 1, "2026-04-01") == 1
        row = signal_dao.get("s1")
        assert row["user_action"] == "dismissed"
        assert row["last_action_at"] is not None

    def test_active_cooldown_spans_all_signals(self, signal_dao, seeded_portfolio):
        make_signal_row(signal_dao, signal_id="a", shown_date=RUN_DATE - timedelta(days=2))
        make_signal_row(signal_dao, signal_id="b", shown_date=RUN_DATE - timedelta(days=1))
        assert signal_dao.get_active_cooldown("u1", "p1") is None

        signal_dao.update_action("a", "u1", "dismissed", 1, "2026-04-02")
        signal_dao.apply_cooldown("b", "u1", "2026-03-25")
        assert signal_dao.get_active_cooldown("u1", "p1") == "2026-04-02"
        assert signal_dao.get_active_cooldown("u2", "p1") is None

    def test_invalid_action_violates_check(self, signal_dao, seeded_portfolio):
        make_signal_row(signal_dao)
        with pytest.raises(StorageError):
            signal_dao.update_action("s1", "u1", "snoozed", 0, None)

    def test_signal_requires_portfolio(self, signal_dao):
        with pytest.raises(StorageError):
            make_signal_row(signal_dao, portfolio_id="ghost")

    def test_pending_outcomes_skip_evaluated(self, signal_dao, outcome_dao, seeded_portfolio):
        make_signal_row(signal_dao, signal_id="done", shown_date=RUN_DATE - timedelta(days=9))
        make_signal_row(signal_dao, signal_id="todo", shown_date=RUN_DATE - timedelta(days=8))
        outcome_dao.upsert({
            "signal_id": "done", "user_id": "u1", "portfolio_id": "p1",
            "evaluated_at": RUN_DATE.isoformat(), "eval_window_days": 9,
            "delta_return": 0, "delta_volatility": 0, "delta_drawdown": 0, "rai": 0,
        })
        rows = signal_dao.get_pending_outcomes((RUN_DATE - timedelta(days=7)).isoformat())
        assert [r["id"] for r in rows] == ["todo"]


class TestSignalOutcomeDAO:
    def test_recent_rai_newest_first(self, signal_dao, outcome_dao, seeded_portfolio):
        for i, rai in enumerate([0.1, 0.2, 0.3]):
            make_signal_row(signal_dao, signal_id=f"s{i}")
            outcome_dao.upsert({
                "signal_id": f"s{i}", "user_id": "u1", "portfolio_id": "p1",
                "evaluated_at": (RUN_DATE + timedelta(days=i)).isoformat(),
                "eval_window_days": 7, "delta_return": 0, "delta_volatility": 0,
                "delta_drawdown": 0, "rai": rai,
            })
        assert outcome_dao.get_recent_rai("u1", limit=2) == [0.3, 0.2]


class TestJobRunDAO:
    def test_started_then_success(self, job_dao):
        job_dao.mark("horsai_daily", "2026-03-20", "started")
        assert job_dao.get("horsai_daily", "2026-03-20")["finished_at"] is None
        job_dao.mark("horsai_daily", "2026-03-20", "success")
        row = job_dao.get("horsai_daily", "2026-03-20")
        assert row["status"] == "success"
        assert row["finished_at"] is not None
        assert row["started_at"] is not None
