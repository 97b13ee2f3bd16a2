"""Tests for the signal lifecycle: scoring, gate ordering and the single write."""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock

from conftest import NOW, RUN_DATE, make_signal_row
from engine.entities import ACKNOWLEDGED, DISMISSED, PENDING, PortfolioRef, Regime, Signal
from engine.lifecycle import (
    ALREADY_SHOWN, COOLDOWN_ACTIVE, DISPLAY_CAP, EMIT, LOW_CONFIDENCE, NO_ADVISORY, RESOLVED,
    ScoreResult, SignalLifecycleEngine, compute_score, decide,
)

RISK_OFF = Regime(date=RUN_DATE, regime="risk_off", volatility_regime="normal", confidence=0.8)
LOW_SCORE = ScoreResult(market_alignment=20, personal_consistency=12.5, score_total=16.25,
                        historical_avg_score=90)


def _signal(**overrides) -> Signal:
    fields = dict(
        id="s1", user_id="u1", portfolio_id="p1", score=10.0, suggestion_level=3,
        confidence=0.8, regime="risk_off", volatility_regime="normal",
        shown_date=RUN_DATE - timedelta(days=1), shown_at="2026-03-19T22:00:00+00:00",
    )
    fields.update(overrides)
    return Signal(**fields)


class TestComputeScore:
    def test_no_history_means_neutral_consistency(self):
        s = compute_score(30, None)
        assert s.personal_consistency == 50
        assert s.score_total == 40

    def test_drift_from_history_is_penalized(self):
        s = compute_score(20, 90)
        assert s.personal_consistency == 12.5
        assert s.score_total == 16.25

    def test_consistency_floors_at_zero(self):
        s = compute_score(10, 95)
        assert s.personal_consistency == 0
        assert s.score_total == 5

    def test_partial_drift(self):
        s = compute_score(60, 52)
        assert s.personal_consistency == pytest.approx(90)
        assert s.score_total == 75

    def test_total_rounded_to_two_places(self):
        s = compute_score(33.333, None)
        assert s.score_total == round((33.333 + 50) / 2, 2)

    def test_missing_alignment_defaults_to_fifty(self):
        assert compute_score(None, None).market_alignment == 50

    def test_consistency_rounded_to_two_places(self):
        s = compute_score(20.001, 90)
        assert s.personal_consistency == 12.5


class TestDecideGates:
    def test_first_signal_emits(self):
        d = decide(LOW_SCORE, RISK_OFF, None, 0.75, RUN_DATE)
        assert d.status == EMIT
        assert d.suggestion_level == 3
        assert d.material_impact
        assert d.allow_specific_assets
        assert d.consecutive_display_days == 1
        assert not d.reactivating

    def test_level_zero_is_no_advisory(self):
        d = decide(compute_score(80, 80), RISK_OFF, None, 0.75, RUN_DATE)
        assert d.status == NO_ADVISORY

    def test_both_components_must_be_low(self):
        # Level 1 by score, but consistency is neutral
        d = decide(compute_score(40, None), RISK_OFF, None, 0.75, RUN_DATE)
        assert d.suggestion_level == 1
        assert d.status == NO_ADVISORY

    def test_cooldown_is_inclusive_of_its_last_day(self):
        latest = _signal(user_action=DISMISSED, cooldown_until=RUN_DATE)
        d = decide(LOW_SCORE, RISK_OFF, latest, 0.75, RUN_DATE)
        assert d.status == COOLDOWN_ACTIVE
        assert d.counts_as_cooldown_skip

    def test_cooldown_on_an_older_signal_blocks(self):
        latest = _signal(consecutive_display_days=2)
        d = decide(LOW_SCORE, RISK_OFF, latest, 0.75, RUN_DATE,
                   active_cooldown=RUN_DATE + timedelta(days=7))
        assert d.status == COOLDOWN_ACTIVE
        assert d.cooldown_until == RUN_DATE + timedelta(days=7)

    def test_cooldown_without_latest_signal_blocks(self):
        d = decide(LOW_SCORE, RISK_OFF, None, 0.75, RUN_DATE, active_cooldown=RUN_DATE)
        assert d.status == COOLDOWN_ACTIVE

    def test_expired_cooldown_does_not_block(self):
        latest = _signal(user_action=DISMISSED, cooldown_until=RUN_DATE - timedelta(days=1),
                         score=30.0)
        d = decide(LOW_SCORE, RISK_OFF, latest, 0.75, RUN_DATE)
        assert d.status == EMIT

    def test_already_shown_today(self):
        d = decide(LOW_SCORE, RISK_OFF, _signal(shown_date=RUN_DATE), 0.75, RUN_DATE)
        assert d.status == ALREADY_SHOWN
        assert not d.counts_as_cooldown_skip

    def test_display_cap_forces_cooldown_on_existing_signal(self):
        d = decide(LOW_SCORE, RISK_OFF, _signal(consecutive_display_days=3), 0.75, RUN_DATE)
        assert d.status == DISPLAY_CAP
        assert d.cooldown_signal_id == "s1"
        assert d.cooldown_until == RUN_DATE + timedelta(days=5)
        assert d.counts_as_cooldown_skip

    def test_resolved_signal_without_change_stays_quiet(self):
        d = decide(LOW_SCORE, RISK_OFF, _signal(user_action=ACKNOWLEDGED), 0.75, RUN_DATE)
        assert d.status == RESOLVED

    def test_resolved_signal_reactivates_when_score_worsens(self):
        latest = _signal(user_action=DISMISSED, score=30.0)
        d = decide(LOW_SCORE, RISK_OFF, latest, 0.75, RUN_DATE)
        assert d.status == EMIT
        assert d.reactivating
        assert d.consecutive_display_days == 1
        assert d.reactivation.worsened_by_10

    def test_resolved_signal_reactivates_on_regime_change(self):
        latest = _signal(user_action=ACKNOWLEDGED, regime="risk_on")
        d = decide(LOW_SCORE, RISK_OFF, latest, 0.75, RUN_DATE)
        assert d.status == EMIT
        assert d.reactivation.regime_changed

    def test_low_confidence(self):
        d = decide(LOW_SCORE, RISK_OFF, None, 0.85, RUN_DATE)
        assert d.status == LOW_CONFIDENCE

    def test_pending_signal_advances_display_days(self):
        d = decide(LOW_SCORE, RISK_OFF, _signal(consecutive_display_days=2), 0.75, RUN_DATE)
        assert d.status == EMIT
        assert d.consecutive_display_days == 3
        assert not d.reactivating

    def test_transition_regime_never_names_assets(self):
        regime = Regime(date=RUN_DATE, regime="transition", confidence=0.95)
        d = decide(LOW_SCORE, regime, None, 0.75, RUN_DATE)
        assert d.status == EMIT
        assert not d.allow_specific_assets

    def test_material_impact_threshold_is_below_advisory_gate(self):
        score = ScoreResult(market_alignment=40, personal_consistency=40, score_total=40)
        d = decide(score, RISK_OFF, None, 0.75, RUN_DATE)
        assert d.status == EMIT
        assert d.suggestion_level == 1
        assert not d.material_impact
        assert not d.allow_specific_assets


class TestProcessPortfolio:
    @pytest.fixture
    def engine(self, test_db, service):
        return SignalLifecycleEngine(db=test_db, service=service)

    def test_emits_one_urgent_signal(self, engine, low_score_setup, signal_dao, score_dao):
        result = engine.process_portfolio(PortfolioRef("p1", "u1"), RISK_OFF, RUN_DATE, NOW)

        assert result.generated
        assert result.signal.suggestion_level == 3
        assert result.signal.user_action == PENDING
        assert result.signal.shown_date == RUN_DATE
        assert result.signal.adjustment["focus"] == "defensive_rotation"
        assert [a["symbol"] for a in result.signal.specific_assets] == ["TLT"]
        assert len(signal_dao.list_for_portfolio("u1", "p1")) == 1

        row = score_dao.get("u1", "p1", RUN_DATE.isoformat())
        assert row["market_alignment"] == 20
        assert row["personal_consistency"] == 12.5
        assert row["score_total"] == 16.25

    def test_rerun_same_day_is_idempotent(self, engine, low_score_setup, signal_dao, score_dao):
        engine.process_portfolio(PortfolioRef("p1", "u1"), RISK_OFF, RUN_DATE, NOW)
        second = engine.process_portfolio(PortfolioRef("p1", "u1"), RISK_OFF, RUN_DATE, NOW)

        assert second.decision.status == ALREADY_SHOWN
        assert not second.generated
        assert len(signal_dao.list_for_portfolio("u1", "p1")) == 1
        assert score_dao.count("u1", "p1") == 2  # history row + today
        assert score_dao.get("u1", "p1", RUN_DATE.isoformat())["score_total"] == 16.25

    def test_score_is_written_even_without_advisory(self, engine, seeded_portfolio,
                                                    signal_dao, score_dao):
        result = engine.process_portfolio(PortfolioRef("p1", "u1"), RISK_OFF, RUN_DATE, NOW)
        assert result.decision.status == NO_ADVISORY
        assert score_dao.get("u1", "p1", RUN_DATE.isoformat())["score_total"] == 50
        assert signal_dao.list_for_portfolio("u1", "p1") == []

    def test_active_cooldown_blocks_emission(self, engine, low_score_setup, signal_dao):
        make_signal_row(signal_dao, shown_date=RUN_DATE - timedelta(days=2))
        signal_dao.update_action("s1", "u1", DISMISSED, 1, (RUN_DATE + timedelta(days=3)).isoformat())

        result = engine.process_portfolio(PortfolioRef("p1", "u1"), RISK_OFF, RUN_DATE, NOW)
        assert result.skipped_by_cooldown
        assert len(signal_dao.list_for_portfolio("u1", "p1")) == 1

    def test_dismissing_an_older_signal_blocks_new_ones(self, engine, service, low_score_setup,
                                                        signal_dao):
        make_signal_row(signal_dao, signal_id="a", shown_date=RUN_DATE - timedelta(days=2))
        make_signal_row(signal_dao, signal_id="b", shown_date=RUN_DATE - timedelta(days=1),
                        consecutive_display_days=2)
        dismissed = service.apply_signal_action("a", "u1", "dismiss", today=RUN_DATE)
        assert dismissed.cooldown_until > RUN_DATE

        result = engine.process_portfolio(PortfolioRef("p1", "u1"), RISK_OFF, RUN_DATE, NOW)
        assert result.decision.status == COOLDOWN_ACTIVE
        assert result.skipped_by_cooldown
        assert not result.generated
        assert len(signal_dao.list_for_portfolio("u1", "p1")) == 2

    def test_display_cap_writes_forced_cooldown(self, engine, low_score_setup, signal_dao):
        make_signal_row(signal_dao, consecutive_display_days=3)

        result = engine.process_portfolio(PortfolioRef("p1", "u1"), RISK_OFF, RUN_DATE, NOW)
        assert result.decision.status == DISPLAY_CAP
        assert not result.generated
        assert signal_dao.get("s1")["cooldown_until"] == (RUN_DATE + timedelta(days=5)).isoformat()
        assert len(signal_dao.list_for_portfolio("u1", "p1")) == 1

    def test_reactivation_stamps_reactivated_at(self, engine, low_score_setup, signal_dao):
        make_signal_row(signal_dao, shown_date=RUN_DATE - timedelta(days=20), score=30.0)
        signal_dao.update_action("s1", "u1", ACKNOWLEDGED, 0, (RUN_DATE - timedelta(days=13)).isoformat())

        result = engine.process_portfolio(PortfolioRef("p1", "u1"), RISK_OFF, RUN_DATE, NOW)
        assert result.generated
        assert result.signal.reactivated_at == NOW.isoformat()
        assert result.signal.consecutive_display_days == 1
        assert signal_dao.get("s1")["user_action"] == ACKNOWLEDGED

    def test_narrator_rewrites_diagnosis_only(self, test_db, service, low_score_setup):
        narrator = MagicMock(return_value="Your portfolio drifted from its usual shape.")
        engine = SignalLifecycleEngine(db=test_db, service=service, narrator=narrator)

        result = engine.process_portfolio(PortfolioRef("p1", "u1"), RISK_OFF, RUN_DATE, NOW)
        assert result.signal.diagnosis == "Your portfolio drifted from its usual shape."
        assert result.signal.suggestion_level == 3
        narrator.assert_called_once()
        assert narrator.call_args[0][1]["regime"] == "risk_off"
