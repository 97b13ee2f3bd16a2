"""Signal service: the operations the rest of the product calls.

Score upserts, signal creation, user actions, outcome recording, conviction
refresh, the signal review and the portfolio summary. Lifecycle decisions live
in engine.lifecycle; this module only reads and writes whole rows.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date

from config.settings import get_settings
from database.models import (
    PortfolioDAO, PortfolioScoreDAO, RegimeDAO, SignalDAO, SignalOutcomeDAO,
)
from engine.entities import ACKNOWLEDGED, DISMISSED, Regime, Signal
from engine.narrative import market_environment_labels
from engine.policy import cooldown_days_for_action
from learning.conviction_adapter import ConvictionAdapter
from utils.errors import ValidationError
from utils.helpers import (
    add_days, clamp, local_today, round2, to_date, to_iso, to_num, utc_now,
)
from utils.validators import (
    MAX_REVIEW_DAYS, MIN_REVIEW_DAYS, validate_action, validate_id,
)

logger = logging.getLogger("horsai.engine.signal_service")

MIN_EVAL_WINDOW_DAYS = 7
MAX_EVAL_WINDOW_DAYS = 14
DEFAULT_COMPONENT_SCORE = 50.0


@dataclass(frozen=True)
class SignalReview:
    window_days: int
    signals_affecting_portfolio: int
    risk_reduction_cases: int
    avg_volatility_reduction_pct: float
    performance_improvement_cases: int
    avg_relative_impact_pct: float
    favorable: int
    neutral: int
    adverse: int

    def to_dict(self) -> dict:
        return {
            "window_days": self.window_days,
            "metrics": {
                "signals_affecting_portfolio": self.signals_affecting_portfolio,
                "risk_reduction_cases": self.risk_reduction_cases,
                "avg_volatility_reduction_pct": self.avg_volatility_reduction_pct,
                "performance_improvement_cases": self.performance_improvement_cases,
                "avg_relative_impact_pct": self.avg_relative_impact_pct,
            },
            "outcomes": {
                "favorable": self.favorable,
                "neutral": self.neutral,
                "adverse": self.adverse,
            },
        }


class SignalService:
    """Whole-row reads and writes for scores, signals, outcomes and policy."""

    def __init__(self, db=None, conviction_adapter: ConvictionAdapter | None = None,
                 timezone: str | None = None):
        self.portfolio_dao = PortfolioDAO(db)
        self.regime_dao = RegimeDAO(db)
        self.score_dao = PortfolioScoreDAO(db)
        self.signal_dao = SignalDAO(db)
        self.outcome_dao = SignalOutcomeDAO(db)
        self.conviction = conviction_adapter or ConvictionAdapter(db)
        self._timezone = timezone

    def today(self) -> date:
        tz = self._timezone or get_settings().timezone
        return local_today(utc_now(), tz)

    # --- Scores ---

    def upsert_portfolio_score_daily(self, user_id: str, portfolio_id: str, on,
                                     market_alignment=DEFAULT_COMPONENT_SCORE,
                                     personal_consistency=DEFAULT_COMPONENT_SCORE,
                                     score_total=None) -> dict:
        """Idempotent per (user, portfolio, date); total defaults to the mean."""
        alignment = to_num(market_alignment, DEFAULT_COMPONENT_SCORE)
        consistency = to_num(personal_consistency, DEFAULT_COMPONENT_SCORE)
        if score_total is None:
            total = round2((alignment + consistency) / 2)
        else:
            total = to_num(score_total, DEFAULT_COMPONENT_SCORE)

        day = to_iso(on)
        self.score_dao.upsert(user_id, portfolio_id, day, alignment, consistency, total)
        return {
            "user_id": user_id,
            "portfolio_id": portfolio_id,
            "date": day,
            "market_alignment": alignment,
            "personal_consistency": consistency,
            "score_total": total,
        }

    # --- Signals ---

    def create_signal(self, user_id: str, portfolio_id: str, score: float,
                      suggestion_level: int, confidence: float, regime: str,
                      volatility_regime: str, shown_date, diagnosis: str = "",
                      risk_impact: str = "", adjustment: dict | None = None,
                      specific_assets: list | None = None,
                      consecutive_display_days: int = 1,
                      reactivated_at: str | None = None,
                      shown_at: str | None = None) -> Signal:
        signal_id = str(uuid.uuid4())
        self.signal_dao.insert({
            "id": signal_id,
            "user_id": user_id,
            "portfolio_id": portfolio_id,
            "score": score,
            "suggestion_level": suggestion_level,
            "confidence": confidence,
            "regime": regime,
            "volatility_regime": volatility_regime,
            "diagnosis": diagnosis,
            "risk_impact": risk_impact,
            "adjustment": adjustment or {},
            "specific_assets": specific_assets if isinstance(specific_assets, list) else [],
            "consecutive_display_days": max(1, int(to_num(consecutive_display_days, 1))),
            "shown_date": to_iso(shown_date),
            "shown_at": shown_at or utc_now().isoformat(),
            "reactivated_at": reactivated_at,
        })
        logger.info("Signal %s created for portfolio %s (level %d, score %.2f)",
                    signal_id, portfolio_id, suggestion_level, score)
        return Signal.from_row(self.signal_dao.get(signal_id))

    def get_latest_signal(self, user_id: str, portfolio_id: str) -> Signal | None:
        row = self.signal_dao.get_latest(user_id, portfolio_id)
        return Signal.from_row(row) if row else None

    def get_active_cooldown(self, user_id: str, portfolio_id: str) -> date | None:
        until = self.signal_dao.get_active_cooldown(user_id, portfolio_id)
        return to_date(until) if until else None

    def apply_forced_cooldown(self, signal: Signal, until) -> None:
        self.signal_dao.apply_cooldown(signal.id, signal.user_id, to_iso(until))
        logger.info("Signal %s hit the display cap; cooldown until %s", signal.id, to_iso(until))

    def apply_signal_action(self, signal_id: str, user_id: str, action: str,
                            today=None) -> Signal | None:
        """Record acknowledge/dismiss and start the matching cooldown.

        Raises ValidationError for an unknown action or malformed id; returns
        None when the signal does not exist or belongs to someone else.
        """
        normalized = validate_action(action)
        signal_id = validate_id(signal_id, "signal_id")
        user_id = validate_id(user_id, "user_id")

        row = self.signal_dao.get_owned(signal_id, user_id)
        if not row:
            return None
        current = Signal.from_row(row)

        if normalized == "dismiss":
            streak = current.dismiss_streak + 1
            user_action = DISMISSED
        else:
            streak = 0
            user_action = ACKNOWLEDGED
        days = cooldown_days_for_action(normalized, streak)
        until = add_days(today or self.today(), days)

        self.signal_dao.update_action(signal_id, user_id, user_action, streak, until.isoformat())
        logger.info("Signal %s %s by %s (streak %d, cooldown until %s)",
                    signal_id, user_action, user_id, streak, until.isoformat())
        return Signal.from_row(self.signal_dao.get(signal_id))

    # --- Outcomes ---

    def record_signal_outcome(self, signal_id: str, user_id: str, portfolio_id: str,
                              evaluated_at, eval_window_days: int, delta_return: float,
                              delta_volatility: float, delta_drawdown: float, rai: float,
                              portfolio_snapshot: dict | None = None,
                              simulated_adjustment: dict | None = None):
        """Insert or update the outcome keyed by (signal_id, evaluated_at)."""
        numbers = {
            "delta_return": delta_return,
            "delta_volatility": delta_volatility,
            "delta_drawdown": delta_drawdown,
            "rai": rai,
        }
        for name, value in numbers.items():
            if to_num(value, None) is None or not math.isfinite(float(value)):
                raise ValidationError(f"Outcome {name} must be a finite number, got {value!r}")

        window = int(clamp(int(to_num(eval_window_days, MIN_EVAL_WINDOW_DAYS)),
                           MIN_EVAL_WINDOW_DAYS, MAX_EVAL_WINDOW_DAYS))
        day = to_iso(evaluated_at)
        self.outcome_dao.upsert({
            "signal_id": signal_id,
            "user_id": user_id,
            "portfolio_id": portfolio_id,
            "evaluated_at": day,
            "eval_window_days": window,
            **{k: float(v) for k, v in numbers.items()},
            "portfolio_snapshot": portfolio_snapshot,
            "simulated_adjustment": simulated_adjustment,
        })
        return self.outcome_dao.get(signal_id, day)

    def refresh_conviction_policy(self, user_id: str):
        return self.conviction.refresh(user_id)

    # --- Read models ---

    def get_signal_review(self, user_id: str, portfolio_id: str, days=MAX_REVIEW_DAYS,
                          today=None) -> SignalReview:
        window = int(clamp(int(to_num(days, MAX_REVIEW_DAYS)), MIN_REVIEW_DAYS, MAX_REVIEW_DAYS))
        since = add_days(today or self.today(), -window).isoformat()
        row = self.outcome_dao.get_review_stats(user_id, portfolio_id, since)

        def _count(key):
            return int(to_num(row[key], 0)) if row else 0

        def _pct(key):
            return round2(to_num(row[key], 0.0) * 100) if row else 0.0

        return SignalReview(
            window_days=window,
            signals_affecting_portfolio=_count("total_signals"),
            risk_reduction_cases=_count("risk_reduction_cases"),
            avg_volatility_reduction_pct=_pct("avg_delta_volatility"),
            performance_improvement_cases=_count("perf_improvement_cases"),
            avg_relative_impact_pct=_pct("avg_rai"),
            favorable=_count("favorable_cases"),
            neutral=_count("neutral_cases"),
            adverse=_count("adverse_cases"),
        )

    def get_portfolio_summary(self, user_id: str, portfolio_id: str) -> dict | None:
        """Market environment, latest scores and latest signal for an owned portfolio."""
        if not self.portfolio_dao.get_owned(portfolio_id, user_id):
            return None

        regime_row = self.regime_dao.get_latest()
        regime = Regime.from_row(regime_row) if regime_row else Regime.fallback(self.today())

        latest = self.score_dao.get_latest(user_id, portfolio_id)
        if latest:
            alignment = to_num(latest["market_alignment"], DEFAULT_COMPONENT_SCORE)
            consistency = to_num(latest["personal_consistency"], DEFAULT_COMPONENT_SCORE)
            total = to_num(latest["score_total"], None)
        else:
            alignment = to_num(self.portfolio_dao.get_latest_alignment(portfolio_id),
                               DEFAULT_COMPONENT_SCORE)
            consistency = DEFAULT_COMPONENT_SCORE
            total = None

        scores = self.upsert_portfolio_score_daily(
            user_id, portfolio_id, regime.date,
            market_alignment=alignment,
            personal_consistency=consistency,
            score_total=total,
        )
        signal = self.get_latest_signal(user_id, portfolio_id)

        return {
            "portfolio_id": portfolio_id,
            "market_environment": {
                "regime": regime.regime,
                "volatility_regime": regime.volatility_regime,
                "confidence": regime.confidence,
                "labels": market_environment_labels(regime.regime, regime.volatility_regime),
            },
            "scores": {
                "market_alignment": round2(scores["market_alignment"]),
                "personal_consistency": round2(scores["personal_consistency"]),
                "total": round2(scores["score_total"]),
            },
            "suggestion": signal.to_dict() if signal else None,
        }
