"""Signal lifecycle engine: one decision per portfolio per run date.

A run scores the portfolio, decides what (if anything) to do with the signal
lifecycle, then performs at most one lifecycle write. Scoring and deciding are
pure; the engine class is the only place that touches storage.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from database.models import PortfolioDAO, PortfolioScoreDAO
from engine.entities import PortfolioRef, Regime, Signal
from engine.narrative import (
    build_diagnosis, build_risk_impact, default_adjustment, specific_assets_for_regime,
)
from engine.policy import (
    DISPLAY_CAP_DAYS, FORCED_COOLDOWN_DAYS, ReactivationCheck,
    can_suggest_specific_assets, resolve_suggestion_level, should_reactivate_signal,
)
from engine.signal_service import DEFAULT_COMPONENT_SCORE, SignalService
from utils.helpers import add_days, clamp, mean, round2, to_date, to_num, utc_now

logger = logging.getLogger("horsai.engine.lifecycle")

ADVISORY_COMPONENT_CEILING = 45   # both components must sit below this
MATERIAL_IMPACT_BELOW = 35
CONSISTENCY_PENALTY = 1.25        # points lost per point of drift from history

# Decision statuses
NO_ADVISORY = "no_advisory"
COOLDOWN_ACTIVE = "cooldown_active"
ALREADY_SHOWN = "already_shown"
DISPLAY_CAP = "display_cap"
RESOLVED = "resolved"
LOW_CONFIDENCE = "low_confidence"
EMIT = "emit"


@dataclass(frozen=True)
class ScoreResult:
    market_alignment: float
    personal_consistency: float
    score_total: float
    historical_avg_score: float | None = None


@dataclass(frozen=True)
class SignalDecision:
    status: str
    suggestion_level: int = 0
    confidence: float = 0.0
    material_impact: bool = False
    allow_specific_assets: bool = False
    consecutive_display_days: int = 1
    reactivating: bool = False
    cooldown_signal_id: str | None = None
    cooldown_until: date | None = None
    reactivation: ReactivationCheck | None = None

    @property
    def emits(self) -> bool:
        return self.status == EMIT

    @property
    def counts_as_cooldown_skip(self) -> bool:
        return self.status in (COOLDOWN_ACTIVE, DISPLAY_CAP)


@dataclass(frozen=True)
class PortfolioRunResult:
    portfolio_id: str
    user_id: str
    score: ScoreResult
    decision: SignalDecision
    signal: Signal | None = None

    @property
    def generated(self) -> bool:
        return self.signal is not None

    @property
    def skipped_by_cooldown(self) -> bool:
        return self.decision.counts_as_cooldown_skip


def compute_score(market_alignment, historical_avg_score=None) -> ScoreResult:
    """Personal consistency measures drift of today's alignment from history."""
    alignment = to_num(market_alignment, DEFAULT_COMPONENT_SCORE)
    history = to_num(historical_avg_score, None)
    if history is None:
        consistency = DEFAULT_COMPONENT_SCORE
    else:
        consistency = round2(clamp(100 - abs(alignment - history) * CONSISTENCY_PENALTY, 0, 100))
    total = round2(mean([alignment, consistency]))
    return ScoreResult(
        market_alignment=alignment,
        personal_consistency=consistency,
        score_total=total,
        historical_avg_score=history,
    )


def decide(score: ScoreResult, regime: Regime, latest: Signal | None,
           confidence_threshold: float, run_date: date,
           active_cooldown: date | None = None) -> SignalDecision:
    """Walk the lifecycle gates in order; the first gate that stops wins.

    active_cooldown is the latest cooldown across every signal for the
    portfolio, so an action on an older signal still blocks new ones.
    """
    level = resolve_suggestion_level(score.score_total, regime.volatility_regime)
    both_low = (score.market_alignment < ADVISORY_COMPONENT_CEILING
                and score.personal_consistency < ADVISORY_COMPONENT_CEILING)
    if level == 0 or not both_low:
        return SignalDecision(status=NO_ADVISORY, suggestion_level=level)

    cooldowns = [d for d in (active_cooldown, latest.cooldown_until if latest else None) if d]
    if cooldowns and run_date <= max(cooldowns):
        return SignalDecision(status=COOLDOWN_ACTIVE, suggestion_level=level,
                              cooldown_until=max(cooldowns))

    if latest is not None:
        if latest.shown_date == run_date:
            return SignalDecision(status=ALREADY_SHOWN, suggestion_level=level)

        if latest.consecutive_display_days >= DISPLAY_CAP_DAYS:
            return SignalDecision(
                status=DISPLAY_CAP,
                suggestion_level=level,
                cooldown_signal_id=latest.id,
                cooldown_until=add_days(run_date, FORCED_COOLDOWN_DAYS),
            )

    reactivation = None
    if latest is not None:
        reactivation = should_reactivate_signal(
            previous_score=latest.score,
            current_score=score.score_total,
            previous_regime=latest.regime,
            current_regime=regime.regime,
            previous_volatility_regime=latest.volatility_regime,
            current_volatility_regime=regime.volatility_regime,
            consecutive_display_days=latest.consecutive_display_days,
        )
        if not latest.is_pending and not reactivation.should_reactivate:
            return SignalDecision(status=RESOLVED, suggestion_level=level,
                                  reactivation=reactivation)

    if regime.confidence < confidence_threshold:
        return SignalDecision(status=LOW_CONFIDENCE, suggestion_level=level,
                              confidence=regime.confidence, reactivation=reactivation)

    material_impact = score.score_total < MATERIAL_IMPACT_BELOW
    allow_assets = can_suggest_specific_assets(regime.confidence, regime.regime, material_impact)

    if latest is not None and latest.is_pending:
        next_days = latest.consecutive_display_days + 1
    else:
        next_days = 1
    if next_days > DISPLAY_CAP_DAYS:
        return SignalDecision(
            status=DISPLAY_CAP,
            suggestion_level=level,
            cooldown_signal_id=latest.id,
            cooldown_until=add_days(run_date, FORCED_COOLDOWN_DAYS),
            reactivation=reactivation,
        )

    return SignalDecision(
        status=EMIT,
        suggestion_level=level,
        confidence=regime.confidence,
        material_impact=material_impact,
        allow_specific_assets=allow_assets,
        consecutive_display_days=next_days,
        reactivating=latest is not None and not latest.is_pending,
        reactivation=reactivation,
    )


class SignalLifecycleEngine:
    """Runs score -> decide -> write for a single portfolio."""

    def __init__(self, db=None, service: SignalService | None = None, narrator=None):
        self.service = service or SignalService(db)
        self.portfolio_dao = PortfolioDAO(db)
        self.score_dao = PortfolioScoreDAO(db)
        self.narrator = narrator

    def process_portfolio(self, portfolio: PortfolioRef, regime: Regime, run_date,
                          now: datetime | None = None) -> PortfolioRunResult:
        score = self.score_portfolio(portfolio, run_date)
        return self.apply_decision(portfolio, regime, run_date, score, now)

    def score_portfolio(self, portfolio: PortfolioRef, run_date) -> ScoreResult:
        """Compute and store today's score row."""
        run_date = to_date(run_date)
        user_id, portfolio_id = portfolio.user_id, portfolio.portfolio_id

        alignment = self.portfolio_dao.get_latest_alignment(portfolio_id)
        history = self.score_dao.get_historical_average(user_id, portfolio_id, run_date.isoformat())

        score = compute_score(alignment, history)
        self.service.upsert_portfolio_score_daily(
            user_id, portfolio_id, run_date,
            market_alignment=score.market_alignment,
            personal_consistency=score.personal_consistency,
            score_total=score.score_total,
        )
        return score

    def apply_decision(self, portfolio: PortfolioRef, regime: Regime, run_date,
                       score: ScoreResult, now: datetime | None = None) -> PortfolioRunResult:
        """Decide on an already stored score and perform at most one lifecycle write."""
        run_date = to_date(run_date)
        now = now or utc_now()
        user_id, portfolio_id = portfolio.user_id, portfolio.portfolio_id

        latest = self.service.get_latest_signal(user_id, portfolio_id)
        active_cooldown = self.service.get_active_cooldown(user_id, portfolio_id)
        threshold = self.service.conviction.current_threshold(user_id)

        decision = decide(score, regime, latest, threshold, run_date, active_cooldown)
        logger.debug("Portfolio %s score %.2f -> %s (level %d)",
                     portfolio_id, score.score_total, decision.status, decision.suggestion_level)

        signal = None
        if decision.status == DISPLAY_CAP:
            self.service.apply_forced_cooldown(latest, decision.cooldown_until)
        elif decision.emits:
            signal = self._emit(portfolio, regime, run_date, now, score, decision)

        return PortfolioRunResult(
            portfolio_id=portfolio_id,
            user_id=user_id,
            score=score,
            decision=decision,
            signal=signal,
        )

    def _emit(self, portfolio: PortfolioRef, regime: Regime, run_date: date, now: datetime,
              score: ScoreResult, decision: SignalDecision) -> Signal:
        diagnosis = build_diagnosis(score.market_alignment, score.personal_consistency)
        if self.narrator is not None:
            diagnosis = self.narrator(diagnosis, {
                "regime": regime.regime,
                "volatility_regime": regime.volatility_regime,
                "score": score.score_total,
                "level": decision.suggestion_level,
            })

        specific_assets = (specific_assets_for_regime(regime.regime)
                           if decision.allow_specific_assets else [])

        signal = self.service.create_signal(
            user_id=portfolio.user_id,
            portfolio_id=portfolio.portfolio_id,
            score=score.score_total,
            suggestion_level=decision.suggestion_level,
            confidence=decision.confidence,
            regime=regime.regime,
            volatility_regime=regime.volatility_regime,
            shown_date=run_date,
            diagnosis=diagnosis,
            risk_impact=build_risk_impact(regime.regime, regime.volatility_regime,
                                          decision.confidence),
            adjustment=default_adjustment(regime.regime, regime.volatility_regime),
            specific_assets=specific_assets,
            consecutive_display_days=decision.consecutive_display_days,
            reactivated_at=now.isoformat() if decision.reactivating else None,
            shown_at=now.isoformat(),
        )
        if decision.reactivating:
            logger.info("Signal reactivated for portfolio %s: %s",
                        portfolio.portfolio_id, decision.reactivation.reasons)
        return signal
