"""Outcome evaluator: estimate what a signal was worth once it has matured.

For each signal shown at least a week ago and never evaluated, compare the
portfolio's actual path over the window with a counterfactual in which the
advisory was followed, then score the difference as Risk-Adjusted Impact.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

import numpy as np

from config.settings import get_settings
from database.models import PortfolioDAO, SignalDAO, UserProfileDAO
from engine.entities import Signal
from engine.policy import DEFAULT_RISK_LEVEL, RaiWeights, compute_rai, compute_rai_weights
from engine.signal_service import MAX_EVAL_WINDOW_DAYS, MIN_EVAL_WINDOW_DAYS, SignalService
from utils.errors import InsufficientDataError
from utils.helpers import add_days, clamp, clamp01, days_between, to_date, to_num

logger = logging.getLogger("horsai.learning.outcome_evaluator")

MIN_SIGNAL_AGE_DAYS = 7

# Normalization divisors
RETURN_SCALE = 0.25
VOLATILITY_SCALE = 0.10
DRAWDOWN_SCALE = 0.20

# Counterfactual improvement factors: (volatility, drawdown)
CRISIS_IMPROVEMENT = (0.20, 0.22)
REGIME_IMPROVEMENT = {
    "risk_off": (0.16, 0.18),
    "risk_on": (0.10, 0.10),
    "transition": (0.12, 0.14),
}
RETURN_SHIFT = {
    "risk_on": 0.06,
    "risk_off": -0.01,
    "transition": 0.02,
}
RISK_FOCUS_RETURN_PENALTY = 0.01


@dataclass(frozen=True)
class OutcomeResult:
    signal_id: str
    user_id: str
    portfolio_id: str
    evaluated_at: date
    eval_window_days: int
    actual_return: float
    actual_volatility: float
    actual_drawdown: float
    delta_return: float
    delta_volatility: float
    delta_drawdown: float
    rai: float
    weights: RaiWeights
    portfolio_snapshot: dict = field(default_factory=dict)
    simulated_adjustment: dict = field(default_factory=dict)


def improvement_factors(regime: str, volatility_regime: str) -> tuple[float, float]:
    """Volatility/drawdown improvement; a crisis overrides the market regime."""
    if volatility_regime == "crisis":
        return CRISIS_IMPROVEMENT
    return REGIME_IMPROVEMENT.get(regime, REGIME_IMPROVEMENT["transition"])


def return_shift(regime: str, focus: str = "") -> float:
    shift = RETURN_SHIFT.get(regime, RETURN_SHIFT["transition"])
    if "risk" in (focus or "").lower():
        shift -= RISK_FOCUS_RETURN_PENALTY
    return shift


def measure_path(values) -> tuple[float, float, float]:
    """Return, population volatility of daily returns and max drawdown of a value path."""
    arr = np.asarray(values, dtype=float)
    arr = arr[arr > 0]
    if arr.size < 2:
        raise InsufficientDataError(f"need 2 positive observations, got {arr.size}")

    actual_return = (arr[-1] - arr[0]) / arr[0]
    daily_returns = np.diff(arr) / arr[:-1]
    actual_volatility = float(np.std(daily_returns)) if daily_returns.size else 0.0

    peaks = np.maximum.accumulate(arr)
    actual_drawdown = float(np.max((peaks - arr) / peaks))

    return float(actual_return), actual_volatility, actual_drawdown


class OutcomeEvaluator:
    """Scores matured signals and persists one outcome per signal and date."""

    def __init__(self, db=None, service: SignalService | None = None,
                 batch_limit: int | None = None):
        self.service = service or SignalService(db)
        self.signal_dao = SignalDAO(db)
        self.portfolio_dao = PortfolioDAO(db)
        self.profile_dao = UserProfileDAO(db)
        self._batch_limit = batch_limit
        self.last_thin_data = 0

    @property
    def batch_limit(self) -> int:
        if self._batch_limit is None:
            self._batch_limit = get_settings().outcome_batch_limit
        return self._batch_limit

    def _load_values(self, portfolio_id: str, start: date, end: date) -> list[float]:
        rows = self.portfolio_dao.get_value_series(portfolio_id, start.isoformat(), end.isoformat())
        values = [v for v in (to_num(r["total_value"], None) for r in rows) if v is not None and v > 0]
        if len(values) < 2:
            raise InsufficientDataError(
                f"portfolio {portfolio_id} has {len(values)} usable values "
                f"between {start} and {end}"
            )
        return values

    def evaluate_signal_outcome(self, signal: Signal, run_date) -> OutcomeResult | None:
        """Evaluate and persist one signal; None when the value path is too thin."""
        run_date = to_date(run_date)
        window = int(clamp(days_between(signal.shown_date, run_date),
                           MIN_EVAL_WINDOW_DAYS, MAX_EVAL_WINDOW_DAYS))

        try:
            values = self._load_values(signal.portfolio_id, signal.shown_date, run_date)
        except InsufficientDataError as e:
            logger.debug("Skipping outcome for signal %s: %s", signal.id, e)
            return None

        actual_return, actual_volatility, actual_drawdown = measure_path(values)
        ret = clamp(actual_return / RETURN_SCALE, -1, 1)
        vol = clamp01(actual_volatility / VOLATILITY_SCALE)
        dd = clamp01(actual_drawdown / DRAWDOWN_SCALE)

        focus = str(signal.adjustment.get("focus", "")) if signal.adjustment else ""
        vol_improvement, dd_improvement = improvement_factors(signal.regime, signal.volatility_regime)
        shift = return_shift(signal.regime, focus)

        adjusted_ret = clamp(ret + shift, -1, 1)
        adjusted_vol = vol * (1 - vol_improvement)
        adjusted_dd = dd * (1 - dd_improvement)

        delta_return = adjusted_ret - ret
        delta_volatility = vol - adjusted_vol
        delta_drawdown = dd - adjusted_dd

        risk_level = to_num(self.profile_dao.get_risk_level(signal.user_id), DEFAULT_RISK_LEVEL)
        weights = compute_rai_weights(risk_level, signal.regime, signal.volatility_regime,
                                      signal.confidence)
        rai = compute_rai(delta_return, delta_volatility, delta_drawdown, weights=weights)

        snapshot = {
            "first_value": values[0],
            "last_value": values[-1],
            "observations": len(values),
            "actual_return": round(actual_return, 6),
            "actual_volatility": round(actual_volatility, 6),
            "actual_drawdown": round(actual_drawdown, 6),
        }
        simulated = {
            "focus": focus,
            "return_shift": round(shift, 4),
            "volatility_improvement": vol_improvement,
            "drawdown_improvement": dd_improvement,
            "adjusted_return": round(adjusted_ret, 6),
            "adjusted_volatility": round(adjusted_vol, 6),
            "adjusted_drawdown": round(adjusted_dd, 6),
            "risk_level": risk_level,
            "weights": weights.to_dict(),
        }

        self.service.record_signal_outcome(
            signal_id=signal.id,
            user_id=signal.user_id,
            portfolio_id=signal.portfolio_id,
            evaluated_at=run_date,
            eval_window_days=window,
            delta_return=delta_return,
            delta_volatility=delta_volatility,
            delta_drawdown=delta_drawdown,
            rai=rai,
            portfolio_snapshot=snapshot,
            simulated_adjustment=simulated,
        )
        logger.info("Outcome for signal %s (%s, %dd): RAI %+.4f",
                    signal.id, signal.regime, window, rai)

        return OutcomeResult(
            signal_id=signal.id,
            user_id=signal.user_id,
            portfolio_id=signal.portfolio_id,
            evaluated_at=run_date,
            eval_window_days=window,
            actual_return=actual_return,
            actual_volatility=actual_volatility,
            actual_drawdown=actual_drawdown,
            delta_return=delta_return,
            delta_volatility=delta_volatility,
            delta_drawdown=delta_drawdown,
            rai=rai,
            weights=weights,
            portfolio_snapshot=snapshot,
            simulated_adjustment=simulated,
        )

    def evaluate_pending(self, run_date) -> list[OutcomeResult]:
        """Evaluate every matured signal without an outcome, oldest first."""
        run_date = to_date(run_date)
        cutoff = add_days(run_date, -MIN_SIGNAL_AGE_DAYS)
        rows = self.signal_dao.get_pending_outcomes(cutoff.isoformat(), self.batch_limit)

        results = []
        thin = []
        for row in rows:
            signal = Signal.from_row(row)
            try:
                result = self.evaluate_signal_outcome(signal, run_date)
            except Exception as e:
                logger.error("Outcome evaluation failed for signal %s: %s",
                             signal.id, e, exc_info=True)
                continue
            if result is None:
                thin.append(signal)
            else:
                results.append(result)

        self.last_thin_data = len(thin)
        if thin:
            # Thin signals stay pending and are retried on every run, oldest first
            logger.warning("%d matured signals still lack value data (oldest shown %s)",
                           len(thin), thin[0].shown_date)
        logger.info("Evaluated %d/%d pending signal outcomes", len(results), len(rows))
        return results
