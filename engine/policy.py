"""RAI policy: escalation levels, cooldowns, reactivation and Risk-Adjusted Impact.

Pure functions over primitive inputs. The numeric bounds below are policy;
changing any of them changes product behaviour.
"""

from dataclasses import dataclass

from utils.helpers import clamp, to_num

# RAI weights
BASE_ALPHA = 0.40
BASE_BETA = 0.40
GAMMA = 0.20
RISK_TILT = 0.10           # alpha/beta shift per unit of risk level away from 0.5
BASE_WEIGHT_FLOOR = 0.35
BASE_WEIGHT_CEILING = 0.45
CRISIS_SHIFT = 0.05
CRISIS_ALPHA_FLOOR = 0.30
CRISIS_BETA_CEILING = 0.50
RISK_ON_SHIFT = 0.03
RISK_ON_ALPHA_CEILING = 0.48
RISK_ON_BETA_FLOOR = 0.32
RISK_ON_MIN_CONFIDENCE = 0.75
DEFAULT_RISK_LEVEL = 0.5

# Suggestion levels
LEVEL_URGENT_BELOW = 25
LEVEL_URGENT_CRISIS_BELOW = 35
LEVEL_HIGH_BELOW = 40
LEVEL_WATCH_MAX = 60

# Specific-asset eligibility
SPECIFIC_ASSETS_MIN_CONFIDENCE = 0.75
DIRECTIONAL_REGIMES = ("risk_on", "risk_off")

# Cooldowns (days)
ACKNOWLEDGE_COOLDOWN_DAYS = 7
DISMISS_COOLDOWN_DAYS = 14
REPEAT_DISMISS_COOLDOWN_DAYS = 21
REPEAT_DISMISS_STREAK = 3
DISPLAY_CAP_DAYS = 3
FORCED_COOLDOWN_DAYS = 5

# Reactivation
REACTIVATION_SCORE_DROP = 10


@dataclass(frozen=True)
class RaiWeights:
    alpha: float
    beta: float
    gamma: float

    def to_dict(self) -> dict:
        return {"alpha": self.alpha, "beta": self.beta, "gamma": self.gamma}


@dataclass(frozen=True)
class ReactivationCheck:
    should_reactivate: bool
    forced_cooldown_days: int
    worsened_by_10: bool
    regime_changed: bool
    crisis_activated: bool
    over_display_cap: bool

    @property
    def reasons(self) -> dict:
        return {
            "worsened_by_10": self.worsened_by_10,
            "regime_changed": self.regime_changed,
            "crisis_activated": self.crisis_activated,
            "over_display_cap": self.over_display_cap,
        }


def compute_rai_weights(risk_level=DEFAULT_RISK_LEVEL, regime: str = "transition",
                        volatility_regime: str = "normal",
                        confidence: float = 0.0) -> RaiWeights:
    """Return alpha/beta/gamma for a user's risk level and the signal's regime.

    Higher risk levels tilt weight from volatility (beta) towards return
    (alpha). A crisis tilts it back; a confident, calm risk-on market tilts it
    further towards return. The three weights are not normalized.
    """
    risk = clamp(to_num(risk_level, DEFAULT_RISK_LEVEL), 0.0, 1.0)

    alpha = BASE_ALPHA + (risk - 0.5) * RISK_TILT
    beta = BASE_BETA - (risk - 0.5) * RISK_TILT
    alpha = clamp(alpha, BASE_WEIGHT_FLOOR, BASE_WEIGHT_CEILING)
    beta = clamp(beta, BASE_WEIGHT_FLOOR, BASE_WEIGHT_CEILING)

    if volatility_regime == "crisis":
        alpha = max(alpha - CRISIS_SHIFT, CRISIS_ALPHA_FLOOR)
        beta = min(beta + CRISIS_SHIFT, CRISIS_BETA_CEILING)

    if (regime == "risk_on"
            and to_num(confidence, 0.0) >= RISK_ON_MIN_CONFIDENCE
            and volatility_regime == "normal"):
        alpha = min(alpha + RISK_ON_SHIFT, RISK_ON_ALPHA_CEILING)
        beta = max(beta - RISK_ON_SHIFT, RISK_ON_BETA_FLOOR)

    return RaiWeights(alpha=round(alpha, 4), beta=round(beta, 4), gamma=GAMMA)


def compute_rai(delta_return: float, delta_volatility: float, delta_drawdown: float,
                weights: RaiWeights | None = None, profile: dict | None = None) -> float:
    """Risk-Adjusted Impact: weighted sum of the signed deltas.

    Pass either *weights* or a *profile* dict with risk_level / regime /
    volatility_regime / confidence to derive them.
    """
    if weights is None:
        profile = profile or {}
        weights = compute_rai_weights(
            risk_level=profile.get("risk_level", DEFAULT_RISK_LEVEL),
            regime=profile.get("regime", "transition"),
            volatility_regime=profile.get("volatility_regime", "normal"),
            confidence=profile.get("confidence", 0.0),
        )
    rai = (
        weights.alpha * to_num(delta_return, 0.0)
        + weights.beta * to_num(delta_volatility, 0.0)
        + weights.gamma * to_num(delta_drawdown, 0.0)
    )
    return round(rai, 6)


def resolve_suggestion_level(score, volatility_regime: str = "normal") -> int:
    """0 = no advisory, 3 = urgent."""
    s = to_num(score, 50.0)
    if s < LEVEL_URGENT_BELOW or (volatility_regime == "crisis" and s < LEVEL_URGENT_CRISIS_BELOW):
        return 3
    if s < LEVEL_HIGH_BELOW:
        return 2
    if s <= LEVEL_WATCH_MAX:
        return 1
    return 0


def can_suggest_specific_assets(confidence, regime: str, material_impact: bool) -> bool:
    """Naming assets needs confidence, a directional regime and a material impact."""
    return (
        to_num(confidence, 0.0) >= SPECIFIC_ASSETS_MIN_CONFIDENCE
        and regime in DIRECTIONAL_REGIMES
        and bool(material_impact)
    )


def cooldown_days_for_action(action: str, dismiss_streak: int = 0) -> int:
    normalized = str(action or "").strip().lower()
    if normalized == "acknowledge":
        return ACKNOWLEDGE_COOLDOWN_DAYS
    if normalized == "dismiss":
        if to_num(dismiss_streak, 0) >= REPEAT_DISMISS_STREAK:
            return REPEAT_DISMISS_COOLDOWN_DAYS
        return DISMISS_COOLDOWN_DAYS
    return 0


def should_reactivate_signal(previous_score=None, current_score=None,
                             previous_regime: str | None = None,
                             current_regime: str | None = None,
                             previous_volatility_regime: str | None = None,
                             current_volatility_regime: str | None = None,
                             consecutive_display_days: int = 0) -> ReactivationCheck:
    """Decide whether a resolved signal deserves resurfacing.

    Missing previous values never count as a change. The display cap is
    reported independently of the reactivation verdict.
    """
    prev = to_num(previous_score, None)
    curr = to_num(current_score, None)
    worsened = prev is not None and curr is not None and prev - curr >= REACTIVATION_SCORE_DROP
    regime_changed = bool(previous_regime and current_regime and previous_regime != current_regime)
    crisis_activated = previous_volatility_regime != "crisis" and current_volatility_regime == "crisis"
    over_cap = to_num(consecutive_display_days, 0) >= DISPLAY_CAP_DAYS

    return ReactivationCheck(
        should_reactivate=worsened or regime_changed or crisis_activated,
        forced_cooldown_days=FORCED_COOLDOWN_DAYS if over_cap else 0,
        worsened_by_10=worsened,
        regime_changed=regime_changed,
        crisis_activated=crisis_activated,
        over_display_cap=over_cap,
    )
