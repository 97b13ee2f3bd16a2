"""Immutable views of the rows the signal engine reads."""

from dataclasses import dataclass, field
from datetime import date

from utils.helpers import clamp01, load_json, to_date, to_num

PENDING = "pending"
ACKNOWLEDGED = "acknowledged"
DISMISSED = "dismissed"

DEFAULT_REGIME = "transition"
DEFAULT_VOLATILITY_REGIME = "normal"
DEFAULT_REGIME_CONFIDENCE = 0.5


@dataclass(frozen=True)
class Regime:
    """Daily market classification produced upstream."""
    date: date
    regime: str = DEFAULT_REGIME
    volatility_regime: str = DEFAULT_VOLATILITY_REGIME
    confidence: float = DEFAULT_REGIME_CONFIDENCE

    @classmethod
    def from_row(cls, row) -> "Regime":
        return cls(
            date=to_date(row["date"]),
            regime=row["regime"] or DEFAULT_REGIME,
            volatility_regime=row["volatility_regime"] or DEFAULT_VOLATILITY_REGIME,
            confidence=clamp01(to_num(row["confidence"], DEFAULT_REGIME_CONFIDENCE)),
        )

    @classmethod
    def fallback(cls, on: date) -> "Regime":
        """Neutral regime used when no classification has been stored yet."""
        return cls(date=on)


@dataclass(frozen=True)
class PortfolioRef:
    portfolio_id: str
    user_id: str


@dataclass(frozen=True)
class Signal:
    id: str
    user_id: str
    portfolio_id: str
    score: float
    suggestion_level: int
    confidence: float
    regime: str
    volatility_regime: str
    shown_date: date
    shown_at: str
    diagnosis: str = ""
    risk_impact: str = ""
    adjustment: dict = field(default_factory=dict)
    specific_assets: tuple = ()
    consecutive_display_days: int = 1
    user_action: str = PENDING
    dismiss_streak: int = 0
    cooldown_until: date | None = None
    reactivated_at: str | None = None

    @classmethod
    def from_row(cls, row) -> "Signal":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            portfolio_id=row["portfolio_id"],
            score=to_num(row["score"], 50.0),
            suggestion_level=int(row["suggestion_level"]),
            confidence=to_num(row["confidence"], 0.0),
            regime=row["regime"],
            volatility_regime=row["volatility_regime"],
            shown_date=to_date(row["shown_date"]),
            shown_at=row["shown_at"],
            diagnosis=row["diagnosis"] or "",
            risk_impact=row["risk_impact"] or "",
            adjustment=load_json(row["adjustment_json"], {}),
            specific_assets=tuple(load_json(row["specific_assets_json"], [])),
            consecutive_display_days=int(row["consecutive_display_days"] or 1),
            user_action=row["user_action"] or PENDING,
            dismiss_streak=int(row["dismiss_streak"] or 0),
            cooldown_until=to_date(row["cooldown_until"]) if row["cooldown_until"] else None,
            reactivated_at=row["reactivated_at"],
        )

    @property
    def is_pending(self) -> bool:
        return self.user_action == PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "level": self.suggestion_level,
            "score": self.score,
            "confidence": self.confidence,
            "regime": self.regime,
            "volatility_regime": self.volatility_regime,
            "diagnosis": self.diagnosis,
            "risk_impact": self.risk_impact,
            "adjustment": dict(self.adjustment),
            "specific_assets": list(self.specific_assets),
            "action": self.user_action,
            "dismiss_streak": self.dismiss_streak,
            "consecutive_display_days": self.consecutive_display_days,
            "cooldown_until": self.cooldown_until.isoformat() if self.cooldown_until else None,
            "shown_date": self.shown_date.isoformat(),
            "shown_at": self.shown_at,
            "reactivated_at": self.reactivated_at,
        }


@dataclass(frozen=True)
class ConvictionPolicy:
    user_id: str
    rai_mean_20: float
    confidence_threshold: float
    updated_at: str | None = None
