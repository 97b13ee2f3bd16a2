"""Explanatory text attached to signals.

Nothing here feeds a decision: the lifecycle engine decides first, then asks
for words. The optional Groq narrator only rewrites the diagnosis sentence and
falls back to the template text on any failure.
"""

import logging

from config.settings import get_settings

logger = logging.getLogger("horsai.engine.narrative")

HIGH_CONFIDENCE = 0.75
MODERATE_CONFIDENCE = 0.55


def confidence_band(confidence: float) -> str:
    if confidence >= HIGH_CONFIDENCE:
        return "High"
    if confidence >= MODERATE_CONFIDENCE:
        return "Moderate"
    return "Limited"


def default_adjustment(regime: str, volatility_regime: str) -> dict:
    """Structured recommendation {focus, action, note} for a regime."""
    if volatility_regime == "crisis":
        return {
            "focus": "risk_reduction",
            "action": "increment_defensive_allocation",
            "note": "Reduce concentrated exposure and prioritise defensive assets.",
        }
    if regime == "risk_off":
        return {
            "focus": "defensive_rotation",
            "action": "rebalance_to_stability",
            "note": "Increase portfolio stability and lower sensitivity to drawdowns.",
        }
    if regime == "risk_on":
        return {
            "focus": "leadership_alignment",
            "action": "align_with_market_leadership",
            "note": "Align exposure with market leadership without adding concentration.",
        }
    return {
        "focus": "risk_control",
        "action": "reduce_uncompensated_risk",
        "note": "Mixed environment: favour consistency and balanced exposure.",
    }


def specific_assets_for_regime(regime: str) -> list[dict]:
    if regime == "risk_off":
        return [{
            "symbol": "TLT",
            "diagnosis": "Improves defensive diversification in a risk_off regime.",
            "impact": "May reduce volatility and relative drawdown against macro shocks.",
            "adjustment": "Consider a gradual increase in defensive exposure.",
        }]
    if regime == "risk_on":
        return [{
            "symbol": "SPY",
            "diagnosis": "Reinforces alignment with broad-market leadership in risk_on.",
            "impact": "May improve regime alignment and reduce structural deviation.",
            "adjustment": "Consider rebalancing core exposure without leverage.",
        }]
    return []


def build_diagnosis(market_alignment: float, personal_consistency: float) -> str:
    return (
        f"Market Alignment {market_alignment:.1f} and Personal Consistency "
        f"{personal_consistency:.1f} are both in the low zone."
    )


def build_risk_impact(regime: str, volatility_regime: str, confidence: float) -> str:
    return (
        f"Context {regime} | Volatility {volatility_regime} | "
        f"Confidence {confidence_band(confidence)}."
    )


def market_environment_labels(regime: str, volatility_regime: str) -> dict:
    market = {"risk_on": "Supportive", "risk_off": "Defensive"}.get(regime, "Mixed")
    volatility = {"crisis": "High Uncertainty", "elevated": "Increasing"}.get(
        volatility_regime, "Calm")
    return {"market": market, "volatility": volatility}


class GroqNarrator:
    """Rewrites a template diagnosis in plainer language via Groq (optional)."""

    def __init__(self, api_key: str | None = None, model: str | None = None):
        if api_key is None or model is None:
            settings = get_settings()
            api_key = settings.groq_api_key if api_key is None else api_key
            model = model or settings.groq_model
        self.api_key = api_key
        self.model = model
        self._client = None

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        """Lazy-init Groq client."""
        if self._client is None:
            from groq import Groq
            self._client = Groq(api_key=self.api_key)
        return self._client

    def __call__(self, diagnosis: str, context: dict) -> str:
        if not self.is_available():
            return diagnosis
        prompt = (
            "Rewrite this portfolio advisory diagnosis in one or two short, calm "
            "sentences for a retail investor. Do not add recommendations or numbers "
            f"that are not given.\nDiagnosis: {diagnosis}\n"
            f"Regime: {context.get('regime')} / volatility {context.get('volatility_regime')}"
        )
        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=160,
                temperature=0.3,
            )
            text = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.warning("Groq narrative failed, keeping template text: %s", e)
            return diagnosis
        return text or diagnosis
