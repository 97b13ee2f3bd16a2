"""Tests for signal narrative text and the optional Groq rewrite."""

import pytest
from unittest.mock import MagicMock

from engine.narrative import (
    GroqNarrator, build_risk_impact, confidence_band, default_adjustment,
    market_environment_labels, specific_assets_for_regime,
)


@pytest.fixture
def mock_groq():
    """Mock Groq client returning a fixed rewrite."""
    mock_client = MagicMock()
    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = "  Your portfolio has drifted.  "
    mock_client.chat.completions.create.return_value = mock_response
    return mock_client


class TestTemplates:
    @pytest.mark.parametrize("conf,band", [(0.9, "High"), (0.75, "High"),
                                           (0.6, "Moderate"), (0.3, "Limited")])
    def test_confidence_band(self, conf, band):
        assert confidence_band(conf) == band

    def test_crisis_adjustment_wins_over_regime(self):
        assert default_adjustment("risk_on", "crisis")["focus"] == "risk_reduction"

    @pytest.mark.parametrize("regime,focus", [
        ("risk_off", "defensive_rotation"),
        ("risk_on", "leadership_alignment"),
        ("transition", "risk_control"),
    ])
    def test_adjustment_by_regime(self, regime, focus):
        adj = default_adjustment(regime, "normal")
        assert adj["focus"] == focus
        assert set(adj) == {"focus", "action", "note"}

    def test_specific_assets(self):
        assert specific_assets_for_regime("risk_off")[0]["symbol"] == "TLT"
        assert specific_assets_for_regime("risk_on")[0]["symbol"] == "SPY"
        assert specific_assets_for_regime("transition") == []

    def test_risk_impact_mentions_band(self):
        assert "Confidence Moderate" in build_risk_impact("risk_off", "elevated", 0.6)

    def test_environment_labels(self):
        assert market_environment_labels("risk_off", "crisis") == {
            "market": "Defensive", "volatility": "High Uncertainty",
        }
        assert market_environment_labels("transition", "normal") == {
            "market": "Mixed", "volatility": "Calm",
        }


class TestGroqNarrator:
    def test_without_key_returns_template(self):
        narrator = GroqNarrator(api_key="", model="m")
        assert not narrator.is_available()
        assert narrator("template", {}) == "template"

    def test_rewrites_with_client(self, mock_groq):
        narrator = GroqNarrator(api_key="test-key", model="test-model")
        narrator._client = mock_groq

        text = narrator("template", {"regime": "risk_off", "volatility_regime": "normal"})
        assert text == "Your portfolio has drifted."
        kwargs = mock_groq.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert "template" in kwargs["messages"][0]["content"]

    def test_api_failure_keeps_template(self, mock_groq):
        mock_groq.chat.completions.create.side_effect = RuntimeError("rate limited")
        narrator = GroqNarrator(api_key="test-key", model="test-model")
        narrator._client = mock_groq
        assert narrator("template", {}) == "template"

    def test_empty_completion_keeps_template(self, mock_groq):
        mock_groq.chat.completions.create.return_value.choices[0].message.content = ""
        narrator = GroqNarrator(api_key="test-key", model="test-model")
        narrator._client = mock_groq
        assert narrator("template", {}) == "template"
