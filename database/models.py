"""Data access objects (DAOs) for the signal store.

Each write is a single statement so a row is committed whole or not at all.
Upserts are keyed by the natural key of their table, which makes re-running
a batch for the same date converge instead of duplicating rows.
"""

import json
import logging

from database.connection import get_connection

logger = logging.getLogger("horsai.models")


class RegimeDAO:
    """Data access for the daily market regime (read-only for the engine)."""

    def __init__(self, db=None):
        self.db = db or get_connection()

    def upsert(self, date: str, regime: str, volatility_regime: str = "normal",
               confidence: float = 0.5):
        self.db.execute_write(
            """INSERT INTO regime_state (date, regime, volatility_regime, confidence)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(date) DO UPDATE SET
                 regime=excluded.regime,
                 volatility_regime=excluded.volatility_regime,
                 confidence=excluded.confidence""",
            (date, regime, volatility_regime, confidence),
        )

    def get_latest(self):
        return self.db.execute_one(
            "SELECT * FROM regime_state ORDER BY date DESC LIMIT 1"
        )


class PortfolioDAO:
    """Data access for portfolios and their upstream daily facts."""

    def __init__(self, db=None):
        self.db = db or get_connection()

    def create(self, portfolio_id: str, user_id: str, name: str = None):
        self.db.execute_write(
            "INSERT INTO portfolios (id, user_id, name) VALUES (?, ?, ?)",
            (portfolio_id, user_id, name),
        )

    def soft_delete(self, portfolio_id: str):
        self.db.execute_write(
            "UPDATE portfolios SET deleted_at = CURRENT_TIMESTAMP WHERE id = ?",
            (portfolio_id,),
        )

    def list_active(self):
        return self.db.execute(
            """SELECT id AS portfolio_id, user_id FROM portfolios
               WHERE deleted_at IS NULL
               ORDER BY created_at ASC, id ASC"""
        )

    def get_owned(self, portfolio_id: str, user_id: str):
        return self.db.execute_one(
            """SELECT * FROM portfolios
               WHERE id = ? AND user_id = ? AND deleted_at IS NULL""",
            (portfolio_id, user_id),
        )

    def upsert_alignment(self, portfolio_id: str, date: str, alignment_score: float):
        self.db.execute_write(
            """INSERT INTO portfolio_metrics (portfolio_id, date, alignment_score)
               VALUES (?, ?, ?)
               ON CONFLICT(portfolio_id, date) DO UPDATE SET
                 alignment_score=excluded.alignment_score""",
            (portfolio_id, date, alignment_score),
        )

    def get_latest_alignment(self, portfolio_id: str) -> float | None:
        row = self.db.execute_one(
            """SELECT alignment_score FROM portfolio_metrics
               WHERE portfolio_id = ? ORDER BY date DESC LIMIT 1""",
            (portfolio_id,),
        )
        return row["alignment_score"] if row else None

    def upsert_value(self, portfolio_id: str, date: str, total_value: float):
        self.db.execute_write(
            """INSERT INTO portfolio_snapshots (portfolio_id, date, total_value)
               VALUES (?, ?, ?)
               ON CONFLICT(portfolio_id, date) DO UPDATE SET
                 total_value=excluded.total_value""",
            (portfolio_id, date, total_value),
        )

    def get_value_series(self, portfolio_id: str, start: str, end: str):
        """Total-value observations between two dates, inclusive, oldest first."""
        return self.db.execute(
            """SELECT date, total_value FROM portfolio_snapshots
               WHERE portfolio_id = ? AND date >= ? AND date <= ?
               ORDER BY date ASC""",
            (portfolio_id, start, end),
        )


class UserProfileDAO:
    """Data access for per-user risk profile."""

    def __init__(self, db=None):
        self.db = db or get_connection()

    def upsert(self, user_id: str, risk_level: float):
        self.db.execute_write(
            """INSERT INTO user_profiles (user_id, risk_level) VALUES (?, ?)
               ON CONFLICT(user_id) DO UPDATE SET risk_level=excluded.risk_level""",
            (user_id, risk_level),
        )

    def get_risk_level(self, user_id: str) -> float | None:
        row = self.db.execute_one(
            "SELECT risk_level FROM user_profiles WHERE user_id = ?", (user_id,)
        )
        return row["risk_level"] if row else None


class PortfolioScoreDAO:
    """Data access for per-day portfolio scores."""

    def __init__(self, db=None):
        self.db = db or get_connection()

    def upsert(self, user_id: str, portfolio_id: str, date: str,
               market_alignment: float, personal_consistency: float,
               score_total: float):
        self.db.execute_write(
            """INSERT INTO portfolio_scores_daily
               (user_id, portfolio_id, date, market_alignment,
                personal_consistency, score_total)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id, portfolio_id, date) DO UPDATE SET
                 market_alignment=excluded.market_alignment,
                 personal_consistency=excluded.personal_consistency,
                 score_total=excluded.score_total,
                 updated_at=CURRENT_TIMESTAMP""",
            (user_id, portfolio_id, date, market_alignment,
             personal_consistency, score_total),
        )

    def get(self, user_id: str, portfolio_id: str, date: str):
        return self.db.execute_one(
            """SELECT * FROM portfolio_scores_daily
               WHERE user_id = ? AND portfolio_id = ? AND date = ?""",
            (user_id, portfolio_id, date),
        )

    def get_latest(self, user_id: str, portfolio_id: str):
        return self.db.execute_one(
            """SELECT * FROM portfolio_scores_daily
               WHERE user_id = ? AND portfolio_id = ?
               ORDER BY date DESC LIMIT 1""",
            (user_id, portfolio_id),
        )

    def count(self, user_id: str, portfolio_id: str) -> int:
        row = self.db.execute_one(
            """SELECT COUNT(*) AS cnt FROM portfolio_scores_daily
               WHERE user_id = ? AND portfolio_id = ?""",
            (user_id, portfolio_id),
        )
        return row["cnt"] if row else 0

    def get_historical_average(self, user_id: str, portfolio_id: str,
                               before_date: str) -> float | None:
        """Mean score_total strictly before *before_date*; None without history."""
        row = self.db.execute_one(
            """SELECT AVG(score_total) AS avg_score FROM portfolio_scores_daily
               WHERE user_id = ? AND portfolio_id = ? AND date < ?""",
            (user_id, portfolio_id, before_date),
        )
        return row["avg_score"] if row else None


class SignalDAO:
    """Data access for advisory signals and their lifecycle fields."""

    def __init__(self, db=None):
        self.db = db or get_connection()

    def insert(self, signal: dict):
        self.db.execute_write(
            """INSERT INTO signals
               (id, user_id, portfolio_id, score, suggestion_level, confidence,
                regime, volatility_regime, diagnosis, risk_impact,
                adjustment_json, specific_assets_json, consecutive_display_days,
                shown_date, shown_at, reactivated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                signal["id"], signal["user_id"], signal["portfolio_id"],
                signal["score"], signal["suggestion_level"], signal["confidence"],
                signal["regime"], signal["volatility_regime"],
                signal.get("diagnosis"), signal.get("risk_impact"),
                json.dumps(signal.get("adjustment") or {}, default=str),
                json.dumps(list(signal.get("specific_assets") or []), default=str),
                signal.get("consecutive_display_days", 1),
                signal["shown_date"], signal["shown_at"],
                signal.get("reactivated_at"),
            ),
        )

    def get(self, signal_id: str):
        return self.db.execute_one("SELECT * FROM signals WHERE id = ?", (signal_id,))

    def get_owned(self, signal_id: str, user_id: str):
        return self.db.execute_one(
            "SELECT * FROM signals WHERE id = ? AND user_id = ?",
            (signal_id, user_id),
        )

    def get_latest(self, user_id: str, portfolio_id: str):
        return self.db.execute_one(
            """SELECT * FROM signals
               WHERE user_id = ? AND portfolio_id = ?
               ORDER BY shown_date DESC, shown_at DESC LIMIT 1""",
            (user_id, portfolio_id),
        )

    def get_active_cooldown(self, user_id: str, portfolio_id: str):
        """Latest cooldown date across every signal for the portfolio, or None."""
        row = self.db.execute_one(
            """SELECT MAX(cooldown_until) AS cooldown_until FROM signals
               WHERE user_id = ? AND portfolio_id = ? AND cooldown_until IS NOT NULL""",
            (user_id, portfolio_id),
        )
        return row["cooldown_until"] if row else None

    def list_for_portfolio(self, user_id: str, portfolio_id: str):
        return self.db.execute(
            """SELECT * FROM signals
               WHERE user_id = ? AND portfolio_id = ?
               ORDER BY shown_date ASC, shown_at ASC""",
            (user_id, portfolio_id),
        )

    def apply_cooldown(self, signal_id: str, user_id: str, cooldown_until: str) -> int:
        return self.db.execute_write(
            """UPDATE signals SET cooldown_until = ?, updated_at = CURRENT_TIMESTAMP
               WHERE id = ? AND user_id = ?""",
            (cooldown_until, signal_id, user_id),
        )

    def update_action(self, signal_id: str, user_id: str, user_action: str,
                      dismiss_streak: int, cooldown_until: str) -> int:
        return self.db.execute_write(
            """UPDATE signals SET
                 user_action = ?,
                 dismiss_streak = ?,
                 cooldown_until = ?,
                 last_action_at = CURRENT_TIMESTAMP,
                 updated_at = CURRENT_TIMESTAMP
               WHERE id = ? AND user_id = ?""",
            (user_action, dismiss_streak, cooldown_until, signal_id, user_id),
        )

    def get_pending_outcomes(self, shown_on_or_before: str, limit: int = 400):
        """Signals old enough to judge that have no outcome row, oldest first."""
        return self.db.execute(
            """SELECT s.* FROM signals s
               WHERE s.shown_date <= ?
                 AND NOT EXISTS (
                   SELECT 1 FROM signal_outcomes o WHERE o.signal_id = s.id
                 )
               ORDER BY s.shown_date ASC, s.shown_at ASC
               LIMIT ?""",
            (shown_on_or_before, limit),
        )


class SignalOutcomeDAO:
    """Data access for signal outcome evaluations."""

    def __init__(self, db=None):
        self.db = db or get_connection()

    def upsert(self, outcome: dict):
        self.db.execute_write(
            """INSERT INTO signal_outcomes
               (signal_id, user_id, portfolio_id, evaluated_at, eval_window_days,
                delta_return, delta_volatility, delta_drawdown, rai,
                portfolio_snapshot_json, simulated_adjustment_json)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(signal_id, evaluated_at) DO UPDATE SET
                 eval_window_days=excluded.eval_window_days,
                 delta_return=excluded.delta_return,
                 delta_volatility=excluded.delta_volatility,
                 delta_drawdown=excluded.delta_drawdown,
                 rai=excluded.rai,
                 portfolio_snapshot_json=excluded.portfolio_snapshot_json,
                 simulated_adjustment_json=excluded.simulated_adjustment_json""",
            (
                outcome["signal_id"], outcome["user_id"], outcome["portfolio_id"],
                outcome["evaluated_at"], outcome["eval_window_days"],
                outcome["delta_return"], outcome["delta_volatility"],
                outcome["delta_drawdown"], outcome["rai"],
                json.dumps(outcome.get("portfolio_snapshot") or {}, default=str),
                json.dumps(outcome.get("simulated_adjustment") or {}, default=str),
            ),
        )

    def get(self, signal_id: str, evaluated_at: str):
        return self.db.execute_one(
            "SELECT * FROM signal_outcomes WHERE signal_id = ? AND evaluated_at = ?",
            (signal_id, evaluated_at),
        )

    def list_for_signal(self, signal_id: str):
        return self.db.execute(
            "SELECT * FROM signal_outcomes WHERE signal_id = ? ORDER BY evaluated_at",
            (signal_id,),
        )

    def get_recent_rai(self, user_id: str, limit: int = 20) -> list[float]:
        rows = self.db.execute(
            """SELECT rai FROM signal_outcomes WHERE user_id = ?
               ORDER BY evaluated_at DESC, id DESC LIMIT ?""",
            (user_id, limit),
        )
        return [r["rai"] for r in rows]

    def get_review_stats(self, user_id: str, portfolio_id: str, since: str):
        return self.db.execute_one(
            """SELECT
                 COUNT(*) AS total_signals,
                 COALESCE(SUM(CASE WHEN o.delta_volatility > 0 THEN 1 ELSE 0 END), 0) AS risk_reduction_cases,
                 COALESCE(AVG(o.delta_volatility), 0) AS avg_delta_volatility,
                 COALESCE(SUM(CASE WHEN o.delta_return > 0 THEN 1 ELSE 0 END), 0) AS perf_improvement_cases,
                 COALESCE(AVG(o.rai), 0) AS avg_rai,
                 COALESCE(SUM(CASE WHEN o.rai < 0 THEN 1 ELSE 0 END), 0) AS adverse_cases,
                 COALESCE(SUM(CASE WHEN o.rai = 0 THEN 1 ELSE 0 END), 0) AS neutral_cases,
                 COALESCE(SUM(CASE WHEN o.rai > 0 THEN 1 ELSE 0 END), 0) AS favorable_cases
               FROM signal_outcomes o
               INNER JOIN signals s ON s.id = o.signal_id
               WHERE o.user_id = ? AND o.portfolio_id = ? AND o.evaluated_at >= ?""",
            (user_id, portfolio_id, since),
        )


class ConvictionPolicyDAO:
    """Data access for the per-user conviction threshold."""

    def __init__(self, db=None):
        self.db = db or get_connection()

    def get(self, user_id: str):
        return self.db.execute_one(
            "SELECT * FROM conviction_policy WHERE user_id = ?", (user_id,)
        )

    def upsert(self, user_id: str, rai_mean_20: float, confidence_threshold: float):
        self.db.execute_write(
            """INSERT INTO conviction_policy (user_id, rai_mean_20, confidence_threshold)
               VALUES (?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                 rai_mean_20=excluded.rai_mean_20,
                 confidence_threshold=excluded.confidence_threshold,
                 updated_at=CURRENT_TIMESTAMP""",
            (user_id, rai_mean_20, confidence_threshold),
        )


class JobRunDAO:
    """Data access for batch job bookkeeping."""

    def __init__(self, db=None):
        self.db = db or get_connection()

    def mark(self, job_name: str, run_date: str, status: str, error: str = None):
        self.db.execute_write(
            """INSERT INTO job_runs (job_name, run_date, status, started_at, finished_at, error)
               VALUES (?, ?, ?, CURRENT_TIMESTAMP,
                       CASE WHEN ? = 'started' THEN NULL ELSE CURRENT_TIMESTAMP END, ?)
               ON CONFLICT(job_name, run_date) DO UPDATE SET
                 status=excluded.status,
                 started_at=CASE WHEN excluded.status = 'started'
                                 THEN CURRENT_TIMESTAMP ELSE job_runs.started_at END,
                 finished_at=excluded.finished_at,
                 error=excluded.error""",
            (job_name, run_date, status, status, error),
        )

    def get(self, job_name: str, run_date: str):
        return self.db.execute_one(
            "SELECT * FROM job_runs WHERE job_name = ? AND run_date = ?",
            (job_name, run_date),
        )
