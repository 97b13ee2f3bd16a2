"""Daily orchestrator: the once-a-day batch over every active portfolio."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime

from config.logging_config import set_run_date
from database.models import JobRunDAO, PortfolioDAO, RegimeDAO
from engine.entities import PortfolioRef, Regime
from engine.lifecycle import SignalLifecycleEngine
from engine.signal_service import SignalService
from learning.outcome_evaluator import OutcomeEvaluator
from utils.helpers import to_date, utc_now

logger = logging.getLogger("horsai.engine.orchestrator")

JOB_NAME = "horsai_daily"
MAX_ERROR_LENGTH = 900


@dataclass
class RunStats:
    date: date
    regime: str
    volatility_regime: str
    portfolios_scanned: int = 0
    scored: int = 0
    generated: int = 0
    skipped_by_cooldown: int = 0
    failed: int = 0
    outcomes_evaluated: int = 0
    outcomes_thin_data: int = 0
    conviction_updated: int = 0
    failed_portfolios: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


class DailyOrchestrator:
    """Scores portfolios, evaluates matured signals, then refreshes conviction."""

    def __init__(self, db=None, narrator=None, timezone: str | None = None,
                 batch_limit: int | None = None):
        self.service = SignalService(db, timezone=timezone)
        self.engine = SignalLifecycleEngine(db, service=self.service, narrator=narrator)
        self.evaluator = OutcomeEvaluator(db, service=self.service, batch_limit=batch_limit)
        self.regime_dao = RegimeDAO(db)
        self.portfolio_dao = PortfolioDAO(db)
        self.job_dao = JobRunDAO(db)
        self._tracking = True

    def run(self, run_date=None, now: datetime | None = None) -> RunStats:
        run_date = to_date(run_date) if run_date else self.service.today()
        set_run_date(run_date)
        self._tracking = True
        self._track(run_date, "started")
        try:
            stats = self._run(run_date, now or utc_now())
        except BaseException as e:
            self._track(run_date, "failed", str(e) or type(e).__name__)
            raise
        else:
            self._track(run_date, "success")
            return stats
        finally:
            set_run_date(None)

    def _run(self, run_date: date, now: datetime) -> RunStats:
        regime_row = self.regime_dao.get_latest()
        if regime_row:
            regime = Regime.from_row(regime_row)
        else:
            logger.warning("No regime state stored; using neutral defaults")
            regime = Regime.fallback(run_date)

        stats = RunStats(date=run_date, regime=regime.regime,
                         volatility_regime=regime.volatility_regime)
        portfolios = [PortfolioRef(portfolio_id=r["portfolio_id"], user_id=r["user_id"])
                      for r in self.portfolio_dao.list_active()]
        logger.info("Daily run for %s: %d portfolios, regime %s/%s (confidence %.2f)",
                    run_date, len(portfolios), regime.regime, regime.volatility_regime,
                    regime.confidence)

        for portfolio in portfolios:
            stats.portfolios_scanned += 1
            try:
                score = self.engine.score_portfolio(portfolio, run_date)
                stats.scored += 1
                result = self.engine.apply_decision(portfolio, regime, run_date, score, now)
            except Exception as e:
                stats.failed += 1
                stats.failed_portfolios.append(portfolio.portfolio_id)
                logger.error("Portfolio %s failed: %s", portfolio.portfolio_id, e, exc_info=True)
                continue
            if result.generated:
                stats.generated += 1
            if result.skipped_by_cooldown:
                stats.skipped_by_cooldown += 1

        outcomes = self.evaluator.evaluate_pending(run_date)
        stats.outcomes_evaluated = len(outcomes)
        stats.outcomes_thin_data = self.evaluator.last_thin_data

        for user_id in sorted({o.user_id for o in outcomes}):
            try:
                self.service.refresh_conviction_policy(user_id)
            except Exception as e:
                stats.failed += 1
                logger.error("Conviction refresh failed for %s: %s", user_id, e, exc_info=True)
                continue
            stats.conviction_updated += 1

        logger.info(
            "Daily run done: scored=%d generated=%d cooldown_skips=%d failed=%d "
            "outcomes=%d thin_data=%d conviction=%d",
            stats.scored, stats.generated, stats.skipped_by_cooldown, stats.failed,
            stats.outcomes_evaluated, stats.outcomes_thin_data, stats.conviction_updated,
        )
        return stats

    def _track(self, run_date: date, status: str, error: str | None = None) -> None:
        """Record job progress; a tracking failure disables tracking, never the run."""
        if not self._tracking:
            return
        try:
            self.job_dao.mark(JOB_NAME, run_date.isoformat(), status,
                              error[:MAX_ERROR_LENGTH] if error else None)
        except Exception as e:
            self._tracking = False
            logger.warning("Job-run tracking disabled for %s: %s", run_date, e)
