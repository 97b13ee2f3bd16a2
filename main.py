"""Horsai - daily portfolio signal engine CLI."""

import argparse
import sys

from tabulate import tabulate

from config.settings import get_settings
from config.logging_config import setup_logging
from database.connection import get_connection
from database.schema import initialize_database
from utils.console import fail, header, level_badge, ok, separator, signed
from utils.errors import HorsaiError, NotFoundError


def _narrator():
    from engine.narrative import GroqNarrator
    narrator = GroqNarrator()
    return narrator if narrator.is_available() else None


def cmd_run_daily(args):
    """Run the daily signal batch."""
    from engine.daily_orchestrator import DailyOrchestrator
    from utils.validators import validate_date

    run_date = validate_date(args.date) if args.date else None
    stats = DailyOrchestrator(narrator=_narrator()).run(run_date)

    print(header(f"Horsai daily run {stats.date} ({stats.regime}/{stats.volatility_regime})"))
    rows = [
        ["Portfolios scanned", stats.portfolios_scanned],
        ["Scored", stats.scored],
        ["Signals generated", stats.generated],
        ["Skipped by cooldown", stats.skipped_by_cooldown],
        ["Failed", stats.failed],
        ["Outcomes evaluated", stats.outcomes_evaluated],
        ["Outcomes awaiting data", stats.outcomes_thin_data],
        ["Conviction updated", stats.conviction_updated],
    ]
    print(tabulate(rows, tablefmt="simple"))
    if stats.failed_portfolios:
        print(fail(f"Failed portfolios: {', '.join(stats.failed_portfolios)}"))


def cmd_signal_action(args):
    """Acknowledge or dismiss a signal."""
    from engine.signal_service import SignalService

    signal = SignalService().apply_signal_action(args.signal_id, args.user, args.action)
    if signal is None:
        raise NotFoundError(f"Signal {args.signal_id} not found for user {args.user}")
    print(ok(f"Signal {signal.id} {signal.user_action}; "
             f"cooldown until {signal.cooldown_until} (dismiss streak {signal.dismiss_streak})"))


def cmd_signal_review(args):
    """Show how past signals for a portfolio have played out."""
    from engine.signal_service import SignalService
    from utils.validators import validate_id, validate_review_days

    user_id = validate_id(args.user, "user_id")
    portfolio_id = validate_id(args.portfolio, "portfolio_id")
    review = SignalService().get_signal_review(user_id, portfolio_id, validate_review_days(args.days))

    print(header(f"Signal review: {portfolio_id} (last {review.window_days} days)"))
    print(tabulate([
        ["Signals affecting portfolio", review.signals_affecting_portfolio],
        ["Risk reduction cases", review.risk_reduction_cases],
        ["Avg volatility reduction", f"{review.avg_volatility_reduction_pct:.2f}%"],
        ["Performance improvement cases", review.performance_improvement_cases],
        ["Avg relative impact", f"{review.avg_relative_impact_pct:.2f}%"],
    ], tablefmt="simple"))
    print(separator())
    print(tabulate([[review.favorable, review.neutral, review.adverse]],
                   headers=["Favorable", "Neutral", "Adverse"], tablefmt="simple"))


def cmd_summary(args):
    """Show market environment, scores and the latest signal for a portfolio."""
    from engine.signal_service import SignalService
    from utils.validators import validate_id

    user_id = validate_id(args.user, "user_id")
    portfolio_id = validate_id(args.portfolio, "portfolio_id")
    summary = SignalService().get_portfolio_summary(user_id, portfolio_id)
    if summary is None:
        raise NotFoundError(f"Portfolio {portfolio_id} not found for user {user_id}")

    env = summary["market_environment"]
    scores = summary["scores"]
    print(header(f"Portfolio {portfolio_id}"))
    print(f"Market: {env['labels']['market']} ({env['regime']})  "
          f"Volatility: {env['labels']['volatility']} ({env['volatility_regime']})  "
          f"Confidence: {env['confidence']:.2f}")
    print(tabulate([[scores["market_alignment"], scores["personal_consistency"], scores["total"]]],
                   headers=["Alignment", "Consistency", "Total"], tablefmt="simple"))

    suggestion = summary["suggestion"]
    print(separator())
    if not suggestion:
        print("No signal shown for this portfolio yet.")
        return
    print(f"Latest signal {suggestion['id']} shown {suggestion['shown_date']}: "
          f"{level_badge(suggestion['level'])} [{suggestion['action']}]")
    print(f"  {suggestion['diagnosis']}")
    print(f"  {suggestion['risk_impact']}")
    if suggestion["adjustment"]:
        print(f"  Suggested: {suggestion['adjustment'].get('note', '')}")
    for asset in suggestion["specific_assets"]:
        print(f"  {asset.get('symbol')}: {asset.get('adjustment')}")


def cmd_conviction(args):
    """Recompute and show a user's conviction threshold."""
    from engine.signal_service import SignalService
    from utils.validators import validate_id

    user_id = validate_id(args.user, "user_id")
    policy = SignalService().refresh_conviction_policy(user_id)
    print(tabulate([[policy.user_id, signed(policy.rai_mean_20), f"{policy.confidence_threshold:.2f}"]],
                   headers=["User", "RAI mean (20)", "Confidence threshold"], tablefmt="simple"))


def cmd_evaluate_outcomes(args):
    """Evaluate matured signals without running the full batch."""
    from learning.outcome_evaluator import OutcomeEvaluator
    from engine.signal_service import SignalService
    from utils.validators import validate_date

    service = SignalService()
    run_date = validate_date(args.date) if args.date else service.today()
    results = OutcomeEvaluator(service=service).evaluate_pending(run_date)
    if not results:
        print("No signal outcomes to evaluate.")
        return

    rows = [[r.signal_id[:8], r.portfolio_id, r.eval_window_days, signed(r.delta_return),
             signed(r.delta_volatility), signed(r.delta_drawdown), signed(r.rai, 6)]
            for r in results]
    print(tabulate(rows, headers=["Signal", "Portfolio", "Days", "dRet", "dVol", "dDD", "RAI"],
                   tablefmt="simple"))
    for user_id in sorted({r.user_id for r in results}):
        policy = service.refresh_conviction_policy(user_id)
        print(ok(f"{user_id}: threshold {policy.confidence_threshold:.2f} "
                 f"(RAI mean {signed(policy.rai_mean_20)})"))


def cmd_scheduler(args):
    """Run the daily batch on a cron schedule."""
    from engine.scheduler import start_scheduler
    start_scheduler()


def main():
    settings = get_settings()
    logger = setup_logging(settings.log_dir, settings.log_level)

    # Initialize database
    db = get_connection(settings.db_path)
    initialize_database(db)

    parser = argparse.ArgumentParser(
        prog="horsai",
        description="Horsai - daily portfolio advisory signals with outcome feedback",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run-daily
    p_run = subparsers.add_parser("run-daily", help="Run the daily signal batch")
    p_run.add_argument("--date", help="Run date (YYYY-MM-DD), defaults to today")
    p_run.set_defaults(func=cmd_run_daily)

    # signal-action
    p_act = subparsers.add_parser("signal-action", help="Acknowledge or dismiss a signal")
    p_act.add_argument("signal_id", help="Signal id")
    p_act.add_argument("--user", required=True, help="Owning user id")
    p_act.add_argument("--action", required=True, help="acknowledge or dismiss")
    p_act.set_defaults(func=cmd_signal_action)

    # signal-review
    p_rev = subparsers.add_parser("signal-review", help="Review signal outcomes for a portfolio")
    p_rev.add_argument("--user", required=True, help="User id")
    p_rev.add_argument("--portfolio", required=True, help="Portfolio id")
    p_rev.add_argument("--days", default=None, help="Look-back window in days (7-90)")
    p_rev.set_defaults(func=cmd_signal_review)

    # summary
    p_sum = subparsers.add_parser("summary", help="Show a portfolio summary")
    p_sum.add_argument("--user", required=True, help="User id")
    p_sum.add_argument("--portfolio", required=True, help="Portfolio id")
    p_sum.set_defaults(func=cmd_summary)

    # conviction
    p_conv = subparsers.add_parser("conviction", help="Refresh a user's conviction threshold")
    p_conv.add_argument("--user", required=True, help="User id")
    p_conv.set_defaults(func=cmd_conviction)

    # evaluate-outcomes
    p_eval = subparsers.add_parser("evaluate-outcomes", help="Evaluate matured signals")
    p_eval.add_argument("--date", help="Evaluation date (YYYY-MM-DD), defaults to today")
    p_eval.set_defaults(func=cmd_evaluate_outcomes)

    # scheduler
    p_sched = subparsers.add_parser("scheduler", help="Run the daily batch on a schedule")
    p_sched.set_defaults(func=cmd_scheduler)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\nAborted.")
    except HorsaiError as e:
        logger.debug("Command rejected: %s", e)
        print(fail(f"{e.code}: {e}"))
        sys.exit(2)
    except Exception as e:
        logger.error("Command failed: %s", e, exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
