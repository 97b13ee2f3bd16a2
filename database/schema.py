"""Database schema - all CREATE TABLE statements (idempotent)."""

import logging

logger = logging.getLogger("horsai.schema")

CURRENT_VERSION = 2

TABLES = [
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # --- Upstream facts (written by the snapshot / regime jobs) ---
    """CREATE TABLE IF NOT EXISTS regime_state (
        date TEXT PRIMARY KEY,
        regime TEXT NOT NULL,
        volatility_regime TEXT NOT NULL DEFAULT 'normal',
        confidence REAL NOT NULL DEFAULT 0.5
    )""",

    """CREATE TABLE IF NOT EXISTS portfolios (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        deleted_at TIMESTAMP
    )""",

    """CREATE TABLE IF NOT EXISTS portfolio_metrics (
        portfolio_id TEXT NOT NULL REFERENCES portfolios(id),
        date TEXT NOT NULL,
        alignment_score REAL,
        PRIMARY KEY (portfolio_id, date)
    )""",

    """CREATE TABLE IF NOT EXISTS portfolio_snapshots (
        portfolio_id TEXT NOT NULL REFERENCES portfolios(id),
        date TEXT NOT NULL,
        total_value REAL,
        PRIMARY KEY (portfolio_id, date)
    )""",

    """CREATE TABLE IF NOT EXISTS user_profiles (
        user_id TEXT PRIMARY KEY,
        risk_level REAL DEFAULT 0.5
    )""",

    # --- Signal engine ---
    """CREATE TABLE IF NOT EXISTS portfolio_scores_daily (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        portfolio_id TEXT NOT NULL REFERENCES portfolios(id),
        date TEXT NOT NULL,
        market_alignment REAL NOT NULL,
        personal_consistency REAL NOT NULL,
        score_total REAL NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(user_id, portfolio_id, date)
    )""",

    """CREATE TABLE IF NOT EXISTS signals (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        portfolio_id TEXT NOT NULL REFERENCES portfolios(id),
        score REAL NOT NULL,
        suggestion_level INTEGER NOT NULL,
        confidence REAL NOT NULL,
        regime TEXT NOT NULL,
        volatility_regime TEXT NOT NULL,
        diagnosis TEXT,
        risk_impact TEXT,
        adjustment_json TEXT NOT NULL DEFAULT '{}',
        specific_assets_json TEXT NOT NULL DEFAULT '[]',
        consecutive_display_days INTEGER NOT NULL DEFAULT 1,
        user_action TEXT NOT NULL DEFAULT 'pending',
        dismiss_streak INTEGER NOT NULL DEFAULT 0,
        cooldown_until TEXT,
        shown_date TEXT NOT NULL,
        shown_at TIMESTAMP NOT NULL,
        reactivated_at TIMESTAMP,
        last_action_at TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        CHECK (user_action IN ('pending', 'acknowledged', 'dismissed')),
        CHECK (suggestion_level BETWEEN 0 AND 3)
    )""",

    """CREATE TABLE IF NOT EXISTS signal_outcomes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        signal_id TEXT NOT NULL REFERENCES signals(id),
        user_id TEXT NOT NULL,
        portfolio_id TEXT NOT NULL,
        evaluated_at TEXT NOT NULL,
        eval_window_days INTEGER NOT NULL,
        delta_return REAL NOT NULL,
        delta_volatility REAL NOT NULL,
        delta_drawdown REAL NOT NULL,
        rai REAL NOT NULL,
        portfolio_snapshot_json TEXT,
        simulated_adjustment_json TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(signal_id, evaluated_at)
    )""",

    """CREATE TABLE IF NOT EXISTS conviction_policy (
        user_id TEXT PRIMARY KEY,
        rai_mean_20 REAL NOT NULL DEFAULT 0,
        confidence_threshold REAL NOT NULL DEFAULT 0.75,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    """CREATE TABLE IF NOT EXISTS job_runs (
        job_name TEXT NOT NULL,
        run_date TEXT NOT NULL,
        status TEXT NOT NULL,
        started_at TIMESTAMP,
        finished_at TIMESTAMP,
        error TEXT,
        PRIMARY KEY (job_name, run_date)
    )""",
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_portfolios_user ON portfolios(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_scores_portfolio_date ON portfolio_scores_daily(user_id, portfolio_id, date)",
    "CREATE INDEX IF NOT EXISTS idx_signals_portfolio ON signals(user_id, portfolio_id, shown_date)",
    "CREATE INDEX IF NOT EXISTS idx_signals_shown_date ON signals(shown_date)",
    "CREATE INDEX IF NOT EXISTS idx_outcomes_user ON signal_outcomes(user_id, evaluated_at)",
    "CREATE INDEX IF NOT EXISTS idx_outcomes_portfolio ON signal_outcomes(user_id, portfolio_id, evaluated_at)",
]


def initialize_database(db_connection):
    """Create all tables and indexes if they don't exist."""
    with db_connection.connect() as conn:
        for table_sql in TABLES:
            conn.execute(table_sql)

        for index_sql in INDEXES:
            conn.execute(index_sql)

        existing = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        current_v = existing["v"] if existing and existing["v"] else 0

        if current_v < CURRENT_VERSION:
            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (CURRENT_VERSION,),
            )

    logger.info("Database schema initialized (version %d)", CURRENT_VERSION)
