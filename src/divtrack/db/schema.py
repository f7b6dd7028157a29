"""Database schema - DDL statements for SQLite."""

SCHEMA_VERSION = 3

# Settings table - key/value configuration
CREATE_SETTINGS = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

# Global counters (single row per key)
CREATE_GLOBAL_STATS = """
CREATE TABLE IF NOT EXISTS global_stats (
    key TEXT PRIMARY KEY,
    value INTEGER NOT NULL
)
"""

SEED_GLOBAL_STATS = """
INSERT OR IGNORE INTO global_stats (key, value) VALUES ('totalStackedDecksOpened', 0)
"""

# Leagues - created lazily on first reference
CREATE_LEAGUES = """
CREATE TABLE IF NOT EXISTS leagues (
    id TEXT PRIMARY KEY,
    game TEXT NOT NULL,
    name TEXT NOT NULL,
    start_date TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (game, name)
)
"""

# Snapshots - immutable price captures per league
CREATE_SNAPSHOTS = """
CREATE TABLE IF NOT EXISTS snapshots (
    id TEXT PRIMARY KEY,
    league_id TEXT NOT NULL,
    fetched_at TEXT NOT NULL,
    exchange_chaos_to_divine REAL NOT NULL,
    stash_chaos_to_divine REAL NOT NULL,
    stacked_deck_chaos_cost REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    FOREIGN KEY (league_id) REFERENCES leagues(id) ON DELETE CASCADE
)
"""

CREATE_SNAPSHOTS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_snapshots_league_fetched ON snapshots(league_id, fetched_at DESC)
"""

# Snapshot card prices - flat rows keyed by (snapshot, card, source)
CREATE_SNAPSHOT_CARD_PRICES = """
CREATE TABLE IF NOT EXISTS snapshot_card_prices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    snapshot_id TEXT NOT NULL,
    card_name TEXT NOT NULL,
    price_source TEXT NOT NULL CHECK (price_source IN ('exchange', 'stash')),
    chaos_value REAL NOT NULL,
    divine_value REAL NOT NULL,
    stack_size INTEGER,
    FOREIGN KEY (snapshot_id) REFERENCES snapshots(id) ON DELETE CASCADE,
    UNIQUE (snapshot_id, card_name, price_source)
)
"""

CREATE_SNAPSHOT_CARD_PRICES_INDEX = """
CREATE INDEX IF NOT EXISTS idx_snapshot_prices_snapshot ON snapshot_card_prices(snapshot_id)
"""

# Sessions - one row per farming run, never deleted by the core
CREATE_SESSIONS = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    game TEXT NOT NULL,
    league_id TEXT NOT NULL,
    snapshot_id TEXT,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    total_count INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    FOREIGN KEY (league_id) REFERENCES leagues(id) ON DELETE CASCADE,
    FOREIGN KEY (snapshot_id) REFERENCES snapshots(id) ON DELETE SET NULL
)
"""

CREATE_SESSIONS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_sessions_game_active ON sessions(game, is_active)
"""

CREATE_SESSIONS_STARTED_INDEX = """
CREATE INDEX IF NOT EXISTS idx_sessions_started ON sessions(game, started_at DESC)
"""

# Session cards - per-session count per card name
CREATE_SESSION_CARDS = """
CREATE TABLE IF NOT EXISTS session_cards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    card_name TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    hide_price_exchange INTEGER NOT NULL DEFAULT 0,
    hide_price_stash INTEGER NOT NULL DEFAULT 0,
    first_seen_at TEXT NOT NULL,
    last_seen_at TEXT NOT NULL,
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE,
    UNIQUE (session_id, card_name)
)
"""

# Session summaries - written once on stop for fast history listing
CREATE_SESSION_SUMMARIES = """
CREATE TABLE IF NOT EXISTS session_summaries (
    session_id TEXT PRIMARY KEY,
    game TEXT NOT NULL,
    league TEXT NOT NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT NOT NULL,
    duration_minutes INTEGER NOT NULL,
    total_decks_opened INTEGER NOT NULL,
    total_exchange_value REAL NOT NULL,
    total_stash_value REAL NOT NULL,
    total_exchange_net_profit REAL NOT NULL,
    total_stash_net_profit REAL NOT NULL,
    exchange_chaos_to_divine REAL NOT NULL,
    stash_chaos_to_divine REAL NOT NULL,
    stacked_deck_chaos_cost REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
)
"""

# Processed event IDs
#   scope='global' - persisted dedup set, pruned on session stop
#   scope='recent' - recent drop annotations for display
CREATE_PROCESSED_IDS = """
CREATE TABLE IF NOT EXISTS processed_ids (
    game TEXT NOT NULL,
    scope TEXT NOT NULL,
    processed_id TEXT NOT NULL,
    card_name TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (game, scope, processed_id)
)
"""

CREATE_PROCESSED_IDS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_processed_ids_game_scope ON processed_ids(game, scope)
"""

# Card aggregates - scope is 'all-time' (league empty) or 'league'
CREATE_CARDS = """
CREATE TABLE IF NOT EXISTS cards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    game TEXT NOT NULL,
    scope TEXT NOT NULL,
    league TEXT NOT NULL DEFAULT '',
    card_name TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    last_updated TEXT,
    UNIQUE (game, scope, league, card_name)
)
"""

CREATE_CARDS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_cards_game_scope ON cards(game, scope, league)
"""

ALL_CREATE_STATEMENTS = [
    CREATE_SETTINGS,
    CREATE_GLOBAL_STATS,
    SEED_GLOBAL_STATS,
    CREATE_LEAGUES,
    CREATE_SNAPSHOTS,
    CREATE_SNAPSHOTS_INDEX,
    CREATE_SNAPSHOT_CARD_PRICES,
    CREATE_SNAPSHOT_CARD_PRICES_INDEX,
    CREATE_SESSIONS,
    CREATE_SESSIONS_INDEX,
    CREATE_SESSIONS_STARTED_INDEX,
    CREATE_SESSION_CARDS,
    CREATE_SESSION_SUMMARIES,
    CREATE_PROCESSED_IDS,
    CREATE_PROCESSED_IDS_INDEX,
    CREATE_CARDS,
    CREATE_CARDS_INDEX,
]
