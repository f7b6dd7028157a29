"""Repository - CRUD operations for all entities."""

import sqlite3
from datetime import datetime
from typing import Iterable, Optional

from divtrack.core.models import (
    ALL_TIME_SCOPE,
    LEAGUE_SCOPE,
    CardPrice,
    GameType,
    League,
    PriceSnapshot,
    PriceSource,
    Session,
    SessionCard,
    SessionSummary,
    SnapshotInfo,
    parse_ts,
    utc_now,
)
from divtrack.db.connection import Database

# processed_ids scopes
GLOBAL_SCOPE = "global"
RECENT_SCOPE = "recent"


class Repository:
    """Data access layer for all entities.

    Methods taking a ``cursor`` argument are meant to run inside an enclosing
    ``Database.transaction()`` and never commit on their own.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    # --- Settings ---

    def get_setting(self, key: str) -> Optional[str]:
        """Get a setting value by key."""
        row = self.db.fetchone("SELECT value FROM settings WHERE key = ?", (key,))
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        """Set a setting value."""
        self.db.execute(
            "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, utc_now().isoformat()),
        )

    # --- Leagues ---

    def get_league(self, game: GameType, name: str) -> Optional[League]:
        """Get a league by (game, name)."""
        row = self.db.fetchone(
            "SELECT * FROM leagues WHERE game = ? AND name = ?",
            (game.value, name),
        )
        if not row:
            return None
        return self._row_to_league(row)

    def get_league_by_id(self, league_id: str) -> Optional[League]:
        row = self.db.fetchone("SELECT * FROM leagues WHERE id = ?", (league_id,))
        if not row:
            return None
        return self._row_to_league(row)

    def insert_league(self, league: League) -> None:
        """Insert a league. A concurrent insert of the same (game, name) is ignored."""
        self.db.execute(
            "INSERT OR IGNORE INTO leagues (id, game, name, start_date) VALUES (?, ?, ?, ?)",
            (league.id, league.game.value, league.name, league.start_date),
        )

    def get_leagues(self, game: GameType) -> list[League]:
        rows = self.db.fetchall(
            "SELECT * FROM leagues WHERE game = ? ORDER BY name", (game.value,)
        )
        return [self._row_to_league(row) for row in rows]

    def _row_to_league(self, row) -> League:
        return League(
            id=row["id"],
            game=GameType(row["game"]),
            name=row["name"],
            start_date=row["start_date"],
        )

    # --- Snapshots ---

    def insert_snapshot(
        self,
        snapshot_id: str,
        league_id: str,
        fetched_at: datetime,
        snapshot: PriceSnapshot,
    ) -> None:
        """
        Persist snapshot metadata and every card price row atomically.

        Args:
            snapshot_id: New snapshot ID
            league_id: Owning league
            fetched_at: Local time of the fetch, used for reuse decisions
            snapshot: Prices returned by the pricing service
        """
        price_rows = []
        for source in PriceSource:
            for card_name, price in snapshot.for_source(source).card_prices.items():
                price_rows.append(
                    (
                        snapshot_id,
                        card_name,
                        source.value,
                        price.chaos_value,
                        price.divine_value,
                        price.stack_size,
                    )
                )

        with self.db.transaction() as cursor:
            cursor.execute(
                """INSERT INTO snapshots
                   (id, league_id, fetched_at, exchange_chaos_to_divine,
                    stash_chaos_to_divine, stacked_deck_chaos_cost)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    snapshot_id,
                    league_id,
                    fetched_at.isoformat(),
                    snapshot.exchange.chaos_to_divine_ratio,
                    snapshot.stash.chaos_to_divine_ratio,
                    snapshot.stacked_deck_chaos_cost,
                ),
            )
            if price_rows:
                cursor.executemany(
                    """INSERT INTO snapshot_card_prices
                       (snapshot_id, card_name, price_source, chaos_value,
                        divine_value, stack_size)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    price_rows,
                )

    def get_latest_snapshot_info(self, league_id: str) -> Optional[SnapshotInfo]:
        """Get the most recently fetched snapshot for a league."""
        row = self.db.fetchone(
            """SELECT * FROM snapshots WHERE league_id = ?
               ORDER BY fetched_at DESC, rowid DESC LIMIT 1""",
            (league_id,),
        )
        if not row:
            return None
        return self._row_to_snapshot_info(row)

    def get_snapshot_info(self, snapshot_id: str) -> Optional[SnapshotInfo]:
        row = self.db.fetchone("SELECT * FROM snapshots WHERE id = ?", (snapshot_id,))
        if not row:
            return None
        return self._row_to_snapshot_info(row)

    def get_snapshot_prices(
        self, snapshot_id: str
    ) -> list[tuple[PriceSource, str, CardPrice]]:
        """Get flat (source, card_name, price) rows for a snapshot."""
        rows = self.db.fetchall(
            """SELECT card_name, price_source, chaos_value, divine_value, stack_size
               FROM snapshot_card_prices WHERE snapshot_id = ?""",
            (snapshot_id,),
        )
        return [
            (
                PriceSource(row["price_source"]),
                row["card_name"],
                CardPrice(
                    chaos_value=row["chaos_value"],
                    divine_value=row["divine_value"],
                    stack_size=row["stack_size"],
                ),
            )
            for row in rows
        ]

    def delete_snapshot(self, snapshot_id: str) -> bool:
        """Delete a snapshot. Sessions bound to it keep running with a null binding."""
        cursor = self.db.execute("DELETE FROM snapshots WHERE id = ?", (snapshot_id,))
        return cursor.rowcount > 0

    def _row_to_snapshot_info(self, row) -> SnapshotInfo:
        return SnapshotInfo(
            id=row["id"],
            league_id=row["league_id"],
            fetched_at=parse_ts(row["fetched_at"]),
            exchange_chaos_to_divine=row["exchange_chaos_to_divine"],
            stash_chaos_to_divine=row["stash_chaos_to_divine"],
            stacked_deck_chaos_cost=row["stacked_deck_chaos_cost"] or 0.0,
        )

    # --- Sessions ---

    def insert_session(self, session: Session) -> None:
        self.db.execute(
            """INSERT INTO sessions
               (id, game, league_id, snapshot_id, started_at, ended_at, total_count, is_active)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                session.id,
                session.game.value,
                session.league_id,
                session.snapshot_id,
                session.started_at.isoformat(),
                session.ended_at.isoformat() if session.ended_at else None,
                session.total_count,
                1 if session.is_active else 0,
            ),
        )

    def get_session(self, session_id: str) -> Optional[Session]:
        row = self.db.fetchone("SELECT * FROM sessions WHERE id = ?", (session_id,))
        if not row:
            return None
        return self._row_to_session(row)

    def get_active_sessions(self, game: Optional[GameType] = None) -> list[Session]:
        """Get sessions flagged active, optionally for one game."""
        if game is not None:
            rows = self.db.fetchall(
                "SELECT * FROM sessions WHERE is_active = 1 AND game = ?",
                (game.value,),
            )
        else:
            rows = self.db.fetchall("SELECT * FROM sessions WHERE is_active = 1")
        return [self._row_to_session(row) for row in rows]

    def get_session_total(self, session_id: str) -> int:
        row = self.db.fetchone(
            "SELECT total_count FROM sessions WHERE id = ?", (session_id,)
        )
        return row["total_count"] if row else 0

    def end_session(
        self,
        session_id: str,
        ended_at: datetime,
        cursor: Optional[sqlite3.Cursor] = None,
    ) -> None:
        """Mark a session inactive and record its end time."""
        (cursor or self.db).execute(
            "UPDATE sessions SET is_active = 0, ended_at = ? WHERE id = ?",
            (ended_at.isoformat(), session_id),
        )

    def deactivate_all_sessions(self, ended_at: datetime) -> int:
        """
        Deactivate every session still flagged active.

        Sessions without an end time get ``ended_at`` so durations stay finite.

        Returns:
            Number of sessions deactivated.
        """
        cursor = self.db.execute(
            """UPDATE sessions SET is_active = 0, ended_at = COALESCE(ended_at, ?)
               WHERE is_active = 1""",
            (ended_at.isoformat(),),
        )
        return cursor.rowcount

    def _row_to_session(self, row) -> Session:
        return Session(
            id=row["id"],
            game=GameType(row["game"]),
            league_id=row["league_id"],
            snapshot_id=row["snapshot_id"],
            started_at=parse_ts(row["started_at"]),
            ended_at=parse_ts(row["ended_at"]) if row["ended_at"] else None,
            total_count=row["total_count"],
            is_active=bool(row["is_active"]),
        )

    # --- Session Cards ---

    def upsert_session_card(
        self, cursor: sqlite3.Cursor, session_id: str, card_name: str, now: datetime
    ) -> None:
        """Add one drop of card_name to a session."""
        ts = now.isoformat()
        cursor.execute(
            """INSERT INTO session_cards (session_id, card_name, count, first_seen_at, last_seen_at)
               VALUES (?, ?, 1, ?, ?)
               ON CONFLICT(session_id, card_name) DO UPDATE SET
                   count = count + 1,
                   last_seen_at = excluded.last_seen_at""",
            (session_id, card_name, ts, ts),
        )

    def refresh_session_total(self, cursor: sqlite3.Cursor, session_id: str) -> int:
        """Set the session total to the sum of its card counts and return it."""
        cursor.execute(
            """UPDATE sessions SET total_count = (
                   SELECT COALESCE(SUM(count), 0) FROM session_cards WHERE session_id = ?
               ) WHERE id = ?""",
            (session_id, session_id),
        )
        row = cursor.execute(
            "SELECT total_count FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return row["total_count"] if row else 0

    def get_session_cards(self, session_id: str) -> list[SessionCard]:
        rows = self.db.fetchall(
            """SELECT * FROM session_cards WHERE session_id = ?
               ORDER BY count DESC, card_name""",
            (session_id,),
        )
        return [self._row_to_session_card(row) for row in rows]

    def set_card_visibility(
        self, session_id: str, source: PriceSource, card_name: str, hide: bool
    ) -> bool:
        """
        Set the hide flag for one card under one price source.

        Returns:
            True if a session card row was updated.
        """
        column = (
            "hide_price_exchange" if source == PriceSource.EXCHANGE else "hide_price_stash"
        )
        cursor = self.db.execute(
            f"UPDATE session_cards SET {column} = ? WHERE session_id = ? AND card_name = ?",
            (1 if hide else 0, session_id, card_name),
        )
        return cursor.rowcount > 0

    def _row_to_session_card(self, row) -> SessionCard:
        return SessionCard(
            session_id=row["session_id"],
            card_name=row["card_name"],
            count=row["count"],
            first_seen_at=parse_ts(row["first_seen_at"]),
            last_seen_at=parse_ts(row["last_seen_at"]),
            hide_price_exchange=bool(row["hide_price_exchange"]),
            hide_price_stash=bool(row["hide_price_stash"]),
        )

    # --- Processed IDs ---

    def load_processed_ids(self, game: GameType) -> list[str]:
        """Get the persisted global dedup set in insertion order."""
        rows = self.db.fetchall(
            """SELECT processed_id FROM processed_ids
               WHERE game = ? AND scope = ? ORDER BY rowid""",
            (game.value, GLOBAL_SCOPE),
        )
        return [row["processed_id"] for row in rows]

    def replace_processed_ids(self, game: GameType, processed_ids: Iterable[str]) -> int:
        """
        Overwrite the persisted global dedup set with processed_ids.

        Returns:
            Number of ids written.
        """
        ts = utc_now().isoformat()
        rows = [(game.value, GLOBAL_SCOPE, pid, ts) for pid in processed_ids]
        with self.db.transaction() as cursor:
            cursor.execute(
                "DELETE FROM processed_ids WHERE game = ? AND scope = ?",
                (game.value, GLOBAL_SCOPE),
            )
            if rows:
                cursor.executemany(
                    """INSERT INTO processed_ids (game, scope, processed_id, created_at)
                       VALUES (?, ?, ?, ?)""",
                    rows,
                )
        return len(rows)

    def prune_processed_ids(self, game: GameType, keep: int) -> int:
        """
        Keep only the most recently inserted ``keep`` global ids.

        Returns:
            Number of ids deleted.
        """
        cursor = self.db.execute(
            """DELETE FROM processed_ids
               WHERE game = ? AND scope = ? AND rowid NOT IN (
                   SELECT rowid FROM processed_ids
                   WHERE game = ? AND scope = ?
                   ORDER BY rowid DESC LIMIT ?
               )""",
            (game.value, GLOBAL_SCOPE, game.value, GLOBAL_SCOPE, keep),
        )
        return cursor.rowcount

    # --- Recent Drops ---

    def add_recent_drop(
        self,
        game: GameType,
        event_id: str,
        card_name: str,
        now: datetime,
        keep: int = 20,
    ) -> None:
        """Record a drop for display, keeping only the newest keep rows."""
        with self.db.transaction() as cursor:
            cursor.execute(
                """INSERT OR IGNORE INTO processed_ids
                   (game, scope, processed_id, card_name, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (game.value, RECENT_SCOPE, event_id, card_name, now.isoformat()),
            )
            cursor.execute(
                """DELETE FROM processed_ids
                   WHERE game = ? AND scope = ? AND rowid NOT IN (
                       SELECT rowid FROM processed_ids
                       WHERE game = ? AND scope = ?
                       ORDER BY created_at DESC, rowid DESC LIMIT ?
                   )""",
                (game.value, RECENT_SCOPE, game.value, RECENT_SCOPE, keep),
            )

    def get_recent_drops(self, game: GameType, limit: int = 20) -> list[str]:
        """Get card names of the most recent drops, newest first."""
        rows = self.db.fetchall(
            """SELECT card_name FROM processed_ids
               WHERE game = ? AND scope = ?
               ORDER BY created_at DESC, rowid DESC LIMIT ?""",
            (game.value, RECENT_SCOPE, limit),
        )
        return [row["card_name"] for row in rows]

    def clear_recent_drops(
        self, game: GameType, cursor: Optional[sqlite3.Cursor] = None
    ) -> int:
        result = (cursor or self.db).execute(
            "DELETE FROM processed_ids WHERE game = ? AND scope = ?",
            (game.value, RECENT_SCOPE),
        )
        return result.rowcount

    # --- Aggregate Stats ---

    def upsert_card_stat(
        self,
        cursor: sqlite3.Cursor,
        game: GameType,
        card_name: str,
        now: datetime,
        league: Optional[str] = None,
    ) -> None:
        """Add one drop of card_name to the all-time aggregate, or to league's."""
        scope = LEAGUE_SCOPE if league is not None else ALL_TIME_SCOPE
        cursor.execute(
            """INSERT INTO cards (game, scope, league, card_name, count, last_updated)
               VALUES (?, ?, ?, ?, 1, ?)
               ON CONFLICT(game, scope, league, card_name) DO UPDATE SET
                   count = count + 1,
                   last_updated = excluded.last_updated""",
            (game.value, scope, league or "", card_name, now.isoformat()),
        )

    def increment_global_stat(
        self, cursor: sqlite3.Cursor, key: str, amount: int = 1
    ) -> None:
        cursor.execute(
            """INSERT INTO global_stats (key, value) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET value = value + excluded.value""",
            (key, amount),
        )

    def get_global_stat(self, key: str) -> int:
        row = self.db.fetchone("SELECT value FROM global_stats WHERE key = ?", (key,))
        return row["value"] if row else 0

    def get_card_stats(self, game: GameType, league: Optional[str] = None) -> list[dict]:
        """Get all-time card counts, or league's when given, highest count first."""
        scope = LEAGUE_SCOPE if league is not None else ALL_TIME_SCOPE
        rows = self.db.fetchall(
            """SELECT card_name, count, last_updated FROM cards
               WHERE game = ? AND scope = ? AND league = ?
               ORDER BY count DESC, card_name""",
            (game.value, scope, league or ""),
        )
        return [
            {
                "card_name": row["card_name"],
                "count": row["count"],
                "last_updated": row["last_updated"],
            }
            for row in rows
        ]

    def get_stat_leagues(self, game: GameType) -> list[str]:
        """Get league names that have at least one aggregated drop."""
        rows = self.db.fetchall(
            """SELECT DISTINCT league FROM cards
               WHERE game = ? AND scope = ? ORDER BY league""",
            (game.value, LEAGUE_SCOPE),
        )
        return [row["league"] for row in rows]

    # --- Summaries & History ---

    def insert_summary(
        self, summary: SessionSummary, cursor: Optional[sqlite3.Cursor] = None
    ) -> None:
        (cursor or self.db).execute(
            """INSERT OR REPLACE INTO session_summaries
               (session_id, game, league, started_at, ended_at, duration_minutes,
                total_decks_opened, total_exchange_value, total_stash_value,
                total_exchange_net_profit, total_stash_net_profit,
                exchange_chaos_to_divine, stash_chaos_to_divine, stacked_deck_chaos_cost)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                summary.session_id,
                summary.game.value,
                summary.league,
                summary.started_at.isoformat(),
                summary.ended_at.isoformat(),
                summary.duration_minutes,
                summary.total_decks_opened,
                summary.total_exchange_value,
                summary.total_stash_value,
                summary.total_exchange_net_profit,
                summary.total_stash_net_profit,
                summary.exchange_chaos_to_divine,
                summary.stash_chaos_to_divine,
                summary.stacked_deck_chaos_cost,
            ),
        )

    def get_summary(self, session_id: str) -> Optional[SessionSummary]:
        row = self.db.fetchone(
            "SELECT * FROM session_summaries WHERE session_id = ?", (session_id,)
        )
        if not row:
            return None
        return SessionSummary(
            session_id=row["session_id"],
            game=GameType(row["game"]),
            league=row["league"],
            started_at=parse_ts(row["started_at"]),
            ended_at=parse_ts(row["ended_at"]),
            duration_minutes=row["duration_minutes"],
            total_decks_opened=row["total_decks_opened"],
            total_exchange_value=row["total_exchange_value"],
            total_stash_value=row["total_stash_value"],
            total_exchange_net_profit=row["total_exchange_net_profit"],
            total_stash_net_profit=row["total_stash_net_profit"],
            exchange_chaos_to_divine=row["exchange_chaos_to_divine"],
            stash_chaos_to_divine=row["stash_chaos_to_divine"],
            stacked_deck_chaos_cost=row["stacked_deck_chaos_cost"] or 0.0,
        )

    def count_sessions(self, game: GameType) -> int:
        row = self.db.fetchone(
            "SELECT COUNT(*) AS total FROM sessions WHERE game = ?", (game.value,)
        )
        return row["total"] if row else 0

    def get_session_history(
        self, game: GameType, limit: int = 20, offset: int = 0
    ) -> list[dict]:
        """
        Get sessions newest first, merged with their summaries.

        Sessions without a summary (still active, or stopped without a
        snapshot) fall back to the session row and its snapshot metadata.
        Value columns are None for them.
        """
        rows = self.db.fetchall(
            """SELECT
                   s.id AS session_id,
                   s.game AS game,
                   COALESCE(ss.league, l.name) AS league,
                   s.started_at AS started_at,
                   COALESCE(ss.ended_at, s.ended_at) AS ended_at,
                   s.is_active AS is_active,
                   ss.duration_minutes AS duration_minutes,
                   COALESCE(ss.total_decks_opened, s.total_count) AS total_decks_opened,
                   ss.total_exchange_value AS total_exchange_value,
                   ss.total_stash_value AS total_stash_value,
                   ss.total_exchange_net_profit AS total_exchange_net_profit,
                   ss.total_stash_net_profit AS total_stash_net_profit,
                   COALESCE(ss.exchange_chaos_to_divine, sn.exchange_chaos_to_divine)
                       AS exchange_chaos_to_divine,
                   COALESCE(ss.stash_chaos_to_divine, sn.stash_chaos_to_divine)
                       AS stash_chaos_to_divine,
                   COALESCE(ss.stacked_deck_chaos_cost, sn.stacked_deck_chaos_cost)
                       AS stacked_deck_chaos_cost
               FROM sessions s
               JOIN leagues l ON l.id = s.league_id
               LEFT JOIN session_summaries ss ON ss.session_id = s.id
               LEFT JOIN snapshots sn ON sn.id = s.snapshot_id
               WHERE s.game = ?
               ORDER BY s.started_at DESC, s.rowid DESC
               LIMIT ? OFFSET ?""",
            (game.value, limit, offset),
        )

        result = []
        for row in rows:
            duration = row["duration_minutes"]
            if duration is None and row["ended_at"]:
                elapsed = parse_ts(row["ended_at"]) - parse_ts(row["started_at"])
                duration = round(elapsed.total_seconds() / 60)
            result.append({
                "session_id": row["session_id"],
                "game": row["game"],
                "league": row["league"],
                "started_at": row["started_at"],
                "ended_at": row["ended_at"],
                "is_active": bool(row["is_active"]),
                "duration_minutes": duration,
                "total_decks_opened": row["total_decks_opened"] or 0,
                "total_exchange_value": row["total_exchange_value"],
                "total_stash_value": row["total_stash_value"],
                "total_exchange_net_profit": row["total_exchange_net_profit"],
                "total_stash_net_profit": row["total_stash_net_profit"],
                "exchange_chaos_to_divine": row["exchange_chaos_to_divine"],
                "stash_chaos_to_divine": row["stash_chaos_to_divine"],
                "stacked_deck_chaos_cost": row["stacked_deck_chaos_cost"],
            })
        return result
