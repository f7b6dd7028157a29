"""Stats cascade - applies one accepted drop to every aggregate scope."""

from datetime import datetime

from divtrack.config.logging import get_logger
from divtrack.core.models import ALL_TIME_SCOPE, GLOBAL_DECKS_OPENED_KEY, GameType
from divtrack.db.connection import Database
from divtrack.db.repository import Repository

logger = get_logger()


class StatsCascade:
    """Updates session, league, all-time and global counts in one transaction."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self.repo = Repository(db)

    def apply_event(
        self,
        session_id: str,
        game: GameType,
        league: str,
        card_name: str,
        now: datetime,
    ) -> int:
        """
        Count one drop of card_name.

        Either all five updates commit or none do.

        Args:
            session_id: Active session
            game: Game variant
            league: League name of the per-league aggregate
            card_name: Dropped card
            now: Event time

        Returns:
            The session's new total count.
        """
        with self.db.transaction() as cursor:
            self.repo.upsert_session_card(cursor, session_id, card_name, now)
            total = self.repo.refresh_session_total(cursor, session_id)
            self.repo.upsert_card_stat(cursor, game, card_name, now)
            self.repo.upsert_card_stat(cursor, game, card_name, now, league=league)
            self.repo.increment_global_stat(cursor, GLOBAL_DECKS_OPENED_KEY)
        return total

    # --- Aggregate queries ---

    def get_global_stats(self) -> dict:
        return {"total_stacked_decks_opened": self.repo.get_global_stat(GLOBAL_DECKS_OPENED_KEY)}

    def get_all_time_stats(self, game: GameType) -> dict:
        return self._scope_stats(game, ALL_TIME_SCOPE, self.repo.get_card_stats(game))

    def get_league_stats(self, game: GameType, league: str) -> dict:
        return self._scope_stats(game, league, self.repo.get_card_stats(game, league=league))

    def get_available_leagues(self, game: GameType) -> list[str]:
        """Leagues that have aggregated drops for game."""
        return self.repo.get_stat_leagues(game)

    def _scope_stats(self, game: GameType, scope: str, cards: list[dict]) -> dict:
        return {
            "game": game.value,
            "scope": scope,
            "total_count": sum(card["count"] for card in cards),
            "cards": cards,
        }
