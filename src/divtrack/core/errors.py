"""Exceptions raised by the session and pricing engine."""


class DivTrackError(Exception):
    """Base class for all DivTrack errors."""


class SessionStateError(DivTrackError):
    """Operation conflicts with the current session state of a game."""


class AlreadyActiveError(SessionStateError):
    def __init__(self, game: str) -> None:
        super().__init__(f"Session already active for {game}")
        self.game = game


class NoActiveSessionError(SessionStateError):
    def __init__(self, game: str) -> None:
        super().__init__(f"No active session for {game}")
        self.game = game


class LeagueNotFoundError(DivTrackError):
    def __init__(self, game: str, league: str) -> None:
        super().__init__(f"League not found: {game}/{league}")
        self.game = game
        self.league = league


class PriceFetchError(DivTrackError):
    """The pricing service could not be reached or returned bad data."""
