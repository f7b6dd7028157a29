"""CLI commands for manual operation and the local server."""

import argparse
import signal
import sys

from divtrack.config.logging import get_logger, setup_logging
from divtrack.config.settings import Settings
from divtrack.core.errors import DivTrackError
from divtrack.core.events import EventBus
from divtrack.core.models import GameType
from divtrack.core.stats import StatsCascade
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.pricing.client import PriceClient
from divtrack.pricing.snapshot_cache import SnapshotCache
from divtrack.session.manager import SessionManager


def _settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings.from_args(
        db_path=args.db,
        portable=args.portable,
        price_api_url=getattr(args, "price_api_url", None),
    )


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize database and run the startup sweep."""
    settings = _settings_from_args(args)

    print(f"Initializing database at: {settings.db_path}")

    db = Database(settings.db_path)
    db.connect()

    repo = Repository(db)
    cache = SnapshotCache(db, PriceClient(settings.price_api_url, settings.request_timeout))
    manager = SessionManager(db, cache)
    deactivated = manager.initialize()
    if deactivated:
        print(f"  Deactivated {deactivated} orphaned session(s)")

    for game in GameType:
        print(f"  {game.value}: {repo.count_sessions(game)} sessions recorded")

    db.close()
    print("Done.")
    return 0


def cmd_show_sessions(args: argparse.Namespace) -> int:
    """List recent sessions for a game."""
    settings = _settings_from_args(args)

    db = Database(settings.db_path)
    db.connect()

    repo = Repository(db)
    game = GameType(args.game)
    sessions = repo.get_session_history(game, limit=args.limit)

    if not sessions:
        print(f"No sessions recorded for {game.value}")
        db.close()
        return 0

    print(f"Recent Sessions for {game.value} (last {len(sessions)}):")
    print("-" * 72)

    for s in sessions:
        if s["is_active"]:
            duration_str = "active"
        elif s["duration_minutes"] is not None:
            duration_str = f"{s['duration_minutes']}m"
        else:
            duration_str = "-"

        profit = s["total_exchange_net_profit"]
        profit_str = f"{profit:+.1f}c" if profit is not None else "n/a"
        print(f"  {s['started_at'][:16]} {s['league'][:20]:<20} "
              f"{duration_str:>8} decks: {s['total_decks_opened']:>5} net: {profit_str}")

    print("-" * 72)

    db.close()
    return 0


def cmd_show_stats(args: argparse.Namespace) -> int:
    """Show aggregate card counts."""
    settings = _settings_from_args(args)

    db = Database(settings.db_path)
    db.connect()

    stats = StatsCascade(db)
    game = GameType(args.game)
    if args.league:
        result = stats.get_league_stats(game, args.league)
    else:
        result = stats.get_all_time_stats(game)

    global_stats = stats.get_global_stats()
    print(f"Stacked decks opened (all games): {global_stats['total_stacked_decks_opened']}")
    print(f"{game.value} / {result['scope']}: {result['total_count']} cards")
    print("-" * 50)
    for card in result["cards"][: args.limit]:
        print(f"  {card['count']:>6}  {card['card_name']}")

    db.close()
    return 0


def cmd_refresh_prices(args: argparse.Namespace) -> int:
    """Fetch a new price snapshot for a league."""
    settings = _settings_from_args(args)
    logger = setup_logging(portable=settings.portable, console=True)

    db = Database(settings.db_path)
    db.connect()

    cache = SnapshotCache(db, PriceClient(settings.price_api_url, settings.request_timeout))
    game = GameType(args.game)
    try:
        snapshot_id, snapshot = cache.refresh(game, args.league)
    except DivTrackError as e:
        logger.error(f"Price refresh failed: {e}")
        return 1
    finally:
        db.close()

    print(f"Snapshot {snapshot_id}: {snapshot.card_price_count} prices, "
          f"deck cost {snapshot.stacked_deck_chaos_cost:.2f}c")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the web server."""
    from divtrack.config.paths import is_frozen
    from divtrack.version import __version__

    portable = getattr(args, "portable", False) or is_frozen()
    logger = setup_logging(portable=portable, console=True)

    logger.info(f"DivTrack v{__version__} starting...")

    import uvicorn
    from divtrack.api.app import create_app

    settings = _settings_from_args(args)
    errors = settings.validate()
    if errors:
        for error in errors:
            logger.error(error)
        return 1

    logger.info(f"Database: {settings.db_path}")
    logger.info(f"Pricing service: {settings.price_api_url}")

    db = Database(settings.db_path)
    db.connect()

    event_bus = EventBus()
    cache = SnapshotCache(
        db,
        PriceClient(settings.price_api_url, settings.request_timeout),
        event_bus=event_bus,
    )
    manager = SessionManager(db, cache, event_bus=event_bus)
    manager.initialize()

    app = create_app(db, manager, cache)

    cleaned_up = False

    def cleanup() -> None:
        nonlocal cleaned_up
        if cleaned_up:
            return
        cleaned_up = True
        logger.info("Shutting down...")
        manager.shutdown()
        event_bus.close()
        db.close()

    def signal_handler(sig, frame):
        cleanup()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info(f"Server listening on http://{args.host}:{args.port}")
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
    finally:
        cleanup()
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="divtrack",
        description="Divination card farming session tracker",
    )
    parser.add_argument(
        "--db",
        type=str,
        help="Database file path",
    )
    parser.add_argument(
        "--portable",
        action="store_true",
        help="Use portable mode (data beside exe)",
    )
    parser.add_argument(
        "--price-api-url",
        type=str,
        help="Pricing service base URL",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init command
    subparsers.add_parser("init", help="Initialize database")

    game_choices = [game.value for game in GameType]

    # show-sessions command
    sessions_parser = subparsers.add_parser("show-sessions", help="List recent sessions")
    sessions_parser.add_argument("game", choices=game_choices)
    sessions_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of sessions to show (default: 20)",
    )

    # show-stats command
    stats_parser = subparsers.add_parser("show-stats", help="Show card drop statistics")
    stats_parser.add_argument("game", choices=game_choices)
    stats_parser.add_argument(
        "--league",
        type=str,
        help="League to show (default: all-time)",
    )
    stats_parser.add_argument(
        "--limit",
        type=int,
        default=25,
        help="Number of cards to show (default: 25)",
    )

    # refresh-prices command
    refresh_parser = subparsers.add_parser("refresh-prices", help="Fetch a new price snapshot")
    refresh_parser.add_argument("game", choices=game_choices)
    refresh_parser.add_argument("league", type=str)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start web server")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "init": cmd_init,
        "show-sessions": cmd_show_sessions,
        "show-stats": cmd_show_stats,
        "refresh-prices": cmd_refresh_prices,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func is None:
        print(f"Unknown command: {args.command}")
        return 1

    try:
        return cmd_func(args)
    except DivTrackError as e:
        get_logger().error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
