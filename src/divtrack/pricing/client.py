"""HTTP client for the card pricing service."""

import json
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime
from typing import Any, Optional

from divtrack.config.logging import get_logger
from divtrack.core.errors import PriceFetchError
from divtrack.core.models import (
    CardPrice,
    GameType,
    PriceSnapshot,
    SourcePrices,
    utc_now,
)
from divtrack.version import __version__

logger = get_logger()


class PriceClient:
    """Client for the pricing service snapshot endpoint."""

    USER_AGENT = f"DivTrack/{__version__}"

    def __init__(self, base_url: str, timeout: float = 10.0) -> None:
        """
        Initialize pricing client.

        Args:
            base_url: Service base URL (e.g., "https://prices.divtrack.app/api/v1")
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _make_request(self, endpoint: str, params: dict[str, str]) -> dict:
        """Make a GET request and decode the JSON body."""
        url = f"{self.base_url}{endpoint}?{urllib.parse.urlencode(params)}"
        headers = {
            "User-Agent": self.USER_AGENT,
            "Accept": "application/json",
        }

        try:
            req = urllib.request.Request(url, headers=headers)
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            raise PriceFetchError(f"Pricing service error: {e.code} {e.reason}") from e
        except urllib.error.URLError as e:
            raise PriceFetchError(f"Network error: {e.reason}") from e
        except (TimeoutError, ValueError) as e:
            raise PriceFetchError(f"Bad response from pricing service: {e}") from e

    def fetch_price_snapshot(self, game: GameType, league: str) -> PriceSnapshot:
        """
        Fetch the latest market prices for a league.

        Args:
            game: Game variant
            league: League name

        Returns:
            Parsed PriceSnapshot

        Raises:
            PriceFetchError: If the service is unreachable or the payload is malformed
        """
        data = self._make_request(
            "/snapshots/latest", {"game": game.value, "league": league}
        )
        try:
            snapshot = parse_snapshot(data)
        except (KeyError, TypeError, ValueError) as e:
            raise PriceFetchError(f"Malformed snapshot payload: {e}") from e

        logger.info(
            f"Fetched prices for {game.value}/{league}: "
            f"{snapshot.card_price_count} card prices"
        )
        return snapshot


def parse_snapshot(data: dict[str, Any]) -> PriceSnapshot:
    """Parse the camelCase snapshot payload returned by the pricing service."""
    return PriceSnapshot(
        timestamp=_parse_timestamp(data.get("timestamp")),
        stacked_deck_chaos_cost=float(data.get("stackedDeckChaosCost") or 0.0),
        exchange=_parse_source(data["exchange"]),
        stash=_parse_source(data["stash"]),
    )


def _parse_source(data: dict[str, Any]) -> SourcePrices:
    card_prices = {}
    for card_name, price in (data.get("cardPrices") or {}).items():
        stack_size = price.get("stackSize")
        card_prices[card_name] = CardPrice(
            chaos_value=float(price["chaosValue"]),
            divine_value=float(price["divineValue"]),
            stack_size=int(stack_size) if stack_size is not None else None,
        )
    return SourcePrices(
        chaos_to_divine_ratio=float(data["chaosToDivineRatio"]),
        card_prices=card_prices,
    )


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return utc_now()
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
