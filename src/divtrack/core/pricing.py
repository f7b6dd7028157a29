"""Session valuation against a bound price snapshot."""

from typing import Iterable, Optional

from divtrack.core.models import (
    PriceSnapshot,
    PriceSource,
    SessionCard,
    SessionTotals,
    SourceTotals,
)


def empty_totals() -> SessionTotals:
    """Totals for a session without a usable snapshot."""
    return SessionTotals()


def compute_totals(
    cards: Iterable[SessionCard],
    snapshot: Optional[PriceSnapshot],
    total_count: int,
) -> SessionTotals:
    """
    Value a session's cards under both price sources.

    A card contributes nothing to a source's total when it is hidden for that
    source or has no price there. Net profit subtracts the snapshot's deck
    cost for every opened deck.

    Args:
        cards: Session cards
        snapshot: Snapshot bound at session start, or None
        total_count: Number of decks opened in the session

    Returns:
        SessionTotals with per-source values and net profit
    """
    if snapshot is None:
        return empty_totals()

    cards = list(cards)
    deck_cost = snapshot.stacked_deck_chaos_cost
    total_deck_cost = deck_cost * total_count

    per_source = {}
    for source in PriceSource:
        prices = snapshot.for_source(source)
        total_value = 0.0
        for card in cards:
            if card.is_hidden(source):
                continue
            price = prices.card_prices.get(card.card_name)
            if price is None:
                continue
            total_value += price.chaos_value * card.count
        per_source[source] = SourceTotals(
            total_value=total_value,
            net_profit=total_value - total_deck_cost,
            chaos_to_divine_ratio=prices.chaos_to_divine_ratio,
        )

    return SessionTotals(
        exchange=per_source[PriceSource.EXCHANGE],
        stash=per_source[PriceSource.STASH],
        stacked_deck_chaos_cost=deck_cost,
        total_deck_cost=total_deck_cost,
    )


def card_price_view(card: SessionCard, snapshot: Optional[PriceSnapshot]) -> dict:
    """Per-card display row with the price and value under each source."""
    view = {
        "name": card.card_name,
        "count": card.count,
        "first_seen_at": card.first_seen_at.isoformat(),
        "last_seen_at": card.last_seen_at.isoformat(),
    }
    for source in PriceSource:
        price = None
        if snapshot is not None:
            price = snapshot.for_source(source).card_prices.get(card.card_name)
        hidden = card.is_hidden(source)
        view[f"{source.value}_price"] = {
            "chaos_value": price.chaos_value if price else None,
            "divine_value": price.divine_value if price else None,
            "stack_size": price.stack_size if price else None,
            "total_value": price.chaos_value * card.count if price else 0.0,
            "hide_price": hidden,
        }
    return view
