"""Pricing service client and snapshot cache."""

from divtrack.pricing.client import PriceClient
from divtrack.pricing.snapshot_cache import SnapshotCache

__all__ = ["PriceClient", "SnapshotCache"]
