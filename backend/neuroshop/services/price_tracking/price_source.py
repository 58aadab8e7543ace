"""
Price Sources

A price source observes the current price behind a product URL.

No production fetcher ships with this package. Deployments provide one by
implementing PriceSource (a scraper, a marketplace API client) and passing it
to PriceAlertEngine. JitterPriceSource is a demo stand-in that perturbs the
last known price and must not be used to drive real purchases.
"""
import random
from typing import Dict, Optional, Protocol, runtime_checkable

from ...exceptions import PriceSourceUnavailable


@runtime_checkable
class PriceSource(Protocol):
    """Capability: observe the current price for a URL."""

    def fetch(self, url: str, current_price: Optional[float] = None) -> float:
        """
        Return the observed price for `url`.

        current_price is the last recorded price, available to sources that
        need a reference point. Raises PriceSourceUnavailable when no price
        can be observed.
        """
        ...


class JitterPriceSource:
    """
    Demo source: uniform jitter of the last known price in [0.9x, 1.1x).
    """

    LOW = 0.9
    SPAN = 0.2

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def fetch(self, url: str, current_price: Optional[float] = None) -> float:
        if current_price is None:
            raise PriceSourceUnavailable(f"Jitter source needs a reference price for {url}")
        return current_price * (self.LOW + self.rng.random() * self.SPAN)


class FixedPriceSource:
    """Serves prices from a URL → price mapping. For tests and replays."""

    def __init__(self, prices: Dict[str, float]):
        self.prices = dict(prices)

    def fetch(self, url: str, current_price: Optional[float] = None) -> float:
        try:
            return self.prices[url]
        except KeyError:
            raise PriceSourceUnavailable(f"No price available for {url}")
