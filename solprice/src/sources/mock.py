"""Mock source for development when the real APIs are unreachable.

Not part of the default configuration.
"""

import random

from ..Quote import Quote
from .base import BaseSource, register_source


@register_source
class MockSource(BaseSource):
    """Random walk around a starting price.

    :ivar base_price: Last generated price.
    :ivar volatility_percent: Maximum move per fetch, in percent.
    """

    name = "mock"

    def __init__(
        self,
        timeout: float | None = None,
        base_price: float = 150.0,
        volatility_percent: float = 0.5,
        rng: random.Random | None = None,
    ):
        super().__init__(timeout=timeout)
        self.base_price = base_price
        self.volatility_percent = volatility_percent
        self._rng = rng or random.Random()

    async def fetch_quote(self) -> Quote:
        change = (self._rng.random() - 0.5) * 2 * self.volatility_percent
        price = self.base_price * (1 + change / 100)
        self.base_price = price
        return self._quote(price, confidence=abs(change) * 0.01)
