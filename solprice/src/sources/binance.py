"""Binance source.

Endpoint: https://api.binance.com/api/v3/ticker/price?symbol=SOLUSDT
Rate Limit: High (no key required for public endpoints)

Binance only lists SOL against USDT; the USDT quote is used as USD.
"""

import logging

from pydantic import BaseModel

from ..Quote import Quote
from .base import BaseSource, FetchError, register_source

logger = logging.getLogger(__name__)


class BinanceTickerPrice(BaseModel):
    """Response of /api/v3/ticker/price for a single symbol."""

    symbol: str
    price: float


@register_source
class BinanceSource(BaseSource):
    """Source for the Binance spot ticker.

    No API key required.
    """

    name = "binance"
    BASE_URL = "https://api.binance.com/api/v3"
    SYMBOL = "SOLUSDT"

    async def fetch_quote(self) -> Quote:
        """Fetch the last SOL/USDT trade price from Binance.

        :returns: Quote stamped with the local fetch time.
        :raises FetchError: On request failure or malformed response.
        """
        response = await self._get(
            f"{self.BASE_URL}/ticker/price", params={"symbol": self.SYMBOL}
        )
        ticker = self._decode(BinanceTickerPrice, response)

        if ticker.symbol != self.SYMBOL:
            raise FetchError(f"[binance] Unexpected symbol in response: {ticker.symbol}")

        return self._quote(ticker.price)
