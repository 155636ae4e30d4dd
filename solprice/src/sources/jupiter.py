"""Jupiter source.

Endpoint: https://lite-api.jup.ag/price/v3?ids={mint}
Rate Limit: 60 req/min on the free tier
"""

import logging

from pydantic import BaseModel, RootModel

from ..Quote import Quote
from .base import BaseSource, FetchError, register_source

logger = logging.getLogger(__name__)

# Wrapped SOL mint address.
SOL_MINT = "So11111111111111111111111111111111111111112"


class JupiterTokenPrice(BaseModel):
    """Price entry for a single mint."""

    usdPrice: float


class JupiterPriceResponse(RootModel[dict[str, JupiterTokenPrice]]):
    """Mapping from mint address to price entry."""


@register_source
class JupiterSource(BaseSource):
    """Source for the Jupiter aggregator price API.

    The price is derived from on-chain DEX liquidity rather than a
    centralized order book.
    """

    name = "jupiter"
    BASE_URL = "https://lite-api.jup.ag/price/v3"

    async def fetch_quote(self) -> Quote:
        """Fetch the SOL price from Jupiter.

        :returns: Quote stamped with the local fetch time.
        :raises FetchError: On request failure or when SOL is missing.
        """
        response = await self._get(self.BASE_URL, params={"ids": SOL_MINT})
        prices = self._decode(JupiterPriceResponse, response).root

        entry = prices.get(SOL_MINT)
        if entry is None:
            raise FetchError("[jupiter] No price for SOL in response")

        return self._quote(entry.usdPrice)
