"""Pyth Hermes source.

Endpoint: https://hermes.pyth.network/v2/updates/price/latest?ids[]={feed_id}&parsed=true
Rate Limit: 30 req/10s per IP (no key required)
Confidence: Yes (Pyth confidence interval, in USD)
"""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from ..Quote import Quote
from .base import BaseSource, FetchError, register_source

logger = logging.getLogger(__name__)

# Pyth SOL/USD price feed id.
SOL_USD_PRICE_FEED_ID = "ef0d8b6fda2ceba41da15d4095d1da392a0d2f8ed0c6c7bc0f4cfac8c280b56d"


class HermesPrice(BaseModel):
    """Fixed-point price as published by Pyth."""

    price: int
    conf: int
    expo: int
    publish_time: int


class HermesPriceUpdate(BaseModel):
    """One parsed price update."""

    id: str
    price: HermesPrice


class HermesLatestResponse(BaseModel):
    """Response of /v2/updates/price/latest with parsed=true."""

    parsed: list[HermesPriceUpdate] = Field(min_length=1)


@register_source
class HermesSource(BaseSource):
    """Source for the Pyth Hermes price service.

    Prices are published as fixed-point integers with a decimal exponent;
    the confidence interval uses the same exponent.
    """

    name = "hermes"
    BASE_URL = "https://hermes.pyth.network"

    def __init__(
        self,
        timeout: float | None = None,
        base_url: str | None = None,
    ):
        """Initialize with an optional alternative Hermes endpoint."""
        super().__init__(timeout=timeout)
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    async def fetch_quote(self) -> Quote:
        """Fetch the latest SOL/USD price update from Hermes.

        :returns: Quote with Pyth's publish time and confidence.
        :raises FetchError: On request failure or malformed response.
        """
        response = await self._get(
            f"{self.base_url}/v2/updates/price/latest",
            params={"ids[]": SOL_USD_PRICE_FEED_ID, "parsed": "true"},
        )
        payload = self._decode(HermesLatestResponse, response)

        update = payload.parsed[0]
        if update.id.lower().removeprefix("0x") != SOL_USD_PRICE_FEED_ID:
            raise FetchError(f"[hermes] Unexpected feed id in response: {update.id}")

        scale = 10 ** update.price.expo
        return self._quote(
            update.price.price * scale,
            timestamp=datetime.fromtimestamp(update.price.publish_time, tz=timezone.utc),
            confidence=update.price.conf * scale,
        )
