"""Base source interface and shared HTTP client management.

All price sources inherit from BaseSource and implement fetch_quote().
A shared httpx.AsyncClient is used across all sources to avoid connection overhead.

A source performs exactly one network call per fetch_quote() and decodes
exactly one response shape. Retry and timeout policy belong to SourceRunner.

.. code-block:: python

    @register_source
    class MySource(BaseSource):
        name = "mysource"

        async def fetch_quote(self) -> Quote:
            response = await self._get("https://api.example.com/sol")
            payload = self._decode(MyResponse, response)
            return self._quote(payload.price)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import ClassVar, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..Quote import Quote

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class FetchError(Exception):
    """Base exception for source fetch errors."""

    pass


class FetchTimeoutError(FetchError):
    """Raised when a fetch exceeds its time budget."""

    pass


class FetchHTTPError(FetchError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class BaseSource(ABC):
    """Abstract base class for price sources.

    Subclasses must implement:
        - name: Class variable identifying the source (e.g., "hermes", "binance")
        - fetch_quote(): Async method returning a Quote or raising FetchError

    :cvar name: Unique identifier for this source.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Source identification
    name: ClassVar[str] = ""

    # Default timeout for HTTP requests (seconds)
    DEFAULT_TIMEOUT = 10.0

    def __init__(self, timeout: float | None = None):
        """Initialize the source.

        :param timeout: Request timeout in seconds (default: 10).
        """
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all source instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        if BaseSource._shared_client is None or BaseSource._shared_client.is_closed:
            BaseSource._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
        return BaseSource._shared_client

    @classmethod
    def set_shared_client(cls, client: httpx.AsyncClient | None) -> None:
        """Replace the shared HTTP client (e.g. with a mocked transport).

        :param client: Client to share, or None to recreate lazily.
        """
        BaseSource._shared_client = client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseSource._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseSource._shared_client = None

    @abstractmethod
    async def fetch_quote(self) -> Quote:
        """Fetch the current SOL/USD quote.

        :returns: Quote produced from a single response.
        :raises FetchError: On network error, non-2xx response or malformed body.
        """
        pass

    def _quote(
        self,
        value: float,
        *,
        timestamp: datetime | None = None,
        confidence: float | None = None,
    ) -> Quote:
        """Build a Quote tagged with this source's name.

        :param value: Decoded price.
        :param timestamp: Observation time reported by the source, if any.
        :param confidence: Optional confidence reported by the source.
        :returns: The Quote.
        :raises FetchError: If the decoded value is not a valid price.
        """
        try:
            if timestamp is None:
                return Quote(value=value, source=self.name, confidence=confidence)
            return Quote(
                value=value,
                source=self.name,
                timestamp=timestamp,
                confidence=confidence,
            )
        except ValueError as e:
            raise FetchError(f"Invalid price from {self.name}: {e}") from e

    def _decode(self, model: type[ModelT], response: httpx.Response) -> ModelT:
        """Strictly decode a JSON response body into a pydantic model.

        :param model: Model describing the expected response shape.
        :param response: Successful HTTP response.
        :returns: The validated model instance.
        :raises FetchError: If the body is not JSON or misses required fields.
        """
        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            logger.debug(
                "[%s] Malformed response: %s", self.name, response.text[:200]
            )
            raise FetchError(
                f"Malformed response from {self.name}: "
                f"{e.error_count()} validation error(s)"
            ) from e

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises FetchHTTPError: On non-2xx response.
        :raises FetchError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            if not response.is_success:
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                raise FetchHTTPError(response.status_code, response.text[:200])
            return response
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetchError(f"Request failed: {e}") from e


# Registry of available sources (populated by subclass imports)
SOURCE_REGISTRY: dict[str, type[BaseSource]] = {}


def register_source(cls: type[BaseSource]) -> type[BaseSource]:
    """Decorator to register a source class in the global registry.

    :param cls: Source class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If source has no name defined.

    .. code-block:: python

        @register_source
        class BinanceSource(BaseSource):
            name = "binance"
            ...
    """
    if not cls.name:
        raise ValueError(f"Source {cls.__name__} must define a 'name' class variable")
    SOURCE_REGISTRY[cls.name] = cls
    return cls


def get_source(name: str, timeout: float | None = None) -> BaseSource:
    """Get a source instance by name.

    :param name: Source name (e.g., "hermes", "binance").
    :param timeout: Optional HTTP request timeout in seconds.
    :returns: Source instance.
    :raises ValueError: If source name is unknown.
    """
    if name not in SOURCE_REGISTRY:
        available = ", ".join(sorted(SOURCE_REGISTRY.keys()))
        raise ValueError(f"Unknown source '{name}'. Available: {available}")
    return SOURCE_REGISTRY[name](timeout=timeout)


def get_available_sources() -> list[str]:
    """Get list of available source names.

    :returns: Sorted list of registered source names.
    """
    return sorted(SOURCE_REGISTRY.keys())
