"""PriceObservers: Subscriber registry for published prices.

``subscribe`` returns a Subscription handle; ``unsubscribe`` takes the
handle, so registering the same callback twice yields two independent
subscriptions. Notification iterates over a snapshot, so listeners may
unsubscribe while being notified.

.. code-block:: python

    >>> observers = PriceObservers()
    >>> sub = observers.subscribe(lambda quote: print(quote.value))
    >>> observers.notify(Quote(145.0, "aggregated"))
    145.0
    >>> observers.unsubscribe(sub)
    True
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass

from .Quote import Quote

logger = logging.getLogger(__name__)

PriceCallback = Callable[[Quote], None]


@dataclass(frozen=True)
class Subscription:
    """Handle identifying one registration.

    :ivar id: Unique, increasing registration number.
    :ivar callback: The registered listener.
    """

    id: int
    callback: PriceCallback


class PriceObservers:
    """Ordered registry of price listeners."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._subscriptions: dict[int, Subscription] = {}

    def __len__(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: PriceCallback) -> Subscription:
        """Register a listener.

        :param callback: Called with every published quote.
        :returns: Handle to pass to unsubscribe().
        """
        subscription = Subscription(id=next(self._ids), callback=callback)
        self._subscriptions[subscription.id] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a registration.

        :param subscription: Handle returned by subscribe().
        :returns: True if the registration existed.
        """
        return self._subscriptions.pop(subscription.id, None) is not None

    def notify(self, quote: Quote) -> None:
        """Call every listener in registration order.

        A failing listener is logged and does not prevent the others from
        being called.

        :param quote: Quote to publish.
        """
        for subscription in list(self._subscriptions.values()):
            try:
                subscription.callback(quote)
            except Exception:
                logger.exception(f"Price listener #{subscription.id} raised")
