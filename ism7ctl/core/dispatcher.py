"""Predicate-gated fan-out of decoded responses to registered handlers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ism7ctl.core.messages import Message

Predicate = Callable[[Message], bool]
Handler = Callable[[Message, asyncio.Event], Awaitable[None]]
LOGGER = logging.getLogger(__name__)


@dataclass(eq=False)
class Subscription:
    predicate: Predicate
    handler: Handler
    once: bool = False
    active: bool = True


def is_type(message_type: type) -> Predicate:
    return lambda message: isinstance(message, message_type)


class ResponseDispatcher:
    """Offers every dispatched message to the registered subscriptions in order.

    Dispatch runs one message at a time. Subscriptions added by a handler while
    a message is being dispatched are staged and only become visible to the
    next message. A ``once`` subscription is deactivated before its handler
    runs, so it can never fire twice. Handler errors propagate to the caller
    of :meth:`dispatch`.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._staged: list[Subscription] = []
        self._dispatching = False

    def __len__(self) -> int:
        return len(self._subscriptions) + len(self._staged)

    def subscribe(self, predicate: Predicate, handler: Handler, *, once: bool = False) -> Subscription:
        subscription = Subscription(predicate=predicate, handler=handler, once=once)
        if self._dispatching:
            self._staged.append(subscription)
        else:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        for registry in (self._subscriptions, self._staged):
            if subscription in registry:
                registry.remove(subscription)

    async def dispatch(self, message: Message, stop: asyncio.Event) -> int:
        """Run the handlers whose predicate accepts ``message``; return how many ran."""
        matched = 0
        self._dispatching = True
        try:
            for subscription in list(self._subscriptions):
                if not subscription.active or not subscription.predicate(message):
                    continue
                if subscription.once:
                    self.unsubscribe(subscription)
                matched += 1
                await subscription.handler(message, stop)
        finally:
            self._dispatching = False
            self._subscriptions.extend(s for s in self._staged if s.active)
            self._staged.clear()
        if not matched:
            LOGGER.debug("No subscription matched %s", type(message).__name__)
        return matched
