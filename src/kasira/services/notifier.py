from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

log = logging.getLogger(__name__)

STOCK_CHANGED = "stock-changed"
TRANSACTION_CREATED = "transaction-created"
PAYMENT_STATUS_UPDATED = "payment-status-updated"

Handler = Callable[[Any], None]


def owner_channel(owner_id: str) -> str:
    return f"owner.{owner_id}"


def branch_channel(branch_id: str) -> str:
    return f"branch.{branch_id}"


@dataclass(frozen=True, eq=False)
class Subscription:
    channel: str
    event: str
    handler: Handler


class EventNotifier:
    """In-process publish/subscribe registry.

    Delivery is synchronous, at-most-once and non-durable. Listeners run in
    registration order; a failing listener is logged and does not stop its
    siblings or the publisher.
    """

    def __init__(self):
        self._listeners: dict[tuple[str, str], list[Subscription]] = {}

    def subscribe(self, channel: str, event: str, handler: Handler) -> Subscription:
        sub = Subscription(channel=channel, event=event, handler=handler)
        self._listeners.setdefault((channel, event), []).append(sub)
        log.debug("listener_added channel=%s event=%s", channel, event)
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        key = (subscription.channel, subscription.event)
        subs = self._listeners.get(key, [])
        if subscription not in subs:
            return False
        subs.remove(subscription)
        if not subs:
            del self._listeners[key]
        return True

    def stop_listening(self, channel: str, event: str) -> None:
        self._listeners.pop((channel, event), None)

    def listener_count(self, channel: str, event: str) -> int:
        return len(self._listeners.get((channel, event), []))

    def publish(self, channel: str, event: str, payload: Any = None) -> int:
        delivered = 0
        for sub in list(self._listeners.get((channel, event), [])):
            try:
                sub.handler(payload)
                delivered += 1
            except Exception:
                log.exception("listener_failed channel=%s event=%s", channel, event)
        log.debug("event_published channel=%s event=%s delivered=%s", channel, event, delivered)
        return delivered
