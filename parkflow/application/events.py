"""
In-process event bus for domain events.

Observers are plain callables taking an Event. Delivery is synchronous
and in registration order; an observer that raises is logged and skipped
so the rest still receive the event.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from parkflow.core.logging import get_logger
from parkflow.domain.models import Event, EventKind

logger = get_logger(__name__)

Observer = Callable[[Event], None]


@dataclass
class _Subscription:
    observer: Observer
    kinds: frozenset[EventKind] | None

    def wants(self, kind: EventKind) -> bool:
        return self.kinds is None or kind in self.kinds


@dataclass
class EventBus:
    """
    Ordered publish/subscribe bus.

    Example:
        bus = EventBus()
        bus.subscribe(print, kinds=[EventKind.VEHICLE_ENTERED])
        bus.publish(EventKind.VEHICLE_ENTERED, {"plate": "ABC1234"})
    """

    _subscriptions: list[_Subscription] = field(default_factory=list)

    def subscribe(
        self,
        observer: Observer,
        kinds: Iterable[EventKind] | None = None,
    ) -> None:
        """
        Register an observer.

        Registering the same observer twice is a no-op.

        Args:
            observer: Callable invoked with each matching Event.
            kinds: Event kinds to receive; None receives everything.
        """
        if any(sub.observer is observer for sub in self._subscriptions):
            return
        selected = frozenset(kinds) if kinds is not None else None
        self._subscriptions.append(_Subscription(observer, selected))
        logger.debug("observer_subscribed", observer=_name_of(observer))

    def unsubscribe(self, observer: Observer) -> bool:
        """
        Remove an observer.

        Returns:
            bool: True if the observer was registered.
        """
        before = len(self._subscriptions)
        self._subscriptions = [sub for sub in self._subscriptions if sub.observer is not observer]
        return len(self._subscriptions) < before

    def publish(self, kind: EventKind, payload: Any = None) -> Event:
        """
        Deliver an event to every matching observer.

        Args:
            kind: Event kind.
            payload: Event body, usually a domain object.

        Returns:
            Event: The delivered event.
        """
        event = Event(kind=kind, payload=payload)
        for sub in list(self._subscriptions):
            if not sub.wants(kind):
                continue
            try:
                sub.observer(event)
            except Exception:
                logger.exception(
                    "observer_failed",
                    event_kind=kind.value,
                    observer=_name_of(sub.observer),
                )
        return event

    def __len__(self) -> int:
        return len(self._subscriptions)


def _name_of(observer: Observer) -> str:
    return getattr(observer, "__qualname__", type(observer).__name__)


def log_event(event: Event) -> None:
    """Observer that writes every domain event to the structured log."""
    payload = event.payload
    fields: dict[str, Any] = {}
    for attr in ("plate", "spot_id", "ticket_id", "amount", "kind", "category", "status"):
        value = getattr(payload, attr, None)
        if value is not None:
            fields[attr] = str(getattr(value, "value", value))
    logger.info("domain_event", event_kind=event.kind.value, **fields)


# Global event bus instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
