"""
Domain events emitted by the entity manager.

Events are delivered to an explicit ``EventBus`` passed to the data server,
so there is no process-wide handler registry.
"""

import inspect
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class EntityEventTypes:
    """Event types emitted for entity changes."""

    CREATE = "entity.create"
    UPDATE = "entity.update"
    DELETE = "entity.delete"
    ADD_RELATIONS = "entity.addRelations"
    REMOVE_RELATIONS = "entity.removeRelations"


class Event:
    """
    An entity change notification.

    ``data`` carries the payload, e.g. ``{namespace, modelSingularCode, after}``
    for ``entity.create``. ``source`` names the component that caused the change.
    """

    def __init__(
        self,
        event_type: str,
        data: Dict[str, Any],
        source: Optional[str] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type
        self.source = source
        self.data = data
        self.created_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the event to a dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
        }

    def __str__(self) -> str:
        return f"Event(id={self.id[:8]}, type={self.type})"

    def __repr__(self) -> str:
        return self.__str__()


EventHandler = Callable[[Event], Union[None, Awaitable[None]]]


class EventBus:
    """Dispatches events to handlers subscribed by event type.

    Handlers subscribed with ``"*"`` receive every event. Handler failures are
    logged and do not affect the operation that emitted the event, since the
    change is already persisted by then.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: Event) -> None:
        handlers = self._handlers.get(event.type, []) + self._handlers.get("*", [])
        logger.debug(f"Emitting event {event.type} to {len(handlers)} handlers")
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Event handler failed for {event}")


class RecordingEventBus(EventBus):
    """Event bus that keeps every emitted event, useful for auditing and tests."""

    def __init__(self) -> None:
        super().__init__()
        self.events: List[Event] = []

    async def emit(self, event: Event) -> None:
        self.events.append(event)
        await super().emit(event)

    def of_type(self, event_type: str) -> List[Event]:
        return [e for e in self.events if e.type == event_type]
