"""
Message Bus

Routes domain events to the handlers registered for them.
Handlers are registered once at app start-up (see BookingsConfig.ready).
"""

from typing import Callable, Dict, List, Type
import logging

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class MessageBus:
    """
    Event bus

    Events: Multiple handlers per event (1:N).
    A failing handler is logged and never stops the remaining handlers.
    """

    def __init__(self):
        self._event_handlers: Dict[Type[DomainEvent], List[Callable]] = {}

    def register_event_handler(
        self,
        event_type: Type[DomainEvent],
        handler: Callable[[DomainEvent], None]
    ):
        """Register a handler; registering the same handler twice is a no-op"""
        handlers = self._event_handlers.setdefault(event_type, [])
        if handler in handlers:
            return
        handlers.append(handler)
        logger.debug(f"Registered event handler {handler.__name__} for {event_type.__name__}")

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[Callable]:
        return list(self._event_handlers.get(event_type, []))

    def publish_events(self, events: List[DomainEvent]):
        """
        Publish domain events

        All registered handlers for each event type will be called.
        """
        for event in events:
            handlers = self.handlers_for(type(event))

            if not handlers:
                logger.debug(f"No handlers registered for event {event.name}")
                continue

            logger.info(f"Publishing event: {event.name} (ID: {event.event_id})")

            for handler in handlers:
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        f"Error in event handler {handler.__name__} "
                        f"for event {event.name}: {e}",
                        exc_info=True
                    )


# Global message bus instance
message_bus = MessageBus()
