"""
Base Domain Classes

Building blocks shared by the trek and booking domains:
- DomainEvent: Something that happened, published after a successful commit
- Aggregate: Consistency boundary that records domain events while it mutates
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List
from uuid import UUID, uuid4


@dataclass
class DomainEvent:
    """
    Base class for domain events

    Subclasses declare their payload as plain dataclass fields.
    The envelope fields are keyword-only so payload fields need no defaults.
    """
    event_id: UUID = field(default_factory=uuid4, kw_only=True)
    occurred_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
        kw_only=True,
    )

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict:
        """Convert event to a JSON-friendly dictionary (used for Celery payloads and logs)"""
        payload = {}
        for item in fields(self):
            if item.name in ('event_id', 'occurred_at'):
                continue
            payload[item.name] = _jsonable(getattr(self, item.name))
        return {
            'event_id': str(self.event_id),
            'event_type': self.name,
            'occurred_at': self.occurred_at.isoformat(),
            'payload': payload,
        }


def _jsonable(value):
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


@dataclass
class Aggregate:
    """
    Base class for aggregate roots

    Aggregates collect domain events; a unit of work drains them
    and publishes them once the surrounding transaction commits.
    """
    _events: List[DomainEvent] = field(default_factory=list, repr=False, init=False, compare=False)

    def add_event(self, event: DomainEvent):
        """Add a domain event to be published"""
        self._events.append(event)

    def clear_events(self):
        """Clear all collected events (called after collection)"""
        self._events.clear()

    @property
    def events(self) -> List[DomainEvent]:
        """Get copy of collected events"""
        return self._events.copy()
