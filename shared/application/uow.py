"""
Unit of Work

Wraps a booking operation in one database transaction and publishes
the domain events it produced only after that transaction commits.
"""

from typing import List
import logging

from django.db import transaction

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class DjangoUnitOfWork:
    """
    Django implementation of Unit of Work

    Nested units of work become savepoints; their events are still
    published only after the outermost transaction commits.

    Usage:
        with DjangoUnitOfWork() as uow:
            batch = lock_batch(batch_id)
            ledger = load_ledger(batch)
            ledger.admit(seats)
            booking.save()
            uow.collect_events(ledger)
            uow.record(BookingCreated(...))
        # Events are published after commit
    """

    def __init__(self):
        self._events: List[DomainEvent] = []
        self._transaction = None

    def __enter__(self):
        """Start database transaction"""
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Complete or rollback transaction"""
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self._transaction.__exit__(exc_type, exc_val, exc_tb)

    def commit(self):
        """Schedule event publishing for after the database commit"""
        events = self._events.copy()
        self._events.clear()

        if events:
            logger.debug(f"Scheduling {len(events)} events for publication on commit")
            transaction.on_commit(lambda: self._publish_events(events))

    def rollback(self):
        """Discard events of a failed operation"""
        if self._events:
            logger.warning(f"Rolling back transaction, discarding {len(self._events)} events")
        self._events.clear()

    def record(self, event: DomainEvent):
        """Record an event raised outside of an aggregate"""
        self._events.append(event)

    def collect_events(self, aggregate):
        """Drain domain events from an aggregate root"""
        new_events = aggregate.events
        if new_events:
            self._events.extend(new_events)
            aggregate.clear_events()

    def _publish_events(self, events: List[DomainEvent]):
        from shared.application.message_bus import message_bus

        logger.info(f"Publishing {len(events)} domain events after commit")

        try:
            message_bus.publish_events(events)
        except Exception as e:
            # Data is committed already; publication failures surface in monitoring
            logger.error(f"Error publishing events: {e}", exc_info=True)
