# core/domain/dispatcher.py
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, DefaultDict, List, Type, TypeVar

from django.db import transaction

from .events import DomainEvent

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT", bound=DomainEvent)
Handler = Callable[[EventT], None]


class DomainEventDispatcher:
    """
    In-process domain event dispatcher.

    Workflows emit with ``emit_on_commit`` from inside their transaction;
    handlers (``sales.handlers``) run once the ledger writes are durable.
    A handler registered for a base event class receives every subclass,
    most specific class first.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[Type[DomainEvent], List[Handler]] = defaultdict(list)

    def register_handler(self, event_type: Type[EventT]):
        """Decorator; registering the same function twice is a no-op."""

        def decorator(func: Handler) -> Handler:
            if func not in self._handlers[event_type]:
                self._handlers[event_type].append(func)
                logger.debug("Registered %s for %s", func.__name__, event_type.__name__)
            return func

        return decorator

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[Handler]:
        handlers: List[Handler] = []
        for cls in event_type.__mro__:
            for handler in self._handlers.get(cls, []):
                if handler not in handlers:
                    handlers.append(handler)
        return handlers

    def emit(self, event: DomainEvent) -> None:
        """
        Run every handler synchronously. A failing handler is logged and
        the remaining handlers still run.
        """
        event_name = type(event).__name__
        tenant_id = getattr(event, "tenant_id", None)
        handlers = self.handlers_for(type(event))

        if not handlers:
            logger.debug("No handlers for %s (tenant %s)", event_name, tenant_id)
            return

        logger.debug("Dispatching %s (tenant %s) to %d handler(s)", event_name, tenant_id, len(handlers))
        for handler in handlers:
            try:
                handler(event)  # type: ignore[arg-type]
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (tenant %s)",
                    handler.__name__,
                    event_name,
                    tenant_id,
                )

    def emit_on_commit(self, event: DomainEvent) -> None:
        """Dispatch after the surrounding transaction commits; never on rollback."""
        transaction.on_commit(lambda: self.emit(event))


dispatcher = DomainEventDispatcher()

register_handler = dispatcher.register_handler
emit = dispatcher.emit
emit_on_commit = dispatcher.emit_on_commit
