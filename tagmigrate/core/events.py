# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

import logging
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger("tagmigrate.events")


class EventType(Enum):
    DEFINITION_DEPLOYED = "definition_deployed"
    ORPHANED_INSTANCES = "orphaned_instances"
    INSTANCE_MIGRATED = "instance_migrated"
    MIGRATION_FAILED = "migration_failed"


class Event:
    def __init__(self, type: EventType, data: Dict[str, Any]):
        self.type = type
        self.data = data

    def __repr__(self):
        return f"Event({self.type.value}, {self.data})"


class EventBus:
    def __init__(self):
        self._subscribers: Dict[EventType, List[Callable[[Event], Any]]] = {}

    def subscribe(self, event_type: EventType, callback: Callable[[Event], Any]):
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(callback)

    def emit(self, event: Event):
        """Call subscribers in order; a failing subscriber is logged, not raised."""
        for callback in self._subscribers.get(event.type, []):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Subscriber for {event.type.value} failed")
