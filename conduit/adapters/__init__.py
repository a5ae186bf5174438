"""Adapters package - normalized agent events and the per-task event bus."""
from __future__ import annotations

__all__ = [
    "AgentEvent",
    "AgentEventType",
    "EventBus",
    "dict_to_event",
]

from conduit.adapters.events import AgentEvent, AgentEventType, dict_to_event
from conduit.adapters.event_bus import EventBus
