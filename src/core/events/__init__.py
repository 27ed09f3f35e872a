"""
Event System - Unified Pub/Sub Messaging.

Provides:
- Signal: Simple observer pattern for sync notifications (e.g., config or listing changes)
- EventBus: Topic-keyed pub/sub shared by the systems of one ServiceLocator
- Events: Standard event topic constants for type-safe subscriptions

Usage:
    from src.core.events import EventBus, Events
    
    unsubscribe = event_bus.subscribe(Events.FOLDERS_CHANGED, on_folders_changed)
    event_bus.publish_sync(Events.FOLDERS_CHANGED, change_event)
"""
from .observer import Signal
from .bus import EventBus
from .constants import Events


__all__ = ["Signal", "EventBus", "Events"]
