"""
Event Type Constants.

Standard event topics for application-wide pub/sub messaging.
Use these constants with EventBus for type-safe event handling.

Usage:
    from src.core.events import Events, EventBus
    
    event_bus.subscribe(Events.FOLDERS_CHANGED, on_folders_changed)
    event_bus.publish_sync(Events.FOLDERS_CHANGED, change_event)
"""


class Events:
    """
    Standard event topic constants for EventBus.
    
    Example:
        >>> from src.core.events import Events, EventBus
        >>> event_bus.subscribe(Events.FOLDERS_CHANGED, handler)
    """
    
    # Folder events - payload is a ChangeEvent, or None for "something changed"
    FOLDERS_CHANGED = "folders.changed"
    # Optimistic entry confirmed by this process - payload is a LocalReconcileEvent
    FOLDERS_LOCAL_RECONCILE = "folders.local_reconcile"
    # Backing store written by someone other than the adapter
    FOLDERS_EXTERNAL_CHANGE = "folders.external_change"
