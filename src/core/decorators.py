"""
Decorator Utilities for Foundation.

Provides syntactic sugar for wiring systems to the EventBus.
"""


def subscribe_event(*event_types: str):
    """
    Decorator to mark a BaseSystem method as an event subscriber.
    
    The subscription is made by BaseSystem.initialize() and dropped by
    BaseSystem.shutdown().
    
    Args:
        *event_types: Event topics to subscribe to
        
    Usage:
        @subscribe_event(Events.FOLDERS_EXTERNAL_CHANGE)
        def notify_external_change(self, event=None):
            pass
    """
    def decorator(func):
        func._subscribed_events = list(event_types)
        return func
    return decorator
