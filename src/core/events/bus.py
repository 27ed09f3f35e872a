"""
EventBus - Unified Event System

Topic-keyed publish/subscribe channel shared by every system registered in
one ServiceLocator. Delivery is synchronous and in subscription order.
"""
import asyncio
import inspect
from typing import Any, Callable, Dict, List
from loguru import logger

from src.core.base_system import BaseSystem


class EventBus(BaseSystem):
    """
    Unified event bus for application-wide pub/sub.
    
    Usage:
        # Subscribe
        unsubscribe = event_bus.subscribe(Events.FOLDERS_CHANGED, on_folders_changed)
        
        # Publish (handlers run before publish_sync returns)
        event_bus.publish_sync(Events.FOLDERS_CHANGED, change_event)
        
        # Stop listening
        unsubscribe()
    """
    
    def __init__(self, locator, config):
        super().__init__(locator, config)
        self._subscribers: Dict[str, List[Callable]] = {}
    
    async def initialize(self):
        """Initialize event bus."""
        logger.info("EventBus initialized")
        await super().initialize()
    
    async def shutdown(self):
        """Shutdown event bus."""
        self._subscribers.clear()
        await super().shutdown()
    
    def subscribe(self, event: str, handler: Callable) -> Callable[[], None]:
        """
        Subscribe to an event.
        
        Args:
            event: Event topic (e.g., "folders.changed")
            handler: Callback function (sync or async), called with the event data
            
        Returns:
            Callable that removes this subscription
        """
        if event not in self._subscribers:
            self._subscribers[event] = []
        
        if handler not in self._subscribers[event]:
            self._subscribers[event].append(handler)
            logger.debug(f"Subscribed to {event}: {getattr(handler, '__name__', handler)}")
        
        return lambda: self.unsubscribe(event, handler)
    
    def unsubscribe(self, event: str, handler: Callable) -> None:
        """
        Unsubscribe from an event.
        
        Args:
            event: Event topic
            handler: Handler to remove
        """
        if event in self._subscribers and handler in self._subscribers[event]:
            self._subscribers[event].remove(handler)
            logger.debug(f"Unsubscribed from {event}: {getattr(handler, '__name__', handler)}")
    
    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))
    
    def publish_sync(self, event: str, data: Any = None) -> None:
        """
        Publish an event synchronously.
        
        Sync handlers run before this returns, in subscription order. Async
        handlers are scheduled as tasks on the running loop. A failing handler
        is logged and does not stop delivery to the rest.
        
        Args:
            event: Event topic
            data: Optional event payload (None means "changed, no detail")
        """
        # Snapshot: handlers may unsubscribe while being notified
        handlers = list(self._subscribers.get(event, []))
        
        for handler in handlers:
            try:
                if inspect.iscoroutinefunction(handler):
                    asyncio.ensure_future(handler(data))
                else:
                    handler(data)
            except Exception as e:
                logger.error(f"Error in handler for {event}: {e}")
