from abc import ABC, abstractmethod
import inspect
from typing import TYPE_CHECKING, Callable, List
from loguru import logger

if TYPE_CHECKING:
    from .locator import ServiceLocator
    from .config import ConfigManager

class BaseSystem(ABC):
    """
    Abstract Base Class for all core systems (EventBus, FoldersAdapter, ...).
    Ensures consistent initialization and access to the owning Locator and Config.
    
    Supports automatic event subscription via @subscribe_event decorator:
        from src.core.decorators import subscribe_event
        
        class MyService(BaseSystem):
            @subscribe_event("folders.external_change")
            def on_external_change(self, data):
                # Handle event
                pass
    """
    def __init__(self, locator: 'ServiceLocator', config: 'ConfigManager'):
        self.locator = locator
        self.config = config
        self._is_ready = False
        self._auto_unsubscribers: List[Callable[[], None]] = []

    @abstractmethod
    async def initialize(self):
        """
        Async initialization logic (e.g. resolving dependencies, warming caches).
        Should be called by the ServiceLocator during startup.
        
        Automatically subscribes methods decorated with @subscribe_event.
        """
        self._auto_subscribe_events()
        self._is_ready = True

    def _auto_subscribe_events(self) -> None:
        """
        Scan for methods decorated with @subscribe_event and subscribe them.
        
        Methods decorated with @subscribe_event("event.type") carry a
        _subscribed_events attribute listing the topics to subscribe to.
        """
        from .events import EventBus
        
        try:
            bus = self.locator.get_system(EventBus)
        except KeyError:
            logger.warning(f"{self.__class__.__name__}: EventBus not available for auto-subscription")
            return
        
        for name, method in inspect.getmembers(self, predicate=inspect.ismethod):
            if hasattr(method, '_subscribed_events'):
                for event in method._subscribed_events:
                    self._auto_unsubscribers.append(bus.subscribe(event, method))
                    logger.debug(f"{self.__class__.__name__}.{name} auto-subscribed to: {event}")

    @abstractmethod
    async def shutdown(self):
        """
        Cleanup logic. Drops subscriptions made by initialize().
        """
        for unsubscribe in self._auto_unsubscribers:
            unsubscribe()
        self._auto_unsubscribers.clear()
        self._is_ready = False

    @property
    def is_ready(self) -> bool:
        return self._is_ready

    async def __aenter__(self):
        """Async context manager entry: Initialize system."""
        if not self._is_ready:
            await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit: Shutdown system."""
        if self._is_ready:
            await self.shutdown()
