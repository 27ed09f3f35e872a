"""
Foundation Core - Application Infrastructure.

Provides core systems shared by the folder synchronization services:
- ServiceLocator: Dependency injection and system management
- BaseSystem: Abstract base for all systems
- ConfigManager: Configuration with persistence
- EventBus: Unified pub/sub messaging
- Signal: Synchronous observer

Usage:
    from src.core import ServiceLocator, ConfigManager, EventBus
    
    locator = ServiceLocator(ConfigManager("config.json"))
    locator.register_system(EventBus)
    await locator.start_all()
"""
from .base_system import BaseSystem
from .locator import ServiceLocator
from .config import ConfigManager, AppConfig, GeneralSettings, FolderSyncSettings
from .events import Signal, EventBus, Events
from .decorators import subscribe_event
from .service_decorator import Service
from .logging import setup_logging

__all__ = [
    # Core infrastructure
    "BaseSystem",
    "ServiceLocator",
    
    # Configuration
    "ConfigManager",
    "AppConfig",
    "GeneralSettings",
    "FolderSyncSettings",
    
    # Events
    "Signal",
    "EventBus",
    "Events",
    "subscribe_event",
    "Service",
    
    # Logging
    "setup_logging",
]
