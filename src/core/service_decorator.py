"""
Service Decorator.

Reduces boilerplate for Service initialization and logging.
"""
from functools import wraps
from typing import Type, TypeVar

from loguru import logger

T = TypeVar("T")


def Service(cls: Type[T]) -> Type[T]:
    """
    Decorator for Services.
    - Adds automatic logging for initialize/shutdown.
    - Warns when initialize() returns without the system becoming ready
      (a subclass that forgot ``await super().initialize()``).
    """
    orig_initialize = getattr(cls, 'initialize', None)
    orig_shutdown = getattr(cls, 'shutdown', None)

    @wraps(orig_initialize)
    async def wrapped_initialize(self, *args, **kwargs):
        service_name = self.__class__.__name__
        logger.debug(f"Initializing Service: {service_name}")

        result = await orig_initialize(self, *args, **kwargs)

        if hasattr(self, 'is_ready') and not self.is_ready:
            logger.warning(f"Service {service_name} did not become ready after initialize (missing super().initialize()?).")

        logger.info(f"Service Initialized: {service_name}")
        return result

    @wraps(orig_shutdown)
    async def wrapped_shutdown(self, *args, **kwargs):
        service_name = self.__class__.__name__
        logger.debug(f"Shutting down Service: {service_name}")

        result = await orig_shutdown(self, *args, **kwargs)

        logger.info(f"Service Shutdown: {service_name}")
        return result

    if orig_initialize:
        cls.initialize = wrapped_initialize

    if orig_shutdown:
        cls.shutdown = wrapped_shutdown

    return cls
