"""
Lifecycle observers notified when containers start and stop.
"""
from abc import ABC, abstractmethod
from typing import Iterable, Tuple, Type, TypeVar
import logging

from ..ENGINE.errors import ErrorKind, OrchestrationError
from ..MODELS.container_conf import Conf
from ..MODELS.identity import Id

logger = logging.getLogger(__name__)

P = TypeVar("P", bound="Plugin")


class Plugin(ABC):
    """
    Base class for plugins. Exceptions raised by a plugin are not caught.
    """

    @abstractmethod
    def started(self, id: Id, conf: Conf) -> None:
        """Called after the container for id is running."""

    @abstractmethod
    def stopped(self, id: Id, conf: Conf) -> None:
        """Called after the containers for id were stopped."""


class PluginDispatcher:
    """
    Holds the plugins supplied at construction, in registration order.
    """
    def __init__(self, plugins: Iterable[Plugin] = (), log: logging.Logger = logger):
        self._plugins: Tuple[Plugin, ...] = tuple(plugins)
        for plugin in self._plugins:
            log.info(f"Loaded {type(plugin).__name__} plugin")

    @property
    def plugins(self) -> Tuple[Plugin, ...]:
        return self._plugins

    def started(self, id: Id, conf: Conf) -> None:
        for plugin in self._plugins:
            plugin.started(id, conf)

    def stopped(self, id: Id, conf: Conf) -> None:
        for plugin in self._plugins:
            plugin.stopped(id, conf)

    def get(self, plugin_class: Type[P]) -> P:
        """
        Returns the loaded plugin whose class is exactly plugin_class.

        :raises OrchestrationError: If no such plugin is loaded.
        """
        for plugin in self._plugins:
            if type(plugin) is plugin_class:
                return plugin
        raise OrchestrationError(
            f"plugin {plugin_class.__name__} is not loaded", ErrorKind.CONFIGURATION
        )
