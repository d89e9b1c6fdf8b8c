"""Base Connection - the contract every Nexus connection implements."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
import logging
from typing import Any

logger = logging.getLogger(__name__)


class Connection(ABC):
    """Abstract base for all Nexus connections.

    A module hands a connection its own configuration plus the host's global
    configuration. The host calls `connect` once the module is loaded and
    `disconnect` when it is torn down.
    """

    name: str = ""

    def __init__(self, config: Any, global_config: Mapping[str, Any] | None = None):
        self.config = config
        self.global_config: Mapping[str, Any] = global_config or {}

    @abstractmethod
    def connect(self) -> "Connection":
        """Establish the integration and return the connection."""
        ...

    @abstractmethod
    def disconnect(self) -> bool:
        """Release the integration. Returns True when it was released."""
        ...


def find_property(obj: Any, name: str) -> Any:
    """Depth-first search of nested mappings and lists for the key `name`.

    Returns the first value found, or None.
    """
    if isinstance(obj, Mapping):
        if name in obj:
            return obj[name]
        children = obj.values()
    elif isinstance(obj, (list, tuple)):
        children = obj
    else:
        return None

    for child in children:
        found = find_property(child, name)
        if found is not None:
            return found
    return None
