"""Registry of live array connections."""

import logging
from typing import Callable, Iterable, List, Optional

from array_orchestrator.errors import ConfigurationError, NotConfiguredError, NotFoundError
from array_orchestrator.flasharray import authenticate
from array_orchestrator.models import ArrayCredentials

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Holds every known array connection and at most one default.

    Calls that omit an explicit array resolve their targets here. The
    default, when set, is always a member of the registered set.
    """

    def __init__(self):
        self._connections: List = []
        self._default = None

    def __len__(self):
        return len(self._connections)

    def __contains__(self, connection):
        return any(existing is connection for existing in self._connections)

    def register(self, connection, default: bool = False, non_default: bool = False):
        """
        Add a connection, optionally as the default.

        Args:
            connection: Authenticated array connection
            default: Register as the default connection
            non_default: Register without touching the default

        Raises:
            ConfigurationError: unless exactly one of default/non_default is set
        """
        _validate_role(default, non_default)

        if connection not in self:
            self._connections.append(connection)
        if default:
            self._default = connection
            logger.info(f"Default array connection set to {connection.endpoint}")
        return connection

    def connect(
        self,
        endpoint: str,
        credentials: ArrayCredentials,
        default: bool = False,
        non_default: bool = False,
        connector: Callable = authenticate,
        **kwargs,
    ):
        """Authenticate to an array and register the resulting connection."""
        _validate_role(default, non_default)
        connection = connector(endpoint, credentials, **kwargs)
        return self.register(connection, default=default, non_default=non_default)

    def default(self):
        if self._default is None:
            raise NotConfiguredError("No default array connection. Register one with default=True.")
        return self._default

    def all(self) -> List:
        if not self._connections:
            raise NotConfiguredError("No array connections are registered.")
        return list(self._connections)

    def resolve_by_id(self, array_id: str, candidates: Optional[Iterable] = None):
        """Return the first candidate whose cached serial equals array_id (case-insensitive)."""
        candidates = self.all() if candidates is None else candidates
        wanted = (array_id or "").lower()
        for connection in candidates:
            if (connection.serial or "").lower() == wanted:
                return connection
        raise NotFoundError(f"No connected array has id {array_id}")

    def resolve_by_endpoint(self, endpoint: str):
        wanted = (endpoint or "").lower()
        for connection in self.all():
            if connection.endpoint.lower() == wanted:
                return connection
        raise NotFoundError(f"No connection to {endpoint} is registered")

    def disconnect(self, connection) -> None:
        if connection not in self:
            raise NotFoundError(f"{connection.endpoint} is not registered")
        self._connections = [existing for existing in self._connections if existing is not connection]
        if self._default is connection:
            self._default = None
        connection.close()
        logger.info(f"Disconnected from {connection.endpoint}")


def _validate_role(default: bool, non_default: bool) -> None:
    if default and non_default:
        raise ConfigurationError("A connection cannot be both default and non-default")
    if not default and not non_default:
        raise ConfigurationError("Choose default or non-default for the connection")
