"""Connection records consumed by the engine.

Connections and groups are created and edited elsewhere; the engine only
needs to look a record up by id and to list the members of a group. Any
object implementing ``ConnectionDirectory`` can be plugged in.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from threading import Lock
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .errors import NotConfiguredError


DEFAULT_NAMESPACE = "default"


@dataclass(frozen=True)
class ConnectionRecord:
    id: int
    endpoint: str
    credential: str
    namespace: str = DEFAULT_NAMESPACE
    name: Optional[str] = None
    group_id: Optional[int] = None
    simulated: bool = False

    @property
    def display_name(self) -> str:
        return self.name or str(self.id)

    @property
    def effective_namespace(self) -> str:
        return (self.namespace or "").strip() or DEFAULT_NAMESPACE

    def fingerprint(self) -> Tuple[str, str]:
        """Values a live client depends on; a change means the client is stale."""
        return (self.endpoint, self.credential)

    def __repr__(self) -> str:
        # Keep the credential out of logs and tracebacks.
        return (
            f"ConnectionRecord(id={self.id!r}, name={self.name!r}, endpoint={self.endpoint!r}, "
            f"namespace={self.namespace!r}, group_id={self.group_id!r}, simulated={self.simulated!r})"
        )


class ConnectionDirectory(Protocol):
    def get_connection(self, connection_id: int) -> Optional[ConnectionRecord]:
        ...

    def list_connections_in_group(self, group_id: int) -> List[ConnectionRecord]:
        ...


def require_connection(directory: ConnectionDirectory, connection_id: int) -> ConnectionRecord:
    conn = directory.get_connection(connection_id)
    if conn is None:
        raise NotConfiguredError(
            f"Connection {connection_id} is not configured. Configure the cluster connection first.",
            connection_id=connection_id,
        )
    return conn


class InMemoryConnectionDirectory:
    """Thread-safe dict-backed directory.

    Useful for scripts and tests; a web layer would normally back the
    directory with its own connection table.
    """

    def __init__(self, connections: Iterable[ConnectionRecord] = ()) -> None:
        self._lock = Lock()
        self._connections: Dict[int, ConnectionRecord] = {c.id: c for c in connections}

    def get_connection(self, connection_id: int) -> Optional[ConnectionRecord]:
        with self._lock:
            return self._connections.get(connection_id)

    def list_connections_in_group(self, group_id: int) -> List[ConnectionRecord]:
        with self._lock:
            members = [c for c in self._connections.values() if c.group_id == group_id]
        return sorted(members, key=lambda c: c.id)

    def upsert(self, connection: ConnectionRecord) -> ConnectionRecord:
        with self._lock:
            self._connections[connection.id] = connection
        return connection

    def update(self, connection_id: int, **changes) -> ConnectionRecord:
        with self._lock:
            current = self._connections.get(connection_id)
            if current is None:
                raise NotConfiguredError(f"Connection {connection_id} is not configured.", connection_id=connection_id)
            updated = replace(current, **changes)
            self._connections[connection_id] = updated
            return updated

    def remove(self, connection_id: int) -> bool:
        with self._lock:
            return self._connections.pop(connection_id, None) is not None
