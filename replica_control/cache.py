"""Per-connection cache of live cluster clients.

At most one live ``ClusterHandle`` exists per connection id. Handles are
created lazily, replaced when the connection's endpoint or token changes,
and closed whenever they leave the cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from .config import ReplicaControlConfig, get_config
from .connections import ConnectionDirectory, ConnectionRecord, require_connection
from .errors import ClusterConnectionError, ReplicaControlError
from .kube.clients import ClusterHandle, build_handle
from .kube.cluster import check_reachability

logger = logging.getLogger(__name__)


HandleFactory = Callable[[ConnectionRecord], ClusterHandle]


@dataclass
class _Entry:
    handle: ClusterHandle
    fingerprint: Tuple[str, str]


class ClusterClientCache:
    def __init__(
        self,
        directory: ConnectionDirectory,
        *,
        config: Optional[ReplicaControlConfig] = None,
        handle_factory: Optional[HandleFactory] = None,
        probe_on_create: bool = True,
    ) -> None:
        self._directory = directory
        self._config = config or get_config()
        self._factory = handle_factory or self._default_factory
        self._probe_on_create = probe_on_create

        self._table_lock = Lock()
        self._key_locks: Dict[int, Lock] = {}
        self._entries: Dict[int, _Entry] = {}

    def _default_factory(self, connection: ConnectionRecord) -> ClusterHandle:
        return build_handle(
            connection,
            verify_ssl=self._config.verify_ssl,
            ca_file=self._config.ca_file,
            request_timeout=self._config.request_timeout,
        )

    def _lock_for(self, connection_id: int) -> Lock:
        with self._table_lock:
            lock = self._key_locks.get(connection_id)
            if lock is None:
                lock = Lock()
                self._key_locks[connection_id] = lock
            return lock

    def get_handle(self, connection_id: int) -> Optional[ClusterHandle]:
        """Return the live handle for a connection.

        Returns None for simulated connections, which have no cluster behind
        them. Raises NotConfiguredError for unknown ids and
        ClusterConnectionError when a client cannot be built.
        """

        with self._lock_for(connection_id):
            # Resolved under the lock so an older record can never replace a newer handle.
            connection = require_connection(self._directory, connection_id)
            entry = self._entries.get(connection_id)

            if connection.simulated:
                # A connection flipped to simulated must not keep a live client around.
                if entry is not None:
                    del self._entries[connection_id]
                    _close_quietly(entry.handle, connection_id)
                    logger.info("Connection %s is simulated; cached client closed", connection_id)
                return None

            fingerprint = connection.fingerprint()
            if entry is not None:
                if entry.fingerprint == fingerprint:
                    return entry.handle
                logger.info("Connection %s changed; replacing its cached client", connection_id)
                del self._entries[connection_id]
                _close_quietly(entry.handle, connection_id)

            handle = self._create(connection)
            self._entries[connection_id] = _Entry(handle=handle, fingerprint=fingerprint)
            return handle

    def _create(self, connection: ConnectionRecord) -> ClusterHandle:
        logger.info("Creating cluster client for connection %s (ID: %s)", connection.display_name, connection.id)
        try:
            handle = self._factory(connection)
        except ReplicaControlError:
            logger.error("Failed to create cluster client for connection %s", connection.id)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to create cluster client for connection %s", connection.id, exc_info=True)
            raise ClusterConnectionError(
                f"Failed to connect to {connection.display_name}: {exc}",
                connection_id=connection.id,
            ) from exc

        if self._probe_on_create:
            probe = check_reachability(handle.version, request_timeout=handle.request_timeout)
            if probe["ok"]:
                logger.info(
                    "Connected to cluster %s (ID: %s), version %s",
                    connection.endpoint,
                    connection.id,
                    (probe.get("version") or {}).get("gitVersion"),
                )
            else:
                logger.warning(
                    "Could not read the version of cluster %s (ID: %s); keeping the client: %s",
                    connection.endpoint,
                    connection.id,
                    probe.get("error"),
                )
        return handle

    def invalidate(self, connection_id: int) -> None:
        with self._lock_for(connection_id):
            entry = self._entries.pop(connection_id, None)
        if entry is not None:
            _close_quietly(entry.handle, connection_id)
            logger.info("Cluster client cache cleared for connection %s", connection_id)

    def invalidate_all(self) -> None:
        with self._table_lock:
            ids = list(self._key_locks.keys())
        for connection_id in ids:
            self.invalidate(connection_id)
        logger.info("Cluster client cache cleared")

    close = invalidate_all

    def cached_ids(self) -> List[int]:
        with self._table_lock:
            return sorted(self._entries.keys())


def _close_quietly(handle: ClusterHandle, connection_id: int) -> None:
    try:
        handle.close()
    except Exception:  # noqa: BLE001
        logger.warning("Error while closing client for connection %s", connection_id, exc_info=True)
