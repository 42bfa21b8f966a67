from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from kubernetes import client

from ..connections import ConnectionRecord
from ..errors import ClusterConnectionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClusterHandle:
    """Live API access to one cluster.

    All typed APIs share ``api_client``; closing the handle closes its
    connection pool.
    """

    connection_id: int
    api_client: Any
    core: client.CoreV1Api
    apps: client.AppsV1Api
    version: client.VersionApi
    request_timeout: Optional[int] = None

    def close(self) -> None:
        close = getattr(self.api_client, "close", None)
        if close is not None:
            close()


def build_handle(
    connection: ConnectionRecord,
    *,
    verify_ssl: bool = False,
    ca_file: Optional[str] = None,
    request_timeout: Optional[int] = None,
) -> ClusterHandle:
    """Create API clients for one connection using its endpoint and bearer token.

    This is the single place where a cluster configuration is built, so the
    rest of the engine never touches global kubeconfig state.
    """

    endpoint = (connection.endpoint or "").strip()
    if not endpoint:
        raise ClusterConnectionError(
            f"Connection {connection.display_name} has no API endpoint configured.",
            connection_id=connection.id,
        )
    if not (connection.credential or "").strip():
        raise ClusterConnectionError(
            f"Connection {connection.display_name} has no token configured.",
            connection_id=connection.id,
        )

    configuration = client.Configuration()
    configuration.host = endpoint.rstrip("/")
    configuration.api_key = {"authorization": connection.credential.strip()}
    configuration.api_key_prefix = {"authorization": "Bearer"}
    configuration.verify_ssl = bool(verify_ssl)
    if ca_file:
        configuration.ssl_ca_cert = ca_file

    try:
        api_client = client.ApiClient(configuration)
    except Exception as exc:  # noqa: BLE001
        raise ClusterConnectionError(
            f"Failed to create a client for {connection.display_name} ({endpoint}): {exc}",
            connection_id=connection.id,
        ) from exc

    logger.debug("Built API client for connection %s at %s", connection.id, endpoint)
    return ClusterHandle(
        connection_id=connection.id,
        api_client=api_client,
        core=client.CoreV1Api(api_client),
        apps=client.AppsV1Api(api_client),
        version=client.VersionApi(api_client),
        request_timeout=request_timeout,
    )
