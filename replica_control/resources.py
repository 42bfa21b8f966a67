"""Namespaces and pods of one connection.

Reads return ``PodSummary`` objects; a missing pod is ``None`` (or ``False``
for mutations) rather than an error. Pod restart is a delete: a pod owned
by a ReplicaSet is recreated by it. Batch variants report one boolean per
pod name and never raise for a single pod.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from .cache import ClusterClientCache
from .connections import ConnectionDirectory, ConnectionRecord, require_connection
from .errors import ReplicaControlError, is_forbidden, log_translated
from .kube.clients import ClusterHandle
from .kube.namespaces import is_system_namespace, list_namespace_names, read_namespace
from .kube.pods import PodSummary, delete_pod, list_pods, read_pod, summarize_pod
from .simulated import SIMULATED_NAMESPACES, simulated_pod, simulated_pods

logger = logging.getLogger(__name__)


class ClusterResources:
    def __init__(self, directory: ConnectionDirectory, cache: ClusterClientCache) -> None:
        self._directory = directory
        self._cache = cache

    # ---- namespaces ----

    def list_namespaces(self, connection_id: int) -> List[str]:
        """Sorted namespace names, without ``kube-*`` and ``openshift-*``.

        A credential that may not list namespaces cluster-wide gets the
        connection's own namespace instead: a one-item list when that
        namespace exists, an empty list when the cluster reports it missing.
        """

        logger.info("Listing namespaces for connection %s", connection_id)
        connection = require_connection(self._directory, connection_id)
        if connection.simulated:
            return list(SIMULATED_NAMESPACES)

        handle = self._cache.get_handle(connection_id)
        if handle is None:
            return list(SIMULATED_NAMESPACES)
        try:
            names = list_namespace_names(handle.core, request_timeout=handle.request_timeout)
        except Exception as exc:  # noqa: BLE001
            if is_forbidden(exc):
                return self._own_namespace(handle, connection)
            raise self._failure(exc, "list namespaces", connection_id) from exc

        namespaces = sorted(n for n in names if not is_system_namespace(n))
        logger.info("Found %d namespace(s) on connection %s", len(namespaces), connection_id)
        return namespaces

    def _own_namespace(self, handle: ClusterHandle, connection: ConnectionRecord) -> List[str]:
        namespace = connection.effective_namespace
        logger.warning(
            "Connection %s may not list namespaces cluster-wide; using its namespace %s", connection.id, namespace
        )
        try:
            found = read_namespace(handle.core, namespace, request_timeout=handle.request_timeout)
        except Exception:  # noqa: BLE001
            # Reading a namespace object can be denied while its workloads are not.
            logger.error("Could not check namespace %s on connection %s", namespace, connection.id, exc_info=True)
            return [namespace]
        if found is None:
            logger.error("Namespace %s not found on connection %s", namespace, connection.id)
            return []
        return [namespace]

    # ---- pods ----

    def list_pods(self, connection_id: int, namespace: str) -> List[PodSummary]:
        logger.info("Listing pods in namespace %s for connection %s", namespace, connection_id)
        return self._list(connection_id, namespace, None)

    def list_pods_by_label(self, connection_id: int, namespace: str, label_selector: str) -> List[PodSummary]:
        logger.info(
            "Listing pods in namespace %s matching %s for connection %s", namespace, label_selector, connection_id
        )
        return self._list(connection_id, namespace, label_selector)

    def get_pod(self, connection_id: int, namespace: str, name: str) -> Optional[PodSummary]:
        handle = self._cache.get_handle(connection_id)
        if handle is None:
            return simulated_pod(namespace, name)
        try:
            pod = read_pod(handle.core, name, namespace, request_timeout=handle.request_timeout)
        except Exception as exc:  # noqa: BLE001
            raise self._failure(exc, "read pod", connection_id, namespace, name) from exc
        if pod is None:
            logger.warning("Pod %s/%s not found on connection %s", namespace, name, connection_id)
            return None
        return summarize_pod(pod)

    def restart_pod(self, connection_id: int, namespace: str, name: str) -> bool:
        """Delete the pod so its owner recreates it. False when the pod does not exist."""

        logger.info("Restarting pod %s/%s on connection %s", namespace, name, connection_id)
        handle = self._cache.get_handle(connection_id)
        if handle is None:
            logger.info("Simulated connection %s: restart of pod %s/%s accepted", connection_id, namespace, name)
            return True
        try:
            if read_pod(handle.core, name, namespace, request_timeout=handle.request_timeout) is None:
                logger.error("Pod %s/%s not found", namespace, name)
                return False
            deleted = delete_pod(handle.core, name, namespace, request_timeout=handle.request_timeout)
        except Exception as exc:  # noqa: BLE001
            raise self._failure(exc, "restart pod", connection_id, namespace, name) from exc

        if deleted:
            logger.info("Pod %s/%s deleted; it is recreated if a deployment owns it", namespace, name)
        else:
            logger.warning("Pod %s/%s disappeared before it could be deleted", namespace, name)
        return deleted

    def delete_pod(self, connection_id: int, namespace: str, name: str) -> bool:
        """Delete one pod. False when it does not exist."""

        logger.info("Deleting pod %s/%s on connection %s", namespace, name, connection_id)
        handle = self._cache.get_handle(connection_id)
        if handle is None:
            logger.info("Simulated connection %s: deletion of pod %s/%s accepted", connection_id, namespace, name)
            return True
        try:
            deleted = delete_pod(handle.core, name, namespace, request_timeout=handle.request_timeout)
        except Exception as exc:  # noqa: BLE001
            raise self._failure(exc, "delete pod", connection_id, namespace, name) from exc

        if deleted:
            logger.info("Pod %s/%s deleted", namespace, name)
        else:
            logger.warning("Pod %s/%s not found or already deleted", namespace, name)
        return deleted

    def restart_pods(self, connection_id: int, namespace: str, names: Iterable[str]) -> Dict[str, bool]:
        names = list(dict.fromkeys(names))
        logger.info("Restarting %d pod(s) in namespace %s for connection %s", len(names), namespace, connection_id)
        return _each(names, lambda n: self.restart_pod(connection_id, namespace, n), "restart", namespace)

    def delete_pods(self, connection_id: int, namespace: str, names: Iterable[str]) -> Dict[str, bool]:
        names = list(dict.fromkeys(names))
        logger.info("Deleting %d pod(s) in namespace %s for connection %s", len(names), namespace, connection_id)
        return _each(names, lambda n: self.delete_pod(connection_id, namespace, n), "delete", namespace)

    # ---- internals ----

    def _list(self, connection_id: int, namespace: str, label_selector: Optional[str]) -> List[PodSummary]:
        handle = self._cache.get_handle(connection_id)
        if handle is None:
            return simulated_pods(namespace, label_selector)
        try:
            pods = list_pods(handle.core, namespace, label_selector, request_timeout=handle.request_timeout)
        except Exception as exc:  # noqa: BLE001
            raise self._failure(exc, "list pods", connection_id, namespace) from exc
        return [summarize_pod(p) for p in pods]

    def _failure(
        self, exc: BaseException, action: str, connection_id: int, namespace: Optional[str] = None, name: Optional[str] = None
    ) -> ReplicaControlError:
        context = {"connection_id": connection_id}
        if namespace is not None:
            context["namespace"] = namespace
        if name is not None:
            context["name"] = name
        return log_translated(logger, exc, action, **context)


def _each(names: List[str], op: Callable[[str], bool], action: str, namespace: str) -> Dict[str, bool]:
    results: Dict[str, bool] = {}
    for name in names:
        try:
            results[name] = bool(op(name))
        except Exception:  # noqa: BLE001
            logger.error("Failed to %s pod %s in namespace %s", action, name, namespace, exc_info=True)
            results[name] = False
    return results
