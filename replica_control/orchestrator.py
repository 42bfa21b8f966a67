"""Scale, restart, shut down and restore deployments of one connection.

Single-item operations propagate ``ReplicaControlError`` subclasses to the
caller. Namespace-wide and batch operations catch every per-item failure,
record it as ``False`` and keep going; only a failure to list the
namespace itself escapes them.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from kubernetes.client import ApiException

from .cache import ClusterClientCache
from .errors import ReplicaControlError, is_not_found, log_translated
from .kube.clients import ClusterHandle
from .kube.pods import delete_pods_matching, selector_labels, to_label_selector
from .kube.workloads import (
    WorkloadSummary,
    list_deployments,
    read_deployment,
    rolling_restart,
    scale_deployment,
    summarize_deployment,
)
from .simulated import simulated_workload, simulated_workloads
from .state.baselines import BaselineStore

logger = logging.getLogger(__name__)


class DeploymentOrchestrator:
    def __init__(self, cache: ClusterClientCache, baselines: BaselineStore) -> None:
        self._cache = cache
        self._baselines = baselines

    @property
    def baselines(self) -> BaselineStore:
        return self._baselines

    # ---- reads ----

    def list_workloads(self, connection_id: int, namespace: str) -> List[WorkloadSummary]:
        """List deployments annotated with their baseline.

        The first successful non-empty listing of a namespace without any
        baseline stores the current desired counts as its baseline.
        """

        logger.info("Listing deployments in namespace %s for connection %s", namespace, connection_id)
        workloads = self._fetch_workloads(connection_id, namespace)

        if workloads and not self._baselines.has_baseline(connection_id, namespace):
            logger.info(
                "No baseline for connection %s, namespace %s; capturing current replicas", connection_id, namespace
            )
            self._baselines.snapshot(connection_id, namespace, _desired_counts(workloads))

        baseline = self._baselines.get_baseline(connection_id, namespace)
        for w in workloads:
            w.baseline_replicas = baseline.get(w.name, w.desired_replicas)
        return workloads

    def get_workload(self, connection_id: int, namespace: str, name: str) -> Optional[WorkloadSummary]:
        handle = self._cache.get_handle(connection_id)
        if handle is None:
            workload = simulated_workload(namespace, name)
        else:
            try:
                deployment = read_deployment(handle.apps, name, namespace, request_timeout=handle.request_timeout)
            except Exception as exc:  # noqa: BLE001
                raise self._failure(exc, "read deployment", connection_id, namespace, name) from exc
            if deployment is None:
                logger.info("Deployment %s/%s not found on connection %s", namespace, name, connection_id)
                return None
            workload = summarize_deployment(deployment)

        if workload is not None:
            baseline = self._baselines.get_baseline_for(connection_id, namespace, name)
            if baseline is not None:
                workload.baseline_replicas = baseline
        return workload

    # ---- single deployment ----

    def scale(self, connection_id: int, namespace: str, name: str, replicas: int) -> bool:
        """Set the desired replica count. False when the deployment does not exist."""

        if replicas < 0:
            raise ValueError(f"replicas must be >= 0, got {replicas}")

        logger.info("Scaling %s/%s to %d replicas on connection %s", namespace, name, replicas, connection_id)
        handle = self._cache.get_handle(connection_id)
        if handle is None:
            logger.info("Simulated connection %s: scale of %s/%s accepted", connection_id, namespace, name)
            return True

        try:
            if read_deployment(handle.apps, name, namespace, request_timeout=handle.request_timeout) is None:
                logger.error("Deployment %s/%s not found", namespace, name)
                return False
            scale_deployment(handle.apps, name, namespace, replicas, request_timeout=handle.request_timeout)
        except ApiException as exc:
            if is_not_found(exc):
                logger.error("Deployment %s/%s disappeared while scaling", namespace, name)
                return False
            raise self._failure(exc, "scale deployment", connection_id, namespace, name) from exc
        except Exception as exc:  # noqa: BLE001
            raise self._failure(exc, "scale deployment", connection_id, namespace, name) from exc

        logger.info("Deployment %s/%s scaled to %d replicas", namespace, name, replicas)
        return True

    def restart(self, connection_id: int, namespace: str, name: str) -> bool:
        """Rolling restart; on failure, delete the deployment's pods instead."""

        logger.info("Restarting %s/%s on connection %s", namespace, name, connection_id)
        handle = self._cache.get_handle(connection_id)
        if handle is None:
            logger.info("Simulated connection %s: restart of %s/%s accepted", connection_id, namespace, name)
            return True

        try:
            rolling_restart(handle.apps, name, namespace, request_timeout=handle.request_timeout)
        except Exception:  # noqa: BLE001
            logger.warning(
                "Rolling restart of %s/%s failed; deleting its pods instead", namespace, name, exc_info=True
            )
            return self._delete_pods(handle, connection_id, namespace, name)

        logger.info("Deployment %s/%s restarted", namespace, name)
        return True

    def restart_pods(self, connection_id: int, namespace: str, name: str) -> bool:
        """Delete every pod of the deployment so its ReplicaSet recreates them."""

        logger.info("Restarting all pods of %s/%s on connection %s", namespace, name, connection_id)
        handle = self._cache.get_handle(connection_id)
        if handle is None:
            logger.info("Simulated connection %s: pod restart of %s/%s accepted", connection_id, namespace, name)
            return True
        return self._delete_pods(handle, connection_id, namespace, name)

    def stop(self, connection_id: int, namespace: str, name: str) -> bool:
        """Scale one deployment to 0, remembering its count if no baseline exists yet.

        Never raises; every failure is logged and reported as False.
        """

        logger.info("Stopping %s/%s on connection %s", namespace, name, connection_id)
        try:
            current: Optional[int] = None
            try:
                workload = self.get_workload(connection_id, namespace, name)
                if workload is not None:
                    current = workload.desired_replicas
            except ReplicaControlError:
                logger.warning("Could not read current replicas of %s/%s", namespace, name, exc_info=True)

            if current is not None and self._baselines.get_baseline_for(connection_id, namespace, name) is None:
                self._baselines.set_baseline(connection_id, namespace, name, current)

            ok = self.scale(connection_id, namespace, name, 0)
            if ok:
                logger.info("Deployment %s/%s stopped", namespace, name)
            return ok
        except Exception:  # noqa: BLE001
            logger.error("Failed to stop %s/%s", namespace, name, exc_info=True)
            return False

    def restore(self, connection_id: int, namespace: str, name: str) -> bool:
        """Scale one deployment back to its baseline. Never raises."""

        logger.info("Restoring %s/%s on connection %s", namespace, name, connection_id)
        try:
            replicas = self._baselines.get_baseline_for(connection_id, namespace, name)
            if replicas is None:
                logger.warning("No baseline stored for %s/%s", namespace, name)
                return False
            return self.scale(connection_id, namespace, name, replicas)
        except Exception:  # noqa: BLE001
            logger.error("Failed to restore %s/%s", namespace, name, exc_info=True)
            return False

    # ---- whole namespace ----

    def save_current_state(self, connection_id: int, namespace: str) -> Dict[str, int]:
        """Overwrite the namespace baseline with the current desired counts."""

        logger.info("Saving current state of namespace %s for connection %s", namespace, connection_id)
        state = _desired_counts(self._fetch_workloads(connection_id, namespace))
        self._baselines.snapshot(connection_id, namespace, state)
        return state

    def restart_all(self, connection_id: int, namespace: str) -> Dict[str, bool]:
        logger.info("Restarting all deployments in namespace %s for connection %s", namespace, connection_id)
        names = [w.name for w in self._fetch_workloads(connection_id, namespace)]
        return self._each(names, lambda n: self.restart(connection_id, namespace, n), "restart", namespace)

    def shutdown_all(self, connection_id: int, namespace: str) -> Dict[str, bool]:
        """Snapshot the namespace, then scale every deployment to 0."""

        logger.info("Shutting down all deployments in namespace %s for connection %s", namespace, connection_id)
        workloads = self._fetch_workloads(connection_id, namespace)
        self._baselines.snapshot(connection_id, namespace, _desired_counts(workloads))
        return self._each(
            [w.name for w in workloads], lambda n: self.scale(connection_id, namespace, n, 0), "shut down", namespace
        )

    def restore_all(self, connection_id: int, namespace: str) -> Dict[str, bool]:
        """Scale every deployment with a baseline back to it.

        An empty result means there was nothing to restore.
        """

        logger.info("Restoring all deployments in namespace %s for connection %s", namespace, connection_id)
        baseline = self._baselines.get_baseline(connection_id, namespace)
        if not baseline:
            logger.warning("No baseline stored for connection %s, namespace %s", connection_id, namespace)
            return {}
        return self._each(
            list(baseline), lambda n: self.scale(connection_id, namespace, n, baseline[n]), "restore", namespace
        )

    # ---- selected names ----

    def scale_selected(self, connection_id: int, namespace: str, names: Iterable[str], replicas: int) -> Dict[str, bool]:
        if replicas < 0:
            raise ValueError(f"replicas must be >= 0, got {replicas}")
        names = _unique(names)
        logger.info(
            "Scaling %d deployment(s) in namespace %s to %d replicas for connection %s",
            len(names),
            namespace,
            replicas,
            connection_id,
        )
        return self._each(names, lambda n: self.scale(connection_id, namespace, n, replicas), "scale", namespace)

    def restart_selected(self, connection_id: int, namespace: str, names: Iterable[str]) -> Dict[str, bool]:
        names = _unique(names)
        logger.info("Restarting %d deployment(s) in namespace %s for connection %s", len(names), namespace, connection_id)
        return self._each(names, lambda n: self.restart(connection_id, namespace, n), "restart", namespace)

    def shutdown_selected(self, connection_id: int, namespace: str, names: Iterable[str]) -> Dict[str, bool]:
        """Snapshot the whole namespace, then scale only ``names`` to 0.

        The snapshot covers every deployment, so deployments stopped by an
        earlier call are captured at 0.
        """

        names = _unique(names)
        logger.info(
            "Shutting down %d deployment(s) in namespace %s for connection %s", len(names), namespace, connection_id
        )
        self.save_current_state(connection_id, namespace)
        return self._each(names, lambda n: self.scale(connection_id, namespace, n, 0), "shut down", namespace)

    def restore_selected(self, connection_id: int, namespace: str, names: Iterable[str]) -> Dict[str, bool]:
        names = _unique(names)
        logger.info("Restoring %d deployment(s) in namespace %s for connection %s", len(names), namespace, connection_id)
        baseline = self._baselines.get_baseline(connection_id, namespace)
        if not baseline:
            logger.warning("No baseline stored for connection %s, namespace %s", connection_id, namespace)
            return {}

        def restore_one(name: str) -> bool:
            if name not in baseline:
                logger.warning("No baseline stored for %s/%s", namespace, name)
                return False
            return self.scale(connection_id, namespace, name, baseline[name])

        return self._each(names, restore_one, "restore", namespace)

    # ---- internals ----

    def _fetch_workloads(self, connection_id: int, namespace: str) -> List[WorkloadSummary]:
        handle = self._cache.get_handle(connection_id)
        if handle is None:
            return simulated_workloads(namespace)
        try:
            items = list_deployments(handle.apps, namespace, request_timeout=handle.request_timeout)
        except Exception as exc:  # noqa: BLE001
            raise self._failure(exc, "list deployments", connection_id, namespace) from exc
        return [summarize_deployment(d) for d in items]

    def _delete_pods(self, handle: ClusterHandle, connection_id: int, namespace: str, name: str) -> bool:
        try:
            deployment = read_deployment(handle.apps, name, namespace, request_timeout=handle.request_timeout)
            if deployment is None:
                logger.error("Deployment %s/%s not found", namespace, name)
                return False
            selector = to_label_selector(selector_labels(deployment, name))
            delete_pods_matching(handle.core, namespace, selector, request_timeout=handle.request_timeout)
        except Exception as exc:  # noqa: BLE001
            raise self._failure(exc, "delete pods of deployment", connection_id, namespace, name) from exc

        logger.info("Pods of %s/%s deleted (selector %s); they will be recreated", namespace, name, selector)
        return True

    def _failure(
        self, exc: BaseException, action: str, connection_id: int, namespace: str, name: Optional[str] = None
    ) -> ReplicaControlError:
        context = {"connection_id": connection_id, "namespace": namespace}
        if name is not None:
            context["name"] = name
        return log_translated(logger, exc, action, **context)

    @staticmethod
    def _each(names: List[str], op: Callable[[str], bool], action: str, namespace: str) -> Dict[str, bool]:
        results: Dict[str, bool] = {}
        for name in names:
            try:
                results[name] = bool(op(name))
            except Exception:  # noqa: BLE001
                logger.error("Failed to %s deployment %s in namespace %s", action, name, namespace, exc_info=True)
                results[name] = False
        return results


def _desired_counts(workloads: Iterable[WorkloadSummary]) -> Dict[str, int]:
    return {w.name: w.desired_replicas for w in workloads}


def _unique(names: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(names))
