"""Pod startup latency measurement.

The probe deletes one pod of a deployment, waits for its replacement to
become ready, and records the gap between the replacement's
``Initialized`` and ``PodReadyToStartContainers`` conditions. A probe
blocks its calling thread for up to the configured timeout; run it off any
request-handling thread.
"""

from __future__ import annotations

import logging
import time
from threading import Event
from typing import Any, Dict, Iterable, Optional

from .cache import ClusterClientCache
from .config import ReplicaControlConfig, get_config
from .connections import ConnectionDirectory, require_connection
from .kube.clients import ClusterHandle
from .kube.pods import (
    condition_transition_time,
    delete_pod,
    is_pod_ready,
    list_pods,
    pod_name,
    read_pod,
    selector_labels,
    to_label_selector,
)
from .kube.workloads import read_deployment
from .state.startup_times import StartupTimeStore

logger = logging.getLogger(__name__)


INITIALIZED = "Initialized"
READY_TO_START_CONTAINERS = "PodReadyToStartContainers"


class StartupProbe:
    def __init__(
        self,
        directory: ConnectionDirectory,
        cache: ClusterClientCache,
        startup_times: StartupTimeStore,
        *,
        config: Optional[ReplicaControlConfig] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        cfg = config or get_config()
        self._directory = directory
        self._cache = cache
        self._startup_times = startup_times
        self._poll_interval = cfg.probe_interval_seconds if poll_interval is None else float(poll_interval)
        self._timeout = cfg.probe_timeout_seconds if timeout is None else float(timeout)
        self._simulated_seconds = cfg.simulated_startup_seconds
        self._cancelled = Event()

    def cancel(self) -> None:
        """Abort in-flight probes; they return None. Later probes abort too until ``reset()``."""
        self._cancelled.set()

    def reset(self) -> None:
        self._cancelled.clear()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def measure(self, connection_id: int, namespace: str, name: str) -> Optional[int]:
        """Measure the startup latency of one deployment, in whole seconds.

        Returns None when the latency cannot be measured: no pods, no ready
        replacement within the timeout, missing conditions, cancellation or
        any remote failure. Never raises.
        """

        logger.info("Measuring pod startup time for %s/%s on connection %s", namespace, name, connection_id)
        try:
            connection = require_connection(self._directory, connection_id)
            if connection.simulated:
                logger.info("Simulated connection %s: reporting %d s", connection_id, self._simulated_seconds)
                self._startup_times.save(connection_id, namespace, name, self._simulated_seconds)
                return self._simulated_seconds

            handle = self._cache.get_handle(connection_id)
            if handle is None:
                return None
            seconds = self._measure(handle, namespace, name)
            if seconds is not None:
                self._startup_times.save(connection_id, namespace, name, seconds)
            return seconds
        except Exception:  # noqa: BLE001
            logger.error("Failed to measure startup time for %s/%s", namespace, name, exc_info=True)
            return None

    def measure_many(self, connection_id: int, namespace: str, names: Iterable[str]) -> Dict[str, Optional[int]]:
        names = list(dict.fromkeys(names))
        logger.info(
            "Measuring pod startup time for %d deployment(s) in namespace %s on connection %s",
            len(names),
            namespace,
            connection_id,
        )
        results: Dict[str, Optional[int]] = {}
        for name in names:
            results[name] = self.measure(connection_id, namespace, name)

        measured = sum(1 for v in results.values() if v is not None)
        logger.info("Startup time measured for %d of %d deployment(s)", measured, len(names))
        return results

    def _measure(self, handle: ClusterHandle, namespace: str, name: str) -> Optional[int]:
        timeout = handle.request_timeout

        deployment = read_deployment(handle.apps, name, namespace, request_timeout=timeout)
        if deployment is None:
            logger.error("Deployment %s/%s not found", namespace, name)
            return None
        selector = to_label_selector(selector_labels(deployment, name))

        pods = list_pods(handle.core, namespace, selector, request_timeout=timeout)
        if not pods:
            logger.warning("No pods found for %s/%s (selector %s)", namespace, name, selector)
            return None

        victim = pod_name(pods[0])
        logger.info("Deleting pod %s/%s to measure startup time", namespace, victim)
        if not delete_pod(handle.core, victim, namespace, request_timeout=timeout):
            logger.error("Could not delete pod %s/%s", namespace, victim)
            return None

        replacement = self._wait_for_replacement(handle, namespace, selector, victim)
        if replacement is None:
            return None

        pod = read_pod(handle.core, replacement, namespace, request_timeout=timeout)
        if pod is None:
            logger.error("Replacement pod %s/%s disappeared before it could be read", namespace, replacement)
            return None
        return _startup_seconds(pod, namespace, replacement)

    def _wait_for_replacement(self, handle: ClusterHandle, namespace: str, selector: str, victim: str) -> Optional[str]:
        deadline = time.monotonic() + self._timeout
        while True:
            if self._cancelled.wait(self._poll_interval):
                logger.warning("Startup measurement in namespace %s cancelled", namespace)
                return None

            for pod in list_pods(handle.core, namespace, selector, request_timeout=handle.request_timeout):
                candidate = pod_name(pod)
                if candidate and candidate != victim and is_pod_ready(pod):
                    logger.info("Pod %s/%s is ready", namespace, candidate)
                    return candidate

            if time.monotonic() >= deadline:
                logger.warning(
                    "No ready replacement for pod %s/%s within %s s", namespace, victim, int(self._timeout)
                )
                return None


def _startup_seconds(pod: Any, namespace: str, name: str) -> Optional[int]:
    initialized = condition_transition_time(pod, INITIALIZED)
    ready_to_start = condition_transition_time(pod, READY_TO_START_CONTAINERS)
    if initialized is None or ready_to_start is None:
        logger.warning(
            "Pod %s/%s lacks the conditions needed to measure startup (Initialized: %s, %s: %s)",
            namespace,
            name,
            initialized is not None,
            READY_TO_START_CONTAINERS,
            ready_to_start is not None,
        )
        return None

    # No ordering guard: conditions reported out of order give <= 0.
    seconds = int(ready_to_start.timestamp()) - int(initialized.timestamp())
    if seconds <= 0:
        logger.warning("Pod %s/%s reported a non-positive startup time of %d s", namespace, name, seconds)
    else:
        logger.info("Pod %s/%s started in %d s", namespace, name, seconds)
    return seconds
