"""Bulk operations across every connection of a group.

Each member connection is processed in its own namespace (the record's
namespace, or ``default``). Results from all members are merged into one
flat map keyed ``"<connection name>/<namespace>/<deployment>"``, with
``#<id>`` appended to names shared by several connections. A member whose
deployments cannot be listed is logged and skipped.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

from .connections import ConnectionDirectory, ConnectionRecord
from .kube.workloads import WorkloadSummary
from .orchestrator import DeploymentOrchestrator
from .probe import StartupProbe

logger = logging.getLogger(__name__)


T = TypeVar("T")


@dataclass(frozen=True)
class WorkloadRef:
    """One deployment on one connection, as selected by a user."""

    connection_id: int
    namespace: str
    name: str

    @classmethod
    def parse(cls, raw: str) -> "WorkloadRef":
        """Parse ``"<connection id>|<namespace>|<name>"``."""

        parts = raw.split("|")
        if len(parts) != 3 or not all(p.strip() for p in parts):
            raise ValueError(f"Invalid workload reference: {raw!r}")
        connection_id, namespace, name = (p.strip() for p in parts)
        return cls(connection_id=int(connection_id), namespace=namespace, name=name)


@dataclass
class BatchSummary:
    success_count: int
    total_count: int

    @property
    def message(self) -> str:
        return f"{self.success_count} of {self.total_count} succeeded"

    @property
    def all_succeeded(self) -> bool:
        return self.success_count == self.total_count


@dataclass
class ConnectionWorkloads:
    connection: ConnectionRecord
    namespace: str
    workloads: List[WorkloadSummary] = field(default_factory=list)
    baseline_updated_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connectionId": self.connection.id,
            "connectionName": self.connection.display_name,
            "namespace": self.namespace,
            "workloads": [w.to_dict() for w in self.workloads],
            "baselineUpdatedAt": self.baseline_updated_at.isoformat() + "Z" if self.baseline_updated_at else None,
            "error": self.error,
        }


def summarize(results: Mapping[str, Any]) -> BatchSummary:
    """Count successes: truthy booleans, or measured (non-None) latencies."""

    success = 0
    for value in results.values():
        if isinstance(value, bool):
            success += 1 if value else 0
        elif value is not None:
            success += 1
    return BatchSummary(success_count=success, total_count=len(results))


def connection_labels(connections: Iterable[ConnectionRecord]) -> Dict[int, str]:
    """Result-key label per connection id.

    Connection names are not unique; a name shared by several connections
    is suffixed with ``#<id>`` so their results stay apart.
    """

    connections = list(connections)
    counts = Counter(c.display_name for c in connections)
    shared = sorted(n for n, k in counts.items() if k > 1)
    if shared:
        logger.warning("Connection name(s) %s are shared; keying their results as name#id", ", ".join(shared))
    return {
        c.id: f"{c.display_name}#{c.id}" if counts[c.display_name] > 1 else c.display_name for c in connections
    }


def result_key(label: str, namespace: str, name: str) -> str:
    return f"{label}/{namespace}/{name}"


class GroupOperations:
    def __init__(
        self,
        directory: ConnectionDirectory,
        orchestrator: DeploymentOrchestrator,
        probe: StartupProbe,
    ) -> None:
        self._directory = directory
        self._orchestrator = orchestrator
        self._probe = probe

    def group_connections(self, group_id: int) -> List[ConnectionRecord]:
        return list(self._directory.list_connections_in_group(group_id))

    # ---- whole group ----

    def overview(self, group_id: int) -> List[ConnectionWorkloads]:
        """Deployments of every member, with baseline capture time and listing errors."""

        out: List[ConnectionWorkloads] = []
        for conn in self.group_connections(group_id):
            namespace = conn.effective_namespace
            entry = ConnectionWorkloads(connection=conn, namespace=namespace)
            try:
                entry.workloads = self._orchestrator.list_workloads(conn.id, namespace)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Failed to list deployments for connection %s (ID: %s)", conn.display_name, conn.id, exc_info=True
                )
                entry.error = f"Error: {exc}"
            entry.baseline_updated_at = self._orchestrator.baselines.last_updated(conn.id, namespace)
            out.append(entry)
        return out

    def restart_all(self, group_id: int) -> Dict[str, bool]:
        return self._fan_out(group_id, self._orchestrator.restart_all, "restart")

    def shutdown_all(self, group_id: int) -> Dict[str, bool]:
        return self._fan_out(group_id, self._orchestrator.shutdown_all, "shut down")

    def restore_all(self, group_id: int) -> Dict[str, bool]:
        """Restore every member; an empty map means no member had a baseline."""
        return self._fan_out(group_id, self._orchestrator.restore_all, "restore")

    def scale_all(self, group_id: int, replicas: int) -> Dict[str, bool]:
        if replicas < 0:
            raise ValueError(f"replicas must be >= 0, got {replicas}")

        def scale_namespace(connection_id: int, namespace: str) -> Dict[str, bool]:
            names = [w.name for w in self._orchestrator.list_workloads(connection_id, namespace)]
            return self._orchestrator.scale_selected(connection_id, namespace, names, replicas)

        return self._fan_out(group_id, scale_namespace, "scale")

    def save_current_state(self, group_id: int) -> BatchSummary:
        """Re-snapshot the baseline of every member; counts members that succeeded."""

        connections = self.group_connections(group_id)
        success = 0
        for conn in connections:
            try:
                self._orchestrator.save_current_state(conn.id, conn.effective_namespace)
                success += 1
            except Exception:  # noqa: BLE001
                logger.error(
                    "Failed to save baseline for connection %s (ID: %s)", conn.display_name, conn.id, exc_info=True
                )
        summary = BatchSummary(success_count=success, total_count=len(connections))
        logger.info("Baselines updated for group %s: %s", group_id, summary.message)
        return summary

    # ---- selected deployments across connections ----

    def shutdown_selected(self, targets: Iterable[WorkloadRef]) -> Dict[str, bool]:
        return self._per_namespace(targets, self._orchestrator.shutdown_selected, False, "shut down")

    def restart_selected(self, targets: Iterable[WorkloadRef]) -> Dict[str, bool]:
        return self._per_namespace(targets, self._orchestrator.restart_selected, False, "restart")

    def restore_selected(self, targets: Iterable[WorkloadRef]) -> Dict[str, bool]:
        return self._per_namespace(targets, self._orchestrator.restore_selected, False, "restore")

    def scale_selected(self, targets: Iterable[WorkloadRef], replicas: int) -> Dict[str, bool]:
        if replicas < 0:
            raise ValueError(f"replicas must be >= 0, got {replicas}")
        return self._per_namespace(
            targets,
            lambda cid, ns, names: self._orchestrator.scale_selected(cid, ns, names, replicas),
            False,
            "scale",
        )

    def scale_targets(self, targets: Iterable[Tuple[WorkloadRef, int]]) -> Dict[str, bool]:
        """Scale each target to its own replica count."""

        targets = list(targets)
        labels = self._labels(ref.connection_id for ref, _ in targets)
        results: Dict[str, bool] = {}
        for ref, replicas in targets:
            key = result_key(labels[ref.connection_id], ref.namespace, ref.name)
            try:
                results[key] = self._orchestrator.scale(ref.connection_id, ref.namespace, ref.name, replicas)
            except Exception:  # noqa: BLE001
                logger.error("Failed to scale %s to %s replicas", key, replicas, exc_info=True)
                results[key] = False
        return results

    def measure_selected(self, targets: Iterable[WorkloadRef]) -> Dict[str, Optional[int]]:
        return self._per_namespace(targets, self._probe.measure_many, None, "measure startup of")

    # ---- internals ----

    def _fan_out(
        self, group_id: int, op: Callable[[int, str], Dict[str, bool]], action: str
    ) -> Dict[str, bool]:
        connections = self.group_connections(group_id)
        logger.info("Running %s across %d connection(s) of group %s", action, len(connections), group_id)

        labels = connection_labels(connections)
        results: Dict[str, bool] = {}
        for conn in connections:
            namespace = conn.effective_namespace
            try:
                conn_results = op(conn.id, namespace)
            except Exception:  # noqa: BLE001
                logger.error(
                    "Failed to %s deployments for connection %s (ID: %s)",
                    action,
                    conn.display_name,
                    conn.id,
                    exc_info=True,
                )
                continue
            for name, ok in conn_results.items():
                results[result_key(labels[conn.id], namespace, name)] = ok

        logger.info("Group %s %s: %s", group_id, action, summarize(results).message)
        return results

    def _per_namespace(
        self,
        targets: Iterable[WorkloadRef],
        op: Callable[[int, str, List[str]], Mapping[str, T]],
        failed: T,
        action: str,
    ) -> Dict[str, T]:
        grouped: Dict[Tuple[int, str], List[str]] = {}
        for ref in targets:
            grouped.setdefault((ref.connection_id, ref.namespace), []).append(ref.name)

        labels = self._labels(connection_id for connection_id, _ in grouped)
        results: Dict[str, T] = {}
        for (connection_id, namespace), names in grouped.items():
            try:
                ns_results = op(connection_id, namespace, names)
            except Exception:  # noqa: BLE001
                logger.error(
                    "Failed to %s %d deployment(s) in namespace %s of connection %s",
                    action,
                    len(names),
                    namespace,
                    connection_id,
                    exc_info=True,
                )
                ns_results = {name: failed for name in names}
            for name, value in ns_results.items():
                results[result_key(labels[connection_id], namespace, name)] = value

        logger.info("Batch %s: %s", action, summarize(results).message)
        return results

    def _labels(self, connection_ids: Iterable[int]) -> Dict[int, str]:
        """Labels for the given ids; unknown ids are labelled by the id itself."""

        ids = list(dict.fromkeys(connection_ids))
        known = [c for c in (self._directory.get_connection(i) for i in ids) if c is not None]
        labels = connection_labels(known)
        for connection_id in ids:
            labels.setdefault(connection_id, str(connection_id))
        return labels
