"""Synthetic workloads served for simulated connections.

A simulated connection never gets a cluster client; namespace, deployment
and pod listings return the fixed data below and mutating calls succeed
without side effects.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from .kube.pods import PodSummary, labels_match
from .kube.workloads import WorkloadSummary


SIMULATED_NAMESPACES = ["test-project", "staging", "production", "development"]

# name, desired, available, ready, labels, age
_Spec = Tuple[str, int, int, int, Dict[str, str], timedelta]

_WORKLOADS: Dict[str, List[_Spec]] = {
    "test-project": [
        ("web-app", 2, 2, 2, {"app": "web-app"}, timedelta(hours=2)),
        ("api-service", 1, 1, 1, {"app": "api"}, timedelta(hours=3)),
        ("database", 1, 1, 1, {"app": "database"}, timedelta(days=5)),
    ],
    "staging": [
        ("staging-web", 2, 1, 1, {"app": "web", "environment": "staging"}, timedelta(days=1)),
        ("staging-api", 1, 1, 1, {"app": "api", "environment": "staging"}, timedelta(days=1)),
        ("staging-worker", 1, 0, 0, {"app": "worker", "environment": "staging"}, timedelta(minutes=30)),
    ],
    "production": [
        ("prod-web", 3, 3, 3, {"app": "web", "environment": "prod"}, timedelta(days=10)),
        ("prod-api", 2, 2, 2, {"app": "api", "environment": "prod"}, timedelta(days=10)),
        ("prod-database", 1, 1, 1, {"app": "database", "environment": "prod"}, timedelta(days=30)),
    ],
    "development": [
        ("dev-app", 2, 1, 1, {"app": "dev-app", "env": "dev"}, timedelta(hours=2)),
    ],
}

_FALLBACK: List[_Spec] = [
    ("application", 2, 2, 2, {"app": "application"}, timedelta(days=1)),
]


def simulated_workloads(namespace: str) -> List[WorkloadSummary]:
    now = datetime.now(timezone.utc)
    specs = _WORKLOADS.get((namespace or "").lower(), _FALLBACK)
    out: List[WorkloadSummary] = []
    for name, desired, available, ready, labels, age in specs:
        out.append(
            WorkloadSummary(
                name=name,
                namespace=namespace,
                desired_replicas=desired,
                available_replicas=available,
                ready_replicas=ready,
                baseline_replicas=desired,
                labels=dict(labels),
                created_at=now - age,
                status="Available" if available == desired else "Progressing",
            )
        )
    return out


def simulated_workload(namespace: str, name: str) -> Optional[WorkloadSummary]:
    for w in simulated_workloads(namespace):
        if w.name == name:
            return w
    return None


# name, phase, node, labels, age
_Pod = Tuple[str, str, str, Dict[str, str], timedelta]

_PODS: Dict[str, List[_Pod]] = {
    "test-project": [
        ("web-app-1", "Running", "node-01", {"app": "web-app", "version": "1.0"}, timedelta(hours=2)),
        ("web-app-2", "Running", "node-02", {"app": "web-app", "version": "1.0"}, timedelta(hours=1)),
        ("api-service-1", "Running", "node-01", {"app": "api", "version": "2.1"}, timedelta(hours=3)),
        ("db-pod", "Running", "node-03", {"app": "database", "tier": "backend"}, timedelta(days=5)),
    ],
    "staging": [
        ("staging-web-1", "Running", "node-02", {"app": "web", "environment": "staging"}, timedelta(days=1)),
        ("staging-api-1", "Running", "node-01", {"app": "api", "environment": "staging"}, timedelta(days=1)),
        ("staging-worker", "Pending", "node-03", {"app": "worker", "environment": "staging"}, timedelta(minutes=30)),
    ],
    "production": [
        ("prod-web-1", "Running", "node-01", {"app": "web", "environment": "prod"}, timedelta(days=10)),
        ("prod-web-2", "Running", "node-02", {"app": "web", "environment": "prod"}, timedelta(days=10)),
        ("prod-web-3", "Running", "node-03", {"app": "web", "environment": "prod"}, timedelta(days=9)),
        ("prod-api-1", "Running", "node-01", {"app": "api", "environment": "prod"}, timedelta(days=10)),
        ("prod-api-2", "Running", "node-02", {"app": "api", "environment": "prod"}, timedelta(days=10)),
        (
            "prod-db-primary",
            "Running",
            "node-03",
            {"app": "database", "role": "primary", "environment": "prod"},
            timedelta(days=30),
        ),
    ],
    "development": [
        ("dev-app-1", "Running", "node-02", {"app": "dev-app", "env": "dev"}, timedelta(hours=2)),
        ("dev-app-2", "CrashLoopBackOff", "node-01", {"app": "dev-app", "env": "dev"}, timedelta(hours=1)),
    ],
}

_FALLBACK_PODS: List[_Pod] = [
    ("app-pod-1", "Running", "node-01", {"app": "application"}, timedelta(days=1)),
    ("app-pod-2", "Running", "node-02", {"app": "application"}, timedelta(days=1)),
]


def simulated_pods(namespace: str, label_selector: Optional[str] = None) -> List[PodSummary]:
    now = datetime.now(timezone.utc)
    specs = _PODS.get((namespace or "").lower(), _FALLBACK_PODS)
    return [
        PodSummary(
            name=name,
            namespace=namespace,
            status=phase,
            node_name=node,
            created_at=now - age,
            labels=dict(labels),
            annotations={"simulated": "true"},
        )
        for name, phase, node, labels, age in specs
        if not label_selector or labels_match(labels, label_selector)
    ]


def simulated_pod(namespace: str, name: str) -> Optional[PodSummary]:
    for p in simulated_pods(namespace):
        if p.name == name:
            return p
    return None
