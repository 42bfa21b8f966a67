from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from kubernetes.client import ApiException

from ..errors import is_not_found
from .workloads import _as_datetime


@dataclass
class PodSummary:
    name: str
    namespace: str
    status: str
    node_name: Optional[str] = None
    created_at: Optional[datetime] = None
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "namespace": self.namespace,
            "status": self.status,
            "nodeName": self.node_name,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
        }


def summarize_pod(pod: Any) -> PodSummary:
    metadata = pod.metadata
    return PodSummary(
        name=metadata.name,
        namespace=metadata.namespace,
        status=getattr(pod.status, "phase", None) or "Unknown",
        node_name=getattr(pod.spec, "node_name", None),
        created_at=_as_datetime(metadata.creation_timestamp),
        labels=dict(metadata.labels or {}),
        annotations=dict(metadata.annotations or {}),
    )


def selector_labels(deployment: Any, name: str) -> Dict[str, str]:
    """Labels used to find a deployment's pods.

    Uses ``spec.selector.matchLabels``; when the deployment declares none,
    falls back to ``app=<name>``. The fallback is a heuristic and may not
    match pods of deployments labelled differently.
    """

    spec = getattr(deployment, "spec", None)
    selector = getattr(spec, "selector", None)
    labels = getattr(selector, "match_labels", None) or {}
    if not labels:
        return {"app": name}
    return dict(labels)


def to_label_selector(labels: Dict[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in labels.items())


def labels_match(labels: Optional[Dict[str, str]], selector: str) -> bool:
    """Match ``labels`` against a selector of comma-separated ``key=value`` or bare ``key`` terms."""

    labels = labels or {}
    for term in filter(None, (t.strip() for t in (selector or "").split(","))):
        key, sep, value = term.partition("=")
        if sep:
            if labels.get(key.strip()) != value.strip():
                return False
        elif key not in labels:
            return False
    return True


def list_pods(
    core_api: Any, namespace: str, label_selector: Optional[str] = None, *, request_timeout: Optional[int] = None
) -> List[Any]:
    """Pods of a namespace, optionally narrowed by a label selector."""

    return list(
        core_api.list_namespaced_pod(
            namespace=namespace, label_selector=label_selector, _request_timeout=request_timeout
        ).items
    )


def read_pod(core_api: Any, name: str, namespace: str, *, request_timeout: Optional[int] = None) -> Optional[Any]:
    try:
        return core_api.read_namespaced_pod(name=name, namespace=namespace, _request_timeout=request_timeout)
    except ApiException as exc:
        if is_not_found(exc):
            return None
        raise


def delete_pod(core_api: Any, name: str, namespace: str, *, request_timeout: Optional[int] = None) -> bool:
    """Delete one pod; False when it no longer exists."""

    try:
        core_api.delete_namespaced_pod(name=name, namespace=namespace, _request_timeout=request_timeout)
    except ApiException as exc:
        if is_not_found(exc):
            return False
        raise
    return True


def delete_pods_matching(
    core_api: Any, namespace: str, label_selector: str, *, request_timeout: Optional[int] = None
) -> None:
    core_api.delete_collection_namespaced_pod(
        namespace=namespace, label_selector=label_selector, _request_timeout=request_timeout
    )


def pod_name(pod: Any) -> Optional[str]:
    metadata = getattr(pod, "metadata", None)
    return getattr(metadata, "name", None)


def is_pod_ready(pod: Any) -> bool:
    """Running, every container reports ready, and the Ready condition is True."""

    status = getattr(pod, "status", None)
    if status is None or getattr(status, "phase", None) != "Running":
        return False

    container_statuses = getattr(status, "container_statuses", None) or []
    if not container_statuses:
        return False
    if not all(cs is not None and getattr(cs, "ready", None) is True for cs in container_statuses):
        return False

    return any(
        c is not None and getattr(c, "type", None) == "Ready" and getattr(c, "status", None) == "True"
        for c in (getattr(status, "conditions", None) or [])
    )


def condition_transition_time(pod: Any, condition_type: str) -> Optional[datetime]:
    """lastTransitionTime of the first condition of ``condition_type`` with status True."""

    status = getattr(pod, "status", None)
    for c in getattr(status, "conditions", None) or []:
        if c is None or getattr(c, "type", None) != condition_type or getattr(c, "status", None) != "True":
            continue
        ts = _as_datetime(getattr(c, "last_transition_time", None))
        if ts is not None:
            return ts
    return None
