from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from kubernetes.client import ApiException

from ..errors import is_not_found


RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"


@dataclass
class WorkloadSummary:
    """Read-only projection of one deployment, annotated with its baseline."""

    name: str
    namespace: str
    desired_replicas: int
    available_replicas: int
    ready_replicas: int
    baseline_replicas: int
    labels: Dict[str, str] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    status: str = "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "namespace": self.namespace,
            "desiredReplicas": self.desired_replicas,
            "availableReplicas": self.available_replicas,
            "readyReplicas": self.ready_replicas,
            "baselineReplicas": self.baseline_replicas,
            "labels": dict(self.labels),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "status": self.status,
        }


def summarize_deployment(d: Any) -> WorkloadSummary:
    spec = d.spec
    status = d.status
    desired = getattr(spec, "replicas", None) or 0
    conditions = getattr(status, "conditions", None) or []
    return WorkloadSummary(
        name=d.metadata.name,
        namespace=d.metadata.namespace,
        desired_replicas=int(desired),
        available_replicas=int(getattr(status, "available_replicas", None) or 0),
        ready_replicas=int(getattr(status, "ready_replicas", None) or 0),
        baseline_replicas=int(desired),
        labels=dict(d.metadata.labels or {}),
        created_at=_as_datetime(d.metadata.creation_timestamp),
        status=conditions[0].type if conditions else "Unknown",
    )


def list_deployments(apps_api: Any, namespace: str, *, request_timeout: Optional[int] = None) -> List[Any]:
    return list(apps_api.list_namespaced_deployment(namespace=namespace, _request_timeout=request_timeout).items)


def read_deployment(apps_api: Any, name: str, namespace: str, *, request_timeout: Optional[int] = None) -> Optional[Any]:
    """Return the deployment, or None when the cluster reports 404."""

    try:
        return apps_api.read_namespaced_deployment(name=name, namespace=namespace, _request_timeout=request_timeout)
    except ApiException as exc:
        if is_not_found(exc):
            return None
        raise


def scale_deployment(
    apps_api: Any, name: str, namespace: str, replicas: int, *, request_timeout: Optional[int] = None
) -> int:
    body = {"spec": {"replicas": int(replicas)}}
    resp = apps_api.patch_namespaced_deployment_scale(
        name=name, namespace=namespace, body=body, _request_timeout=request_timeout
    )
    spec = getattr(resp, "spec", None)
    return int(getattr(spec, "replicas", replicas) or 0)


def rolling_restart(apps_api: Any, name: str, namespace: str, *, request_timeout: Optional[int] = None) -> str:
    """Trigger a rollout by stamping the pod template, like `kubectl rollout restart`."""

    restarted_at = datetime.now(timezone.utc).isoformat()
    patch = {"spec": {"template": {"metadata": {"annotations": {RESTARTED_AT_ANNOTATION: restarted_at}}}}}
    apps_api.patch_namespaced_deployment(name=name, namespace=namespace, body=patch, _request_timeout=request_timeout)
    return restarted_at


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
