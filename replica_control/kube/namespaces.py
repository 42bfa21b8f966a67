from __future__ import annotations

from typing import Any, List, Optional

from kubernetes.client import ApiException

from ..errors import is_not_found


SYSTEM_PREFIXES = ("kube-", "openshift-")


def is_system_namespace(name: str) -> bool:
    return name.startswith(SYSTEM_PREFIXES)


def list_namespace_names(core_api: Any, *, request_timeout: Optional[int] = None) -> List[str]:
    resp = core_api.list_namespace(_request_timeout=request_timeout)
    return [ns.metadata.name for ns in resp.items if ns.metadata is not None and ns.metadata.name]


def read_namespace(core_api: Any, name: str, *, request_timeout: Optional[int] = None) -> Optional[Any]:
    """Return the namespace, or None when the cluster reports 404."""

    try:
        return core_api.read_namespace(name=name, _request_timeout=request_timeout)
    except ApiException as exc:
        if is_not_found(exc):
            return None
        raise
