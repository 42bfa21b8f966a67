"""Error taxonomy for the replica control engine.

Callers branch on the exception class (or its ``kind``) instead of matching
message text:

- NotConfiguredError: no connection record could be resolved
- ClusterConnectionError: the cluster could not be reached or a handle could not be built
- AccessDeniedError: the cluster refused the request (401/403)
- OperationError: any other remote failure, wrapped with the operation context

"Not found" is deliberately absent: a missing deployment or pod is reported
as ``False`` / ``None`` by the operation itself.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError


class ErrorKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    UNREACHABLE = "unreachable"
    UNEXPECTED = "unexpected"


class ReplicaControlError(Exception):
    """Base class for every error raised by the engine.

    Attributes:
        message: Human-readable description, safe to show to a user
        context: Operation details (connection id, namespace, name, ...)
        status: HTTP status reported by the cluster, when there was one
    """

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, *, status: Optional[int] = None, **context: Any) -> None:
        self.message = message
        self.status = status
        self.context: Dict[str, Any] = context
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r}, context={self.context!r})"

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "kind": self.kind.value, "error": self.message, "status": self.status, **self.context}


class NotConfiguredError(ReplicaControlError):
    kind = ErrorKind.NOT_CONFIGURED


class ClusterConnectionError(ReplicaControlError):
    kind = ErrorKind.UNREACHABLE


class AccessDeniedError(ReplicaControlError):
    kind = ErrorKind.PERMISSION_DENIED


class OperationError(ReplicaControlError):
    kind = ErrorKind.UNEXPECTED


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, ApiException) and exc.status == 404


def is_forbidden(exc: BaseException) -> bool:
    return isinstance(exc, ApiException) and exc.status in (401, 403)


def translate_api_error(exc: BaseException, action: str, **context: Any) -> ReplicaControlError:
    """Map a client-side failure onto the engine taxonomy.

    ``action`` is a short phrase such as "scale deployment" and ends up in the
    message shown to the user.
    """

    if isinstance(exc, ReplicaControlError):
        return exc

    target = _describe_target(context)

    if isinstance(exc, ApiException):
        status = exc.status
        if status in (401, 403):
            return AccessDeniedError(
                f"Access denied: cannot {action}{target}. "
                "The credential of this connection lacks the required permissions.",
                status=status,
                **context,
            )
        if status == 0 or (status is not None and status >= 500):
            return ClusterConnectionError(
                f"Cluster unavailable while trying to {action}{target}: {exc.reason}",
                status=status,
                **context,
            )
        return OperationError(f"Failed to {action}{target}: {exc.reason or exc}", status=status, **context)

    if isinstance(exc, (Urllib3HTTPError, ConnectionError, TimeoutError)):
        return ClusterConnectionError(f"Cluster unreachable while trying to {action}{target}: {exc}", **context)

    return OperationError(f"Failed to {action}{target}: {exc}", **context)


def log_translated(log: logging.Logger, exc: BaseException, action: str, **context: Any) -> ReplicaControlError:
    """``translate_api_error`` plus one log line: WARNING for access denials, ERROR otherwise."""

    err = translate_api_error(exc, action, **context)
    if isinstance(err, AccessDeniedError):
        log.warning("%s (HTTP %s)", err.message, err.status)
    else:
        log.error("%s", err.message)
    return err


def _describe_target(context: Dict[str, Any]) -> str:
    namespace = context.get("namespace")
    name = context.get("name")
    if namespace and name:
        return f" '{namespace}/{name}'"
    if namespace:
        return f" in namespace '{namespace}'"
    return ""
