"""Replica control - deployment state and orchestration engine.

This package provides:
- A per-connection cache of Kubernetes/OpenShift API clients
- Baseline storage of replica counts per (connection, namespace, deployment)
- Scale, restart, shutdown and restore for single deployments, selected
  deployments, whole namespaces and groups of connections
- Namespace and pod listing, pod restart and deletion
- Pod startup latency measurement
- Support for SQLite (default) and PostgreSQL state databases
"""

from .cache import ClusterClientCache
from .config import ReplicaControlConfig, configure_logging, get_config, reset_config
from .connections import ConnectionDirectory, ConnectionRecord, InMemoryConnectionDirectory
from .errors import (
    AccessDeniedError,
    ClusterConnectionError,
    ErrorKind,
    NotConfiguredError,
    OperationError,
    ReplicaControlError,
)
from .groups import BatchSummary, ConnectionWorkloads, GroupOperations, WorkloadRef, summarize
from .kube.pods import PodSummary
from .kube.workloads import WorkloadSummary
from .orchestrator import DeploymentOrchestrator
from .probe import StartupProbe
from .resources import ClusterResources
from .state import BaselineStore, StartupTimeStore

__all__ = [
    "AccessDeniedError",
    "BaselineStore",
    "BatchSummary",
    "ClusterClientCache",
    "ClusterConnectionError",
    "ClusterResources",
    "ConnectionDirectory",
    "ConnectionRecord",
    "ConnectionWorkloads",
    "DeploymentOrchestrator",
    "ErrorKind",
    "GroupOperations",
    "InMemoryConnectionDirectory",
    "NotConfiguredError",
    "OperationError",
    "PodSummary",
    "ReplicaControlConfig",
    "ReplicaControlError",
    "StartupProbe",
    "StartupTimeStore",
    "WorkloadRef",
    "WorkloadSummary",
    "configure_logging",
    "get_config",
    "reset_config",
    "summarize",
]
