"""Persistent engine state.

Two tables, both keyed by (connection id, namespace, deployment name):
- deployment_baselines: replica counts used by restore
- pod_startup_times: last measured pod startup latency

SQLite by default; point REPLICA_CONTROL_DATABASE_URL at PostgreSQL for
shared deployments.
"""

from .baselines import BaselineStore
from .db import init_db
from .startup_times import StartupTimeStore

__all__ = [
    "BaselineStore",
    "StartupTimeStore",
    "init_db",
]
