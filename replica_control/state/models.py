from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DeploymentBaseline(Base):
    """Replica count a deployment is restored to."""

    __tablename__ = "deployment_baselines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    connection_id = Column(Integer, nullable=False)
    namespace = Column(String(255), nullable=False)
    deployment_name = Column(String(255), nullable=False)
    original_replicas = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("connection_id", "namespace", "deployment_name", name="uq_deployment_baselines_key"),
        Index("ix_deployment_baselines_conn_ns", "connection_id", "namespace"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "namespace": self.namespace,
            "deployment_name": self.deployment_name,
            "original_replicas": int(self.original_replicas),
            "created_at": self.created_at.isoformat() + "Z" if self.created_at else None,
            "updated_at": self.updated_at.isoformat() + "Z" if self.updated_at else None,
        }


class PodStartupTime(Base):
    """Last measured pod startup latency of a deployment."""

    __tablename__ = "pod_startup_times"

    id = Column(Integer, primary_key=True, autoincrement=True)
    connection_id = Column(Integer, nullable=False)
    namespace = Column(String(255), nullable=False)
    deployment_name = Column(String(255), nullable=False)
    startup_time_seconds = Column(Integer, nullable=False)

    measured_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("connection_id", "namespace", "deployment_name", name="uq_pod_startup_times_key"),
        Index("ix_pod_startup_times_conn_ns", "connection_id", "namespace"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "namespace": self.namespace,
            "deployment_name": self.deployment_name,
            "startup_time_seconds": int(self.startup_time_seconds),
            "measured_at": self.measured_at.isoformat() + "Z" if self.measured_at else None,
        }
