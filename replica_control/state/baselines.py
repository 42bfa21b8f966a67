"""Baseline replica counts per (connection, namespace, deployment).

A baseline is the replica count a deployment is restored to. Every method
runs in its own transaction; ``snapshot`` replaces a namespace's rows as a
whole and never merges.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Mapping, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from .db import get_sessionmaker, init_db
from .models import DeploymentBaseline

logger = logging.getLogger(__name__)


class BaselineStore:
    def __init__(self, database_url: str, *, create_tables: bool = True) -> None:
        self.database_url = database_url
        if create_tables:
            init_db(database_url)

    def has_baseline(self, connection_id: int, namespace: str) -> bool:
        sm = get_sessionmaker(self.database_url)
        with sm() as s:
            q = (
                select(DeploymentBaseline.id)
                .where(DeploymentBaseline.connection_id == int(connection_id))
                .where(DeploymentBaseline.namespace == namespace)
                .limit(1)
            )
            return s.execute(q).first() is not None

    def snapshot(self, connection_id: int, namespace: str, current: Mapping[str, int]) -> None:
        """Replace every baseline of the namespace with ``current``."""

        sm = get_sessionmaker(self.database_url)
        with sm() as s:
            s.execute(
                delete(DeploymentBaseline)
                .where(DeploymentBaseline.connection_id == int(connection_id))
                .where(DeploymentBaseline.namespace == namespace)
            )
            for name, replicas in current.items():
                s.add(
                    DeploymentBaseline(
                        connection_id=int(connection_id),
                        namespace=namespace,
                        deployment_name=str(name),
                        original_replicas=int(replicas),
                    )
                )
            s.commit()

        logger.info(
            "Saved baseline of %d deployment(s) for connection %s, namespace %s",
            len(current),
            connection_id,
            namespace,
        )

    def set_baseline(self, connection_id: int, namespace: str, name: str, replicas: int) -> None:
        sm = get_sessionmaker(self.database_url)
        q = (
            select(DeploymentBaseline)
            .where(DeploymentBaseline.connection_id == int(connection_id))
            .where(DeploymentBaseline.namespace == namespace)
            .where(DeploymentBaseline.deployment_name == name)
        )
        with sm() as s:
            row = s.execute(q).scalar_one_or_none()
            if row is not None:
                row.original_replicas = int(replicas)
                s.commit()
            else:
                s.add(
                    DeploymentBaseline(
                        connection_id=int(connection_id),
                        namespace=namespace,
                        deployment_name=name,
                        original_replicas=int(replicas),
                    )
                )
                try:
                    s.commit()
                except IntegrityError:
                    # A concurrent writer inserted the row first; update it instead.
                    s.rollback()
                    s.execute(q).scalar_one().original_replicas = int(replicas)
                    s.commit()

        logger.info("Baseline for %s/%s/%s set to %d replicas", connection_id, namespace, name, replicas)

    def get_baseline(self, connection_id: int, namespace: str) -> Dict[str, int]:
        sm = get_sessionmaker(self.database_url)
        with sm() as s:
            rows = s.execute(
                select(DeploymentBaseline.deployment_name, DeploymentBaseline.original_replicas)
                .where(DeploymentBaseline.connection_id == int(connection_id))
                .where(DeploymentBaseline.namespace == namespace)
                .order_by(DeploymentBaseline.deployment_name.asc())
            ).all()
            return {name: int(replicas) for name, replicas in rows}

    def get_baseline_for(self, connection_id: int, namespace: str, name: str) -> Optional[int]:
        sm = get_sessionmaker(self.database_url)
        with sm() as s:
            value = s.execute(
                select(DeploymentBaseline.original_replicas)
                .where(DeploymentBaseline.connection_id == int(connection_id))
                .where(DeploymentBaseline.namespace == namespace)
                .where(DeploymentBaseline.deployment_name == name)
            ).scalar_one_or_none()
            return int(value) if value is not None else None

    def last_updated(self, connection_id: int, namespace: str) -> Optional[datetime]:
        sm = get_sessionmaker(self.database_url)
        with sm() as s:
            return s.execute(
                select(func.max(DeploymentBaseline.updated_at))
                .where(DeploymentBaseline.connection_id == int(connection_id))
                .where(DeploymentBaseline.namespace == namespace)
            ).scalar_one_or_none()

    def clear(self, connection_id: int, namespace: str) -> None:
        sm = get_sessionmaker(self.database_url)
        with sm() as s:
            s.execute(
                delete(DeploymentBaseline)
                .where(DeploymentBaseline.connection_id == int(connection_id))
                .where(DeploymentBaseline.namespace == namespace)
            )
            s.commit()
        logger.info("Cleared baseline for connection %s, namespace %s", connection_id, namespace)
