from __future__ import annotations

import logging
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .db import get_sessionmaker, init_db
from .models import PodStartupTime, _utcnow

logger = logging.getLogger(__name__)


class StartupTimeStore:
    """Latest measured startup latency per (connection, namespace, deployment)."""

    def __init__(self, database_url: str, *, create_tables: bool = True) -> None:
        self.database_url = database_url
        if create_tables:
            init_db(database_url)

    def save(self, connection_id: int, namespace: str, name: str, seconds: int) -> None:
        sm = get_sessionmaker(self.database_url)
        q = (
            select(PodStartupTime)
            .where(PodStartupTime.connection_id == int(connection_id))
            .where(PodStartupTime.namespace == namespace)
            .where(PodStartupTime.deployment_name == name)
        )
        with sm() as s:
            row = s.execute(q).scalar_one_or_none()
            if row is not None:
                row.startup_time_seconds = int(seconds)
                row.measured_at = _utcnow()
                s.commit()
            else:
                s.add(
                    PodStartupTime(
                        connection_id=int(connection_id),
                        namespace=namespace,
                        deployment_name=name,
                        startup_time_seconds=int(seconds),
                    )
                )
                try:
                    s.commit()
                except IntegrityError:
                    # A concurrent writer inserted the row first; update it instead.
                    s.rollback()
                    row = s.execute(q).scalar_one()
                    row.startup_time_seconds = int(seconds)
                    row.measured_at = _utcnow()
                    s.commit()

        logger.info("Saved startup time for %s/%s/%s: %d s", connection_id, namespace, name, seconds)

    def get(self, connection_id: int, namespace: str, name: str) -> Optional[int]:
        sm = get_sessionmaker(self.database_url)
        with sm() as s:
            value = s.execute(
                select(PodStartupTime.startup_time_seconds)
                .where(PodStartupTime.connection_id == int(connection_id))
                .where(PodStartupTime.namespace == namespace)
                .where(PodStartupTime.deployment_name == name)
            ).scalar_one_or_none()
            return int(value) if value is not None else None

    def get_for_namespace(self, connection_id: int, namespace: str) -> Dict[str, int]:
        sm = get_sessionmaker(self.database_url)
        with sm() as s:
            rows = s.execute(
                select(PodStartupTime.deployment_name, PodStartupTime.startup_time_seconds)
                .where(PodStartupTime.connection_id == int(connection_id))
                .where(PodStartupTime.namespace == namespace)
            ).all()
            return {name: int(seconds) for name, seconds in rows}
