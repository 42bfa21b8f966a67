from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ReplicaControlConfig:
    """Runtime configuration for the replica control engine.

    DB selection:
    - REPLICA_CONTROL_DATABASE_URL: engine-specific DB URL (preferred)
    - PLATFORM_DATABASE_URL: shared DB URL
    - If neither is set, defaults to local SQLite at data/replica_control.db

    Cluster access:
    - REPLICA_CONTROL_VERIFY_SSL: verify API server certificates (default: false)
    - REPLICA_CONTROL_CA_FILE: CA bundle used when verification is on
    - REPLICA_CONTROL_REQUEST_TIMEOUT: per-request timeout in seconds (default: 30)

    Startup probe:
    - REPLICA_CONTROL_PROBE_TIMEOUT: seconds to wait for a replacement pod (default: 300)
    - REPLICA_CONTROL_PROBE_INTERVAL: seconds between polls (default: 2)
    - REPLICA_CONTROL_SIMULATED_STARTUP_SECONDS: value reported for simulated connections

    Logging:
    - REPLICA_CONTROL_LOG_LEVEL (default: INFO)
    """

    database_url: str
    verify_ssl: bool
    ca_file: Optional[str]
    request_timeout: int
    probe_timeout_seconds: int
    probe_interval_seconds: float
    simulated_startup_seconds: int
    log_level: str

    DEFAULT_REQUEST_TIMEOUT: int = 30
    DEFAULT_PROBE_TIMEOUT: int = 300
    DEFAULT_PROBE_INTERVAL: float = 2.0
    DEFAULT_SIMULATED_STARTUP_SECONDS: int = 5

    @classmethod
    def from_env(cls) -> "ReplicaControlConfig":
        db_url = (
            os.environ.get("REPLICA_CONTROL_DATABASE_URL")
            or os.environ.get("PLATFORM_DATABASE_URL")
            or ""
        ).strip()

        if not db_url:
            repo_root = Path(__file__).resolve().parents[1]
            data_dir = repo_root / "data"
            data_dir.mkdir(parents=True, exist_ok=True)
            db_url = f"sqlite:///{(data_dir / 'replica_control.db').as_posix()}"

        return cls(
            database_url=db_url,
            verify_ssl=_env_bool("REPLICA_CONTROL_VERIFY_SSL", False),
            ca_file=_env_optional_str("REPLICA_CONTROL_CA_FILE"),
            request_timeout=max(1, _env_int("REPLICA_CONTROL_REQUEST_TIMEOUT", cls.DEFAULT_REQUEST_TIMEOUT)),
            probe_timeout_seconds=max(0, _env_int("REPLICA_CONTROL_PROBE_TIMEOUT", cls.DEFAULT_PROBE_TIMEOUT)),
            probe_interval_seconds=max(0.0, _env_float("REPLICA_CONTROL_PROBE_INTERVAL", cls.DEFAULT_PROBE_INTERVAL)),
            simulated_startup_seconds=_env_int(
                "REPLICA_CONTROL_SIMULATED_STARTUP_SECONDS", cls.DEFAULT_SIMULATED_STARTUP_SECONDS
            ),
            log_level=(_env_optional_str("REPLICA_CONTROL_LOG_LEVEL") or "INFO").upper(),
        )


_config: Optional[ReplicaControlConfig] = None


def get_config() -> ReplicaControlConfig:
    """Get the engine configuration (cached)."""
    global _config
    if _config is None:
        _config = ReplicaControlConfig.from_env()
    return _config


def reset_config() -> None:
    global _config
    _config = None


_LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a stdout handler to the package logger.

    Safe to call more than once; the handler is only installed the first time.
    """

    logger = logging.getLogger("replica_control")
    level_name = (level or get_config().log_level).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    if not any(getattr(h, "_replica_control", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._replica_control = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger


def _env_optional_str(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip() or None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip().lower()
    if raw in {"1", "true", "yes", "y", "on"}:
        return True
    if raw in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except Exception:
        return int(default)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return float(default)
    try:
        return float(str(raw).strip())
    except Exception:
        return float(default)
