import logging

import pytest

from replica_control.config import ReplicaControlConfig, configure_logging, get_config, reset_config


@pytest.fixture(autouse=True)
def _clean_config():
    reset_config()
    yield
    reset_config()


def test_from_env(monkeypatch):
    monkeypatch.setenv("REPLICA_CONTROL_DATABASE_URL", "sqlite:///tmp/test.db")
    monkeypatch.setenv("REPLICA_CONTROL_VERIFY_SSL", "yes")
    monkeypatch.setenv("REPLICA_CONTROL_CA_FILE", "/etc/ca.pem")
    monkeypatch.setenv("REPLICA_CONTROL_REQUEST_TIMEOUT", "12")
    monkeypatch.setenv("REPLICA_CONTROL_PROBE_TIMEOUT", "60")
    monkeypatch.setenv("REPLICA_CONTROL_PROBE_INTERVAL", "0.5")
    monkeypatch.setenv("REPLICA_CONTROL_LOG_LEVEL", "debug")

    cfg = ReplicaControlConfig.from_env()

    assert cfg.database_url == "sqlite:///tmp/test.db"
    assert cfg.verify_ssl is True
    assert cfg.ca_file == "/etc/ca.pem"
    assert cfg.request_timeout == 12
    assert cfg.probe_timeout_seconds == 60
    assert cfg.probe_interval_seconds == 0.5
    assert cfg.simulated_startup_seconds == 5
    assert cfg.log_level == "DEBUG"


def test_platform_url_and_bad_values_fall_back(monkeypatch):
    monkeypatch.delenv("REPLICA_CONTROL_DATABASE_URL", raising=False)
    monkeypatch.setenv("PLATFORM_DATABASE_URL", "postgresql+psycopg2://u:p@db/platform")
    monkeypatch.setenv("REPLICA_CONTROL_VERIFY_SSL", "maybe")
    monkeypatch.setenv("REPLICA_CONTROL_REQUEST_TIMEOUT", "soon")
    monkeypatch.setenv("REPLICA_CONTROL_PROBE_INTERVAL", "-3")

    cfg = ReplicaControlConfig.from_env()

    assert cfg.database_url.startswith("postgresql+psycopg2://")
    assert cfg.verify_ssl is False
    assert cfg.request_timeout == ReplicaControlConfig.DEFAULT_REQUEST_TIMEOUT
    assert cfg.probe_interval_seconds == 0.0


def test_get_config_is_cached(monkeypatch):
    monkeypatch.setenv("REPLICA_CONTROL_DATABASE_URL", "sqlite:///tmp/a.db")

    assert get_config() is get_config()


def test_configure_logging_is_idempotent():
    logger = configure_logging("WARNING")
    configure_logging("WARNING")

    marked = [h for h in logger.handlers if getattr(h, "_replica_control", False)]
    try:
        assert len(marked) == 1
        assert logger.level == logging.WARNING
    finally:
        for h in marked:
            logger.removeHandler(h)
        logger.setLevel(logging.NOTSET)
