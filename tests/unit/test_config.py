"""
Unit tests for environment-driven configuration.
"""

import logging

import json_log_formatter
import pytest

from ledger.txnstream.config import (
    DEFAULT_LISTEN_ADDR,
    HttpConfig,
    ObservabilityConfig,
    ServerConfig,
    StorageConfig,
    StoreBackend,
    SubscriptionConfig,
)
from ledger.txnstream.main import setup_logging

ENV_VARS = [
    "LISTEN_ADDR",
    "STORE_BACKEND",
    "DATA_DIR",
    "SQLITE_WAL_MODE",
    "SQLITE_BUSY_TIMEOUT_MS",
    "STORE_LIST_BATCH_SIZE",
    "SUBSCRIPTION_QUEUE_CAPACITY",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestServerConfig:
    """Tests for ServerConfig.from_env()."""

    def test_defaults(self, tmp_path, monkeypatch):
        """Unset environment gives the documented defaults."""
        monkeypatch.chdir(tmp_path)

        config = ServerConfig.from_env()

        assert config.http.listen_addr == DEFAULT_LISTEN_ADDR
        assert config.http.host == "localhost"
        assert config.http.port == 8000
        assert config.storage.backend == StoreBackend.SQLITE
        assert config.storage.data_dir == "./database"
        assert config.subscriptions.queue_capacity == 10000
        assert config.observability.log_format == "json"

    def test_reads_environment(self, monkeypatch):
        """Environment variables override the defaults."""
        monkeypatch.setenv("LISTEN_ADDR", "0.0.0.0:9100")
        monkeypatch.setenv("STORE_BACKEND", "MEMORY")
        monkeypatch.setenv("SUBSCRIPTION_QUEUE_CAPACITY", "16")
        monkeypatch.setenv("SQLITE_WAL_MODE", "false")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = ServerConfig.from_env()

        assert config.http.host == "0.0.0.0"
        assert config.http.port == 9100
        assert config.storage.backend == StoreBackend.MEMORY
        assert config.storage.wal_mode is False
        assert config.subscriptions.queue_capacity == 16
        assert config.observability.log_format == "text"

    def test_invalid_backend(self, monkeypatch):
        """An unknown STORE_BACKEND is rejected."""
        monkeypatch.setenv("STORE_BACKEND", "rocksdb")

        with pytest.raises(ValueError, match="STORE_BACKEND"):
            ServerConfig.from_env()

    @pytest.mark.parametrize(
        "config",
        [
            ServerConfig(http=HttpConfig(listen_addr="localhost")),
            ServerConfig(http=HttpConfig(listen_addr="localhost:http")),
            ServerConfig(storage=StorageConfig(data_dir="")),
            ServerConfig(storage=StorageConfig(backend=StoreBackend.MEMORY, list_batch_size=0)),
            ServerConfig(subscriptions=SubscriptionConfig(queue_capacity=0)),
            ServerConfig(observability=ObservabilityConfig(log_format="xml")),
        ],
    )
    def test_validate_rejects(self, config):
        """validate() rejects unusable settings."""
        with pytest.raises(ValueError):
            config.validate()


class TestSetupLogging:
    """Tests for setup_logging()."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        """JSON format installs a JSONFormatter at the configured level."""
        setup_logging(ServerConfig(observability=ObservabilityConfig(log_level="debug")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self):
        """Text format installs a plain formatter."""
        setup_logging(ServerConfig(observability=ObservabilityConfig(log_format="text")))

        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)
