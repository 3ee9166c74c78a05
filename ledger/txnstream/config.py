"""
Configuration management for the txnstream server.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Invalid values fail at startup with ValueError, never later

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and the dataclass defaults in agreement
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_LISTEN_ADDR = "localhost:8000"


class StoreBackend(Enum):
    """Supported record store backends."""

    SQLITE = "sqlite"
    MEMORY = "memory"


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        listen_addr: Address to listen on (host:port)
    """

    listen_addr: str = DEFAULT_LISTEN_ADDR

    @property
    def host(self) -> str:
        return self.listen_addr.rpartition(":")[0]

    @property
    def port(self) -> int:
        return int(self.listen_addr.rpartition(":")[2])

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(listen_addr=os.getenv("LISTEN_ADDR", DEFAULT_LISTEN_ADDR))


@dataclass(frozen=True)
class StorageConfig:
    """Record store configuration.

    Attributes:
        backend: Which store backend to use
        data_dir: Directory for the SQLite database
        wal_mode: SQLite WAL journal mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        list_batch_size: Rows fetched per round trip while listing
    """

    backend: StoreBackend = StoreBackend.SQLITE
    data_dir: str = "./database"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    list_batch_size: int = 500

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("STORE_BACKEND", "sqlite").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: sqlite, memory")

        return cls(
            backend=backend,
            data_dir=os.getenv("DATA_DIR", "./database"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            list_batch_size=int(os.getenv("STORE_LIST_BATCH_SIZE", "500")),
        )


@dataclass(frozen=True)
class SubscriptionConfig:
    """Subscription fan-out configuration.

    Attributes:
        queue_capacity: Per-subscriber delivery queue size; a full queue
            suspends that subscriber's producer
    """

    queue_capacity: int = 10000

    @classmethod
    def from_env(cls) -> SubscriptionConfig:
        """Load configuration from environment variables."""
        return cls(
            queue_capacity=int(os.getenv("SUBSCRIPTION_QUEUE_CAPACITY", "10000")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        http: HTTP server configuration
        storage: Record store configuration
        subscriptions: Subscription fan-out configuration
        observability: Logging configuration
    """

    http: HttpConfig = field(default_factory=HttpConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    subscriptions: SubscriptionConfig = field(default_factory=SubscriptionConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            http=HttpConfig.from_env(),
            storage=StorageConfig.from_env(),
            subscriptions=SubscriptionConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        host, sep, port = self.http.listen_addr.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"LISTEN_ADDR must be host:port, got '{self.http.listen_addr}'")

        if self.storage.backend == StoreBackend.SQLITE and not self.storage.data_dir:
            raise ValueError("DATA_DIR is required when STORE_BACKEND=sqlite")
        if self.storage.list_batch_size < 1:
            raise ValueError("STORE_LIST_BATCH_SIZE must be at least 1")

        if self.subscriptions.queue_capacity < 1:
            raise ValueError("SUBSCRIPTION_QUEUE_CAPACITY must be at least 1")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.storage.backend == StoreBackend.SQLITE and not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created when the store opens."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "listen_addr": self.http.listen_addr,
                "store_backend": self.storage.backend.value,
                "data_dir": self.storage.data_dir
                if self.storage.backend == StoreBackend.SQLITE
                else None,
                "queue_capacity": self.subscriptions.queue_capacity,
                "log_level": self.observability.log_level,
            },
        )
