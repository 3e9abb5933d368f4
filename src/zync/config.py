"""Configuration for zync.

Configuration is stored in ~/.zync/config.toml (or ``$ZYNC_DIR/config.toml``).
Persisted engine state lives next to it: ``<name>.db`` for the SQLite
backend, ``state/<name>.json`` for the JSON backend.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from zync.core.models import ConflictResolutionStrategy, MissingRemoteRecordStrategy

# Store names become file names: no path separators
_STORE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\.]+$")

STORAGE_BACKENDS: tuple[str, ...] = ("memory", "json", "sqlite")

LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "none": logging.CRITICAL + 1,
}


def get_zync_dir() -> Path:
    """Get zync data directory.

    Priority:
    1. ZYNC_DIR environment variable
    2. ~/.zync/
    """
    env_dir = os.environ.get("ZYNC_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".zync"


def configure_logging(min_level: str = "debug") -> None:
    """Set the threshold of the ``zync`` package logger.

    ``none`` silences the package entirely. Handlers are left to the host.
    """
    level = LOG_LEVELS.get(min_level.lower())
    if level is None:
        raise ValueError(f"Unknown log level: {min_level}")
    logging.getLogger("zync").setLevel(level)


@dataclass
class SyncConfig:
    """Engine behavior settings."""

    sync_interval: float = 5.0
    conflict_resolution_strategy: ConflictResolutionStrategy = (
        ConflictResolutionStrategy.LOCAL_WINS
    )
    missing_remote_record_strategy: MissingRemoteRecordStrategy = (
        MissingRemoteRecordStrategy.IGNORE
    )
    min_log_level: str = "debug"
    # Seconds between pulls of a collection; collections not listed pull every cycle
    pull_intervals: dict[str, float] = field(default_factory=dict)
    storage_backend: str = "sqlite"
    storage_name: str = "zync-store"

    def __post_init__(self) -> None:
        self.conflict_resolution_strategy = ConflictResolutionStrategy(
            self.conflict_resolution_strategy
        )
        self.missing_remote_record_strategy = MissingRemoteRecordStrategy(
            self.missing_remote_record_strategy
        )
        if self.sync_interval <= 0:
            raise ValueError("sync_interval must be positive")
        if self.min_log_level.lower() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.min_log_level}")
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(f"Unknown storage backend: {self.storage_backend}")
        if not _STORE_NAME_PATTERN.match(self.storage_name):
            raise ValueError(f"Invalid storage name: {self.storage_name!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "sync_interval": self.sync_interval,
            "conflict_resolution_strategy": self.conflict_resolution_strategy.value,
            "missing_remote_record_strategy": self.missing_remote_record_strategy.value,
            "min_log_level": self.min_log_level,
            "pull_intervals": dict(self.pull_intervals),
            "storage_backend": self.storage_backend,
            "storage_name": self.storage_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        return cls(
            sync_interval=float(data.get("sync_interval", 5.0)),
            conflict_resolution_strategy=data.get("conflict_resolution_strategy", "local-wins"),
            missing_remote_record_strategy=data.get("missing_remote_record_strategy", "ignore"),
            min_log_level=data.get("min_log_level", "debug"),
            pull_intervals={k: float(v) for k, v in data.get("pull_intervals", {}).items()},
            storage_backend=data.get("storage_backend", "sqlite"),
            storage_name=data.get("storage_name", "zync-store"),
        )


@dataclass
class ServerConfig:
    """Reference backend (``zync serve``) settings."""

    host: str = "127.0.0.1"
    port: int = 8000

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.port}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerConfig:
        return cls(
            host=data.get("host", "127.0.0.1"),
            port=int(data.get("port", 8000)),
        )


@dataclass
class ZyncConfig:
    """Top-level configuration shared by the CLI and embedding hosts."""

    data_dir: Path = field(default_factory=get_zync_dir)
    sync: SyncConfig = field(default_factory=SyncConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    version: str = "1.0"

    @classmethod
    def load(cls, config_path: Path | None = None) -> ZyncConfig:
        """Load configuration from file (defaults if missing), then apply env overrides."""
        if config_path is None:
            data_dir = get_zync_dir()
            config_path = data_dir / "config.toml"
        else:
            data_dir = config_path.parent

        data: dict[str, Any] = {}
        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)

        sync_data = dict(data.get("sync", {}))
        env_interval = os.environ.get("ZYNC_SYNC_INTERVAL")
        if env_interval:
            sync_data["sync_interval"] = float(env_interval)
        env_level = os.environ.get("ZYNC_LOG_LEVEL")
        if env_level:
            sync_data["min_log_level"] = env_level

        return cls(
            data_dir=data_dir,
            sync=SyncConfig.from_dict(sync_data),
            server=ServerConfig.from_dict(data.get("server", {})),
            version=data.get("version", "1.0"),
        )

    def save(self) -> None:
        """Save configuration to TOML file (atomic write via temp+rename)."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

        # Build TOML content manually (no toml write dependency)
        lines = [
            "# zync configuration",
            "",
            f'version = "{self.version}"',
            "",
            "# Sync engine settings",
            "[sync]",
            f"sync_interval = {self.sync.sync_interval}",
            f'conflict_resolution_strategy = "{self.sync.conflict_resolution_strategy.value}"',
            f'missing_remote_record_strategy = "{self.sync.missing_remote_record_strategy.value}"',
            f'min_log_level = "{self.sync.min_log_level}"',
            f'storage_backend = "{self.sync.storage_backend}"',
            f'storage_name = "{self.sync.storage_name}"',
            "",
            "# Per-collection pull intervals in seconds",
            "[sync.pull_intervals]",
        ]
        lines += [
            f"{json.dumps(name)} = {float(seconds)}"
            for name, seconds in sorted(self.sync.pull_intervals.items())
        ]
        lines += [
            "",
            "# Reference backend (zync serve)",
            "[server]",
            f"host = {json.dumps(self.server.host)}",
            f"port = {self.server.port}",
        ]

        content = "\n".join(lines) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=str(self.data_dir), suffix=".toml.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(self.config_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """Directory of the JSON storage backend."""
        return self.data_dir / "state"

    @property
    def db_path(self) -> Path:
        """Database file of the SQLite storage backend."""
        return self.data_dir / f"{self.sync.storage_name}.db"

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_dir": str(self.data_dir),
            "version": self.version,
            "sync": self.sync.to_dict(),
            "server": self.server.to_dict(),
        }
