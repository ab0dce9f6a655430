"""Configuration loading for the deletion CLI and worker.

Values are resolved in order: defaults, YAML config file, EVENT_DELETION_*
environment variables, then command-line options applied by the caller.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "EVENT_DELETION_"
DEFAULT_CONFIG_DIR = Path.home() / ".event-deletion"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"


@dataclass
class Config:
    """Runtime configuration.

    Attributes:
        storage_path: Base directory for documents, backups and audit logs
        artifact_backend: "local" or "s3"
        s3_bucket: Bucket for the s3 artifact backend
        s3_prefix: Key prefix for the s3 artifact backend
        aws_profile: AWS profile for the s3 artifact backend
        aws_region: AWS region for the s3 artifact backend
        default_grace_hours: Grace period used when none is given
        max_grace_hours: Longest grace period accepted
        poll_interval_seconds: Executor deletion tick interval
        reminder_interval_seconds: Executor reminder tick interval
        cleanup_interval_seconds: Executor retention cleanup interval
        retention_days: Age after which terminal requests are removed
        recent_payment_days: Window for the recent payments check
        worker_index: Index of this worker process
        primary_worker_index: Index of the worker that runs the executor
        force_delete_roles: Actor roles allowed to force-delete
        log_level: Logging level name
    """

    storage_path: Optional[str] = None
    artifact_backend: str = "local"
    s3_bucket: Optional[str] = None
    s3_prefix: str = "event-backups"
    aws_profile: Optional[str] = None
    aws_region: Optional[str] = None
    default_grace_hours: float = 1
    max_grace_hours: float = 168
    poll_interval_seconds: float = 60
    reminder_interval_seconds: float = 60
    cleanup_interval_seconds: float = 86400
    retention_days: int = 30
    recent_payment_days: int = 7
    worker_index: int = 1
    primary_worker_index: int = 1
    force_delete_roles: List[str] = field(default_factory=lambda: ["admin"])
    log_level: str = "INFO"

    @property
    def base_path(self) -> Path:
        return Path(self.storage_path) if self.storage_path else DEFAULT_CONFIG_DIR

    @property
    def documents_path(self) -> Path:
        return self.base_path / "data"

    @property
    def backups_path(self) -> Path:
        return self.base_path / "backups"

    @property
    def audit_path(self) -> Path:
        return self.base_path / "audit-logs"

    @classmethod
    def load(cls, config_file: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> "Config":
        """Load configuration from file and environment.

        Args:
            config_file: YAML file to read (default: ~/.event-deletion/config.yaml if present)
            environ: Environment mapping (default: os.environ)

        Returns:
            Config instance

        Raises:
            ValueError: If the file or an environment variable holds an invalid value
        """
        config = cls()

        path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
        if path.exists():
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config file {path} must contain a mapping")
            config.apply(data)
            logger.debug("Loaded config from %s", path)
        elif config_file:
            raise ValueError(f"Config file not found: {config_file}")

        env = os.environ if environ is None else environ
        overrides = {
            f.name: env[ENV_PREFIX + f.name.upper()] for f in fields(cls) if ENV_PREFIX + f.name.upper() in env
        }
        config.apply(overrides)
        config.validate()
        return config

    def apply(self, values: Dict[str, Any]) -> None:
        """Overlay values onto this config, coercing them to the field types."""
        known = {f.name: f for f in fields(self)}
        for key, value in values.items():
            if key not in known:
                logger.warning("Ignoring unknown config key: %s", key)
                continue
            if value is None:
                continue
            setattr(self, key, self._coerce(key, known[key].type, value))

    @staticmethod
    def _coerce(key: str, type_name: Any, value: Any) -> Any:
        type_name = str(type_name)
        try:
            if type_name.startswith("List"):
                if isinstance(value, str):
                    return [item.strip() for item in value.split(",") if item.strip()]
                return [str(item) for item in value]
            if type_name == "int":
                return int(value)
            if type_name == "float":
                return float(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid value for {key}: {value!r}") from e
        return str(value)

    def validate(self) -> None:
        if self.artifact_backend not in ("local", "s3"):
            raise ValueError(f"artifact_backend must be 'local' or 's3', got {self.artifact_backend!r}")
        if self.artifact_backend == "s3" and not self.s3_bucket:
            raise ValueError("s3_bucket is required when artifact_backend is 's3'")
        if not 0 < self.default_grace_hours <= self.max_grace_hours:
            raise ValueError("default_grace_hours must be greater than 0 and at most max_grace_hours")
        for key in (
            "poll_interval_seconds",
            "reminder_interval_seconds",
            "cleanup_interval_seconds",
            "retention_days",
            "recent_payment_days",
        ):
            if getattr(self, key) <= 0:
                raise ValueError(f"{key} must be greater than 0, got {getattr(self, key)}")
