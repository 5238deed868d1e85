"""Pipeline configuration: dataclasses, environment/YAML loading and the config store."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Literal, Mapping, Optional
from urllib.parse import urlsplit

import yaml

logger = logging.getLogger(__name__)

ExportMode = Literal["simple", "batch"]

DEFAULT_MAX_ATTRIBUTE_SIZE = 4096
DEFAULT_ENDPOINT = "localhost:55681/v1/traces"
DEFAULT_STATEMENT_CACHE_SIZE = 50
TOKEN_HEADER = "x-spanpipe-token"

CONFIG_DIR_NAME = ".spanpipe"
CONFIG_FILE_NAME = "config.yaml"
PROJECT_ROOT_MARKERS = ("pyproject.toml", "setup.py", "setup.cfg", CONFIG_DIR_NAME)


@dataclass(frozen=True)
class SanitizationPolicy:
    """Size bound and redaction rules applied to every attribute value."""

    max_attribute_size: int = DEFAULT_MAX_ATTRIBUTE_SIZE
    # Dot-separated key paths, e.g. "http.request.headers.authorization"
    excluded_keys: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not isinstance(self.max_attribute_size, int) or self.max_attribute_size <= 0:
            raise ValueError(f"max_attribute_size must be a positive integer, got {self.max_attribute_size!r}")
        if not isinstance(self.excluded_keys, frozenset):
            object.__setattr__(self, "excluded_keys", frozenset(self.excluded_keys))

    def is_excluded(self, path: str) -> bool:
        return path in self.excluded_keys

    def with_excluded_key(self, key: str) -> SanitizationPolicy:
        if key in self.excluded_keys:
            return self
        return replace(self, excluded_keys=self.excluded_keys | {key})

    def without_excluded_key(self, key: str) -> SanitizationPolicy:
        if key not in self.excluded_keys:
            return self
        return replace(self, excluded_keys=self.excluded_keys - {key})


@dataclass(frozen=True)
class RetryConfig:
    """Backoff schedule for the HTTP exporter.

    ``max_retries = k`` allows at most ``k + 1`` attempts per send.
    """

    max_retries: int = 5
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("Backoff delays must be >= 0")


@dataclass(frozen=True)
class PipelineConfig:
    """Process-level settings shared by the sanitizer, the export driver and the exporter."""

    # Sanitization
    max_attribute_size: int = DEFAULT_MAX_ATTRIBUTE_SIZE
    excluded_keys: frozenset[str] = frozenset()

    # Transport
    endpoint: str = DEFAULT_ENDPOINT
    headers: Mapping[str, str] = field(default_factory=dict)
    token: Optional[str] = None
    insecure: bool = False
    compression: Optional[Literal["gzip"]] = None
    export_timeout_seconds: float = 10.0
    retry_max_attempts: int = 5
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 30.0

    # Export driver
    export_mode: ExportMode = "batch"
    batch_max_size: int = 512
    batch_max_delay_seconds: float = 2.0
    max_queue_size: int = 2048

    # Process / instrumentation
    debug: bool = False
    app_name: Optional[str] = None
    metadata_only: bool = True
    statement_cache_size: int = DEFAULT_STATEMENT_CACHE_SIZE

    _policy: SanitizationPolicy = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.excluded_keys, frozenset):
            object.__setattr__(self, "excluded_keys", frozenset(self.excluded_keys))
        self.validate()
        object.__setattr__(
            self, "_policy", SanitizationPolicy(max_attribute_size=self.max_attribute_size, excluded_keys=self.excluded_keys)
        )

    def validate(self) -> None:
        """Raise ValueError when a setting is out of range."""
        for name in ("max_attribute_size", "batch_max_size", "max_queue_size", "retry_max_attempts", "statement_cache_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        if self.max_attribute_size <= 0:
            raise ValueError(f"max_attribute_size must be > 0, got {self.max_attribute_size}")
        if self.batch_max_size <= 0:
            raise ValueError(f"batch_max_size must be > 0, got {self.batch_max_size}")
        if self.max_queue_size <= 0:
            raise ValueError(f"max_queue_size must be > 0, got {self.max_queue_size}")
        if self.batch_max_delay_seconds <= 0:
            raise ValueError(f"batch_max_delay_seconds must be > 0, got {self.batch_max_delay_seconds}")
        if self.export_timeout_seconds <= 0:
            raise ValueError(f"export_timeout_seconds must be > 0, got {self.export_timeout_seconds}")
        if self.retry_max_attempts < 0:
            raise ValueError(f"retry_max_attempts must be >= 0, got {self.retry_max_attempts}")
        if self.backoff_base_seconds < 0:
            raise ValueError(f"backoff_base_seconds must be >= 0, got {self.backoff_base_seconds}")
        if self.statement_cache_size < 1:
            raise ValueError(f"statement_cache_size must be >= 1, got {self.statement_cache_size}")
        if self.export_mode not in ("simple", "batch"):
            raise ValueError(f"export_mode must be 'simple' or 'batch', got {self.export_mode!r}")
        if self.compression not in (None, "gzip"):
            raise ValueError(f"Unsupported compression {self.compression!r}")

    @property
    def sanitization_policy(self) -> SanitizationPolicy:
        return self._policy

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.retry_max_attempts,
            initial_delay_seconds=self.backoff_base_seconds,
            max_delay_seconds=max(self.backoff_max_seconds, self.backoff_base_seconds),
        )

    @property
    def resolved_endpoint(self) -> str:
        """Endpoint URL with a scheme; bare ``host:port/path`` gets http when insecure."""
        if urlsplit(self.endpoint).scheme in ("http", "https"):
            return self.endpoint
        scheme = "http" if self.insecure else "https"
        return f"{scheme}://{self.endpoint}"

    @property
    def export_headers(self) -> dict[str, str]:
        headers = dict(self.headers)
        if self.token:
            headers[TOKEN_HEADER] = self.token
        return headers

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> PipelineConfig:
        """Create config from environment variables.

        Environment variables:
        - SPANPIPE_TOKEN: credential sent in the x-spanpipe-token header
        - SPANPIPE_APP_NAME: service.name of the exported resource
        - SPANPIPE_DEBUG: "true" enables debug logging and console mirroring
        - SPANPIPE_METADATA: anything but "false" keeps payload capture off
        - SPANPIPE_BACKEND: collector endpoint
        - SPANPIPE_INSECURE: "true" uses plain http for scheme-less endpoints
        - SPANPIPE_MAX_ATTRIBUTE_SIZE: per-attribute byte limit
        - SPANPIPE_EXPORT_MODE: "simple" or "batch"
        """
        values = _env_values(os.environ if environ is None else environ)
        values.update(overrides)
        return cls(**values)


def _env_values(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {
        "debug": environ.get("SPANPIPE_DEBUG", "").lower() == "true",
        "metadata_only": environ.get("SPANPIPE_METADATA", "").lower() != "false",
        "endpoint": environ.get("SPANPIPE_BACKEND") or DEFAULT_ENDPOINT,
    }
    if environ.get("SPANPIPE_TOKEN"):
        values["token"] = environ["SPANPIPE_TOKEN"]
    if environ.get("SPANPIPE_APP_NAME"):
        values["app_name"] = environ["SPANPIPE_APP_NAME"]
    if "SPANPIPE_INSECURE" in environ:
        values["insecure"] = environ["SPANPIPE_INSECURE"].lower() == "true"
    if environ.get("SPANPIPE_EXPORT_MODE"):
        values["export_mode"] = environ["SPANPIPE_EXPORT_MODE"].lower()
    size = environ.get("SPANPIPE_MAX_ATTRIBUTE_SIZE")
    if size:
        try:
            values["max_attribute_size"] = int(size)
        except ValueError:
            logger.warning(f"Invalid SPANPIPE_MAX_ATTRIBUTE_SIZE value '{size}', using default")
    return values


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from ``start`` (default: cwd) to the first directory holding a project marker."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if any((directory / marker).exists() for marker in PROJECT_ROOT_MARKERS):
            return directory
    return None


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Read ``.spanpipe/config.yaml`` and return only the keys PipelineConfig knows."""
    if path is None:
        root = find_project_root()
        if root is None:
            return {}
        path = root / CONFIG_DIR_NAME / CONFIG_FILE_NAME

    if not path.exists():
        logger.debug(f"No config file at {path}")
        return {}

    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config file {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Config file {path} must contain a mapping, ignoring it")
        return {}

    known = {f.name for f in fields(PipelineConfig) if f.init}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
    return {key: value for key, value in data.items() if key in known}


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None, **overrides: Any) -> PipelineConfig:
    """
    Build a PipelineConfig.

    Precedence (highest to lowest):
    1. Keyword overrides
    2. Environment variables
    3. YAML configuration (.spanpipe/config.yaml)
    4. Built-in defaults
    """
    values = load_config_file(path)
    env = os.environ if environ is None else environ
    env_values = _env_values(env)
    # Flags with implicit env defaults only override the file when actually set
    if "SPANPIPE_DEBUG" not in env:
        env_values.pop("debug")
    if "SPANPIPE_METADATA" not in env:
        env_values.pop("metadata_only")
    if not env.get("SPANPIPE_BACKEND"):
        env_values.pop("endpoint")
    values.update(env_values)
    values.update(overrides)
    return PipelineConfig(**values)


class ConfigStore:
    """
    Shared, mostly-read holder of the current PipelineConfig.

    Readers take ``current`` without locking; writers build a complete new
    config and swap it in under ``_write_lock``.
    """

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self._config = config or PipelineConfig()
        self._write_lock = threading.Lock()

    @property
    def current(self) -> PipelineConfig:
        return self._config

    @property
    def policy(self) -> SanitizationPolicy:
        return self._config.sanitization_policy

    def update(self, **changes: Any) -> PipelineConfig:
        """Apply ``changes`` atomically; invalid values raise and leave the config untouched."""
        with self._write_lock:
            new_config = replace(self._config, **changes)
            self._config = new_config
            return new_config

    def add_excluded_key(self, key: str) -> PipelineConfig:
        with self._write_lock:
            if key in self._config.excluded_keys:
                return self._config
            self._config = replace(self._config, excluded_keys=self._config.excluded_keys | {key})
            return self._config

    def remove_excluded_key(self, key: str) -> PipelineConfig:
        with self._write_lock:
            if key not in self._config.excluded_keys:
                return self._config
            self._config = replace(self._config, excluded_keys=self._config.excluded_keys - {key})
            return self._config
