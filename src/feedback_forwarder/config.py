"""Configuration for the feedback forwarder."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from .events import FieldMapping


SUPPORTED_METHODS = ("PUT", "POST", "PATCH")

# Host plugin spellings -> field names
_KEY_ALIASES = {
    "eventsToInclude": "events_to_include",
    "requestURL": "request_url",
    "RequestURL": "request_url",
    "methodType": "method_type",
    "MethodType": "method_type",
    "authToken": "auth_token",
}


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or malformed."""
    pass


@dataclass
class BatchConfig:
    """Batching configuration. Disabled means one request per accepted event."""
    enabled: bool = False
    max_bytes: int = 1024 * 1024
    flush_interval_seconds: float = 10.0


@dataclass
class FieldMappingConfig:
    """Dotted property paths feeding the feedback record (see FieldMapping)."""
    item_id: str = "item_id"
    user_id: str | None = None
    timestamp: str | None = None

    def to_mapping(self) -> FieldMapping:
        return FieldMapping(
            item_id=self.item_id,
            user_id=self.user_id,
            timestamp=self.timestamp,
        )


@dataclass
class ForwarderConfig:
    """Main configuration container."""
    # Comma-separated event names, matched verbatim
    events_to_include: str = ""
    request_url: str = ""
    method_type: str = "PUT"

    # Static bearer token (a token provider can be injected instead)
    auth_token: str | None = None

    # Glob patterns the request URL's host must match
    allowed_hosts: list[str] = field(default_factory=lambda: ["*"])

    timeout_seconds: float = 10.0

    field_mapping: FieldMappingConfig = field(default_factory=FieldMappingConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)

    def validate(self) -> None:
        """
        Check required settings.

        Raises:
            ConfigurationError: If anything required is missing or malformed
        """
        if not self.events_to_include:
            raise ConfigurationError("No events to include!")
        _require_str("events_to_include", self.events_to_include)

        if not self.request_url:
            raise ConfigurationError("request_url is required")
        _require_str("request_url", self.request_url)

        parsed = urlparse(self.request_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ConfigurationError(f"request_url must be an http(s) URL: {self.request_url!r}")

        if not isinstance(self.allowed_hosts, list) or not all(
            isinstance(pattern, str) for pattern in self.allowed_hosts
        ):
            raise ConfigurationError(
                f"allowed_hosts must be a list of strings, got {self.allowed_hosts!r}"
            )

        host = parsed.hostname
        if not any(fnmatch.fnmatch(host, pattern) for pattern in self.allowed_hosts):
            raise ConfigurationError(
                f"request_url host {host!r} does not match allowed hosts {self.allowed_hosts}"
            )

        _require_str("method_type", self.method_type)
        if self.method_type.upper() not in SUPPORTED_METHODS:
            raise ConfigurationError(
                f"method_type must be one of {', '.join(SUPPORTED_METHODS)}, got {self.method_type!r}"
            )

        if self.auth_token is not None:
            _require_str("auth_token", self.auth_token)

        _require_number("timeout_seconds", self.timeout_seconds)
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")

        if self.batch.enabled:
            _require_number("batch.max_bytes", self.batch.max_bytes)
            _require_number("batch.flush_interval_seconds", self.batch.flush_interval_seconds)
            if self.batch.max_bytes < 1:
                raise ConfigurationError("batch.max_bytes must be positive")
            if self.batch.flush_interval_seconds <= 0:
                raise ConfigurationError("batch.flush_interval_seconds must be positive")

        if not self.field_mapping.item_id:
            raise ConfigurationError("field_mapping.item_id must not be empty")
        _require_str("field_mapping.item_id", self.field_mapping.item_id)
        for name in ("user_id", "timestamp"):
            value = getattr(self.field_mapping, name)
            if value is not None:
                _require_str(f"field_mapping.{name}", value)

    @classmethod
    def from_dict(cls, data: dict) -> ForwarderConfig:
        """Create config from dictionary."""
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration must be a mapping, got {type(data).__name__}"
            )

        data = {_KEY_ALIASES.get(key, key): value for key, value in data.items()}
        known = {
            "events_to_include", "request_url", "method_type", "auth_token",
            "allowed_hosts", "timeout_seconds",
        }
        unknown = set(data) - known - {"field_mapping", "batch"}
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(sorted(map(str, unknown)))}"
            )

        sections = {}
        for section in ("field_mapping", "batch"):
            value = data.get(section) or {}
            if not isinstance(value, dict):
                raise ConfigurationError(
                    f"{section} must be a mapping, got {type(value).__name__}"
                )
            sections[section] = value

        try:
            return cls(
                **{key: value for key, value in data.items() if key in known},
                field_mapping=FieldMappingConfig(**sections["field_mapping"]),
                batch=BatchConfig(**sections["batch"]),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: str) -> ForwarderConfig:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> ForwarderConfig:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Settings with the auth token masked."""
        return {
            "events_to_include": self.events_to_include,
            "request_url": self.request_url,
            "method_type": self.method_type.upper(),
            "auth_token": "***" if self.auth_token else None,
            "allowed_hosts": list(self.allowed_hosts),
            "timeout_seconds": self.timeout_seconds,
            "field_mapping": {
                "item_id": self.field_mapping.item_id,
                "user_id": self.field_mapping.user_id,
                "timestamp": self.field_mapping.timestamp,
            },
            "batch": {
                "enabled": self.batch.enabled,
                "max_bytes": self.batch.max_bytes,
                "flush_interval_seconds": self.batch.flush_interval_seconds,
            },
        }


def _require_str(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise ConfigurationError(f"{name} must be a string, got {type(value).__name__}")


def _require_number(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be a number, got {type(value).__name__}")
