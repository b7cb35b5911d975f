"""Configuration management for imgaudit.

The configuration lives in ``~/.imgaudit/config.yaml``. Environment variables
override the file: ``IMGAUDIT__SECTION__KEY`` for any setting, plus the
``CS_DB_*`` variables operators already export for the database connection.
"""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import AuditConfig
from .resolver import (
    ENV_PREFIX,
    expand_dotted,
    merge_overrides,
    resolve_with_precedence,
)

DEFAULT_CONFIG_PATH = Path("~/.imgaudit/config.yaml")
_HEADER = textwrap.dedent(
    """\
    # imgaudit configuration file
    # Edit by hand or run `imgaudit config set KEY --value VALUE`.
    """
)

# Database variables from the CS_DB_* convention; IMGAUDIT__ variables win over them.
LEGACY_ENV_KEYS = {
    "CS_DB_HOST": "database.host",
    "CS_DB_PORT": "database.port",
    "CS_DB_USER": "database.user",
    "CS_DB_PASS": "database.password",
    "CS_DB_NAME": "database.name",
}


def environment_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect configuration overrides from environment variables.

    Legacy ``CS_DB_*`` values are kept as raw strings so a numeric password
    stays a string. Prefixed values are parsed as YAML scalars.

    Args:
        env: Environment mapping, usually ``os.environ``.

    Returns:
        dict[str, Any]: Dotted keys mapped to override values.
    """
    overrides: dict[str, Any] = {
        dotted: env[name] for name, dotted in LEGACY_ENV_KEYS.items() if name in env
    }
    for name, raw_value in env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in name[len(ENV_PREFIX) :].split("__") if part]
        if segments:
            overrides[".".join(segments)] = _parse_scalar(raw_value)
    return overrides


def _parse_scalar(raw_value: str) -> Any:
    try:
        return yaml.safe_load(raw_value)
    except yaml.YAMLError:
        return raw_value


class ConfigManager:
    """Read, resolve and persist the imgaudit configuration file."""

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> AuditConfig:
        """Return the effective configuration.

        Args:
            cli_overrides: Dotted keys set by command-line flags; highest precedence.
            include_env: Whether environment variables are consulted.
            ensure_file: Create the file with defaults when it does not exist.
            env_overrides: Environment mapping to use instead of the manager's.

        Raises:
            ConfigError: If the file is unreadable or the merged values are invalid.
        """
        if ensure_file:
            self.ensure_exists()

        env_layer = None
        if include_env:
            env_layer = environment_overrides(
                env_overrides if env_overrides is not None else self._env
            )

        return resolve_with_precedence(
            defaults=AuditConfig(),
            file_overrides=self.file_overrides(),
            env_overrides=env_layer or None,
            cli_overrides=cli_overrides,
        )

    def file_overrides(self) -> dict[str, Any]:
        """Return the mapping stored on disk, or an empty one when there is no file.

        Raises:
            ConfigError: If the file is not valid YAML or not a mapping.
        """
        text = self.read_text()
        if not text:
            return {}
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {self._config_path}: {exc}", source="file") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"{self._config_path} must contain a mapping at the top level.", source="file"
            )
        return data

    def update(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Merge ``changes`` (dotted or nested keys) into the file, validate, and save.

        Returns:
            dict[str, Any]: The mapping written to disk.

        Raises:
            ConfigError: If the merged mapping does not validate.
        """
        data = merge_overrides(self.file_overrides(), expand_dotted(changes, layer="cli"))
        resolve_with_precedence(defaults=AuditConfig(), file_overrides=data)
        self.save(data)
        return data

    def save(self, config: AuditConfig | Mapping[str, Any]) -> None:
        data = config.model_dump(mode="python") if isinstance(config, AuditConfig) else dict(config)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        body = yaml.safe_dump(data, sort_keys=False)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(
            f"{_HEADER}# Last updated: {stamp}\n{body}", encoding="utf-8"
        )

    def ensure_exists(self) -> Path:
        """Write a defaults file unless one is already present."""
        if not self._config_path.exists():
            self.save(AuditConfig())
        return self._config_path

    def read_text(self) -> str:
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")


__all__ = [
    "AuditConfig",
    "ConfigError",
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "LEGACY_ENV_KEYS",
    "environment_overrides",
    "resolve_with_precedence",
]
