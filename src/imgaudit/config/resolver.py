"""Layered configuration resolution.

Settings are resolved from four layers, lowest precedence first: model
defaults, the YAML file, the environment, and command-line flags. Every layer
other than the defaults may use dotted keys (``"database.host"``) or nested
mappings; both forms are expanded before merging.
"""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from .exceptions import ConfigError
from .models import AuditConfig

ENV_PREFIX = "IMGAUDIT__"
LAYER_ORDER = ("file", "environment", "cli")


def resolve_with_precedence(
    *,
    defaults: AuditConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AuditConfig:
    """Merge the override layers over ``defaults`` and validate the result.

    Raises:
        ConfigError: If a layer is malformed or the merged values fail validation.
    """
    merged: Dict[str, Any] = defaults.model_dump(mode="python")
    layers = (file_overrides, env_overrides, cli_overrides)
    for layer, overrides in zip(LAYER_ORDER, layers):
        if overrides is not None:
            merged = merge_overrides(merged, expand_dotted(overrides, layer=layer))

    try:
        return AuditConfig.model_validate(merged)
    except ValidationError as exc:
        problems = "; ".join(_describe_error(error) for error in exc.errors())
        raise ConfigError(f"Invalid configuration values: {problems}") from exc


def expand_dotted(source: Mapping[str, Any], *, layer: str) -> Dict[str, Any]:
    """Turn dotted keys into nested mappings.

    Raises:
        ConfigError: If ``source`` is not a mapping, a key is not a string, or a
            dotted key descends into a scalar set earlier in the same layer.
    """
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{layer.capitalize()} overrides must be a mapping.", source=layer)

    expanded: Dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{layer.capitalize()} override keys must be strings.", source=layer)
        if isinstance(value, MappingABC):
            value = expand_dotted(value, layer=layer)

        *parents, leaf = key.split(".")
        node = expanded
        for segment in parents:
            child = node.setdefault(segment, {})
            if not isinstance(child, dict):
                raise ConfigError(
                    f"{layer.capitalize()} override {key} conflicts with the value at {segment}.",
                    source=layer,
                )
            node = child

        if isinstance(value, dict) and isinstance(node.get(leaf), dict):
            node[leaf] = merge_overrides(node[leaf], value)
        else:
            node[leaf] = value
    return expanded


def merge_overrides(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a deep copy of ``base`` with ``overrides`` applied section by section."""
    merged = deepcopy(dict(base))
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = merge_overrides(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _describe_error(error: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg', 'invalid value')}"


__all__ = [
    "ENV_PREFIX",
    "LAYER_ORDER",
    "expand_dotted",
    "merge_overrides",
    "resolve_with_precedence",
]
