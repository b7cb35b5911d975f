"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from imgaudit.config import (
    AuditConfig,
    ConfigError,
    ConfigManager,
    environment_overrides,
    resolve_with_precedence,
)
from imgaudit.config.resolver import expand_dotted


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".imgaudit" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "imgaudit configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, AuditConfig)
    assert config.database.host == "localhost"
    assert config.scan.workers == 1


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"database": {"host": "db.internal"}, "scan": {"workers": 2}})

    env = {"IMGAUDIT__SCAN__WORKERS": "6", "IMGAUDIT__DATABASE__PORT": "3307"}
    cli = {"scan.workers": 8}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.database.host == "db.internal"
    assert config.database.port == 3307
    # CLI overrides take precedence over environment
    assert config.scan.workers == 8


def test_legacy_database_variables_are_honoured(tmp_path: Path) -> None:
    env = {
        "CS_DB_HOST": "10.0.0.9",
        "CS_DB_PORT": "3310",
        "CS_DB_USER": "auditor",
        "CS_DB_PASS": "007",
        "CS_DB_NAME": "cloud_prod",
    }
    manager = ConfigManager(config_path=tmp_path / "config.yaml", env=env)

    config = manager.load()

    assert config.database.host == "10.0.0.9"
    assert config.database.port == 3310
    assert config.database.user == "auditor"
    assert config.database.password == "007"
    assert config.database.name == "cloud_prod"


def test_prefixed_variables_win_over_legacy_ones(tmp_path: Path) -> None:
    env = {
        "CS_DB_HOST": "legacy-host",
        "IMGAUDIT__DATABASE__HOST": "new-host",
        "IMGAUDIT__DATABASE__PASSWORD": "12345",
    }
    manager = ConfigManager(config_path=tmp_path / "config.yaml", env=env)

    config = manager.load()

    assert config.database.host == "new-host"
    assert config.database.password == "12345"


def test_file_values_lose_to_environment(tmp_path: Path) -> None:
    manager = ConfigManager(
        config_path=tmp_path / "config.yaml", env={"CS_DB_HOST": "from-env"}
    )
    manager.save({"database": {"host": "from-file"}})

    assert manager.load().database.host == "from-env"
    assert manager.load(include_env=False).database.host == "from-file"


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=AuditConfig(),
            file_overrides={"scan": {"workers": 0}},
        )


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=AuditConfig(),
            cli_overrides={"database.hostname": "typo"},
        )


def test_environment_overrides_keep_legacy_values_as_strings() -> None:
    overrides = environment_overrides(
        {
            "CS_DB_PASS": "0042",
            "IMGAUDIT__SCAN__SHOW_NON_UUID": "true",
            "IMGAUDIT__": "ignored",
            "PATH": "/usr/bin",
        }
    )

    assert overrides == {"database.password": "0042", "scan.show_non_uuid": True}


def test_update_merges_dotted_changes_into_file(tmp_path: Path) -> None:
    manager = ConfigManager(config_path=tmp_path / "config.yaml", env={})
    manager.save({"database": {"host": "db.internal"}})

    written = manager.update({"database.port": 3310, "scan.workers": 4})

    assert written == {"database": {"host": "db.internal", "port": 3310}, "scan": {"workers": 4}}
    config = manager.load()
    assert (config.database.host, config.database.port, config.scan.workers) == (
        "db.internal",
        3310,
        4,
    )


def test_update_rejects_invalid_values_without_writing(tmp_path: Path) -> None:
    manager = ConfigManager(config_path=tmp_path / "config.yaml", env={})
    manager.save({"scan": {"workers": 2}})
    before = manager.read_text()

    with pytest.raises(ConfigError, match="scan.workers"):
        manager.update({"scan.workers": "many"})

    assert manager.read_text() == before


def test_expand_dotted_reports_conflicting_layer() -> None:
    with pytest.raises(ConfigError) as excinfo:
        expand_dotted({"scan": 1, "scan.workers": 2}, layer="environment")

    assert excinfo.value.source == "environment"


def test_expand_dotted_merges_nested_and_dotted_forms() -> None:
    expanded = expand_dotted(
        {"database": {"host": "a"}, "database.port": 1, "cli": {"sort": "name"}}, layer="cli"
    )

    assert expanded == {"database": {"host": "a", "port": 1}, "cli": {"sort": "name"}}
