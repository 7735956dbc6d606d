from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from userapi.config import ConfigError, Settings, load_settings, resolve_database_path


def test_defaults_generate_ephemeral_secret(tmp_path: Path) -> None:
    settings = load_settings(config_path=tmp_path / "missing.yaml", environ={})

    assert settings.database_path == resolve_database_path(None)
    assert len(settings.token_secret) >= 32
    assert settings.token_ttl == timedelta(hours=1)
    assert settings.port == 8000
    assert settings.rate_limit_ceiling == 120


def test_yaml_file_is_loaded_relative_to_its_directory(tmp_path: Path) -> None:
    config_path = tmp_path / "userapi.yaml"
    config_path.write_text(
        "database_path: data/users.sqlite3\n"
        "token_secret: from-yaml\n"
        "token_ttl: 900\n"
        "rate_limit_window: 30\n"
        "rate_limit_ceiling: 5\n"
        "log_level: debug\n",
        encoding="utf-8",
    )

    settings = load_settings(config_path=config_path, environ={})

    assert settings.database_path == (tmp_path / "data" / "users.sqlite3").resolve()
    assert settings.token_secret == "from-yaml"
    assert settings.token_ttl == timedelta(seconds=900)
    assert settings.rate_limit_window == timedelta(seconds=30)
    assert settings.rate_limit_ceiling == 5
    assert settings.log_level == "DEBUG"


def test_environment_overrides_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "userapi.yaml"
    config_path.write_text("token_secret: from-yaml\nport: 9000\n", encoding="utf-8")

    settings = load_settings(
        config_path=config_path,
        environ={"USERAPI_TOKEN_SECRET": "from-env", "USERAPI_PORT": "9100"},
    )

    assert settings.token_secret == "from-env"
    assert settings.port == 9100


def test_config_path_comes_from_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "custom.yaml"
    config_path.write_text("host: 127.0.0.1\n", encoding="utf-8")

    settings = load_settings(environ={"USERAPI_CONFIG": str(config_path)})

    assert settings.host == "127.0.0.1"


@pytest.mark.parametrize(
    "data",
    [
        {"port": "http"},
        {"port": 70000},
        {"token_ttl": 0},
        {"rate_limit_window": "soon"},
        {"log_level": "chatty"},
    ],
)
def test_invalid_values_are_rejected(data) -> None:
    with pytest.raises(ConfigError):
        Settings.from_dict({"token_secret": "s", **data})


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "userapi.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_settings(config_path=config_path, environ={})


def test_secret_is_not_in_repr(tmp_path: Path) -> None:
    settings = Settings(database_path=tmp_path / "db.sqlite3", token_secret="hidden-value")

    assert "hidden-value" not in repr(settings)
