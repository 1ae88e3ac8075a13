from pathlib import Path

import pytest
from pydantic import ValidationError

from cogniflow.application.config import AppConfig, resolve_config
from cogniflow.domain.models import LeechAction


def test_defaults(mock_home):
    config = AppConfig()

    assert config.backend == "none"
    assert config.leech_threshold == 8
    assert config.leech_action is LeechAction.SUSPEND
    assert config.data_dir == mock_home / ".local/share/cogniflow"
    assert config.snapshot_path == config.data_dir / "snapshot.json"
    assert config.baseline_path == config.data_dir / "baseline.json"


def test_env_overrides_defaults(mock_home, monkeypatch):
    monkeypatch.setenv("COGNIFLOW_LEECH_THRESHOLD", "5")
    monkeypatch.setenv("COGNIFLOW_BACKEND", "http")

    config = AppConfig()

    assert config.leech_threshold == 5
    assert config.backend == "http"


def test_toml_file_is_lowest_priority(mock_home, monkeypatch):
    cfg = mock_home / ".config/cogniflow/config.toml"
    cfg.parent.mkdir(parents=True)
    cfg.write_text('leech_threshold = 3\nleech_action = "tag"\n')
    monkeypatch.setattr("cogniflow.application.config.CONFIG_FILE", cfg)

    assert AppConfig().leech_threshold == 3
    assert AppConfig().leech_action is LeechAction.TAG

    monkeypatch.setenv("COGNIFLOW_LEECH_THRESHOLD", "4")
    assert AppConfig().leech_threshold == 4
    assert resolve_config({"leech_threshold": 6}).leech_threshold == 6


def test_resolve_config_ignores_unset_overrides(mock_home):
    config = resolve_config({"data_dir": None, "remote_url": "https://backup.example"})

    assert config.data_dir == mock_home / ".local/share/cogniflow"
    assert config.remote_url == "https://backup.example"


def test_paths_are_expanded(mock_home):
    config = resolve_config({"data_dir": "~/study"})
    assert config.data_dir == Path(mock_home) / "study"


@pytest.mark.parametrize(
    "field, value",
    [
        ("leech_threshold", 0),
        ("simulation_retention", 1.5),
        ("simulation_new_per_day", -1),
        ("backend", "ftp"),
    ],
)
def test_invalid_values_are_rejected(mock_home, field, value):
    with pytest.raises(ValidationError):
        AppConfig(**{field: value})


def test_engine_config(mock_home):
    config = resolve_config(
        {
            "leech_threshold": 4,
            "leech_action": "warn",
            "simulation_retention": 0.8,
            "simulation_new_per_day": 7,
        }
    )

    engine = config.engine()

    assert engine.leech_threshold == 4
    assert engine.leech_action is LeechAction.WARN
    assert engine.retention == 0.8
    assert engine.new_items_per_day == 7
