#!filepath: tests/base_test/test_app_config.py
import pytest
import yaml
from pydantic import ValidationError

from aspect_engine.config import AppConfig
from aspect_engine.config.log_config import LogConfig
from aspect_engine.config.orchestration_config import OrchestrationConfig
from aspect_engine.config.realization_config import RealizationConfig
from aspect_engine.config.storage_config import StorageConfig


@pytest.fixture
def sample_config_file(tmp_path):
    """
    Temporary YAML config; pytest removes the directory afterwards.
    """
    data = {
        "log": {
            "dir": "logs",
            "rotation": "1 day",
            "retention": "7 days",
            "level": "DEBUG",
        },
        "storage": {
            "db_path": "var/exp.db",
            "experiment_root": "var/experiments",
            "aspect_table": "aspect_engine/config/aspects.conf",
        },
        "orchestration": {
            "executable": "/opt/orch",
            "log_dir": "/var/log/orch",
            "startup_wait": 2.5,
        },
        "realization": {"max_rounds": 7},
    }

    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.safe_dump(data), encoding="utf-8")
    return config_file


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    for env in ("ASPECT_DB_PATH", "ASPECT_EXPERIMENT_ROOT", "ASPECT_TABLE", "ORCHESTRATOR_BIN"):
        monkeypatch.delenv(env, raising=False)


def test_app_config_load(sample_config_file):
    cfg = AppConfig.load(path=str(sample_config_file))

    assert isinstance(cfg, AppConfig)
    assert isinstance(cfg.log, LogConfig)
    assert isinstance(cfg.storage, StorageConfig)
    assert isinstance(cfg.orchestration, OrchestrationConfig)
    assert isinstance(cfg.realization, RealizationConfig)

    assert cfg.log.level == "DEBUG"
    assert cfg.log.retention == "7 days"
    assert cfg.storage.db_path == "var/exp.db"
    assert cfg.orchestration.executable == "/opt/orch"
    assert cfg.orchestration.startup_wait == 2.5
    assert cfg.realization.max_rounds == 7


def test_app_config_defaults():
    cfg = AppConfig()

    assert cfg.realization.max_rounds == 5
    assert cfg.orchestration.startup_wait == 1.0
    assert cfg.orchestration.validate_timeout == 60.0
    assert cfg.log.format.startswith("{time")
    assert cfg.orchestration.log_dir == "/tmp"
    assert cfg.storage.aspect_table is None


def test_env_overrides(sample_config_file, monkeypatch):
    monkeypatch.setenv("ASPECT_DB_PATH", "/data/other.db")
    monkeypatch.setenv("ORCHESTRATOR_BIN", "/usr/bin/true")

    cfg = AppConfig.load(path=str(sample_config_file))

    assert cfg.storage.db_path == "/data/other.db"
    assert cfg.orchestration.executable == "/usr/bin/true"
    # untouched
    assert cfg.storage.experiment_root == "var/experiments"


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load(path=str(tmp_path / "nope.yml"))


def test_max_rounds_must_be_positive():
    with pytest.raises(ValidationError):
        RealizationConfig(max_rounds=0)


def test_resolve_path(tmp_path):
    assert AppConfig.resolve_path(str(tmp_path)) == str(tmp_path)

    rel = AppConfig.resolve_path("aspect_engine/config/aspects.conf")
    assert rel.endswith("aspect_engine/config/aspects.conf")
    assert rel != "aspect_engine/config/aspects.conf"


def test_shipped_base_config_loads():
    cfg = AppConfig.load()

    assert cfg.realization.max_rounds == 5
    assert cfg.storage.aspect_table.endswith("aspects.conf")
