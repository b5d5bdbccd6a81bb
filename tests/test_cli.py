# tests/test_cli.py
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

import aspect_engine
from aspect_engine import __version__
from aspect_engine.cli import app
from aspect_engine.experiment.records import ExperimentAspect
from aspect_engine.service import ExperimentService

ASPECT_TABLE = Path(aspect_engine.__file__).parent / "config" / "aspects.conf"

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    data = {
        "log": {"dir": str(tmp_path / "logs"), "level": "DEBUG"},
        "storage": {
            "db_path": str(tmp_path / "exp.db"),
            "experiment_root": str(tmp_path / "experiments"),
            "aspect_table": str(ASPECT_TABLE),
        },
        "orchestration": {"log_dir": str(tmp_path / "orch")},
    }
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.fixture
def populated(config_file, star_layout):
    svc = ExperimentService.from_config_file(str(config_file))
    svc.db.add_user("alice")
    svc.create_experiment(
        "proj:star",
        "alice",
        [
            ExperimentAspect(type="layout", data=star_layout),
            ExperimentAspect(type="notes", name="readme", data=b"hello"),
        ],
    )
    return config_file


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_list(populated):
    result = runner.invoke(app, ["-c", str(populated), "list"])

    assert result.exit_code == 0
    assert "proj:star" in result.output


def test_show(populated):
    result = runner.invoke(app, ["-c", str(populated), "show", "proj:star"])

    assert result.exit_code == 0
    assert "alice" in result.output


def test_aspects(populated):
    result = runner.invoke(app, ["-c", str(populated), "aspects", "proj:star", "--type", "notes"])

    assert result.exit_code == 0
    assert "readme" in result.output
    assert "layout" not in result.output


def test_realize_to_file(populated, tmp_path):
    out = tmp_path / "topo.yml"
    result = runner.invoke(app, ["-c", str(populated), "realize", "proj:star", "--out", str(out)])

    assert result.exit_code == 0
    topo = yaml.safe_load(out.read_text(encoding="utf-8"))
    assert {e["name"] for e in topo["elements"]} == {"a", "b", "lan"}


@pytest.mark.parametrize("eid", ["noproject", "proj:ghost"])
def test_fault_exit_code(populated, eid):
    result = runner.invoke(app, ["-c", str(populated), "show", eid])

    assert result.exit_code == 1
    assert "fault" in result.output
