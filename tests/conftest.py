# tests/conftest.py
from __future__ import annotations

import subprocess
import threading
import time
from pathlib import Path

import pytest
from loguru import logger

import aspect_engine
from aspect_engine import AppConfig
from aspect_engine.aspects.registry import AspectRegistry
from aspect_engine.experiment.db import Database
from aspect_engine.service import ExperimentService

ASPECT_TABLE = Path(aspect_engine.__file__).parent / "config" / "aspects.conf"


@pytest.fixture(autouse=True)
def disable_file_logger():
    logger.remove()
    logger.add(lambda msg: None)  # or sys.stderr
    yield


# ============================================================
# config / storage
# ============================================================
@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """
    Everything isolated under tmp_path; the orchestrator is never real.
    """
    return AppConfig(
        log={"dir": str(tmp_path / "logs")},
        storage={
            "db_path": str(tmp_path / "db" / "experiments.db"),
            "experiment_root": str(tmp_path / "experiments"),
            "aspect_table": str(ASPECT_TABLE),
        },
        orchestration={
            "executable": "/opt/testbed/bin/orchestrator",
            "log_dir": str(tmp_path / "orch_logs"),
            "startup_wait": 0.05,
            "poll_interval": 0.01,
        },
    )


@pytest.fixture
def db(app_config: AppConfig) -> Database:
    d = Database(app_config.storage.db_path)
    d.add_user("alice")
    d.add_user("bob")
    return d


@pytest.fixture
def registry(app_config: AppConfig) -> AspectRegistry:
    return AspectRegistry.from_config(app_config)


@pytest.fixture
def service(app_config, db, registry) -> ExperimentService:
    return ExperimentService(cfg=app_config, db=db, registry=registry)


# ============================================================
# topologies
# ============================================================
@pytest.fixture
def star_layout() -> bytes:
    """Two computers on one LAN."""
    return b"""
elements:
  - {name: a, kind: computer}
  - {name: b, kind: computer}
  - {name: lan, kind: substrate}
interfaces:
  - {element: a, substrate: lan}
  - {element: b, substrate: lan}
"""


@pytest.fixture
def star_layout_relabeled() -> bytes:
    """Same shape as star_layout, other names, drawing hints only."""
    return b"""
elements:
  - {name: x, kind: computer, attributes: {layout.x: "10", label: left}}
  - {name: net, kind: substrate}
  - {name: y, kind: computer, attributes: {layout.x: "90"}}
interfaces:
  - {element: y, substrate: net}
  - {element: x, substrate: net}
"""


@pytest.fixture
def triangle_layout() -> bytes:
    """Three computers on one LAN: not isomorphic to star_layout."""
    return b"""
elements:
  - {name: a, kind: computer}
  - {name: b, kind: computer}
  - {name: c, kind: computer}
  - {name: lan, kind: substrate}
interfaces:
  - {element: a, substrate: lan}
  - {element: b, substrate: lan}
  - {element: c, substrate: lan}
"""


@pytest.fixture
def region_layout() -> bytes:
    """
    Region r = 2 copies of fragment `pair`, each copy's computer also
    attached to the core substrate.
    """
    return b"""
attributes: {os: bsd}
elements:
  - {name: core, kind: substrate}
  - {name: r, kind: region, fragment: pair, count: 2}
interfaces:
  - {element: r, substrate: core}
fragments:
  - name: pair
    elements:
      - {name: n, kind: computer}
      - {name: s, kind: substrate}
    interfaces:
      - {element: n, substrate: s}
"""


# ============================================================
# orchestrator process doubles
# ============================================================
class DummyProcess:
    """
    A blocking dummy orchestrator.

    Contract:
    - poll() is None until terminate() (or exit_now)
    - wait() blocks until terminate() is called
    """

    def __init__(self, returncode: int = 0, exit_now: bool = False):
        self.pid = 99999
        self.returncode = None
        self._rc = returncode
        self._stop = threading.Event()
        if exit_now:
            self._stop.set()

    def poll(self):
        if self._stop.is_set():
            self.returncode = self._rc
        return self.returncode

    def wait(self):
        while not self._stop.is_set():
            time.sleep(0.01)
        self.returncode = self._rc
        return self._rc

    def terminate(self):
        self._stop.set()


@pytest.fixture
def fake_validator(monkeypatch):
    """
    Patch subprocess.run (the AAL validator). Set holder["returncode"]
    to make it reject; every call's argv lands in holder["calls"].
    """
    holder = {"returncode": 0, "calls": []}

    def fake_run(cmd, *args, **kwargs):
        holder["calls"].append(list(cmd))
        return subprocess.CompletedProcess(cmd, holder["returncode"], stdout="", stderr="bad aal")

    monkeypatch.setattr(subprocess, "run", fake_run)
    return holder


@pytest.fixture
def fake_orchestrator(monkeypatch):
    """
    Patch subprocess.Popen to hand out DummyProcess objects.
    holder["mode"]: "run" (blocks) | "fail" (exits 1 at once)
    """
    holder = {"mode": "run", "procs": [], "cmds": []}

    def fake_popen(cmd, *args, **kwargs):
        if holder["mode"] == "fail":
            proc = DummyProcess(returncode=1, exit_now=True)
        else:
            proc = DummyProcess()
        holder["procs"].append(proc)
        holder["cmds"].append(list(cmd))
        return proc

    monkeypatch.setattr(subprocess, "Popen", fake_popen)
    yield holder

    # safety cleanup
    for proc in holder["procs"]:
        proc.terminate()
