# tests/aspects/test_orchestration_aspect.py
import subprocess
import threading
from pathlib import Path

import pytest

from aspect_engine.experiment.records import ExperimentAspect
from aspect_engine.utils.errors import InternalFault, RequestFault

EID = "proj:orch"
AAL = b"event sequence: [start, stop]\n"


def _orch_aspect(data=AAL, name="script"):
    return ExperimentAspect(type="orchestration", name=name, data=data)


@pytest.fixture
def orch(registry):
    return registry.get_instance("orchestration")


@pytest.fixture
def exp(service, fake_validator):
    return service.create_experiment(EID, "alice", [_orch_aspect()])


def _wait_idle(orch, eid=EID):
    t = orch.watcher(eid)
    t.join(timeout=5)
    assert not t.is_alive()
    assert not orch.is_running(eid)


# ============================================================
# add (validation)
# ============================================================
def test_add_runs_validator(service, fake_validator, app_config):
    service.create_experiment(EID, "alice", [_orch_aspect()])

    [cmd] = fake_validator["calls"]
    assert cmd[0] == app_config.orchestration.executable
    assert cmd[1] == "-f"
    assert cmd[3] == "-j"
    assert cmd[2].endswith(".aal")
    # temp file cleaned up
    assert not Path(cmd[2]).exists()


def test_add_rejects_invalid_script(service, fake_validator):
    fake_validator["returncode"] = 2

    with pytest.raises(RequestFault) as ei:
        service.create_experiment(EID, "alice", [_orch_aspect()])

    assert ei.value.detail == "Invalid format"
    assert not service.experiment(EID).exists()


def test_add_requires_data(service, fake_validator):
    with pytest.raises(RequestFault):
        service.create_experiment(EID, "alice", [_orch_aspect(data=None)])


def test_validator_os_error_is_internal(service, monkeypatch):
    def broken_run(*args, **kwargs):
        raise FileNotFoundError("no orchestrator")

    monkeypatch.setattr(subprocess, "run", broken_run)

    with pytest.raises(InternalFault):
        service.create_experiment(EID, "alice", [_orch_aspect()])


def test_validator_timeout_is_internal(service, monkeypatch, app_config):
    seen = {}

    def slow_run(cmd, *args, **kwargs):
        seen["timeout"] = kwargs.get("timeout")
        raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

    monkeypatch.setattr(subprocess, "run", slow_run)

    with pytest.raises(InternalFault) as ei:
        service.create_experiment(EID, "alice", [_orch_aspect()])

    assert "timed out" in ei.value.detail
    assert seen["timeout"] == app_config.orchestration.validate_timeout
    assert not service.experiment(EID).exists()


# ============================================================
# realize
# ============================================================
def test_realize_launches_orchestrator(exp, orch, fake_orchestrator, app_config):
    result = exp.realize_aspects()

    assert result.topology is None
    assert len(fake_orchestrator["cmds"]) == 1

    cmd = fake_orchestrator["cmds"][0]
    assert cmd[0] == app_config.orchestration.executable
    assert cmd[cmd.index("-p") + 1] == "proj"
    assert cmd[cmd.index("-e") + 1] == "proj-orch"

    log = Path(cmd[cmd.index("-o") + 1])
    assert log == Path(app_config.orchestration.log_dir) / "proj_proj-orch_orch.log"
    assert log.exists()

    script = Path(cmd[cmd.index("-f") + 1])
    assert script.read_bytes() == AAL

    assert orch.is_running(EID)
    fake_orchestrator["procs"][0].terminate()
    _wait_idle(orch)

    # script removed once the orchestrator exits
    assert not script.exists()


def test_second_realize_while_running_is_noop(exp, orch, fake_orchestrator):
    exp.realize_aspects()
    exp.realize_aspects()

    assert len(fake_orchestrator["procs"]) == 1

    fake_orchestrator["procs"][0].terminate()
    _wait_idle(orch)

    exp.realize_aspects()
    assert len(fake_orchestrator["procs"]) == 2


def test_concurrent_realize_launches_once(exp, orch, fake_orchestrator):
    view = exp.immutable()
    [aspect] = exp.get_aspects([ExperimentAspect(type="orchestration", name="script")])

    n = 8
    barrier = threading.Barrier(n)
    errors = []

    def worker():
        barrier.wait()
        try:
            orch.realize_aspect(view, 0, aspect, None)
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(fake_orchestrator["procs"]) == 1

    fake_orchestrator["procs"][0].terminate()
    _wait_idle(orch)


def test_early_failure_releases_lock(exp, orch, fake_orchestrator):
    fake_orchestrator["mode"] = "fail"

    with pytest.raises(InternalFault):
        exp.realize_aspects()
    assert not orch.is_running(EID)

    fake_orchestrator["mode"] = "run"
    exp.realize_aspects()
    assert orch.is_running(EID)

    fake_orchestrator["procs"][-1].terminate()
    _wait_idle(orch)


def test_launch_os_error_releases_lock(exp, orch, monkeypatch):
    def broken_popen(*args, **kwargs):
        raise PermissionError("not executable")

    monkeypatch.setattr(subprocess, "Popen", broken_popen)

    with pytest.raises(InternalFault):
        exp.realize_aspects()
    assert not orch.is_running(EID)


def test_other_experiments_not_blocked(service, fake_validator, orch, fake_orchestrator):
    a = service.create_experiment("proj:a", "alice", [_orch_aspect()])
    b = service.create_experiment("proj:b", "alice", [_orch_aspect()])

    a.realize_aspects()
    b.realize_aspects()

    assert len(fake_orchestrator["procs"]) == 2
    for p in fake_orchestrator["procs"]:
        p.terminate()
    _wait_idle(orch, "proj:a")
    _wait_idle(orch, "proj:b")


def test_many_runs_each_release_their_lock(service, fake_validator, orch, fake_orchestrator):
    # more concurrent runs than any default worker pool holds
    n = 40
    exps = [
        service.create_experiment(f"proj:e{i}", "alice", [_orch_aspect()])
        for i in range(n)
    ]
    for e in exps:
        e.realize_aspects()
    assert len(fake_orchestrator["procs"]) == n

    # the newest run finishes while every other one is still going
    fake_orchestrator["procs"][-1].terminate()
    _wait_idle(orch, f"proj:e{n - 1}")
    assert orch.is_running("proj:e0")

    exps[-1].realize_aspects()
    assert len(fake_orchestrator["procs"]) == n + 1

    for p in fake_orchestrator["procs"]:
        p.terminate()
    for i in range(n):
        _wait_idle(orch, f"proj:e{i}")


def test_forget(exp, orch, fake_orchestrator, service):
    exp.realize_aspects()

    # busy: lock kept
    assert orch.forget(EID) is False

    fake_orchestrator["procs"][0].terminate()
    _wait_idle(orch)

    service.remove_experiment(EID)
    assert EID not in orch._locks
    assert orch.watcher(EID) is None


def test_change_and_remove_pass_through(exp, fake_validator):
    results = exp.change_aspects([_orch_aspect(data=b"new script\n")])
    assert all(r.success for r in results)

    [stored] = exp.get_aspects([ExperimentAspect(type="orchestration", name="script")], get_data=True)
    assert stored.data == b"new script\n"

    results = exp.remove_aspects([ExperimentAspect(type="orchestration", name="script")])
    assert [r.success for r in results] == [True]
    assert exp.get_aspects() == []
