# aspect_engine/aspects/orchestration.py
from __future__ import annotations

import os
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from aspect_engine import logs
from aspect_engine.aspects.base import UNCHANGED, RealizeResult
from aspect_engine.aspects.default import DefaultAspect
from aspect_engine.config.orchestration_config import OrchestrationConfig
from aspect_engine.experiment.records import ExperimentAspect
from aspect_engine.topology import TopologyDescription
from aspect_engine.utils.errors import InternalFault, RequestFault


def _write_script(data: bytes) -> Path:
    fd, name = tempfile.mkstemp(prefix="tmp", suffix=".aal")
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return Path(name)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except OSError as e:
        logs.debug(f"[Orchestration] cannot delete {path}: {e}")


class OrchestrationAspect(DefaultAspect):
    """
    Orchestration scripts (AAL) run by an external orchestrator.

    add      : the script is checked by the orchestrator before it is stored
    realize  : launches the orchestrator in the background, at most one per
               experiment; a realize while one is running is a no-op
    """

    TYPE = "orchestration"

    def __init__(self, aspect_type: str = TYPE, cfg: Optional[OrchestrationConfig] = None):
        # the configured type is ignored
        super().__init__(self.TYPE)
        self.cfg = cfg or OrchestrationConfig()

        # one lock per eid, created on first use
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        # one watcher thread per running orchestrator
        self._watchers: Dict[str, threading.Thread] = {}

    # --------------------------------------------------
    # lock map
    # --------------------------------------------------
    def _lock_for(self, eid: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(eid)
            if lock is None:
                lock = threading.Lock()
                self._locks[eid] = lock
            return lock

    def is_running(self, eid: str) -> bool:
        with self._locks_guard:
            lock = self._locks.get(eid)
        return lock is not None and lock.locked()

    def watcher(self, eid: str) -> Optional[threading.Thread]:
        return self._watchers.get(eid)

    def forget(self, eid: str) -> bool:
        """
        Drop the lock of an experiment that is not being orchestrated.
        Returns False (and keeps the lock) while an orchestrator runs.
        """
        with self._locks_guard:
            lock = self._locks.get(eid)
            if lock is None:
                return True
            if lock.locked():
                return False
            del self._locks[eid]
            self._watchers.pop(eid, None)
            return True

    # --------------------------------------------------
    # process helpers
    # --------------------------------------------------
    def _exited_early(self, proc) -> bool:
        """
        Watch a fresh process for `startup_wait` seconds.
        True if it has already exited.
        """
        deadline = time.monotonic() + self.cfg.startup_wait
        while True:
            if proc.poll() is not None:
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(self.cfg.poll_interval)

    def _watch(self, eid: str, proc, lock: threading.Lock, script: Path) -> None:
        try:
            ret = proc.wait()
            if ret == 0:
                logs.info(f"[Orchestration] {eid}: orchestrator finished")
            else:
                logs.warning(f"[Orchestration] {eid}: orchestrator exited with {ret}")
        finally:
            lock.release()
            _discard(script)

    # --------------------------------------------------
    # Aspect contract
    # --------------------------------------------------
    def add_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        if aspect.data is None:
            raise RequestFault("No orchestration data?")

        script = _write_script(aspect.data)
        try:
            proc = subprocess.run(
                [self.cfg.executable, "-f", str(script), "-j"],
                capture_output=True,
                text=True,
                timeout=self.cfg.validate_timeout,
            )
        except subprocess.TimeoutExpired:
            raise InternalFault(
                f"AAL validator timed out after {self.cfg.validate_timeout}s"
            )
        except OSError as e:
            raise InternalFault(f"Cannot parse AAL!?: {e}")
        finally:
            _discard(script)

        if proc.returncode != 0:
            logs.warning(
                f"[Orchestration] validator rejected {aspect.name}: "
                f"{(proc.stderr or '')[-2000:]}"
            )
            raise RequestFault("Invalid format")

        return [aspect]

    def realize_aspect(
            self,
            exp,
            tid: int,
            aspect: ExperimentAspect,
            topology: Optional[TopologyDescription],
    ) -> RealizeResult:
        eid = exp.eid
        logs.debug(f"[Orchestration] realizing orchestration aspect for {eid}")

        lock = self._lock_for(eid)
        if not lock.acquire(blocking=False):
            logs.debug(f"[Orchestration] {eid}: orchestrator already running")
            return UNCHANGED

        running = False
        script: Optional[Path] = None
        try:
            matches = exp.get_aspects(
                [ExperimentAspect(type=self.type, sub_type=aspect.sub_type, name=aspect.name)],
                get_data=True,
            )
            if not matches:
                raise RequestFault("No such aspect")
            if len(matches) > 1:
                raise RequestFault("Multiple aspects with same name")

            project = eid.split(":")[0]
            experiment = eid.replace(":", "-")

            script = _write_script(matches[0].data or b"")
            log_path = Path(self.cfg.log_dir) / f"{project}_{experiment}_orch.log"
            log_path.parent.mkdir(parents=True, exist_ok=True)

            cmd = [
                self.cfg.executable,
                "-p", project,
                "-e", experiment,
                "-f", str(script),
                "-o", str(log_path),
            ]
            logs.debug(f"[Orchestration] running: {' '.join(cmd)}")

            with log_path.open("a") as f:
                proc = subprocess.Popen(cmd, stdout=f, stderr=subprocess.STDOUT)

            if self._exited_early(proc) and proc.returncode != 0:
                raise InternalFault("Could not orchestrate experiment")

            t = threading.Thread(
                target=self._watch,
                args=(eid, proc, lock, script),
                name=f"orch-watch-{eid}",
                daemon=True,
            )
            t.start()
            self._watchers[eid] = t
            running = True
            logs.info(f"[Orchestration] {eid}: orchestrator started pid={proc.pid}")
            return UNCHANGED

        except OSError as e:
            raise InternalFault(f"Could not orchestrate experiment. IO error!?: {e}")
        finally:
            if not running:
                lock.release()
                if script is not None:
                    _discard(script)
