# aspect_engine/service.py
from __future__ import annotations

from typing import List, Optional

from aspect_engine.aspects.registry import AspectRegistry
from aspect_engine.config.app_config import AppConfig
from aspect_engine.experiment.credentials import CredentialManager, NullCredentialManager
from aspect_engine.experiment.db import Database
from aspect_engine.experiment.experiment import Experiment, list_experiments
from aspect_engine.experiment.records import (
    AccessMember,
    ExperimentAspect,
    RealizationResult,
)
from aspect_engine.utils.logger import init_logging, logs


class ExperimentService:
    """
    Composition root.

    Owns config, database, aspect registry and credential manager and
    wires them into every Experiment it hands out.
    """

    def __init__(
            self,
            cfg: Optional[AppConfig] = None,
            db: Optional[Database] = None,
            registry: Optional[AspectRegistry] = None,
            credentials: Optional[CredentialManager] = None,
    ):
        self.cfg = cfg or AppConfig.load()
        self.db = db or Database(AppConfig.resolve_path(self.cfg.storage.db_path))
        self.registry = registry or AspectRegistry.from_config(self.cfg)
        self.credentials = credentials or NullCredentialManager()

    @classmethod
    def from_config_file(cls, path: Optional[str] = None) -> "ExperimentService":
        cfg = AppConfig.load(path)
        init_logging(cfg.log)
        return cls(cfg)

    def experiment(self, eid: str) -> Experiment:
        return Experiment(eid, self.db, self.registry, self.cfg, self.credentials)

    # --------------------------------------------------
    def create_experiment(
            self,
            eid: str,
            owner: str,
            aspects: Optional[List[ExperimentAspect]] = None,
            acl: Optional[List[AccessMember]] = None,
    ) -> Experiment:
        exp = self.experiment(eid)
        exp.create(owner, aspects if aspects is not None else [], acl if acl is not None else [])
        return exp

    def remove_experiment(self, eid: str) -> None:
        self.experiment(eid).remove()

    def realize_experiment(self, eid: str) -> RealizationResult:
        return self.experiment(eid).realize_aspects()

    def release_experiment(self, eid: str) -> None:
        self.experiment(eid).release_aspects()

    def list_experiments(
            self,
            uid: Optional[str] = None,
            regex: Optional[str] = None,
            offset: int = 0,
            count: int = -1,
    ) -> List[Experiment]:
        eids = list_experiments(self.db, uid=uid, regex=regex, offset=offset, count=count)
        logs.debug(f"[ExperimentService] list uid={uid} regex={regex} -> {len(eids)}")
        return [self.experiment(e) for e in eids]
