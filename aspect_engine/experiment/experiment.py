# aspect_engine/experiment/experiment.py
from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import Iterable, List, Optional

from aspect_engine.aspects.registry import AspectRegistry
from aspect_engine.config.app_config import AppConfig
from aspect_engine.experiment.aspect_store import AspectStore
from aspect_engine.experiment.credentials import (
    READ_EXPERIMENT,
    CredentialManager,
    NullCredentialManager,
    validate_permissions,
)
from aspect_engine.experiment.db import Database
from aspect_engine.experiment.immutable import ImmutableExperiment
from aspect_engine.experiment.records import (
    AccessMember,
    ChangeResult,
    ExperimentAspect,
    RealizationResult,
)
from aspect_engine.experiment.transaction import (
    AddOperation,
    ChangeOperation,
    RealizeOperation,
    ReleaseOperation,
    RemoveOperation,
    process_aspects,
)
from aspect_engine.utils.errors import AspectFault, InternalFault, RequestFault
from aspect_engine.utils.filesystem import FileSystem
from aspect_engine.utils.logger import logs

_SCOPED_NAME = re.compile(r"^[^:]+:[^:]+$")


def check_scoped_name(name: Optional[str]) -> str:
    """`<project>:<name>`, both parts non-empty."""
    if name is None or not _SCOPED_NAME.match(name):
        raise RequestFault(f"Bad scoped name (lexical) {name}")
    return name


class Experiment:
    """
    Experiment

    One experiment: its row, ACL, aspect rows and component directory.
    Aspect changes always go through the aspect plugins first
    (process_aspects); only what the plugins return is persisted.
    """

    def __init__(
            self,
            eid: str,
            db: Database,
            registry: AspectRegistry,
            cfg: Optional[AppConfig] = None,
            credentials: Optional[CredentialManager] = None,
    ):
        self.eid = check_scoped_name(eid)
        self.db = db
        self.registry = registry
        self.cfg = cfg or registry.cfg
        self.credentials = credentials or NullCredentialManager()

    def __repr__(self) -> str:
        return f"Experiment({self.eid!r})"

    # --------------------------------------------------
    # helpers
    # --------------------------------------------------
    def immutable(self) -> ImmutableExperiment:
        return ImmutableExperiment(self)

    def _store(self, root: Optional[Path] = None) -> AspectStore:
        if root is None:
            root = self.get_component_directory()
        return AspectStore(self.db, self.eid, root)

    def _experiment_root(self) -> Path:
        root = self.cfg.storage.experiment_root
        if not root:
            raise InternalFault("no experiment root directory")
        return Path(AppConfig.resolve_path(root))

    # --------------------------------------------------
    # queries
    # --------------------------------------------------
    def exists(self) -> bool:
        return self.db.experiment_exists(self.eid)

    def get_component_directory(self) -> Optional[Path]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT compdir FROM experiments WHERE eid = ?", (self.eid,)
            ).fetchall()
        if len(rows) > 1:
            raise InternalFault(f"More than one match for eid? {self.eid}")
        if not rows or rows[0]["compdir"] is None:
            return None
        return Path(rows[0]["compdir"])

    def get_owner(self) -> str:
        with self.db.connect() as conn:
            rows = conn.execute(
                """
                SELECT u.uid FROM experiments AS e
                LEFT JOIN users AS u ON u.idx = e.owneridx
                WHERE e.eid = ?
                """,
                (self.eid,),
            ).fetchall()
        if len(rows) > 1:
            raise InternalFault("More than one owner for experiment??")
        if not rows or rows[0]["uid"] is None:
            raise InternalFault("No owner for experiment??")
        return rows[0]["uid"]

    def get_aspects(
            self,
            patterns: Optional[Iterable[ExperimentAspect]] = None,
            get_data: bool = False,
    ) -> List[ExperimentAspect]:
        """
        Stored aspects matching any of `patterns`, or all of them when
        no patterns are given.
        """
        store = self._store()
        if patterns is None:
            records = store.all(get_data)
        else:
            records = store.gather(patterns, get_data)
        return [r.export() for r in records]

    def get_acl(self) -> List[AccessMember]:
        with self.db.connect() as conn:
            rows = conn.execute(
                """
                SELECT circle, permission FROM experimentperms
                WHERE eidx = (SELECT idx FROM experiments WHERE eid = ?)
                ORDER BY circle, permission
                """,
                (self.eid,),
            ).fetchall()

        acl: dict[str, List[str]] = {}
        for r in rows:
            acl.setdefault(r["circle"], []).append(r["permission"])
        return [AccessMember(circle_id=c, permissions=p) for c, p in acl.items()]

    # --------------------------------------------------
    # lifecycle
    # --------------------------------------------------
    @logs.catch(msg="experiment create failed", log_time=True)
    def create(
            self,
            owner: Optional[str],
            aspects: Optional[List[ExperimentAspect]],
            acl: Optional[List[AccessMember]],
    ) -> None:
        if owner is None:
            raise RequestFault("No owner given")
        if aspects is None:
            raise RequestFault("No aspects given")
        if acl is None:
            raise RequestFault("No acl given")
        if not self.db.user_exists(owner):
            raise RequestFault(f"No such user {owner}")

        root = self._experiment_root() / self.eid

        # plugins vet everything before any row exists
        vetted = process_aspects(aspects, self.registry, self.immutable(), AddOperation())

        with self.db.connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO experiments (eid, owneridx, compdir)
                    VALUES (?, (SELECT idx FROM users WHERE uid = ?), ?)
                    """,
                    (self.eid, owner, str(root.resolve())),
                )
            except sqlite3.IntegrityError:
                raise RequestFault("Experiment exists")

        # from here on a failure wipes the partial experiment
        try:
            for m in acl:
                self.assign_permissions(m)

            store = self._store(root)
            for a in vetted:
                store.record_for(a).save(put_data=True, create=True)

        except AspectFault:
            try:
                self.remove()
            except AspectFault as e:
                logs.warning(f"[Experiment] {self.eid}: rollback incomplete: {e.detail}")
            raise

        self.credentials.update_policy_credentials(self.eid)
        self.credentials.update_circle_credentials(self.eid)
        self.credentials.update_owner_credentials(self.eid, None, owner)
        logs.info(f"[Experiment] created {self.eid} owner={owner} aspects={len(vetted)}")

    def remove(self) -> None:
        """
        Delete the experiment: files (best effort), credentials, rows.
        """
        try:
            root = self.get_component_directory()
        except AspectFault as e:
            logs.warning(f"[Experiment] {self.eid}: no component directory: {e.detail}")
            root = None

        if root is not None:
            FileSystem.clean_dir(root)

        self.credentials.remove_credentials(self.eid)
        self.registry.forget_experiment(self.eid)

        with self.db.connect() as conn:
            params = (self.eid,)
            conn.execute(
                "DELETE FROM experimentaspects "
                "WHERE eidx = (SELECT idx FROM experiments WHERE eid = ?)",
                params,
            )
            conn.execute(
                "DELETE FROM experimentperms "
                "WHERE eidx = (SELECT idx FROM experiments WHERE eid = ?)",
                params,
            )
            ndel = conn.execute("DELETE FROM experiments WHERE eid = ?", params).rowcount

        if ndel == 0:
            raise RequestFault("No such experiment")
        if ndel > 1:
            raise InternalFault("Multiple experiments deleted??")
        if root is not None and root.exists():
            raise InternalFault("Could not completely delete configuration directory")

        logs.info(f"[Experiment] removed {self.eid}")

    def set_owner(self, uid: Optional[str]) -> None:
        if uid is None:
            raise RequestFault("setOwner failed. No owner provided")
        if not self.db.user_exists(uid):
            raise RequestFault(f"No such user {uid}")

        old = self.get_owner()
        with self.db.connect() as conn:
            conn.execute(
                """
                UPDATE experiments
                SET owneridx = (SELECT idx FROM users WHERE uid = ?)
                WHERE eid = ?
                """,
                (uid, self.eid),
            )
        self.credentials.update_owner_credentials(self.eid, old, uid)

    def assign_permissions(self, member: AccessMember) -> None:
        """
        Replace the circle's grants with `member.permissions`.
        No permissions removes the circle from the ACL.
        """
        try:
            perms = validate_permissions(member.permissions or [])

            with self.db.connect() as conn:
                eidx = Database.experiment_index(conn, self.eid)
                if eidx is None:
                    raise RequestFault("No such experiment")

                conn.execute(
                    "DELETE FROM experimentperms WHERE eidx = ? AND circle = ?",
                    (eidx, member.circle_id),
                )
                conn.executemany(
                    "INSERT INTO experimentperms (eidx, circle, permission) VALUES (?, ?, ?)",
                    [(eidx, member.circle_id, p) for p in sorted(perms)],
                )
        finally:
            self.credentials.update_circle_credentials(self.eid)

    # --------------------------------------------------
    # aspects
    # --------------------------------------------------
    def add_aspects(self, aspects: List[ExperimentAspect]) -> List[ChangeResult]:
        vetted = process_aspects(aspects, self.registry, self.immutable(), AddOperation())
        return self._save_all(vetted, create=True)

    def change_aspects(self, aspects: List[ExperimentAspect]) -> List[ChangeResult]:
        vetted = process_aspects(aspects, self.registry, self.immutable(), ChangeOperation())
        return self._save_all(vetted, create=False)

    def remove_aspects(self, aspects: List[ExperimentAspect]) -> List[ChangeResult]:
        vetted = process_aspects(aspects, self.registry, self.immutable(), RemoveOperation())

        rv: List[ChangeResult] = []
        for rec in self._store().gather([a.as_pattern() for a in vetted], get_data=False):
            try:
                rec.remove()
                rv.append(ChangeResult(rec.name, None, True))
            except AspectFault as e:
                rv.append(ChangeResult(rec.name, e.detail, False))
        return rv

    def _save_all(self, vetted: List[ExperimentAspect], create: bool) -> List[ChangeResult]:
        store = self._store()
        rv: List[ChangeResult] = []
        for a in vetted:
            rec = store.record_for(a)
            try:
                rec.save(put_data=True, create=create)
                rv.append(ChangeResult(rec.name, None, True))
            except AspectFault as e:
                rv.append(ChangeResult(rec.name, e.detail, False))
        return rv

    @logs.catch(msg="realization failed", log_time=True)
    def realize_aspects(self) -> RealizationResult:
        """
        Repeat realize rounds over every aspect until a round leaves the
        topology alone. Fails once max_rounds rounds have all changed it.
        """
        aspects = self.get_aspects()
        view = self.immutable()
        op = RealizeOperation()
        max_rounds = self.cfg.realization.max_rounds

        rounds = 0
        while True:
            op.start_round()
            process_aspects(aspects, self.registry, view, op)
            if not op.changed:
                logs.info(f"[Experiment] {self.eid}: realized after {rounds} changing rounds")
                return RealizationResult(topology=op.topology, rounds=rounds)

            rounds += 1
            if rounds >= max_rounds:
                raise RequestFault(
                    "Cannot realize experiment - too many attempts w/o progress"
                )

    def release_aspects(self) -> None:
        process_aspects(self.get_aspects(), self.registry, self.immutable(), ReleaseOperation())


def list_experiments(
        db: Database,
        uid: Optional[str] = None,
        regex: Optional[str] = None,
        offset: int = 0,
        count: int = -1,
) -> List[str]:
    """
    Eids visible to `uid` (owned, or readable through one of the user's
    circles) whose eid matches `regex`, in creation order.
    count == -1 means no limit.
    """
    where: List[str] = []
    params: list = []

    if uid is not None:
        where.append(
            """
            (idx IN (
                SELECT DISTINCT eidx FROM experimentperms
                WHERE permission = ?
                AND circle IN (
                    SELECT circle FROM circleusers
                    WHERE uidx = (SELECT idx FROM users WHERE uid = ?)
                )
            ) OR owneridx = (SELECT idx FROM users WHERE uid = ?))
            """
        )
        params += [READ_EXPERIMENT, uid, uid]

    if regex is not None:
        try:
            re.compile(regex)
        except re.error as e:
            raise RequestFault(f"Bad regex {regex}: {e}")
        where.append("eid REGEXP ?")
        params.append(regex)

    q = "SELECT eid FROM experiments"
    if where:
        q += " WHERE " + " AND ".join(where)
    q += " ORDER BY idx"
    if count != -1:
        q += " LIMIT ? OFFSET ?"
        params += [count, max(offset, 0)]

    with db.connect() as conn:
        return [r["eid"] for r in conn.execute(q, params).fetchall()]
