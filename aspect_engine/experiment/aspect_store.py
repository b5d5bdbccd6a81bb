# aspect_engine/experiment/aspect_store.py
from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from aspect_engine.experiment.db import Database
from aspect_engine.experiment.records import WILDCARD, ExperimentAspect
from aspect_engine.utils.errors import InternalFault, RequestFault
from aspect_engine.utils.filesystem import FileSystem
from aspect_engine.utils.logger import logs

CANONICAL_NAME = "canonical"

# pattern tables, one per match class
_PATTERN_TABLES = {
    "q_all_fields": "(name TEXT, type TEXT, subtype TEXT)",
    "q_name_type": "(name TEXT, type TEXT)",
    "q_name_type_star": "(name TEXT, type TEXT)",
    "q_name": "(name TEXT)",
    "q_type_subtype": "(type TEXT, subtype TEXT)",
    "q_type": "(type TEXT)",
    "q_type_star": "(type TEXT)",
}

_GATHER_SQL = """
SELECT type, subtype, name, path, ref FROM experimentaspects
WHERE eidx = ?
AND (
    (name, type, subtype) IN (SELECT name, type, subtype FROM q_all_fields)
    OR ((name, type) IN (SELECT name, type FROM q_name_type) AND subtype IS NULL)
    OR (name, type) IN (SELECT name, type FROM q_name_type_star)
    OR name IN (SELECT name FROM q_name)
    OR (type, subtype) IN (SELECT type, subtype FROM q_type_subtype)
    OR (type IN (SELECT type FROM q_type) AND subtype IS NULL)
    OR type IN (SELECT type FROM q_type_star)
)
ORDER BY idx
"""


def sanitize_name(name: str) -> str:
    """Aspect names may hold `/`; file names may not."""
    return name.replace("/", "_")


def _pattern_row(p: ExperimentAspect) -> tuple[str, tuple]:
    """Match class and values for one query pattern."""
    name, typ, sub = p.name, p.type, p.sub_type

    if name is not None and typ is not None:
        if sub is None:
            return "q_name_type", (name, typ)
        if sub == WILDCARD:
            return "q_name_type_star", (name, typ)
        return "q_all_fields", (name, typ, sub)

    if name is not None:
        return "q_name", (name,)

    if typ is not None:
        if sub is None:
            return "q_type", (typ,)
        if sub == WILDCARD:
            return "q_type_star", (typ,)
        return "q_type_subtype", (typ, sub)

    raise RequestFault("Bad search aspect")


class AspectStore:
    """
    Aspect rows of one experiment plus their payload files under
    `<root>/<type>/[<subtype>/]<sanitized name>`.
    """

    def __init__(self, db: Database, eid: str, root: Optional[str | Path]):
        self.db = db
        self.eid = eid
        self.root = Path(root) if root else None

    def record(
            self,
            type: Optional[str],
            sub_type: Optional[str] = None,
            name: Optional[str] = None,
    ) -> "AspectRecord":
        return AspectRecord(store=self, type=type, sub_type=sub_type, name=name)

    def record_for(self, aspect: ExperimentAspect) -> "AspectRecord":
        rec = self.record(aspect.type, aspect.sub_type, aspect.name)
        rec.data = aspect.data
        rec.reference = aspect.reference
        return rec

    def _eidx(self, conn: sqlite3.Connection) -> int:
        eidx = Database.experiment_index(conn, self.eid)
        if eidx is None:
            raise RequestFault(f"No such experiment {self.eid}")
        return eidx

    # --------------------------------------------------
    # queries
    # --------------------------------------------------
    def all(self, get_data: bool = False) -> List["AspectRecord"]:
        with self.db.connect() as conn:
            rows = conn.execute(
                """
                SELECT type, subtype, name, path, ref FROM experimentaspects
                WHERE eidx = (SELECT idx FROM experiments WHERE eid = ?)
                ORDER BY idx
                """,
                (self.eid,),
            ).fetchall()
        return [self._from_row(r, get_data) for r in rows]

    def gather(self, patterns: Iterable[ExperimentAspect], get_data: bool = False) -> List["AspectRecord"]:
        """
        Every stored aspect matched by at least one pattern.

          name + type + sub_type   exact
          name + type              only rows without a subtype
          name + type + "*"        any subtype
          name                     any type, any subtype
          type + sub_type          any name
          type                     any name, only rows without a subtype
          type + "*"               any name, any subtype
        """
        classified = [_pattern_row(p) for p in patterns]
        if not classified:
            return []

        with self.db.connect() as conn:
            # an experiment still being created has no rows yet
            eidx = Database.experiment_index(conn, self.eid)
            if eidx is None:
                return []

            for table, cols in _PATTERN_TABLES.items():
                conn.execute(f"CREATE TEMP TABLE IF NOT EXISTS {table} {cols}")
                conn.execute(f"DELETE FROM {table}")

            for table, values in classified:
                marks = ", ".join("?" * len(values))
                conn.execute(f"INSERT INTO {table} VALUES ({marks})", values)

            rows = conn.execute(_GATHER_SQL, (eidx,)).fetchall()

            for table in _PATTERN_TABLES:
                conn.execute(f"DROP TABLE IF EXISTS temp.{table}")

        return [self._from_row(r, get_data) for r in rows]

    def _from_row(self, row: sqlite3.Row, get_data: bool) -> "AspectRecord":
        rec = self.record(row["type"], row["subtype"], row["name"])
        rec.path = row["path"]
        rec.reference = row["ref"]
        if get_data and rec.path:
            rec.data = rec._read()
        return rec


@dataclass
class AspectRecord:
    """
    Persistent form of one aspect: a row in experimentaspects and,
    unless it is a reference, a payload file.
    """

    store: AspectStore = field(repr=False)
    type: Optional[str] = None
    sub_type: Optional[str] = None
    name: Optional[str] = None
    data: Optional[bytes] = field(default=None, repr=False)
    reference: Optional[str] = None
    path: Optional[str] = None

    # --------------------------------------------------
    # files
    # --------------------------------------------------
    def _dir(self) -> Path:
        if self.store.root is None:
            raise InternalFault(f"No component directory for {self.store.eid}")
        d = self.store.root / self.type
        if self.sub_type is not None:
            d = d / self.sub_type
        return d

    def _make_file(self, create: bool) -> Path:
        d = FileSystem.ensure_dir(self._dir())

        if not self.name:
            self.name = CANONICAL_NAME

        dest = d / sanitize_name(self.name)
        if create and dest.exists():
            raise RequestFault(
                "duplicate aspect (multiple unnamed aspects? "
                "Or inconsistent filesystem/DB pair)"
            )
        return dest

    def _read(self) -> bytes:
        p = Path(self.path)
        if not p.exists():
            raise RequestFault("no aspect file")
        try:
            return FileSystem.read_bytes(p)
        except OSError as e:
            raise InternalFault(f"Error reading aspect file: {e}")

    # --------------------------------------------------
    # rows
    # --------------------------------------------------
    @staticmethod
    def _where(sub_type: Optional[str]) -> str:
        where = "WHERE eidx = ? AND type = ? AND name = ? "
        if sub_type is None:
            return where + "AND subtype IS NULL"
        return where + "AND subtype = ?"

    def _params(self, eidx: int) -> tuple:
        params = (eidx, self.type, self.name)
        if self.sub_type is not None:
            params += (self.sub_type,)
        return params

    def load(self, get_data: bool = False) -> "AspectRecord":
        with self.store.db.connect() as conn:
            eidx = self.store._eidx(conn)
            rows = conn.execute(
                "SELECT path, ref FROM experimentaspects " + self._where(self.sub_type),
                self._params(eidx),
            ).fetchall()

        if not rows:
            raise InternalFault("Aspect has no definition")
        if len(rows) > 1:
            raise InternalFault("Aspect has multiple definitions")

        self.path = rows[0]["path"]
        self.reference = rows[0]["ref"]
        if get_data and self.path:
            self.data = self._read()
        return self

    def save(self, put_data: bool = True, create: bool = False) -> None:
        if self.type is None:
            raise RequestFault("Untyped aspect")
        if self.sub_type == WILDCARD:
            raise RequestFault("Cannot store a wildcard subtype")
        if self.reference is None and self.data is None:
            raise RequestFault("Aspect has no data or reference")
        if self.reference is not None and self.data is not None:
            raise RequestFault("Aspect has both data and reference")

        if not self.name:
            self.name = CANONICAL_NAME

        with self.store.db.connect() as conn:
            eidx = self.store._eidx(conn)
            rows = conn.execute(
                "SELECT idx, path FROM experimentaspects " + self._where(self.sub_type),
                self._params(eidx),
            ).fetchall()

            if rows and create:
                raise RequestFault("Aspect exists")
            if len(rows) > 1:
                raise InternalFault("More than one definition for aspect")

            # payload first, so a failed write leaves no row behind
            if self.reference is None:
                try:
                    dest = Path(self.path) if self.path else self._make_file(create)
                    if put_data:
                        FileSystem.safe_write(dest, self.data)
                except OSError as e:
                    raise InternalFault(f"Error saving aspect file: {e}")
                self.path = str(dest)

            if not rows:
                conn.execute(
                    """
                    INSERT INTO experimentaspects (eidx, type, subtype, name, path, ref)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (eidx, self.type, self.sub_type, self.name, self.path, self.reference),
                )
            else:
                conn.execute(
                    "UPDATE experimentaspects SET path = ?, ref = ? WHERE idx = ?",
                    (self.path, self.reference, rows[0]["idx"]),
                )
                old = rows[0]["path"]
                if self.reference is not None and old:
                    # a reference replaces the stored payload
                    try:
                        FileSystem.remove(old)
                    except OSError as e:
                        logs.warning(f"[AspectStore] cannot delete {old}: {e}")

        logs.debug(f"[AspectStore] {self.store.eid}: saved {self.type}/{self.sub_type}/{self.name}")

    def remove(self) -> None:
        if self.store.eid is None:
            raise RequestFault("Aspect not in a named experiment??")
        if self.name is None:
            raise RequestFault("Unnamed aspect")
        if self.type is None:
            raise RequestFault("Untyped aspect")

        with self.store.db.connect() as conn:
            eidx = self.store._eidx(conn)
            where = self._where(self.sub_type)
            params = self._params(eidx)

            for row in conn.execute(
                    "SELECT path FROM experimentaspects " + where + " AND path IS NOT NULL",
                    params,
            ).fetchall():
                try:
                    FileSystem.remove(row["path"])
                except OSError as e:
                    logs.warning(f"[AspectStore] cannot delete {row['path']}: {e}")

            conn.execute("DELETE FROM experimentaspects " + where, params)

        logs.debug(f"[AspectStore] {self.store.eid}: removed {self.type}/{self.sub_type}/{self.name}")

    def export(self) -> ExperimentAspect:
        return ExperimentAspect(
            type=self.type,
            sub_type=self.sub_type,
            name=self.name,
            data=self.data,
            reference=self.reference,
        )
