"""
Experiment database

SQLite-backed storage for experiments, their aspect rows and their ACLs.
Aspect payloads live on the filesystem; rows only hold their paths.

Every operation opens its own connection through `connect()`, which
commits on success, rolls back on any failure and turns SQL errors into
InternalFault.
"""

import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from aspect_engine.utils.errors import InternalFault
from aspect_engine.utils.logger import logs

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    idx INTEGER PRIMARY KEY AUTOINCREMENT,
    uid TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS circleusers (
    circle TEXT NOT NULL,
    uidx INTEGER NOT NULL,
    PRIMARY KEY (circle, uidx)
);

CREATE TABLE IF NOT EXISTS experiments (
    idx INTEGER PRIMARY KEY AUTOINCREMENT,
    eid TEXT NOT NULL UNIQUE,
    owneridx INTEGER,
    compdir TEXT
);

CREATE TABLE IF NOT EXISTS experimentaspects (
    idx INTEGER PRIMARY KEY AUTOINCREMENT,
    eidx INTEGER NOT NULL,
    type TEXT NOT NULL,
    subtype TEXT,
    name TEXT NOT NULL,
    path TEXT,
    ref TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS experimentaspects_identity
    ON experimentaspects (eidx, type, IFNULL(subtype, ''), name);

CREATE TABLE IF NOT EXISTS experimentperms (
    eidx INTEGER NOT NULL,
    circle TEXT NOT NULL,
    permission TEXT NOT NULL,
    PRIMARY KEY (eidx, circle, permission)
);
"""


def _regexp(pattern: str, value: Optional[str]) -> bool:
    if value is None:
        return False
    return re.search(pattern, value) is not None


class Database:
    """Experiment metadata store."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self.connect() as conn:
            conn.executescript(_SCHEMA)
        logs.debug(f"[Database] schema ready: {self.db_path}")

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.create_function("REGEXP", 2, _regexp)
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalFault(f"Database error: {e}")
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    # --------------------------------------------------
    # users / circles
    # --------------------------------------------------
    def add_user(self, uid: str) -> None:
        with self.connect() as conn:
            conn.execute("INSERT OR IGNORE INTO users (uid) VALUES (?)", (uid,))

    def user_exists(self, uid: str) -> bool:
        with self.connect() as conn:
            row = conn.execute("SELECT 1 FROM users WHERE uid = ?", (uid,)).fetchone()
        return row is not None

    def add_circle_member(self, circle: str, uid: str) -> None:
        with self.connect() as conn:
            conn.execute("INSERT OR IGNORE INTO users (uid) VALUES (?)", (uid,))
            conn.execute(
                """
                INSERT OR IGNORE INTO circleusers (circle, uidx)
                VALUES (?, (SELECT idx FROM users WHERE uid = ?))
                """,
                (circle, uid),
            )

    # --------------------------------------------------
    # experiments
    # --------------------------------------------------
    @staticmethod
    def experiment_index(conn: sqlite3.Connection, eid: str) -> Optional[int]:
        row = conn.execute("SELECT idx FROM experiments WHERE eid = ?", (eid,)).fetchone()
        return None if row is None else row["idx"]

    def experiment_exists(self, eid: str) -> bool:
        with self.connect() as conn:
            return self.experiment_index(conn, eid) is not None
