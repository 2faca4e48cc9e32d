from __future__ import annotations

import re
import sqlite3
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from bundleuri.core.exception import RefUpdateError

_OID_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")
_BAD_REFNAME_RE = re.compile(r"(\.\.|@\{|[\x00-\x20\x7f~^:?*\[\\]|//|/\.|\.lock$|/$|\.$)")


def is_valid_oid(oid: str) -> bool:
    return bool(_OID_RE.match(oid or ""))


def check_refname(name: str) -> bool:
    return name.startswith("refs/") and len(name) > len("refs/") and not _BAD_REFNAME_RE.search(name)


class RefStore:
    """sqlite-backed ref store with compare-and-set updates and a reflog."""

    def __init__(self, db_path: str | Path, *, object_exists: Callable[[str], bool] | None = None):
        self.db_path = str(db_path)
        self._object_exists = object_exists
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init()

    def _connect(self):
        return sqlite3.connect(self.db_path, timeout=30, isolation_level=None)

    def _init(self):
        with self._connect() as c:
            c.execute("PRAGMA journal_mode=WAL;")
            c.execute(
                """CREATE TABLE IF NOT EXISTS refs(
                    name TEXT PRIMARY KEY,
                    oid TEXT NOT NULL,
                    updated_at INTEGER NOT NULL
                );"""
            )
            c.execute(
                """CREATE TABLE IF NOT EXISTS reflog(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    old_oid TEXT,
                    new_oid TEXT NOT NULL,
                    message TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                );"""
            )

    def read_ref(self, name: str) -> Optional[str]:
        with self._connect() as c:
            row = c.execute("SELECT oid FROM refs WHERE name=?", (name,)).fetchone()
            return row[0] if row else None

    def list_refs(self, prefix: str = "refs/") -> List[Tuple[str, str]]:
        with self._connect() as c:
            rows = c.execute(
                "SELECT name, oid FROM refs WHERE substr(name, 1, ?) = ? ORDER BY name",
                (len(prefix), prefix),
            ).fetchall()
            return [(r[0], r[1]) for r in rows]

    def reflog(self, name: str) -> List[Tuple[Optional[str], str, str]]:
        """(old_oid, new_oid, message) entries for `name`, oldest first."""
        with self._connect() as c:
            rows = c.execute(
                "SELECT old_oid, new_oid, message FROM reflog WHERE name=? ORDER BY id",
                (name,),
            ).fetchall()
            return [(r[0], r[1], r[2]) for r in rows]

    def update_ref(
        self,
        name: str,
        new_oid: str,
        old_oid: Optional[str],
        *,
        message: str,
        skip_oid_verification: bool = False,
    ) -> None:
        """Point `name` at `new_oid` if it currently points at `old_oid`.

        `old_oid=None` means the ref must not exist yet. Raises RefUpdateError
        when the ref moved underneath us or the new value is unacceptable.
        """
        if not check_refname(name):
            raise RefUpdateError(name, "invalid ref name")
        new_oid = (new_oid or "").lower()
        if not is_valid_oid(new_oid):
            raise RefUpdateError(name, f"invalid object id {new_oid!r}")
        if not skip_oid_verification and self._object_exists is not None and not self._object_exists(new_oid):
            raise RefUpdateError(name, f"trying to write ref with nonexistent object {new_oid}")

        now = int(time.time())
        c = self._connect()
        try:
            c.execute("BEGIN IMMEDIATE")
            row = c.execute("SELECT oid FROM refs WHERE name=?", (name,)).fetchone()
            current = row[0] if row else None
            if current != (old_oid.lower() if old_oid else None):
                c.execute("ROLLBACK")
                if current is None:
                    raise RefUpdateError(name, f"expected {old_oid} but the ref does not exist")
                if old_oid is None:
                    raise RefUpdateError(name, f"reference already exists at {current}")
                raise RefUpdateError(name, f"is at {current} but expected {old_oid}")
            c.execute(
                "INSERT OR REPLACE INTO refs(name, oid, updated_at) VALUES (?,?,?)",
                (name, new_oid, now),
            )
            c.execute(
                "INSERT INTO reflog(name, old_oid, new_oid, message, created_at) VALUES (?,?,?,?,?)",
                (name, current, new_oid, message, now),
            )
            c.execute("COMMIT")
        except sqlite3.Error as e:
            if c.in_transaction:
                c.execute("ROLLBACK")
            raise RefUpdateError(name, str(e)) from e
        finally:
            c.close()
