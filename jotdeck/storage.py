"""Storage collaborator: the contract the controller relies on plus SQLite."""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
from pathlib import Path
from typing import Protocol, Union

from jotdeck.errors import StorageError
from jotdeck.models import (
    JournalEntry, Note, Notebook, Record, Tab, Task, TaskStatus,
    format_tags, now_timestamp, parse_tags,
)

logger = logging.getLogger(__name__)


class Storage(Protocol):
    """What the controller needs from persistence. Every call may raise StorageError."""

    def list(self, tab: Tab) -> list[Record]: ...
    def create(self, record: Record) -> Record: ...
    def update(self, record: Record) -> None: ...
    def delete(self, identifier: int) -> None: ...
    def reassign_order(self, identifier: int, new_order: int) -> None: ...
    def list_notebooks(self) -> list[Notebook]: ...
    def create_notebook(self, name: str) -> Notebook: ...
    def rename_notebook(self, identifier: int, name: str) -> None: ...
    def delete_notebook(self, identifier: int) -> None: ...
    def close(self) -> None: ...


_KIND_CLASSES = {Tab.TASKS: Task, Tab.NOTES: Note, Tab.JOURNAL: JournalEntry}


class SqliteStorage:
    """All three record kinds in one ``records`` table, keyed by a shared id."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        try:
            if self.db_path != ":memory:":
                path = Path(self.db_path).expanduser()
                path.parent.mkdir(parents=True, exist_ok=True)
                self.db_path = str(path)
            self._db = sqlite3.connect(self.db_path)
            self._db.execute("PRAGMA journal_mode=WAL")
            self._db.execute("PRAGMA foreign_keys=ON")
            self._db.row_factory = sqlite3.Row
            self._create_tables()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"cannot open database {self.db_path}: {exc}") from exc
        logger.info("opened database %s", self.db_path)

    def _create_tables(self):
        self._db.executescript("""
            CREATE TABLE IF NOT EXISTS notebooks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                body TEXT NOT NULL DEFAULT '',
                tags TEXT NOT NULL DEFAULT '',
                status TEXT,
                due_date TEXT,
                entry_date TEXT,
                notebook_id INTEGER REFERENCES notebooks(id) ON DELETE SET NULL,
                archived INTEGER NOT NULL DEFAULT 0,
                sort_order INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_records_kind ON records(kind, sort_order);
            CREATE INDEX IF NOT EXISTS idx_records_notebook ON records(notebook_id);
        """)

    def close(self) -> None:
        self._db.close()

    def _run(self, action: str, sql: str, params=()) -> sqlite3.Cursor:
        try:
            cur = self._db.execute(sql, params)
            self._db.commit()
            return cur
        except sqlite3.Error as exc:
            self._db.rollback()
            raise StorageError(f"{action}: {exc}") from exc

    # ── Records ─────────────────────────────────────────────────────

    def list(self, tab: Tab) -> list[Record]:
        try:
            rows = self._db.execute(
                "SELECT * FROM records WHERE kind = ? ORDER BY sort_order, id",
                (tab.value,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"list {tab.value}: {exc}") from exc
        records = [self._row_to_record(row) for row in rows]
        if len(records) > 1 and all(r.order == 0 for r in records):
            records = self._assign_initial_order(tab, records)
        return records

    def _assign_initial_order(self, tab: Tab, records: list[Record]) -> list[Record]:
        """Give legacy rows that all share order 0 a stable sequence."""
        records = sorted(records, key=lambda r: (r.created_at, r.id))
        try:
            with self._db:
                for position, record in enumerate(records):
                    self._db.execute(
                        "UPDATE records SET sort_order = ? WHERE id = ?",
                        (position, record.id))
        except sqlite3.Error as exc:
            raise StorageError(f"order {tab.value}: {exc}") from exc
        logger.info("assigned initial order to %d %s", len(records), tab.value)
        return [dataclasses.replace(r, order=i) for i, r in enumerate(records)]

    def create(self, record: Record) -> Record:
        now = now_timestamp()
        record = dataclasses.replace(
            record, created_at=record.created_at or now, updated_at=now)
        cur = self._run(
            "create",
            "INSERT INTO records (kind, title, body, tags, status, due_date, entry_date, "
            "notebook_id, archived, sort_order, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            self._record_values(record),
        )
        return dataclasses.replace(record, id=cur.lastrowid)

    def update(self, record: Record) -> None:
        if record.id is None:
            raise StorageError("update: record has not been saved yet")
        record = dataclasses.replace(record, updated_at=now_timestamp())
        cur = self._run(
            "update",
            "UPDATE records SET kind = ?, title = ?, body = ?, tags = ?, status = ?, "
            "due_date = ?, entry_date = ?, notebook_id = ?, archived = ?, "
            "sort_order = ?, created_at = ?, updated_at = ? WHERE id = ?",
            self._record_values(record) + (record.id,),
        )
        if cur.rowcount == 0:
            raise StorageError(f"update: no record with id {record.id}")

    def delete(self, identifier: int) -> None:
        cur = self._run("delete", "DELETE FROM records WHERE id = ?", (identifier,))
        if cur.rowcount == 0:
            raise StorageError(f"delete: no record with id {identifier}")

    def reassign_order(self, identifier: int, new_order: int) -> None:
        cur = self._run(
            "reorder",
            "UPDATE records SET sort_order = ?, updated_at = ? WHERE id = ?",
            (new_order, now_timestamp(), identifier),
        )
        if cur.rowcount == 0:
            raise StorageError(f"reorder: no record with id {identifier}")

    def _record_values(self, record: Record) -> tuple:
        status = record.status.value if isinstance(record, Task) else None
        due = record.due_date if isinstance(record, Task) else None
        entry_date = record.entry_date if isinstance(record, JournalEntry) else None
        return (
            record.tab.value, record.title, record.body, format_tags(record.tags),
            status, due, entry_date, record.notebook_id, int(record.archived),
            record.order, record.created_at, record.updated_at,
        )

    def _row_to_record(self, row) -> Record:
        common = dict(
            id=row["id"], title=row["title"], body=row["body"],
            tags=parse_tags(row["tags"]), notebook_id=row["notebook_id"],
            archived=bool(row["archived"]), order=row["sort_order"],
            created_at=row["created_at"], updated_at=row["updated_at"],
        )
        tab = Tab(row["kind"])
        if tab is Tab.TASKS:
            try:
                status = TaskStatus(row["status"] or "open")
            except ValueError:
                # Older databases stored "todo".
                status = TaskStatus.OPEN
            return Task(status=status, due_date=row["due_date"], **common)
        if tab is Tab.JOURNAL:
            return JournalEntry(entry_date=row["entry_date"] or "", **common)
        return _KIND_CLASSES[tab](**common)

    # ── Notebooks ───────────────────────────────────────────────────

    def list_notebooks(self) -> list[Notebook]:
        try:
            rows = self._db.execute(
                "SELECT * FROM notebooks ORDER BY name COLLATE NOCASE, id").fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"list notebooks: {exc}") from exc
        return [Notebook(id=r["id"], name=r["name"], created_at=r["created_at"],
                         updated_at=r["updated_at"]) for r in rows]

    def create_notebook(self, name: str) -> Notebook:
        now = now_timestamp()
        cur = self._run(
            "create notebook",
            "INSERT INTO notebooks (name, created_at, updated_at) VALUES (?, ?, ?)",
            (name, now, now),
        )
        return Notebook(id=cur.lastrowid, name=name, created_at=now, updated_at=now)

    def rename_notebook(self, identifier: int, name: str) -> None:
        cur = self._run(
            "rename notebook",
            "UPDATE notebooks SET name = ?, updated_at = ? WHERE id = ?",
            (name, now_timestamp(), identifier),
        )
        if cur.rowcount == 0:
            raise StorageError(f"rename notebook: no notebook with id {identifier}")

    def delete_notebook(self, identifier: int) -> None:
        """Delete a notebook; its records become unfiled."""
        now = now_timestamp()
        try:
            with self._db:
                self._db.execute(
                    "UPDATE records SET notebook_id = NULL, updated_at = ? WHERE notebook_id = ?",
                    (now, identifier))
                cur = self._db.execute("DELETE FROM notebooks WHERE id = ?", (identifier,))
        except sqlite3.Error as exc:
            raise StorageError(f"delete notebook: {exc}") from exc
        if cur.rowcount == 0:
            raise StorageError(f"delete notebook: no notebook with id {identifier}")
