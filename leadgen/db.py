# leadgen/db.py
"""
Lead record store.

Rows live in SQLite (`extraction_files`, `leads`). The store is the only
writer of lead state; pipeline workers call the narrow mutation methods
below, each of which runs in its own short transaction. Every sqlite3 error
surfaces as PersistenceError so the job runner can retry the stage.

Invariants enforced in SQL rather than in callers:
  - a lead's domain, once set, is never overwritten (`WHERE domain IS NULL`);
  - executive/email fields are only written when the lead has a domain;
  - terminal leads (completed/failed) are never moved back to processing.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from leadgen.exceptions import PersistenceError

LEAD_STATUSES = ("pending", "processing", "completed", "failed")
TERMINAL_STATUSES = frozenset({"completed", "failed"})

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS extraction_files (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  total_leads INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS leads (
  id TEXT PRIMARY KEY,
  full_name TEXT NOT NULL,
  first_name TEXT,
  last_name TEXT,
  company TEXT NOT NULL,
  title TEXT,
  location TEXT,
  linkedin_url TEXT,
  file_id TEXT REFERENCES extraction_files(id) ON DELETE CASCADE,
  domain TEXT,
  email TEXT,
  email_pattern TEXT,
  email_verified INTEGER NOT NULL DEFAULT 0,
  email_status TEXT,
  ceo_name TEXT,
  status TEXT NOT NULL DEFAULT 'pending'
    CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
  pending_stages TEXT NOT NULL DEFAULT '',
  stage_failed INTEGER NOT NULL DEFAULT 0,
  last_error TEXT,
  created_by TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  processed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_leads_file_id ON leads(file_id);
CREATE INDEX IF NOT EXISTS idx_leads_status ON leads(status);
"""


# -------------------- basics --------------------


def get_connection(db_path: str) -> sqlite3.Connection:
    """
    Shared SQLite connection helper.

    - Ensures foreign key enforcement.
    - Sets row_factory to sqlite3.Row for dict-like access.
    """
    con = sqlite3.connect(db_path, timeout=30.0)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys=ON")
    return con


def _utc_now_iso() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _new_id() -> str:
    return uuid.uuid4().hex


def _split_stages(raw: str | None) -> list[str]:
    return [s for s in (raw or "").split(",") if s]


def _join_stages(stages: Iterable[str]) -> str:
    return ",".join(stages)


# -------------------- records --------------------


@dataclass(frozen=True)
class ExtractionFile:
    id: str
    name: str
    total_leads: int
    created_at: str


@dataclass(frozen=True)
class Lead:
    id: str
    full_name: str
    first_name: str | None
    last_name: str | None
    company: str
    title: str | None
    location: str | None
    linkedin_url: str | None
    file_id: str | None
    domain: str | None
    email: str | None
    email_pattern: str | None
    email_verified: bool
    email_status: str | None
    ceo_name: str | None
    status: str
    pending_stages: tuple[str, ...]
    stage_failed: bool
    last_error: str | None
    created_by: str | None
    created_at: str
    updated_at: str
    processed_at: str | None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Lead:
        return cls(
            id=row["id"],
            full_name=row["full_name"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            company=row["company"],
            title=row["title"],
            location=row["location"],
            linkedin_url=row["linkedin_url"],
            file_id=row["file_id"],
            domain=row["domain"],
            email=row["email"],
            email_pattern=row["email_pattern"],
            email_verified=bool(row["email_verified"]),
            email_status=row["email_status"],
            ceo_name=row["ceo_name"],
            status=row["status"],
            pending_stages=tuple(_split_stages(row["pending_stages"])),
            stage_failed=bool(row["stage_failed"]),
            last_error=row["last_error"],
            created_by=row["created_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            processed_at=row["processed_at"],
        )


@dataclass(frozen=True)
class StageResult:
    """Fields a downstream stage writes back when it finishes."""

    ceo_name: str | None = None
    email: str | None = None
    email_pattern: str | None = None
    email_status: str | None = None
    email_verified: bool = False


# -------------------- store --------------------


class LeadStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    @contextmanager
    def _tx(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        try:
            con = get_connection(self.db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"cannot open lead store {self.db_path}: {exc}") from exc
        try:
            if immediate:
                # Serialize read-modify-write sequences across worker processes.
                con.execute("BEGIN IMMEDIATE")
            yield con
            con.commit()
        except sqlite3.Error as exc:
            con.rollback()
            raise PersistenceError(str(exc)) from exc
        except BaseException:
            con.rollback()
            raise
        finally:
            con.close()

    def ensure_schema(self) -> None:
        with self._tx() as con:
            con.executescript(SCHEMA_SQL)

    # ---------------- files ----------------

    def create_file(self, name: str, *, total_leads: int = 0) -> ExtractionFile:
        f = ExtractionFile(
            id=_new_id(),
            name=name,
            total_leads=int(total_leads),
            created_at=_utc_now_iso(),
        )
        with self._tx() as con:
            con.execute(
                "INSERT INTO extraction_files(id, name, total_leads, created_at) VALUES (?, ?, ?, ?)",
                (f.id, f.name, f.total_leads, f.created_at),
            )
        return f

    def get_file(self, file_id: str) -> ExtractionFile | None:
        with self._tx() as con:
            row = con.execute(
                "SELECT id, name, total_leads, created_at FROM extraction_files WHERE id = ?",
                (file_id,),
            ).fetchone()
        return ExtractionFile(**dict(row)) if row else None

    def list_files(self) -> list[ExtractionFile]:
        with self._tx() as con:
            rows = con.execute(
                "SELECT id, name, total_leads, created_at FROM extraction_files "
                "ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        return [ExtractionFile(**dict(r)) for r in rows]

    def file_stats(self, file_id: str) -> dict[str, int]:
        """Aggregate a file's leads on demand; nothing is stored redundantly."""
        with self._tx() as con:
            row = con.execute(
                """
                SELECT
                  COUNT(*) AS current_total,
                  COALESCE(SUM(status = 'completed'), 0) AS completed,
                  COALESCE(SUM(status = 'failed'), 0) AS failed,
                  COALESCE(SUM(status = 'pending'), 0) AS pending,
                  COALESCE(SUM(status = 'processing'), 0) AS processing,
                  COALESCE(SUM(domain IS NOT NULL AND domain != ''), 0) AS with_domain,
                  COALESCE(SUM(ceo_name IS NOT NULL AND ceo_name != ''), 0) AS with_ceo
                FROM leads
                WHERE file_id = ?
                """,
                (file_id,),
            ).fetchone()
        return {k: int(row[k]) for k in row.keys()}

    # ---------------- leads: input side ----------------

    def insert_lead(
        self,
        *,
        full_name: str,
        company: str,
        file_id: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        title: str | None = None,
        location: str | None = None,
        linkedin_url: str | None = None,
        created_by: str | None = None,
    ) -> Lead:
        lead_id = _new_id()
        now = _utc_now_iso()
        with self._tx() as con:
            con.execute(
                """
                INSERT INTO leads(
                  id, full_name, first_name, last_name, company, title, location,
                  linkedin_url, file_id, status, created_by, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?)
                """,
                (
                    lead_id,
                    full_name,
                    first_name,
                    last_name,
                    company,
                    title,
                    location,
                    linkedin_url,
                    file_id,
                    created_by,
                    now,
                    now,
                ),
            )
            row = con.execute("SELECT * FROM leads WHERE id = ?", (lead_id,)).fetchone()
        return Lead.from_row(row)

    def get_lead(self, lead_id: str) -> Lead | None:
        with self._tx() as con:
            row = con.execute("SELECT * FROM leads WHERE id = ?", (lead_id,)).fetchone()
        return Lead.from_row(row) if row else None

    def find_duplicate(self, full_name: str, company: str) -> bool:
        with self._tx() as con:
            row = con.execute(
                "SELECT 1 FROM leads WHERE lower(full_name) = lower(?) "
                "AND lower(company) = lower(?) LIMIT 1",
                (full_name.strip(), company.strip()),
            ).fetchone()
        return row is not None

    def list_leads(self, file_id: str, *, statuses: Iterable[str] | None = None) -> list[Lead]:
        sql = "SELECT * FROM leads WHERE file_id = ?"
        params: list[Any] = [file_id]
        wanted = list(statuses or [])
        if wanted:
            sql += f" AND status IN ({','.join('?' for _ in wanted)})"
            params.extend(wanted)
        sql += " ORDER BY created_at ASC, rowid ASC"
        with self._tx() as con:
            rows = con.execute(sql, params).fetchall()
        return [Lead.from_row(r) for r in rows]

    # ---------------- leads: pipeline side ----------------

    def mark_processing(self, lead_id: str) -> bool:
        with self._tx() as con:
            cur = con.execute(
                "UPDATE leads SET status = 'processing', updated_at = ? "
                "WHERE id = ? AND status IN ('pending', 'processing')",
                (_utc_now_iso(), lead_id),
            )
        return cur.rowcount > 0

    def set_domain(self, lead_id: str, domain: str) -> bool:
        """Write the domain once. Returns False when a domain was already present."""
        with self._tx() as con:
            cur = con.execute(
                "UPDATE leads SET domain = ?, updated_at = ? WHERE id = ? AND domain IS NULL",
                (domain, _utc_now_iso(), lead_id),
            )
        return cur.rowcount > 0

    def begin_stages(self, lead_id: str, stages: Iterable[str]) -> tuple[str, ...]:
        """
        Record downstream stages as outstanding for a non-terminal lead.

        Returns the lead's full set of outstanding stages afterwards.
        """
        wanted = list(stages)
        with self._tx(immediate=True) as con:
            row = con.execute(
                "SELECT status, pending_stages, domain FROM leads WHERE id = ?", (lead_id,)
            ).fetchone()
            if row is None or row["status"] in TERMINAL_STATUSES or not row["domain"]:
                return ()
            current = _split_stages(row["pending_stages"])
            merged = current + [s for s in wanted if s not in current]
            con.execute(
                "UPDATE leads SET pending_stages = ?, status = 'processing', updated_at = ? "
                "WHERE id = ?",
                (_join_stages(merged), _utc_now_iso(), lead_id),
            )
        return tuple(merged)

    def finish_stage(
        self,
        lead_id: str,
        stage: str,
        *,
        result: StageResult | None = None,
        failed: bool = False,
        error: str | None = None,
    ) -> str | None:
        """
        Close one outstanding downstream stage and write its fields.

        When no stage remains the lead becomes terminal: failed if any stage
        failed, completed otherwise. Returns the lead's resulting status, or
        None when the stage was not outstanding (duplicate delivery).
        """
        result = result or StageResult()
        now = _utc_now_iso()
        with self._tx(immediate=True) as con:
            row = con.execute(
                "SELECT status, pending_stages, stage_failed, domain FROM leads WHERE id = ?",
                (lead_id,),
            ).fetchone()
            if row is None or row["status"] in TERMINAL_STATUSES:
                return None
            remaining = _split_stages(row["pending_stages"])
            if stage not in remaining:
                return None
            remaining.remove(stage)

            any_failed = bool(row["stage_failed"]) or failed
            if remaining:
                status, processed_at = "processing", None
            else:
                status, processed_at = ("failed" if any_failed else "completed"), now

            has_domain = bool(row["domain"])
            con.execute(
                """
                UPDATE leads SET
                  ceo_name = COALESCE(?, ceo_name),
                  email = COALESCE(?, email),
                  email_pattern = COALESCE(?, email_pattern),
                  email_status = COALESCE(?, email_status),
                  email_verified = MAX(email_verified, ?),
                  pending_stages = ?,
                  stage_failed = ?,
                  last_error = COALESCE(?, last_error),
                  status = ?,
                  processed_at = COALESCE(?, processed_at),
                  updated_at = ?
                WHERE id = ?
                """,
                (
                    result.ceo_name if has_domain else None,
                    result.email if has_domain else None,
                    result.email_pattern if has_domain else None,
                    result.email_status if has_domain else None,
                    int(result.email_verified and has_domain),
                    _join_stages(remaining),
                    int(any_failed),
                    error,
                    status,
                    processed_at,
                    now,
                    lead_id,
                ),
            )
        return status

    def mark_terminal(self, lead_id: str, status: str, *, error: str | None = None) -> bool:
        """Move a non-terminal lead straight to completed/failed."""
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"not a terminal status: {status!r}")
        now = _utc_now_iso()
        with self._tx() as con:
            cur = con.execute(
                "UPDATE leads SET status = ?, pending_stages = '', last_error = COALESCE(?, last_error), "
                "processed_at = ?, updated_at = ? WHERE id = ? AND status IN ('pending', 'processing')",
                (status, error, now, now, lead_id),
            )
        return cur.rowcount > 0


__all__ = [
    "LEAD_STATUSES",
    "TERMINAL_STATUSES",
    "SCHEMA_SQL",
    "ExtractionFile",
    "Lead",
    "StageResult",
    "LeadStore",
    "get_connection",
]
