"""Lightweight SQLite registry of import and export runs."""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class RunRecord:
    id: int
    kind: str
    location: str
    status: str
    animal_id: str
    issues: int
    created_at: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def init_registry(db_path: str | Path) -> Path:
    """Ensure registry database and table exist."""

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                location TEXT NOT NULL,
                status TEXT NOT NULL,
                animal_id TEXT NOT NULL,
                issues INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
    finally:
        conn.close()
    return db_path


def record_run(
    db_path: str | Path,
    kind: str,
    location: str,
    status: str,
    animal_id: str,
    issues: int = 0,
) -> int:
    """Insert a run record."""

    db_path = init_registry(db_path)
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.execute(
            "INSERT INTO runs (kind, location, status, animal_id, issues, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (kind, location, status, animal_id, issues, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def list_runs(db_path: str | Path, limit: Optional[int] = 50, kind: str | None = None) -> List[RunRecord]:
    """Fetch recent runs, newest first."""

    db_path = init_registry(db_path)
    conn = sqlite3.connect(db_path)
    try:
        sql = "SELECT id, kind, location, status, animal_id, issues, created_at FROM runs"
        params: list[Any] = []
        if kind:
            sql += " WHERE kind = ?"
            params.append(kind)
        sql += " ORDER BY id DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        rows = conn.execute(sql, params).fetchall()
        return [RunRecord(*row) for row in rows]
    finally:
        conn.close()


def purge_runs(db_path: str | Path) -> None:
    """Delete all run records."""

    conn = sqlite3.connect(init_registry(db_path))
    try:
        conn.execute("DELETE FROM runs")
        conn.commit()
    finally:
        conn.close()
