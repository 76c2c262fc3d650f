from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from .results import SessionReport

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    logger.info(f"Migrating session history schema {ver} -> {SCHEMA_VERSION}")
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS practice_session (
                id INTEGER PRIMARY KEY,
                mode TEXT NOT NULL,
                app_version TEXT NOT NULL,
                rounds_played INTEGER NOT NULL,
                timeouts INTEGER NOT NULL,
                total_attempts INTEGER NOT NULL,
                correct_attempts INTEGER NOT NULL,
                accuracy REAL NOT NULL,
                longest_streak INTEGER NOT NULL,
                completion_time_s REAL NOT NULL,
                settings_json TEXT NOT NULL,
                recorded_at_utc TEXT NOT NULL,
                completed_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metric (
                session_id INTEGER NOT NULL REFERENCES practice_session(id) ON DELETE CASCADE,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (session_id, key)
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_practice_session_mode ON practice_session(mode);")
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


def record_session(*, db_path: Path, report: SessionReport, app_version: str) -> int:
    """Persist one completed session and its mode-specific results.

    Returns the new ``practice_session`` row id.
    """
    conn = open_db(db_path)
    try:
        return _insert_session(conn=conn, report=report, app_version=app_version)
    finally:
        conn.close()


def _metric_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float):
        return f"{value:.6f}"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _insert_session(*, conn: sqlite3.Connection, report: SessionReport, app_version: str) -> int:
    stats = report.stats
    with conn:
        cur = conn.execute(
            """
            INSERT INTO practice_session(
                mode, app_version, rounds_played, timeouts,
                total_attempts, correct_attempts, accuracy, longest_streak,
                completion_time_s, settings_json, recorded_at_utc, completed_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(report.mode),
                app_version,
                int(report.rounds_played),
                int(report.timeouts),
                int(stats.total_attempts),
                int(stats.correct_attempts),
                float(stats.accuracy),
                int(stats.longest_streak),
                float(stats.completion_time_s),
                json.dumps(report.settings, sort_keys=True, default=str),
                _utc_now_iso(),
                report.completed_at_utc,
            ),
        )
        session_id = int(cur.lastrowid)

        for k, v in report.results.items():
            conn.execute(
                "INSERT INTO metric(session_id, key, value) VALUES (?, ?, ?)",
                (session_id, str(k), _metric_text(v)),
            )

    logger.info(f"Recorded {report.mode} session #{session_id}")
    return session_id


def recent_sessions(*, db_path: Path, mode: str | None = None, limit: int = 10) -> list[dict[str, Any]]:
    """Most recent sessions first, each with its metrics folded in."""

    conn = open_db(db_path)
    conn.row_factory = sqlite3.Row
    try:
        if mode is None:
            rows = conn.execute(
                "SELECT * FROM practice_session ORDER BY id DESC LIMIT ?", (int(limit),)
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM practice_session WHERE mode = ? ORDER BY id DESC LIMIT ?",
                (str(mode), int(limit)),
            ).fetchall()
        out: list[dict[str, Any]] = []
        for row in rows:
            entry = dict(row)
            entry["settings"] = json.loads(entry.pop("settings_json"))
            metrics = conn.execute(
                "SELECT key, value FROM metric WHERE session_id = ? ORDER BY key", (entry["id"],)
            ).fetchall()
            entry["metrics"] = {m["key"]: m["value"] for m in metrics}
            out.append(entry)
        return out
    finally:
        conn.close()
