"""Local key/value blob store for staged sessions and cached aggregates."""

import json
import logging
import os
import sqlite3
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from db_pool import SQLiteConnectionPool
from schemas import CumulativePerformance

logger = logging.getLogger(__name__)

DB_PATH = os.getenv("DB_PATH", "data.db")

STAGED_SESSION_NAMESPACE = "staged_session"
PERFORMANCE_NAMESPACE = "performance"

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def init() -> None:
    """Create the blob table if it does not exist."""
    _exec(
        """
        CREATE TABLE IF NOT EXISTS blobs (
            namespace  TEXT NOT NULL,
            key        TEXT NOT NULL,
            payload    TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (namespace, key)
        )
        """
    )


def put_blob(namespace: str, key: str, value: Any) -> None:
    """Upsert ``value`` (JSON-serialisable) under ``namespace``/``key``."""
    init()
    _exec(
        """
        INSERT INTO blobs (namespace, key, payload, updated_at)
        VALUES (?, ?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT(namespace, key) DO UPDATE SET
            payload = excluded.payload,
            updated_at = CURRENT_TIMESTAMP
        """,
        [namespace, key, json.dumps(value, ensure_ascii=False)],
    )


def get_blob(namespace: str, key: str) -> Optional[Any]:
    init()
    rows = _query("SELECT payload FROM blobs WHERE namespace = ? AND key = ?", [namespace, key])
    if not rows:
        return None
    try:
        return json.loads(rows[0]["payload"])
    except json.JSONDecodeError:
        logger.warning("Discarding undecodable blob %s/%s", namespace, key)
        return None


# -------------- staged sessions --------------
def stage_loaded_session(username: str, session: dict) -> None:
    """Keep a fetched session until the study page picks it up."""
    put_blob(STAGED_SESSION_NAMESPACE, username, session)


def consume_staged_session(username: str) -> Optional[dict]:
    """Return the staged session for ``username`` once, clearing it."""
    init()
    with _pool.get_connection() as con:
        row = con.execute(
            "SELECT payload FROM blobs WHERE namespace = ? AND key = ?",
            [STAGED_SESSION_NAMESPACE, username],
        ).fetchone()
        if row is None:
            return None
        con.execute(
            "DELETE FROM blobs WHERE namespace = ? AND key = ?",
            [STAGED_SESSION_NAMESPACE, username],
        )
        con.commit()
    try:
        return json.loads(row["payload"])
    except json.JSONDecodeError:
        logger.warning("Staged session for %s was not valid JSON", username)
        return None


# -------------- cached aggregates --------------
def _performance_key(username: str, session_id: str) -> str:
    return f"{username}:{session_id}"


def save_performance(username: str, session_id: str, cumulative: CumulativePerformance) -> None:
    put_blob(PERFORMANCE_NAMESPACE, _performance_key(username, session_id), cumulative.to_wire())


def load_performance(username: str, session_id: str) -> Optional[CumulativePerformance]:
    blob = get_blob(PERFORMANCE_NAMESPACE, _performance_key(username, session_id))
    if blob is None:
        return None
    try:
        return CumulativePerformance.model_validate(blob)
    except ValidationError as exc:
        logger.warning("Cached performance for %s/%s is malformed: %s", username, session_id, exc)
        return None
