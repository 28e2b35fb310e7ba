# src/flexvault/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator

from flexvault.ledger.migrations import CURRENT_STATE_VERSION, migrate_state_dict

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # No default=str: big ints and dicts only. Anything else is a bug upstream.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


def _backoff_sleep(attempt: int, base_s: float, max_s: float) -> None:
    sleep_s = min(max_s, base_s * (2.0 ** min(attempt, 8)))
    time.sleep(sleep_s * (0.5 + random.random()))


class SqliteDB:
    """SQLite file holding the vault state snapshot.

    Connections are never shared between threads; each read or write opens its
    own. SQLite admits one writer at a time, so write_tx() retries
    BEGIN IMMEDIATE/COMMIT with jittered backoff until a deadline.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """FULL in prod, NORMAL otherwise; FLEXVAULT_SQLITE_SYNCHRONOUS overrides."""
        mode = (os.environ.get("FLEXVAULT_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("FLEXVAULT_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        timeout_s = float(_env_int("FLEXVAULT_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(
            self.path,
            timeout=timeout_s,
            isolation_level=None,  # explicit BEGIN/COMMIT
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("FLEXVAULT_SQLITE_ALLOW_NON_WAL") or "").strip() in {"1", "true", "TRUE"}
        try:
            row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
            mode = str(row[0]).strip().lower() if row is not None else ""
            if mode and mode != "wal" and not allow_non_wal:
                raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")
        except Exception:
            if not allow_non_wal:
                raise

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("FLEXVAULT_SQLITE_BUSY_TIMEOUT_MS", int(timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS vault_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  state_version INTEGER NOT NULL,
                  clock INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
                return
            try:
                have = int(str(row["value"]))
            except Exception:
                have = 0
            if have != self.SCHEMA_VERSION:
                raise RuntimeError(
                    f"sqlite schema_version mismatch: have={have} want={self.SCHEMA_VERSION}; refusing to open"
                )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return "database is locked" in msg or "database is busy" in msg

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        deadline_ts = _now_ms() + max(250, _env_int("FLEXVAULT_SQLITE_WRITE_DEADLINE_MS", 30_000))
        base_s = max(0.001, float(_env_int("FLEXVAULT_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_s = max(base_s, float(_env_int("FLEXVAULT_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        def _retrying(stmt: str, con: sqlite3.Connection) -> None:
            attempt = 0
            while True:
                try:
                    con.execute(stmt)
                    return
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    _backoff_sleep(attempt, base_s, max_s)
                    attempt += 1

        with self.connection() as con:
            _retrying("BEGIN IMMEDIATE;", con)
            try:
                yield con
                _retrying("COMMIT;", con)
            except Exception:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    pass
                raise


class SqliteStateStore:
    """Single-row JSON snapshot of the whole vault state.

    read() migrates old snapshots to the current version; write() and update()
    always store the current version.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM vault_state WHERE id=1;").fetchone() is not None

    @staticmethod
    def _decode(row: Any) -> Json:
        if row is None:
            raise FileNotFoundError("sqlite vault_state is missing")
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("vault_state is not a JSON object")
        return migrate_state_dict(st)

    @staticmethod
    def _row_values(st: Json) -> tuple:
        return (
            int(st.get("state_version", CURRENT_STATE_VERSION)),
            int(st.get("time", 0) or 0),
            _canon_json(st),
            _now_ms(),
        )

    def read(self) -> Json:
        with self._db.connection() as con:
            return self._decode(con.execute("SELECT state_json FROM vault_state WHERE id=1;").fetchone())

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("state write expects dict")
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO vault_state(id, state_version, clock, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  state_version=excluded.state_version,
                  clock=excluded.clock,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                self._row_values(st),
            )

    def update(self, mut: Callable[[Json], Any]) -> None:
        with self._db.write_tx() as con:
            st = self._decode(con.execute("SELECT state_json FROM vault_state WHERE id=1;").fetchone())
            mut(st)
            con.execute(
                "UPDATE vault_state SET state_version=?, clock=?, state_json=?, updated_ts_ms=? WHERE id=1;",
                self._row_values(st),
            )


__all__ = ["SqliteDB", "SqliteStateStore"]
