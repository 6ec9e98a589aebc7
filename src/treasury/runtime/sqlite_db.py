# src/treasury/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from treasury.ledger.state import initial_state
from treasury.runtime.state_store import Mutation, Outcome

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # Fail on non-JSON types instead of coercing them; amounts are ints or strings.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite file manager for the treasury state.

      - one durable file holding the state snapshot and the event log
      - cross-thread safe by never sharing connections
      - bounded retry on writer-lock contention in write_tx()
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """FULL in prod, NORMAL otherwise; TREASURY_SQLITE_SYNCHRONOUS overrides."""
        mode = (os.environ.get("TREASURY_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("TREASURY_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        timeout_ms = max(0, _env_int("TREASURY_SQLITE_BUSY_TIMEOUT_MS", 30_000))
        con = sqlite3.connect(
            self.path,
            timeout=float(timeout_ms) / 1000.0,
            isolation_level=None,  # BEGIN/COMMIT are issued explicitly
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        journal = str(row[0]).strip().lower() if row is not None else ""
        if journal and journal != "wal":
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{journal}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")
        con.execute(f"PRAGMA busy_timeout={timeout_ms};")
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
                CREATE TABLE IF NOT EXISTS treasury_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  claimed_terminal TEXT NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  event TEXT NOT NULL,
                  fields_json TEXT NOT NULL,
                  ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_events_event ON events(event);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
                return
            try:
                have = int(str(row["value"]))
            except ValueError:
                have = 0
            if have != self.SCHEMA_VERSION:
                raise RuntimeError(
                    f"sqlite schema_version mismatch: have={have} want={self.SCHEMA_VERSION}. "
                    "Refuse to start to avoid corrupting data."
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

    @staticmethod
    def _backoff(attempt: int, base_s: float, max_s: float) -> None:
        sleep_s = min(max_s, base_s * (2.0 ** min(attempt, 8)))
        time.sleep(sleep_s * (0.5 + random.random()))

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction with bounded retry on BEGIN IMMEDIATE and COMMIT.

        Any exception inside the block rolls the transaction back and is
        re-raised unchanged.
        """
        deadline_ts = _now_ms() + max(250, _env_int("TREASURY_SQLITE_WRITE_DEADLINE_MS", 30_000))
        base_s = max(0.001, _env_int("TREASURY_SQLITE_WRITE_BACKOFF_BASE_MS", 5) / 1000.0)
        max_s = max(base_s, _env_int("TREASURY_SQLITE_WRITE_BACKOFF_MAX_MS", 250) / 1000.0)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    self._backoff(attempt, base_s, max_s)
                    attempt += 1

            try:
                yield con
                attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        self._backoff(attempt, base_s, max_s)
                        attempt += 1
            except BaseException:
                if con.in_transaction:
                    con.execute("ROLLBACK;")
                raise


class SqliteStateStore:
    """Treasury state persisted in SQLite.

    The snapshot is a single JSON row; update() reads, mutates and writes it
    back together with the mutation's events inside one write transaction.
    """

    def __init__(self, *, db: SqliteDB, initial: Optional[Json] = None) -> None:
        self._db = db
        self._db.init_schema()
        if not self.exists():
            self.write(initial if initial is not None else initial_state())

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM treasury_state WHERE id=1;").fetchone() is not None

    @staticmethod
    def _load(row: Any) -> Json:
        if row is None:
            raise FileNotFoundError("sqlite treasury_state is missing")
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("treasury_state is not a JSON object")
        return st

    def read(self) -> Json:
        with self._db.connection() as con:
            return self._load(con.execute("SELECT state_json FROM treasury_state WHERE id=1;").fetchone())

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("state write expects dict")
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO treasury_state(id, claimed_terminal, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  claimed_terminal=excluded.claimed_terminal,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (str(st.get("claimed_terminal") or ""), _canon_json(st), _now_ms()),
            )

    def update(self, mut: Mutation) -> Outcome:
        with self._db.write_tx() as con:
            st = self._load(con.execute("SELECT state_json FROM treasury_state WHERE id=1;").fetchone())
            outcome = mut(st)

            now = _now_ms()
            con.execute(
                "UPDATE treasury_state SET claimed_terminal=?, state_json=?, updated_ts_ms=? WHERE id=1;",
                (str(st.get("claimed_terminal") or ""), _canon_json(st), now),
            )
            stamped: List[Json] = []
            for ev in outcome.events:
                cur = con.execute(
                    "INSERT INTO events(event, fields_json, ts_ms) VALUES(?, ?, ?);",
                    (str(ev["event"]), _canon_json(ev.get("fields") or {}), now),
                )
                rec = dict(ev)
                rec["seq"] = int(cur.lastrowid)
                rec["ts_ms"] = now
                stamped.append(rec)
        return Outcome(result=outcome.result, events=stamped)

    def events(self, limit: int = 100) -> List[Json]:
        n = max(0, int(limit))
        if n == 0:
            return []
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT seq, event, fields_json, ts_ms FROM events ORDER BY seq DESC LIMIT ?;", (n,)
            ).fetchall()
        return [
            {
                "seq": int(r["seq"]),
                "event": str(r["event"]),
                "fields": json.loads(str(r["fields_json"])),
                "ts_ms": int(r["ts_ms"]),
            }
            for r in reversed(rows)
        ]
