"""
Output sinks: one append per collected tweet, in accumulation order.

Sinks never dedupe (identical tweets from different units are all kept) and
never swallow write failures: every OSError / sqlite3.Error surfaces as
PersistenceError and ends the run.
"""

from __future__ import annotations

import json
import os
import sqlite3
from abc import ABC, abstractmethod

from .config import Settings
from .logging_bridge import error as log_error
from .models import TweetRecord
from .utils import now_iso


class PersistenceError(Exception):
    """Writing a collected record failed."""


class BaseSink(ABC):
    kind: str = ""

    @abstractmethod
    def append(self, record: TweetRecord) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Flush/close underlying resources."""


class MemorySink(BaseSink):
    """Keeps records in a list (dry runs and tests)."""

    kind = "memory"

    def __init__(self) -> None:
        self.records: list[TweetRecord] = []

    def append(self, record: TweetRecord) -> None:
        self.records.append(record)


class JsonlSink(BaseSink):
    """Appends one JSON object per line, dataset-style."""

    kind = "jsonl"

    def __init__(self, path: str) -> None:
        self.path = path
        self._fh = None

    def append(self, record: TweetRecord) -> None:
        try:
            if self._fh is None:
                _ensure_dir(self.path)
                self._fh = open(self.path, "a", encoding="utf-8")
            self._fh.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")
        except OSError as e:
            _log_failure("jsonl_append", self.path, e)
            raise PersistenceError(f"failed to append to {self.path}: {e}") from e

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError as e:
                raise PersistenceError(f"failed to close {self.path}: {e}") from e
            finally:
                self._fh = None


class SqliteSink(BaseSink):
    """Append-only `tweets` table without a unique index (duplicates are kept)."""

    kind = "sqlite"

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        self._conn: sqlite3.Connection | None = None

    def append(self, record: TweetRecord) -> None:
        try:
            conn = self._connection()
            conn.execute(
                """
                INSERT INTO tweets (candidate, election_year, date, text, url, collected_utc)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.candidate,
                    record.period_label,
                    record.date,
                    record.text,
                    record.url,
                    now_iso(),
                ),
            )
        except (OSError, sqlite3.Error) as e:
            _log_failure("sqlite_append", self.sqlite_path, e)
            raise PersistenceError(f"failed to insert into {self.sqlite_path}: {e}") from e

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            _ensure_dir(self.sqlite_path)
            # isolation_level=None -> autocommit; every append is durable on its own
            conn = sqlite3.connect(self.sqlite_path, timeout=30.0, isolation_level=None)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            _ensure_schema(conn)
            self._conn = conn
        return self._conn


def count_rows(sqlite_path: str) -> int:
    """Return total rows in the tweets table; 0 if DB missing."""
    if not os.path.exists(sqlite_path):
        return 0
    conn = sqlite3.connect(sqlite_path, timeout=30.0)
    try:
        _ensure_schema(conn)
        (n,) = conn.execute("SELECT COUNT(*) FROM tweets").fetchone()
    finally:
        conn.close()
    return int(n or 0)


def build_sink(settings: Settings) -> BaseSink:
    if settings.sink == "jsonl":
        return JsonlSink(settings.output_path)
    if settings.sink == "sqlite":
        return SqliteSink(settings.sqlite_path)
    return MemorySink()


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(path: str) -> None:
    d = os.path.dirname(os.path.abspath(path)) or "."
    os.makedirs(d, exist_ok=True)


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS tweets (
          id INTEGER PRIMARY KEY,
          candidate TEXT NOT NULL,
          election_year TEXT NOT NULL,
          date TEXT NOT NULL,
          text TEXT NOT NULL,
          url  TEXT NOT NULL,
          collected_utc TEXT NOT NULL
        );
        """
    )


def _log_failure(op: str, target: str, e: BaseException) -> None:
    log_error({
        "component": "candidate_tweets.sinks",
        "op": op,
        "target": target,
        "error": repr(e),
    })
