import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol

import duckdb


class ExposureLogger(Protocol):
    """Capability injected into experiments to receive exposure and event records."""

    def record(self, event: Dict[str, Any]) -> None: ...


class InMemoryExposureLogger:
    """Keeps records in a list; handy for tests and debugging."""

    def __init__(self):
        self.records: List[Dict[str, Any]] = []

    def record(self, event: Dict[str, Any]) -> None:
        self.records.append(event)

    def events(self, event_type: str) -> List[Dict[str, Any]]:
        return [r for r in self.records if r.get("event") == event_type]

    def clear(self):
        self.records.clear()


class LoggingExposureLogger:
    """Writes records through the stdlib logging module, one JSON line per record."""

    LOG_FORMAT = "%s with event type: %s"

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.logger = logger or logging.getLogger("abassign.exposure")
        self.level = level

    def record(self, event: Dict[str, Any]) -> None:
        self.logger.log(
            self.level,
            self.LOG_FORMAT,
            event.get("name"),
            event.get("event"),
            extra={"exposure": json.dumps(event, default=str, sort_keys=True)},
        )


class DuckDBExposureLogger:
    """
    Appends records to a DuckDB table.

    ``database`` defaults to an in-memory database. Pass a file path to keep
    the log on disk, or ``motherduck=True`` to connect to MotherDuck using
    ``token`` or the MOTHERDUCK_TOKEN environment variable.
    """

    def __init__(self, database: str = ":memory:", motherduck: bool = False, token: Optional[str] = None):
        if motherduck:
            if token is None:
                token = os.getenv("MOTHERDUCK_TOKEN")
            if not token:
                raise ValueError("MotherDuck token required. Set via env var or constructor.")
            self.con = duckdb.connect(f"md:{database}?motherduck_token={token}")
        else:
            self.con = duckdb.connect(database)

        self._initialize_table()

    def _initialize_table(self):
        self.con.execute(
            """
            CREATE TABLE IF NOT EXISTS exposure_log (
                event VARCHAR,
                name VARCHAR,
                salt VARCHAR,
                inputs VARCHAR,
                params VARCHAR,
                checksum VARCHAR,
                extra_data VARCHAR,
                logged_at TIMESTAMP
            )
            """
        )

    def record(self, event: Dict[str, Any]) -> None:
        self.record_many([event])

    def record_many(self, events: Iterable[Dict[str, Any]]) -> None:
        rows = []
        now = datetime.now(timezone.utc).replace(tzinfo=None)  # TIMESTAMP column is naive UTC
        for event in events:
            extra = event.get("extra_data")
            rows.append(
                (
                    event["event"],
                    event["name"],
                    event.get("salt"),
                    json.dumps(event.get("inputs", {}), default=str, sort_keys=True),
                    json.dumps(event.get("params", {}), default=str, sort_keys=True),
                    event.get("checksum"),
                    json.dumps(extra, default=str, sort_keys=True) if extra is not None else None,
                    now,
                )
            )
        if not rows:
            return
        self.con.executemany(
            """
            INSERT INTO exposure_log
            (event, name, salt, inputs, params, checksum, extra_data, logged_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )

    def count(self, event_type: Optional[str] = None) -> int:
        if event_type is None:
            return self.con.execute("SELECT COUNT(*) FROM exposure_log").fetchone()[0]
        return self.con.execute("SELECT COUNT(*) FROM exposure_log WHERE event = ?", [event_type]).fetchone()[0]

    def close(self):
        self.con.close()
