"""Durable snapshots of the session registry.

The registry is written as one versioned JSON document. Writes go to a
temporary file first and are then renamed over the previous copy, so a
crash mid-write never corrupts it. Failures are logged and absorbed: the
in-memory registry stays authoritative for the life of the process.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from config import PERSISTENCE_VERSION
from errors import PersistenceError
from models.snapshot import AnySession, RegistrySnapshot

logger = logging.getLogger(__name__)

_session_adapter: TypeAdapter = TypeAdapter(AnySession)


def dump_snapshot(sessions: list) -> str:
    """Serialize sessions into the versioned snapshot document."""
    snapshot = RegistrySnapshot(
        version=PERSISTENCE_VERSION,
        saved_at=datetime.now(timezone.utc),
        sessions=sessions,
    )
    return snapshot.model_dump_json(indent=2)


def write_snapshot(payload: str, path: str) -> None:
    """Write a serialized snapshot atomically.

    Raises:
        PersistenceError: If the directory cannot be created or the file written.
    """
    tmp_path = path + ".tmp"
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(tmp_path, "w") as f:
            f.write(payload)
        os.replace(tmp_path, path)
    except OSError as e:
        raise PersistenceError(f"Could not write snapshot to {path}") from e


def load_snapshot(path: str) -> list:
    """Load sessions from a snapshot file.

    Missing files, unreadable JSON, and unknown or missing versions all
    yield an empty list. Individual sessions that fail validation are
    skipped; missing optional fields take their model defaults.

    Returns:
        List of GameSession / CombatSession objects.
    """
    if not Path(path).exists():
        return []
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError):
        logger.warning("Could not read snapshot %s; starting empty", path, exc_info=True)
        return []

    if not isinstance(data, dict) or data.get("version") != PERSISTENCE_VERSION:
        logger.warning("Snapshot %s has unsupported version; starting empty", path)
        return []
    raw_sessions = data.get("sessions")
    if not isinstance(raw_sessions, list):
        logger.warning("Snapshot %s has no session list; starting empty", path)
        return []

    sessions = []
    for raw in raw_sessions:
        if not isinstance(raw, dict):
            continue
        raw.setdefault("kind", "escape")
        try:
            sessions.append(_session_adapter.validate_python(raw))
        except ValidationError as e:
            logger.warning("Skipping malformed session %s: %s", raw.get("id"), e)
    return sessions


class SnapshotWriter:
    """Writes snapshots in submission order without blocking the caller.

    With ``asynchronous=False`` each write happens inline, which is what
    the tests use. Either way a failed write is logged, never raised.
    """

    def __init__(self, path: str, asynchronous: bool = True) -> None:
        self.path = path
        self._executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="snapshot-writer")
            if asynchronous else None
        )
        self._pending: Future | None = None
        self._lock = threading.Lock()

    def submit(self, payload: str) -> None:
        if self._executor is None:
            self._write(payload)
            return
        with self._lock:
            self._pending = self._executor.submit(self._write, payload)

    def flush(self) -> None:
        """Block until every submitted write has finished."""
        with self._lock:
            pending = self._pending
        if pending is not None:
            pending.result()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def _write(self, payload: str) -> None:
        try:
            write_snapshot(payload, self.path)
        except PersistenceError:
            logger.exception("Failed to save sessions to %s", self.path)
