"""File-based JSON collections with transactional read-modify-write.

Each logical table (reports, strikes, restrictions, ...) is one JSON list on
disk. Writers go through :meth:`JsonCollection.transaction`, which holds a
per-file lock for the whole read-modify-write so check-then-insert sequences
(duplicate detection, strike counting) cannot interleave. Writes land via a
temp file + ``os.replace`` so a crash never leaves a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from workvoice.moderation.errors import DependencyUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# One lock per resolved path, shared by every collection object in the process.
_locks: dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.RLock()
        return lock


def retry_once(op: Callable[[], T], *, what: str, backoff: float = 0.05) -> T:
    """Run *op*, retrying a single time on transient I/O failure.

    Only ``OSError``/``TimeoutError`` count as transient; anything else
    (including the moderation validation errors) propagates untouched.
    """
    try:
        return op()
    except (OSError, TimeoutError) as first:
        logger.warning("Transient store error during %s, retrying once: %s", what, first)
        time.sleep(backoff)
        try:
            return op()
        except (OSError, TimeoutError) as second:
            raise DependencyUnavailable(f"{what} failed: {second}") from second


class JsonCollection:
    """A list of JSON objects persisted in a single file."""

    def __init__(
        self,
        path: str | Path,
        *,
        lock_timeout: float = 5.0,
        retry_backoff: float = 0.05,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = _lock_for(self.path)
        self._lock_timeout = lock_timeout
        self._retry_backoff = retry_backoff

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self) -> list[dict]:
        if not self.path.exists():
            return []
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise OSError(f"corrupt collection file {self.path}: {e}") from e
        return data if isinstance(data, list) else []

    def _write(self, rows: list[dict]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(rows, indent=2, default=str), encoding="utf-8")
        os.replace(tmp, self.path)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise TimeoutError(f"timed out waiting for lock on {self.path.name}")
        try:
            yield
        finally:
            self._lock.release()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def all(self) -> list[dict]:
        """Snapshot of every row."""

        def op() -> list[dict]:
            with self._locked():
                return self._read()

        return retry_once(op, what=f"read {self.path.name}", backoff=self._retry_backoff)

    def find(self, predicate: Callable[[dict], bool]) -> list[dict]:
        return [row for row in self.all() if predicate(row)]

    def get(self, row_id: str) -> Optional[dict]:
        for row in self.all():
            if row.get("id") == row_id:
                return row
        return None

    def append(self, row: dict) -> dict:
        with self.transaction() as rows:
            rows.append(row)
        return row

    def update(self, row_id: str, **changes) -> Optional[dict]:
        """Apply *changes* to the row with *row_id*. Returns the row or None."""
        with self.transaction() as rows:
            for row in rows:
                if row.get("id") == row_id:
                    row.update(changes)
                    return row
        return None

    @contextmanager
    def transaction(self) -> Iterator[list[dict]]:
        """Yield the mutable row list under lock; persist it on clean exit.

        Exceptions raised inside the block abort the write. Only acquiring
        the lock and loading the file are retried; the caller's block runs
        exactly once.
        """

        def acquire() -> list[dict]:
            if not self._lock.acquire(timeout=self._lock_timeout):
                raise TimeoutError(f"timed out waiting for lock on {self.path.name}")
            try:
                return self._read()
            except BaseException:
                self._lock.release()
                raise

        rows = retry_once(acquire, what=f"open {self.path.name}", backoff=self._retry_backoff)
        try:
            yield rows
            retry_once(
                lambda: self._write(rows),
                what=f"write {self.path.name}",
                backoff=self._retry_backoff,
            )
        finally:
            self._lock.release()
