"""Process-wide retrieval configuration with request-scoped overrides.

The engine reads its tuning knobs (term pipeline, BM25 parameters, candidate
set size) from a single shared ``PropertyStore``. Requests may override keys
for the duration of one retrieval run; ``with_overrides`` brackets that run
so no other run can observe the transient values and the store always
returns to its previous state.
"""

import logging
import math
import threading
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass

from .errors import InvalidPropertyError

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes", "on")


class _ReadWriteLock:
    """Writer-preferring readers/writer lock.

    Readers share the lock; a writer holds it alone. Once a writer is
    waiting, new readers queue behind it so overrides cannot starve.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()


@dataclass(frozen=True)
class PropertySnapshot:
    """Captured values for a set of keys; ``None`` marks an absent key."""

    values: dict[str, str | None]

    def keys(self) -> list[str]:
        return list(self.values)


class PropertyStore:
    """Shared string-to-string store of engine properties."""

    def __init__(self, initial: Mapping[str, object] | None = None):
        self._values: dict[str, str] = {
            str(key): str(value) for key, value in (initial or {}).items()
        }
        self._mutex = threading.Lock()
        self._bracket = _ReadWriteLock()

    def get(self, key: str, default: str | None = None) -> str | None:
        with self._mutex:
            return self._values.get(key, default)

    def set(self, key: str, value: object) -> None:
        with self._mutex:
            self._values[key] = str(value)

    def remove(self, key: str) -> None:
        with self._mutex:
            self._values.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._mutex:
            return key in self._values

    def as_dict(self) -> dict[str, str]:
        with self._mutex:
            return dict(self._values)

    def get_int(self, key: str, default: int) -> int:
        raw = self.get(key)
        if raw is None or raw.strip() == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise InvalidPropertyError(f"Property {key} must be an integer, got {raw!r}")

    def get_float(self, key: str, default: float) -> float:
        raw = self.get(key)
        if raw is None or raw.strip() == "":
            return default
        try:
            value = float(raw)
        except ValueError:
            raise InvalidPropertyError(f"Property {key} must be a number, got {raw!r}")
        if not math.isfinite(value):
            raise InvalidPropertyError(f"Property {key} must be a finite number, got {raw!r}")
        return value

    def get_bool(self, key: str, default: bool) -> bool:
        raw = self.get(key)
        if raw is None or raw.strip() == "":
            return default
        return raw.strip().lower() in _TRUE_VALUES

    def get_list(self, key: str, default: str = "") -> list[str]:
        raw = self.get(key, default) or ""
        return [item.strip() for item in raw.split(",") if item.strip()]

    def snapshot(self, keys: Iterable[str]) -> PropertySnapshot:
        """Capture current values (or absence) of ``keys``."""
        with self._mutex:
            return PropertySnapshot({key: self._values.get(key) for key in keys})

    def restore(self, snapshot: PropertySnapshot) -> None:
        """Write captured values back, removing keys that were absent."""
        with self._mutex:
            for key, value in snapshot.values.items():
                if value is None:
                    self._values.pop(key, None)
                else:
                    self._values[key] = value

    @contextmanager
    def with_overrides(self, overrides: Mapping[str, object] | None) -> Iterator[None]:
        """Run the enclosed block with ``overrides`` applied.

        An empty mapping holds the bracket shared, so the block can run
        alongside other non-mutating runs but never alongside an override.
        A non-empty mapping holds it exclusively from snapshot to restore.

        Args:
            overrides: Property keys and values to apply for the block

        Yields:
            None. Restoration happens on every exit path.
        """
        if not overrides:
            self._bracket.acquire_read()
            try:
                yield
            finally:
                self._bracket.release_read()
            return

        self._bracket.acquire_write()
        try:
            snapshot = self.snapshot(overrides.keys())
            try:
                for key, value in overrides.items():
                    self.set(key, value)
                logger.debug(f"Applied property overrides: {sorted(overrides)}")
                yield
            finally:
                self.restore(snapshot)
                logger.debug(f"Restored properties: {snapshot.keys()}")
        finally:
            self._bracket.release_write()
