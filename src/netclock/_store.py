"""Fallback store port and adapters for the last-known-good offset.

The controller writes the offset of every trusted peer result and
reads it back only when no trusted peer is currently available.  A
single float is all that is ever persisted.

Adapters:

- :class:`MemoryFallbackStore` — process-lifetime value, used when no
  cache file is configured and in tests.
- :class:`JsonFileFallbackStore` — survives restarts.  Writes go to a
  temporary file that is atomically renamed over the target.  I/O
  problems are logged and absorbed: a broken cache must never take
  the clock down with it.
"""

from __future__ import annotations

import json
import logging
import math
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_OFFSET_KEY = "time_offset"


@runtime_checkable
class FallbackStore(Protocol):
    """Port contract for persisting one offset value."""

    def get(self) -> float:
        """Return the stored offset, or ``0.0`` when nothing is stored."""
        ...

    def set(self, value: float) -> None:
        """Store *value*, replacing any previous one."""
        ...


@dataclass
class MemoryFallbackStore:
    """In-memory store.

    Attributes:
        value: The stored offset, ``None`` until the first write.
    """

    value: float | None = None
    writes: int = field(default=0, init=False)

    def get(self) -> float:
        """Return the stored value or ``0.0``."""
        return self.value if self.value is not None else 0.0

    def set(self, value: float) -> None:
        """Replace the stored value."""
        self.value = value
        self.writes += 1


class JsonFileFallbackStore:
    """File-backed store holding ``{"time_offset": <float>}``.

    Args:
        path: Location of the JSON document.  Parent directories are
            created on the first write.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Location of the backing file."""
        return self._path

    def get(self) -> float:
        """Read the stored offset; ``0.0`` when missing or unreadable."""
        with self._lock:
            try:
                raw = self._path.read_bytes()
            except FileNotFoundError:
                return 0.0
            except OSError:
                logger.warning("Cannot read offset cache %s", self._path, exc_info=True)
                return 0.0

        # ValueError covers undecodable UTF-8 as well as bad JSON
        try:
            value = float(json.loads(raw)[_OFFSET_KEY])
        except (ValueError, TypeError, KeyError):
            logger.warning("Ignoring malformed offset cache %s", self._path)
            return 0.0

        if not math.isfinite(value):
            logger.warning("Ignoring non-finite offset %r in %s", value, self._path)
            return 0.0
        return value

    def set(self, value: float) -> None:
        """Persist *value* atomically; failures are logged, not raised."""
        payload = json.dumps({_OFFSET_KEY: value})
        tmp = self._path.with_name(f"{self._path.name}.tmp")
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp.write_text(payload, encoding="utf-8")
                os.replace(tmp, self._path)
            except OSError:
                logger.warning(
                    "Cannot write offset cache %s", self._path, exc_info=True
                )
