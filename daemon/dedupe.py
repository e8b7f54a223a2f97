# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Dedupe store — persistent "already notified" key set.

One notification per (milestone, streamer, run). Each alert has a canonical
key plus historically valid aliases; the legacy key also carried the clock
and the split second, so old sent_keys.json entries keep suppressing
duplicates after the key change.

mark_if_new() is check-and-set over the whole alias set: if none of the keys
were seen, all of them are recorded and persisted, and it returns True.
There is no await between the check and the set, and one lock covers the
check, the set and the file write for callers on other threads.
"""

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Tuple, Union

from core.paths import get_paths
from daemon.schemas import DedupeStoreError, atomic_write_json

logger = logging.getLogger("runalert.dedupe")


@dataclass(frozen=True)
class AlertIdentity:
    """Canonical dedupe key plus its legacy aliases."""
    canonical: str
    aliases: Tuple[str, ...] = ()

    @property
    def keys(self) -> Tuple[str, ...]:
        return (self.canonical,) + self.aliases


def alert_identity(streamer: str, run_id, milestone: str, clock: str, sec: int) -> AlertIdentity:
    """Identity of "notified <milestone> for <streamer>'s run <run_id>"."""
    return AlertIdentity(
        canonical=f"{milestone}|{streamer}|{run_id}",
        aliases=(f"{milestone}|{clock}|{streamer}|{run_id}|{sec}",),
    )


class DedupeStore:
    """Append-only key set persisted as a JSON array."""

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path is not None else get_paths().sent_keys_file
        self._lock = threading.Lock()
        self._seen: Set[str] = self._load()
        self._dedup_hits = 0

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Set[str]:
        if not self._path.exists():
            return set()
        try:
            data = json.loads(self._path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            # First write will replace the unreadable file.
            logger.warning("Could not read %s (%s); starting with empty record", self._path, e)
            return set()
        if not isinstance(data, list):
            logger.warning("%s is not a JSON array; starting with empty record", self._path)
            return set()
        return {k for k in data if isinstance(k, str)}

    def seen(self, key: str) -> bool:
        with self._lock:
            return key in self._seen

    def mark_if_new(self, keys: Union[str, AlertIdentity, Iterable[str]]) -> bool:
        """
        True if none of `keys` were seen before (and records all of them).
        False if any of them was already recorded.

        Raises DedupeStoreError if the record couldn't be persisted. The keys
        stay recorded in memory, so this process still won't repeat itself.
        """
        if isinstance(keys, AlertIdentity):
            keys = keys.keys
        elif isinstance(keys, str):
            keys = (keys,)
        keys = tuple(keys)

        with self._lock:
            if any(k in self._seen for k in keys):
                self._dedup_hits += 1
                return False
            self._seen.update(keys)
            # Persisted inside the lock: writes land in the order the set grew.
            try:
                atomic_write_json(self._path, sorted(self._seen))
            except OSError as e:
                raise DedupeStoreError(f"Could not persist {self._path}: {e}") from e
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "tracked": len(self._seen),
                "dedup_hits": self._dedup_hits,
            }
