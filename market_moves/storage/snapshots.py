"""File-backed monthly snapshot store.

All periods live in one JSON object keyed ``"YYYY-MM"``. The in-memory map is
authoritative; disk writes are best-effort and coalesced so that any number of
``put``/``merge`` calls within one event-loop turn cause a single write, which
runs in a worker thread when an event loop is active.
"""

import asyncio
import json
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from market_moves.core.logger import logger
from market_moves.models.datatypes import DailyRecord, PeriodSnapshot, SeriesMap, period_key


def sort_records(records: Iterable[DailyRecord]) -> List[DailyRecord]:
    return sorted(records, key=lambda r: r.date)


def merge_series(existing: Mapping[str, List[DailyRecord]], fresh: Mapping[str, List[DailyRecord]]) -> SeriesMap:
    """Merge two instrument→series maps without losing non-overlapping days.

    Per instrument, records are deduplicated by date with ``fresh`` winning on
    collisions and re-sorted by date. Instruments missing from ``fresh`` keep
    their existing series; instruments only in ``fresh`` are added sorted.
    """
    merged: SeriesMap = {}
    for instrument_id in list(existing) + [i for i in fresh if i not in existing]:
        by_date: Dict[str, DailyRecord] = {}
        for record in existing.get(instrument_id) or []:
            by_date[record.date] = record
        for record in fresh.get(instrument_id) or []:
            by_date[record.date] = record
        merged[instrument_id] = sort_records(by_date.values())
    return merged


class SnapshotStore:
    """Durable store of :class:`PeriodSnapshot` objects.

    Args:
        path: JSON file holding every snapshot.
        clock: Returns the current time, used for ``updated_at`` stamps.
    """

    def __init__(self, path: str | Path, clock: Callable[[], datetime] = datetime.now) -> None:
        self.path = Path(path)
        self._clock = clock
        self._snapshots: Dict[str, PeriodSnapshot] = {}
        self._save_scheduled = False
        self._version = 0
        self._written_version = 0
        self._write_lock = threading.Lock()

    def load(self) -> None:
        """Read the store file. Missing or malformed content leaves the store empty."""
        self._snapshots = {}
        if not self.path.exists():
            logger.info(f"SnapshotStore: no cache file at {self.path}, starting empty")
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning(f"SnapshotStore: failed to load {self.path}: {exc}")
            return

        if not isinstance(raw, dict):
            logger.warning(f"SnapshotStore: ignoring {self.path}, top level is not an object")
            return

        for key, entry in raw.items():
            try:
                snapshot = PeriodSnapshot.from_dict(entry)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning(f"SnapshotStore: skipping malformed period {key}: {exc}")
                continue
            self._snapshots[snapshot.key] = snapshot

        logger.info(f"SnapshotStore: loaded {len(self._snapshots)} monthly snapshots")

    def get(self, year: int, month: int) -> Optional[PeriodSnapshot]:
        return self._snapshots.get(period_key(year, month))

    def put(self, year: int, month: int, data: Mapping[str, List[DailyRecord]]) -> PeriodSnapshot:
        """Replace the snapshot of a period wholesale and schedule a save."""
        snapshot = PeriodSnapshot(
            year=year,
            month=month,
            data={instrument_id: sort_records(records) for instrument_id, records in data.items()},
            updated_at=self._clock().isoformat(),
        )
        self._snapshots[snapshot.key] = snapshot
        self._schedule_save()
        return snapshot

    def merge(self, year: int, month: int, fresh: Mapping[str, List[DailyRecord]]) -> PeriodSnapshot:
        """Merge fresh series into the period's snapshot (see :func:`merge_series`)."""
        existing = self.get(year, month)
        merged = merge_series(existing.data if existing else {}, fresh)
        return self.put(year, month, merged)

    def keys(self) -> List[str]:
        return sorted(self._snapshots)

    def to_dict(self) -> Dict[str, dict]:
        return {key: snapshot.to_dict() for key, snapshot in self._snapshots.items()}

    def flush(self) -> bool:
        """Write the whole store to disk now. Returns False if the write failed."""
        self._version += 1
        return self._write(self.to_dict(), self._version)

    def _write(self, payload: Dict[str, dict], version: int) -> bool:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with self._write_lock:
            if version < self._written_version:
                # a newer payload already reached disk
                return True
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(payload, f, separators=(",", ":"))
                os.replace(tmp_path, self.path)
            except (OSError, TypeError, ValueError) as exc:
                logger.warning(f"SnapshotStore: failed to save {self.path}: {exc}")
                return False
            self._written_version = version
        logger.debug(f"SnapshotStore: saved {len(payload)} snapshots to {self.path}")
        return True

    def _schedule_save(self) -> None:
        if self._save_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._save_scheduled = True
        loop.call_soon(self._run_scheduled_save, loop)

    def _run_scheduled_save(self, loop: asyncio.AbstractEventLoop) -> None:
        """Serialize on the loop, then hand the disk write to a worker thread."""
        self._save_scheduled = False
        self._version += 1
        loop.run_in_executor(None, self._write, self.to_dict(), self._version)
