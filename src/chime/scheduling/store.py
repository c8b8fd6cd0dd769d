"""Durable schedule store backed by a single JSON document.

Layout::

    {"version": 1, "tenants": {"<tenant_id>": [<entry record>, ...]}}

Every mutation is a read-modify-write under a file lock, written atomically
via tempfile + fsync + os.replace(), so the file is never observed half
written and survives crashes.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from filelock import FileLock

from chime.scheduling.errors import StoreError, ValidationError
from chime.scheduling.types import ScheduleEntry

logger = logging.getLogger(__name__)

STORE_VERSION = 1

_T = TypeVar("_T")

RawTenants = dict[str, list[dict[str, Any]]]


class ScheduleStore:
    """File-backed storage for schedule entries, keyed by tenant."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = FileLock(str(path) + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def load(self) -> dict[str, list[ScheduleEntry]]:
        """Load every tenant's entries."""
        with self._locked():
            raw = self._read()
        return {
            tenant_id: entries
            for tenant_id, records in raw.items()
            if (entries := _hydrate(tenant_id, records))
        }

    def list_for_tenant(self, tenant_id: str) -> list[ScheduleEntry]:
        with self._locked():
            raw = self._read()
        return _hydrate(tenant_id, raw.get(tenant_id, []))

    def get(self, tenant_id: str, entry_id: str) -> ScheduleEntry | None:
        for entry in self.list_for_tenant(tenant_id):
            if entry.id == entry_id:
                return entry
        return None

    def find(self, entry_id: str) -> ScheduleEntry | None:
        """Find an entry by id across all tenants."""
        for entries in self.load().values():
            for entry in entries:
                if entry.id == entry_id:
                    return entry
        return None

    def get_stats(self) -> dict[str, Any]:
        tenants = self.load()
        entries = [e for group in tenants.values() for e in group]
        recurring = sum(1 for e in entries if e.recurring)
        return {
            "path": str(self._path),
            "tenants": len(tenants),
            "total": len(entries),
            "one_shot": len(entries) - recurring,
            "recurring": recurring,
            "disabled": sum(1 for e in entries if not e.enabled),
        }

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def put(self, tenant_id: str, entry: ScheduleEntry) -> None:
        """Insert or replace (by id) an entry for ``tenant_id``."""
        if entry.tenant_id != tenant_id:
            raise ValidationError(
                f"Entry {entry.id} belongs to tenant {entry.tenant_id!r}, not {tenant_id!r}"
            )
        record = entry.to_dict()

        def mutate(raw: RawTenants) -> None:
            records = raw.setdefault(tenant_id, [])
            for i, existing in enumerate(records):
                if existing.get("id") == entry.id:
                    records[i] = record
                    return
            records.append(record)

        self._mutate(mutate)
        logger.info(
            "schedule_saved",
            extra={
                "schedule.tenant_id": tenant_id,
                "schedule.entry_id": entry.id,
                "schedule.type": entry.schedule.kind.value,
            },
        )

    def remove(self, tenant_id: str, entry_id: str) -> bool:
        """Remove one entry.

        Returns:
            True if the entry existed.
        """
        with self._locked():
            raw = self._read()
            records = raw.get(tenant_id, [])
            kept = [r for r in records if r.get("id") != entry_id]
            if len(kept) == len(records):
                return False
            if kept:
                raw[tenant_id] = kept
            else:
                raw.pop(tenant_id, None)
            self._write(raw)

        logger.info(
            "schedule_removed",
            extra={"schedule.tenant_id": tenant_id, "schedule.entry_id": entry_id},
        )
        return True

    def remove_all_for_tenant(self, tenant_id: str) -> list[ScheduleEntry]:
        """Remove every entry owned by ``tenant_id``.

        Returns:
            The removed entries.
        """
        with self._locked():
            raw = self._read()
            records = raw.pop(tenant_id, None)
            if records is None:
                return []
            self._write(raw)

        removed = _hydrate(tenant_id, records)
        logger.info(
            "tenant_schedules_removed",
            extra={"schedule.tenant_id": tenant_id, "schedule.count": len(records)},
        )
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create {self._path.parent}: {e}") from e
        with self._lock:
            yield

    def _mutate(self, mutate: Callable[[RawTenants], _T]) -> _T:
        with self._locked():
            raw = self._read()
            result = mutate(raw)
            self._write(raw)
            return result

    def _read(self) -> RawTenants:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StoreError(f"Failed to read {self._path}: {e}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            # Never write over a file we could not parse
            raise StoreError(f"Corrupt schedule store {self._path}: {e}") from e

        tenants = data.get("tenants") if isinstance(data, dict) else None
        if not isinstance(tenants, dict):
            raise StoreError(f"Corrupt schedule store {self._path}: missing tenants")
        return {
            str(tenant_id): [r for r in records if isinstance(r, dict)]
            for tenant_id, records in tenants.items()
            if isinstance(records, list)
        }

    def _write(self, raw: RawTenants) -> None:
        data = {"version": STORE_VERSION, "tenants": raw}
        try:
            _write_json_atomic(self._path, data)
        except OSError as e:
            raise StoreError(f"Failed to write {self._path}: {e}") from e


def _hydrate(tenant_id: str, records: list[dict[str, Any]]) -> list[ScheduleEntry]:
    entries: list[ScheduleEntry] = []
    for record in records:
        try:
            entries.append(ScheduleEntry.from_dict(record))
        except ValidationError as e:
            logger.warning(
                "corrupt_schedule_record",
                extra={
                    "schedule.tenant_id": tenant_id,
                    "schedule.entry_id": record.get("id"),
                    "error.message": str(e),
                },
            )
    return entries


def _write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write JSON atomically via tempfile + fsync + os.replace()."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, indent=2))
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        Path(tmp).replace(path)
    except BaseException:
        try:
            Path(tmp).unlink()
        except OSError:
            pass
        raise
