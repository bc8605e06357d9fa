"""
Draft trail store.

DraftStore holds the expiry rules shared by every backend:
- Lookups of an expired record answer GONE and purge that record.
- Listings run a whole-collection sweep first, so they never return
  expired records.
- Updates re-check expiry and only touch the fields they change, guarded by
  the record's version.

Backends implement the keyed primitives. JsonFileDraftStore keeps the whole
collection in one versioned JSON document; see sql_store.SqlDraftStore for
the relational backend.
"""

import asyncio
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import ValidationError as PydanticValidationError

from trailkeeper.core.clock import Clock
from trailkeeper.core.exceptions import ConflictError, StorageFailureError, StorageTimeoutError
from .records import DraftLookup, DraftStatus, DraftTrail, LookupOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DraftStore(ABC):
    """
    Key-addressed, time-bounded collection of draft trails.

    Expected conditions (missing, expired) come back as DraftLookup outcomes.
    I/O failures raise StorageFailureError, and every call is bounded by
    `timeout_seconds` (StorageTimeoutError).
    """

    def __init__(self, clock: Clock, timeout_seconds: float = 5.0) -> None:
        self.clock = clock
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _put(self, record: DraftTrail) -> DraftTrail:
        """Insert or replace by reference code; returns the stored record."""

    @abstractmethod
    async def _fetch(self, code: str) -> Optional[DraftTrail]:
        """Stored record regardless of expiry."""

    @abstractmethod
    async def _remove(self, code: str) -> bool:
        """Remove by reference code; True if a record existed."""

    @abstractmethod
    async def _remove_if_expired(self, code: str, now_ms: int) -> bool:
        """
        Remove by reference code only if the stored record is expired at
        `now_ms`; a record re-created since it was read survives.
        """

    @abstractmethod
    async def _all(self) -> List[DraftTrail]:
        """Every stored record, oldest first."""

    @abstractmethod
    async def _remove_expired(self, now_ms: int) -> int:
        """Remove every record expired at `now_ms` in one atomic step."""

    @abstractmethod
    async def _apply(self, code: str, changes: Dict[str, Any], expected_version: int) -> Optional[DraftTrail]:
        """
        Apply field changes if the stored version still equals
        `expected_version`, bumping the version.

        Returns None if the record vanished; raises ConflictError if it was
        modified in between.
        """

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error("Store operation %s exceeded %ss", operation, self.timeout_seconds)
            raise StorageTimeoutError(operation, self.timeout_seconds)

    async def create(self, record: DraftTrail) -> DraftTrail:
        """
        Store `record`. A record with the same reference code is replaced,
        not duplicated: creating is an upsert.
        """
        stored = await self._bounded("create", self._put(record))
        return stored.at(self.clock.now_ms())

    async def _live(self, code: str) -> DraftLookup:
        record = await self._fetch(code)
        if record is None:
            return DraftLookup.not_found()
        now = self.clock.now_ms()
        if record.is_expired(now):
            if await self._remove_if_expired(code, now):
                logger.info("Purged expired draft trail %s on access", code)
            return DraftLookup.gone(record.at(now))
        return DraftLookup.found(record.at(now))

    async def get(self, code: str) -> DraftLookup:
        """FOUND, GONE (and purged) or NOT_FOUND."""
        return await self._bounded("get", self._live(code))

    async def sweep_expired(self) -> int:
        """Remove all expired records; returns how many were removed."""
        removed = await self._bounded("sweep", self._remove_expired(self.clock.now_ms()))
        if removed:
            logger.info("🧹 Cleaned up %d expired draft trail(s)", removed)
        return removed

    async def _swept_listing(self) -> List[DraftTrail]:
        now = self.clock.now_ms()
        await self._remove_expired(now)
        # A record can expire between the sweep and the read
        return [r.at(now) for r in await self._all() if not r.is_expired(now)]

    async def list_all(self) -> List[DraftTrail]:
        return await self._bounded("list_all", self._swept_listing())

    async def list_by_owner(self, owner_email: str) -> List[DraftTrail]:
        records = await self._bounded("list_by_owner", self._swept_listing())
        return [r for r in records if r.owner_email == owner_email]

    async def _update(self, code: str, changes: Dict[str, Any]) -> DraftLookup:
        lookup = await self._live(code)
        if lookup.outcome != LookupOutcome.FOUND:
            return lookup
        updated = await self._apply(code, changes, lookup.record.version)
        if updated is None:
            return DraftLookup.not_found()
        return DraftLookup.found(updated.at(self.clock.now_ms()))

    async def update_status(self, code: str, status: DraftStatus) -> DraftLookup:
        """Overwrite the status; transition rules are the caller's concern."""
        return await self._bounded("update_status", self._update(code, {"status": status}))

    async def update_paid(self, code: str, is_paid: bool) -> DraftLookup:
        """Set the paid flag; paid_at becomes now, or None when unpaid."""
        changes = {
            "is_paid": is_paid,
            "paid_at": self.clock.now_ms() if is_paid else None,
        }
        return await self._bounded("update_paid", self._update(code, changes))

    async def update_payload(self, code: str, payload: Any) -> DraftLookup:
        return await self._bounded("update_payload", self._update(code, {"payload": payload}))

    async def delete(self, code: str) -> bool:
        """Idempotent removal; True if a record existed."""
        return await self._bounded("delete", self._remove(code))

    async def count(self) -> int:
        """Stored records, including expired ones not yet swept."""
        return len(await self._bounded("count", self._all()))

    async def close(self) -> None:
        """Release backend resources."""


SCHEMA_VERSION = 1


class JsonFileDraftStore(DraftStore):
    """
    Whole-collection JSON file backend.

    Layout:
        {"schemaVersion": 1, "draftTrails": [<record>, ...]}

    A bare list (the un-versioned legacy layout) is read as version 0 and
    rewritten as version 1 on the next write.

    Every operation is a read-modify-write of the whole file executed in a
    worker thread under one threading.Lock, so it completes even if the
    awaiting request times out. Writes go to a temp file that is atomically
    renamed over the collection.
    """

    def __init__(self, path: str, clock: Clock, timeout_seconds: float = 5.0) -> None:
        super().__init__(clock, timeout_seconds)
        self.path = Path(path)
        self._lock = threading.Lock()

    # --- file I/O -------------------------------------------------------

    def _read_collection(self) -> Dict[str, DraftTrail]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                doc = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error reading draft trails from %s: %s", self.path, e)
            raise StorageFailureError("Failed to read draft trails") from e

        if isinstance(doc, list):
            items = doc
        elif isinstance(doc, dict) and doc.get("schemaVersion") == SCHEMA_VERSION:
            items = doc.get("draftTrails") or []
        else:
            version = doc.get("schemaVersion") if isinstance(doc, dict) else None
            raise StorageFailureError(f"Unsupported draft trails layout (schemaVersion={version})")

        try:
            records = [DraftTrail.model_validate(item) for item in items]
        except PydanticValidationError as e:
            logger.error("Corrupt draft trail record in %s: %s", self.path, e)
            raise StorageFailureError("Stored draft trails are corrupt") from e
        return {r.reference_code: r for r in records}

    def _write_collection(self, records: Dict[str, DraftTrail]) -> None:
        doc = {
            "schemaVersion": SCHEMA_VERSION,
            "draftTrails": [r.to_document() for r in records.values()],
        }
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(doc, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Error writing draft trails to %s: %s", self.path, e)
            raise StorageFailureError("Failed to write draft trails") from e

    def _mutate(self, fn: Callable[[Dict[str, DraftTrail]], Tuple[T, bool]]) -> T:
        """Run fn on the collection under the lock; write back if it changed."""
        with self._lock:
            records = self._read_collection()
            result, changed = fn(records)
            if changed:
                self._write_collection(records)
            return result

    async def _run(self, fn: Callable[[Dict[str, DraftTrail]], Tuple[T, bool]]) -> T:
        return await asyncio.to_thread(self._mutate, fn)

    # --- primitives -----------------------------------------------------

    async def _put(self, record: DraftTrail) -> DraftTrail:
        def put(records: Dict[str, DraftTrail]):
            existing = records.get(record.reference_code)
            stored = record
            if existing is not None:
                # Invalidate writers still holding the replaced draft
                stored = record.model_copy(update={"version": existing.version + 1})
            records[record.reference_code] = stored
            return stored, True

        return await self._run(put)

    async def _fetch(self, code: str) -> Optional[DraftTrail]:
        return await self._run(lambda records: (records.get(code), False))

    async def _remove(self, code: str) -> bool:
        def remove(records: Dict[str, DraftTrail]):
            existed = records.pop(code, None) is not None
            return existed, existed

        return await self._run(remove)

    async def _remove_if_expired(self, code: str, now_ms: int) -> bool:
        def remove_expired(records: Dict[str, DraftTrail]):
            current = records.get(code)
            if current is None or not current.is_expired(now_ms):
                return False, False
            del records[code]
            return True, True

        return await self._run(remove_expired)

    async def _all(self) -> List[DraftTrail]:
        def all_records(records: Dict[str, DraftTrail]):
            return sorted(records.values(), key=lambda r: r.created_at), False

        return await self._run(all_records)

    async def _remove_expired(self, now_ms: int) -> int:
        def sweep(records: Dict[str, DraftTrail]):
            expired = [code for code, r in records.items() if r.is_expired(now_ms)]
            for code in expired:
                del records[code]
            return len(expired), bool(expired)

        return await self._run(sweep)

    async def _apply(self, code: str, changes: Dict[str, Any], expected_version: int) -> Optional[DraftTrail]:
        def apply(records: Dict[str, DraftTrail]):
            current = records.get(code)
            if current is None:
                return None, False
            if current.version != expected_version:
                raise ConflictError("Draft trail was modified concurrently, retry the request")
            updated = current.model_copy(update={**changes, "version": current.version + 1})
            records[code] = updated
            return updated, True

        return await self._run(apply)
