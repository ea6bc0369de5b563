"""In-memory adapters for every sync port.

Used by the CLI's --memory mode, by the API when no DATABASE_URL is set,
and throughout the test suite. They follow the same contracts as the
PostgreSQL adapters: returned objects are copies and every
compare-and-set runs under a lock.
"""

import asyncio
import hashlib
import json
import logging
from collections.abc import Iterable
from copy import deepcopy
from dataclasses import replace
from typing import Any, Optional

from ..domain.entities import (
    ACQUIRABLE_STATUSES,
    ACTIVE_STATUSES,
    LocalTerm,
    LogEntry,
    LogLevel,
    NormalizedProduct,
    SyncHistoryRecord,
    SyncState,
    SyncStatus,
    TranslationCacheEntry,
    UpsertOutcome,
    UpsertResult,
    checkpoint_status,
    utc_now,
)
from ..domain.ports import (
    IProductUpserter,
    ISyncHistoryRepository,
    ISyncLogRepository,
    ISyncStateStore,
    ITermRepository,
    ITranslationCache,
    TermExistsError,
)

logger = logging.getLogger(__name__)


def fields_hash(fields: dict[str, Any]) -> str:
    """Stable digest of a product's field values."""
    payload = json.dumps(fields, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class InMemorySyncStateStore(ISyncStateStore):
    """Sync state kept in a dict, one entry per scope."""

    def __init__(self):
        self._states: dict[str, SyncState] = {}
        self._lock = asyncio.Lock()

    async def load(self, scope: str) -> Optional[SyncState]:
        async with self._lock:
            state = self._states.get(scope)
            return state.snapshot() if state else None

    async def save(self, state: SyncState) -> SyncState:
        async with self._lock:
            stored = self._states.get(state.scope)

            if stored is not None and stored.run_id and state.run_id != stored.run_id:
                logger.warning(
                    f"Ignoring checkpoint for run {state.run_id} on '{state.scope}': "
                    f"current run is {stored.run_id}"
                )
                return stored.snapshot()

            incoming = state.snapshot()
            incoming.status = checkpoint_status(stored.status if stored else None, state.status)
            incoming.updated_at = utc_now()
            self._states[state.scope] = incoming
            return incoming.snapshot()

    async def try_acquire(self, scope: str, state: SyncState) -> bool:
        async with self._lock:
            stored = self._states.get(scope)
            if stored is not None and stored.status not in ACQUIRABLE_STATUSES:
                return False
            self._states[scope] = state.snapshot()
            return True

    async def transition(
        self,
        scope: str,
        from_statuses: Iterable[SyncStatus],
        to_status: SyncStatus,
    ) -> Optional[SyncState]:
        async with self._lock:
            stored = self._states.get(scope)
            if stored is None or stored.status not in set(from_statuses):
                return None

            updated = stored.snapshot()
            if to_status == SyncStatus.IDLE:
                updated = updated.reset()
            else:
                updated.transition_to(to_status)
            self._states[scope] = updated
            return updated.snapshot()

    async def list_active(self) -> list[SyncState]:
        async with self._lock:
            return [s.snapshot() for s in self._states.values() if s.status in ACTIVE_STATUSES]


class InMemoryTranslationCache(ITranslationCache):
    def __init__(self):
        self.entries: dict[str, TranslationCacheEntry] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self.entries.get(key)
        return entry.translated_text if entry else None

    async def get_many(self, keys: list[str]) -> dict[str, str]:
        return {key: self.entries[key].translated_text for key in keys if key in self.entries}

    async def put(self, entry: TranslationCacheEntry) -> None:
        if entry.key not in self.entries:
            self.entries[entry.key] = replace(entry, created_at=entry.created_at or utc_now())


class InMemorySyncHistoryRepository(ISyncHistoryRepository):
    def __init__(self):
        self._records: dict[str, SyncHistoryRecord] = {}

    async def create(self, record: SyncHistoryRecord) -> None:
        self._records[record.run_id] = deepcopy(record)

    async def update(self, record: SyncHistoryRecord) -> bool:
        stored = self._records.get(record.run_id)
        if stored is not None and stored.sealed:
            return False
        self._records[record.run_id] = deepcopy(record)
        return True

    async def get(self, run_id: str) -> Optional[SyncHistoryRecord]:
        record = self._records.get(run_id)
        return deepcopy(record) if record else None

    async def list_recent(self, scope: Optional[str] = None, limit: int = 20) -> list[SyncHistoryRecord]:
        records = [r for r in self._records.values() if scope is None or r.scope == scope]
        records.sort(key=lambda r: r.started_at, reverse=True)
        return [deepcopy(r) for r in records[:limit]]


class InMemorySyncLogRepository(ISyncLogRepository):
    def __init__(self):
        self._entries: list[LogEntry] = []
        self._next_id = 1

    async def append(self, entry: LogEntry) -> None:
        self._entries.append(replace(entry, id=self._next_id))
        self._next_id += 1

    async def recent(
        self,
        scope: str,
        limit: int = 50,
        level: Optional[LogLevel] = None,
        run_id: Optional[str] = None,
    ) -> list[LogEntry]:
        matches = [
            e for e in reversed(self._entries)
            if e.scope == scope
            and (level is None or e.level == level)
            and (run_id is None or e.run_id == run_id)
        ]
        return matches[:limit]

    async def count_errors(self, run_id: str) -> int:
        return sum(1 for e in self._entries if e.run_id == run_id and e.level == LogLevel.ERROR)

    async def prune(self, scope: str, keep: int = 1000) -> int:
        scoped_ids = [e.id for e in self._entries if e.scope == scope]
        doomed = set(scoped_ids[:-keep] if keep > 0 else scoped_ids)
        if not doomed:
            return 0
        self._entries = [e for e in self._entries if e.id not in doomed]
        return len(doomed)


class InMemoryTermRepository(ITermRepository):
    def __init__(self):
        self.terms: list[LocalTerm] = []
        self._next_id = 1

    async def find_by_external_id(self, taxonomy: str, external_id: str) -> Optional[LocalTerm]:
        for term in self.terms:
            if term.taxonomy == taxonomy and term.external_id == external_id:
                return replace(term)
        return None

    async def find_by_slug(self, taxonomy: str, slug: str) -> Optional[LocalTerm]:
        for term in self.terms:
            if term.taxonomy == taxonomy and term.slug == slug:
                return replace(term)
        return None

    async def attach_external_id(self, term: LocalTerm, external_id: str) -> LocalTerm:
        for stored in self.terms:
            if stored.id == term.id:
                if stored.external_id not in (None, external_id):
                    raise TermExistsError(stored.taxonomy, stored.slug, stored.id)
                stored.external_id = external_id
                return replace(stored)
        return replace(term, external_id=external_id)

    async def create(
        self,
        taxonomy: str,
        name: str,
        slug: str,
        external_id: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> LocalTerm:
        existing = await self.find_by_slug(taxonomy, slug)
        if existing is not None:
            raise TermExistsError(taxonomy, slug, existing.id)

        term = LocalTerm(
            id=self._next_id,
            taxonomy=taxonomy,
            name=name,
            slug=slug,
            external_id=external_id,
            parent_id=parent_id,
        )
        self._next_id += 1
        self.terms.append(term)
        return replace(term)


class InMemoryProductStore(IProductUpserter):
    """Products keyed by external reference.

    Protected fields are written on create only; later upserts leave them
    as the store already has them.
    """

    def __init__(self):
        self.products: dict[str, dict[str, Any]] = {}
        self._next_id = 1

    async def upsert(self, reference: str, product: NormalizedProduct) -> UpsertResult:
        stored = self.products.get(reference)

        if stored is None:
            local_id = self._next_id
            self._next_id += 1
            self.products[reference] = {
                "id": local_id,
                "type": product.product_type,
                "fields": {**product.protected_fields, **product.fields},
                "meta": dict(product.meta),
                "hash": fields_hash(product.fields),
            }
            return UpsertResult(UpsertOutcome.CREATED, local_id)

        digest = fields_hash(product.fields)
        if digest == stored["hash"] and stored["type"] == product.product_type:
            return UpsertResult(UpsertOutcome.UNCHANGED, stored["id"])

        stored["fields"].update(product.fields)
        stored["meta"].update(product.meta)
        stored["type"] = product.product_type
        stored["hash"] = digest
        return UpsertResult(UpsertOutcome.UPDATED, stored["id"])

    def get(self, reference: str) -> Optional[dict[str, Any]]:
        stored = self.products.get(reference)
        return deepcopy(stored) if stored else None
