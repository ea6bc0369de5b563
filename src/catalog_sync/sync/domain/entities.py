"""Domain entities for catalog sync operations.

These are pure data structures with no infrastructure dependencies.
They represent the sync state machine, the normalized remote catalog
records and the products handed to the store.
"""

import secrets
from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ...api.exceptions import InvalidTransitionError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================
# Sync State Machine
# ============================================

class SyncStatus(str, Enum):
    """Lifecycle status of a sync run for one scope."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSING = "pausing"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.IDLE: frozenset({SyncStatus.RUNNING}),
    SyncStatus.RUNNING: frozenset({
        SyncStatus.PAUSING,
        SyncStatus.STOPPING,
        SyncStatus.COMPLETED,
        SyncStatus.FAILED,
    }),
    SyncStatus.PAUSING: frozenset({
        SyncStatus.PAUSED,
        SyncStatus.STOPPING,
        SyncStatus.COMPLETED,
        SyncStatus.FAILED,
    }),
    SyncStatus.PAUSED: frozenset({SyncStatus.RUNNING, SyncStatus.STOPPING}),
    SyncStatus.STOPPING: frozenset({
        SyncStatus.STOPPED,
        SyncStatus.COMPLETED,
        SyncStatus.FAILED,
    }),
    SyncStatus.STOPPED: frozenset({SyncStatus.RUNNING, SyncStatus.IDLE}),
    SyncStatus.COMPLETED: frozenset({SyncStatus.RUNNING, SyncStatus.IDLE}),
    SyncStatus.FAILED: frozenset({SyncStatus.RUNNING, SyncStatus.IDLE}),
}

# Statuses the batch driver keeps invoking the engine for
ACTIVE_STATUSES = frozenset({SyncStatus.RUNNING, SyncStatus.PAUSING, SyncStatus.STOPPING})

# Statuses from which a new run may be acquired
ACQUIRABLE_STATUSES = frozenset({
    SyncStatus.IDLE,
    SyncStatus.COMPLETED,
    SyncStatus.STOPPED,
    SyncStatus.FAILED,
})

TERMINAL_STATUSES = frozenset({SyncStatus.COMPLETED, SyncStatus.STOPPED, SyncStatus.FAILED})

# Pending control intents that a checkpoint write must not overwrite
INTENT_STATUSES = frozenset({SyncStatus.PAUSING, SyncStatus.STOPPING})


def can_transition(from_status: SyncStatus, to_status: SyncStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


# Stored statuses a checkpoint write may move away from
CHECKPOINT_WRITABLE_STATUSES = frozenset({SyncStatus.RUNNING, SyncStatus.PAUSING, SyncStatus.STOPPING})


def checkpoint_status(stored: Optional[SyncStatus], incoming: SyncStatus) -> SyncStatus:
    """Status a store keeps when a checkpoint is written over ``stored``.

    A checkpoint may only follow a graph edge out of running, pausing or
    stopping. Anything else keeps the stored status, so a RUNNING checkpoint
    never erases a pause or cancel request made while its batch was in
    flight. Paused, idle and terminal statuses only change through
    try_acquire or transition.
    """
    if stored is None or stored == incoming:
        return incoming
    if stored in CHECKPOINT_WRITABLE_STATUSES and can_transition(stored, incoming):
        return incoming
    return stored


class SyncType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


def new_run_id() -> str:
    return f"sync_{secrets.token_hex(6)}"


@dataclass
class SyncCounters:
    """Per-run item counters. They only ever grow within a run."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0

    def add(self, other: "SyncCounters") -> None:
        self.processed += other.processed
        self.created += other.created
        self.updated += other.updated
        self.unchanged += other.unchanged
        self.failed += other.failed

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "SyncCounters":
        data = data or {}
        return cls(
            processed=int(data.get("processed", 0)),
            created=int(data.get("created", 0)),
            updated=int(data.get("updated", 0)),
            unchanged=int(data.get("unchanged", 0)),
            failed=int(data.get("failed", 0)),
        )


@dataclass
class SyncState:
    """Persistent progress of the sync run for one scope.

    ``cursor`` counts committed batches and ``offset`` counts remote items
    consumed. Both only move forward while a run is in progress.
    ``last_synced_at`` survives across runs and feeds incremental syncs.
    """

    scope: str
    status: SyncStatus = SyncStatus.IDLE
    cursor: int = 0
    offset: int = 0
    batch_size: int = 10
    failure_count: int = 0
    counters: SyncCounters = field(default_factory=SyncCounters)

    # Run identity
    run_id: Optional[str] = None
    sync_type: SyncType = SyncType.FULL
    since: Optional[datetime] = None
    limit: int = 0

    # Timestamps
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None

    last_error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_intent(self) -> bool:
        return self.status in INTENT_STATUSES

    @property
    def limit_reached(self) -> bool:
        return self.limit > 0 and self.counters.processed >= self.limit

    def transition_to(self, status: SyncStatus) -> None:
        """Move to a new status, enforcing the transition graph.

        Raises:
            InvalidTransitionError: If the graph has no such edge
        """
        status = SyncStatus(status)
        if status == self.status:
            return
        if not can_transition(self.status, status):
            raise InvalidTransitionError(self.status.value, status.value)

        self.status = status
        self.updated_at = utc_now()
        if status in TERMINAL_STATUSES:
            self.completed_at = self.updated_at
            if status == SyncStatus.COMPLETED:
                self.last_synced_at = self.completed_at

    def snapshot(self) -> "SyncState":
        """Deep copy, so callers never share mutable state with a store."""
        return deepcopy(self)

    @classmethod
    def begin(
        cls,
        scope: str,
        batch_size: int,
        sync_type: SyncType = SyncType.FULL,
        limit: int = 0,
        previous: Optional["SyncState"] = None,
    ) -> "SyncState":
        """Create the RUNNING state of a fresh run.

        Incremental runs filter on the previous completed run's timestamp;
        without one they fall back to a full sync.
        """
        last_synced_at = previous.last_synced_at if previous else None
        if sync_type == SyncType.INCREMENTAL and last_synced_at is None:
            sync_type = SyncType.FULL

        now = utc_now()
        return cls(
            scope=scope,
            status=SyncStatus.RUNNING,
            batch_size=batch_size,
            run_id=new_run_id(),
            sync_type=sync_type,
            since=last_synced_at if sync_type == SyncType.INCREMENTAL else None,
            limit=max(0, limit),
            started_at=now,
            updated_at=now,
            last_synced_at=last_synced_at,
        )

    def reset(self) -> "SyncState":
        """Return an IDLE copy that keeps only the last-sync timestamp."""
        self.transition_to(SyncStatus.IDLE)
        return SyncState(
            scope=self.scope,
            batch_size=self.batch_size,
            updated_at=utc_now(),
            last_synced_at=self.last_synced_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "status": self.status.value,
            "cursor": self.cursor,
            "offset": self.offset,
            "batch_size": self.batch_size,
            "failure_count": self.failure_count,
            "counters": self.counters.to_dict(),
            "run_id": self.run_id,
            "sync_type": self.sync_type.value,
            "since": _iso(self.since),
            "limit": self.limit,
            "started_at": _iso(self.started_at),
            "updated_at": _iso(self.updated_at),
            "completed_at": _iso(self.completed_at),
            "last_synced_at": _iso(self.last_synced_at),
            "last_error": self.last_error,
        }


# ============================================
# Remote Catalog Records
# ============================================

@dataclass
class ProductAttribute:
    """A vendor attribute (alias is the vendor's attribute key)."""

    alias: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"alias": self.alias, "value": self.value}


@dataclass
class CatalogVariant:
    id: Optional[str] = None
    reference: str = ""
    net_price: float = 0.0
    attributes: list[ProductAttribute] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    stock: Optional[int] = None


@dataclass
class CatalogItem:
    """A normalized product from the vendor catalog.

    Multilingual fields are ``{language_code: text}`` mappings, or plain
    strings when the vendor sends a single language.
    """

    reference: str
    id: Optional[str] = None
    name: Any = field(default_factory=dict)
    description: Any = field(default_factory=dict)
    price: float = 0.0
    currency: Optional[str] = None
    active: bool = True
    category_refs: list[str] = field(default_factory=list)
    model_ids: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    attributes: list[ProductAttribute] = field(default_factory=list)
    variants: list[CatalogVariant] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def has_variants(self) -> bool:
        return bool(self.variants)


@dataclass
class CategoryRecord:
    reference: str
    name: Any = field(default_factory=dict)
    parent_reference: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProductPage:
    """One page of remote products.

    ``is_last_page`` is True when the page came back shorter than requested.
    """

    items: list[CatalogItem]
    page: int
    page_size: int
    is_last_page: bool
    skipped: int = 0

    @property
    def fetched(self) -> int:
        """Records the vendor returned, including unreadable ones."""
        return len(self.items) + self.skipped


# ============================================
# Local Store Records
# ============================================

@dataclass
class LocalTerm:
    """A taxonomy term (category or scooter model) in the local store."""

    id: int
    taxonomy: str
    name: str
    slug: str
    external_id: Optional[str] = None
    parent_id: Optional[int] = None


@dataclass
class NormalizedProduct:
    """A product ready for the store, keyed by its external reference.

    ``fields`` are always written. ``protected_fields`` are written when the
    product is created and never overwritten afterwards.
    """

    reference: str
    product_type: str = "simple"
    fields: dict[str, Any] = field(default_factory=dict)
    protected_fields: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "type": self.product_type,
            "fields": self.fields,
            "protected_fields": self.protected_fields,
            "meta": self.meta,
        }


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class UpsertResult:
    outcome: UpsertOutcome
    local_id: Optional[int] = None


@dataclass(frozen=True)
class TranslationCacheEntry:
    """Immutable cached translation keyed by md5(text|source|target)."""

    key: str
    source_text: str
    translated_text: str
    source_language: str
    target_language: str
    provider: str = ""
    created_at: Optional[datetime] = None


# ============================================
# History and Logs
# ============================================

@dataclass
class SyncHistoryRecord:
    """Append-only record of one sync run.

    Once the run reaches a terminal status the record is sealed and
    further updates are rejected by the repositories.
    """

    run_id: str
    scope: str
    sync_type: SyncType = SyncType.FULL
    status: SyncStatus = SyncStatus.RUNNING
    counters: SyncCounters = field(default_factory=SyncCounters)
    error_count: int = 0
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    last_error: Optional[str] = None

    @property
    def sealed(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def seal(self, status: SyncStatus, completed_at: Optional[datetime] = None) -> None:
        self.status = status
        self.completed_at = completed_at or utc_now()
        self.duration_seconds = max(0, int((self.completed_at - self.started_at).total_seconds()))

    @classmethod
    def for_state(cls, state: SyncState) -> "SyncHistoryRecord":
        return cls(
            run_id=state.run_id or new_run_id(),
            scope=state.scope,
            sync_type=state.sync_type,
            status=state.status,
            started_at=state.started_at or utc_now(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "scope": self.scope,
            "sync_type": self.sync_type.value,
            "status": self.status.value,
            "counters": self.counters.to_dict(),
            "error_count": self.error_count,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "duration_seconds": self.duration_seconds,
            "last_error": self.last_error,
        }


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class LogEntry:
    """One operator-facing log line of a sync run."""

    message: str
    level: LogLevel = LogLevel.INFO
    scope: str = ""
    run_id: Optional[str] = None
    reference: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "scope": self.scope,
            "run_id": self.run_id,
            "reference": self.reference,
        }


# ============================================
# Results
# ============================================

@dataclass
class SyncResult:
    """Result of a one-shot sync operation such as the category sync.

    Contains statistics about the operation and any errors encountered.
    """

    success: bool
    total: int
    upserted: int
    errors: int
    synced_at: datetime
    error_details: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "total": self.total,
            "upserted": self.upserted,
            "errors": self.errors,
            "synced_at": self.synced_at.isoformat(),
        }


class BatchOutcomeKind(str, Enum):
    """What a single engine invocation did."""

    NOOP = "noop"
    BUSY = "busy"
    COMMITTED = "committed"
    FETCH_FAILED = "fetch_failed"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BatchOutcome:
    kind: BatchOutcomeKind
    state: Optional[SyncState] = None
    batch: SyncCounters = field(default_factory=SyncCounters)
    message: str = ""

    @property
    def should_continue(self) -> bool:
        """True while the driver should keep invoking the engine."""
        return self.state is not None and self.state.is_active and self.kind != BatchOutcomeKind.BUSY

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "batch": self.batch.to_dict(),
            "state": self.state.to_dict() if self.state else None,
        }


def with_status(state: SyncState, status: SyncStatus) -> SyncState:
    """Copy of ``state`` moved to ``status`` through the transition graph."""
    updated = replace(state, counters=replace(state.counters))
    updated.transition_to(status)
    return updated
