"""Port interfaces for catalog sync operations.

Ports define the contracts between the domain/use cases and the infrastructure.
These are abstract base classes that adapters must implement.

Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any, Optional

from .entities import (
    CategoryRecord,
    LocalTerm,
    LogEntry,
    LogLevel,
    NormalizedProduct,
    ProductPage,
    SyncHistoryRecord,
    SyncState,
    SyncStatus,
    TranslationCacheEntry,
    UpsertResult,
)


class ICatalogAPI(ABC):
    """Port for fetching the vendor catalog.

    Transport and HTTP failures are raised as TransportError subclasses.
    An empty page is a normal result, not an error.
    """

    @abstractmethod
    async def fetch_products(
        self,
        page: int,
        page_size: int,
        filters: Optional[dict[str, Any]] = None,
    ) -> ProductPage:
        """Fetch one page of products.

        Args:
            page: Zero-based page index
            page_size: Items per page
            filters: Vendor filters (category, NewerThan, Active, ...)

        Returns:
            ProductPage with normalized items
        """
        ...

    @abstractmethod
    async def fetch_categories(self, page: int, page_size: int) -> list[CategoryRecord]:
        """Fetch one page of categories.

        Args:
            page: Zero-based page index
            page_size: Items per page

        Returns:
            List of CategoryRecord (empty when past the last page)
        """
        ...


class IProductUpserter(ABC):
    """Port for writing products into the local store.

    The match key is the product reference, so repeating an upsert with
    identical fields is a no-op reported as UNCHANGED.
    """

    @abstractmethod
    async def upsert(self, reference: str, product: NormalizedProduct) -> UpsertResult:
        """Create or update a product by external reference.

        Args:
            reference: External product reference (SKU)
            product: Normalized product data

        Returns:
            UpsertResult with created, updated or unchanged outcome
        """
        ...


class ISyncStateStore(ABC):
    """Port for the persistent per-scope sync state.

    Every method raises PersistenceError when storage is unavailable.
    Returned states are copies; mutating them never affects the store.
    """

    @abstractmethod
    async def load(self, scope: str) -> Optional[SyncState]:
        """Load the state for a scope, or None if it never ran."""
        ...

    @abstractmethod
    async def save(self, state: SyncState) -> SyncState:
        """Persist a checkpoint.

        A stored PAUSING or STOPPING intent is never overwritten by a
        RUNNING checkpoint; the returned state carries the stored intent.

        Args:
            state: State to persist

        Returns:
            The state as stored
        """
        ...

    @abstractmethod
    async def try_acquire(self, scope: str, state: SyncState) -> bool:
        """Atomically install a new run.

        Succeeds only when no state exists for the scope or the current
        status is idle, completed, stopped or failed.

        Args:
            scope: Sync scope
            state: RUNNING state of the new run

        Returns:
            True if the run was installed
        """
        ...

    @abstractmethod
    async def transition(
        self,
        scope: str,
        from_statuses: Iterable[SyncStatus],
        to_status: SyncStatus,
    ) -> Optional[SyncState]:
        """Atomic status compare-and-set.

        Args:
            scope: Sync scope
            from_statuses: Statuses the current state must be in
            to_status: New status

        Returns:
            The updated state, or None if the current status did not match
        """
        ...

    @abstractmethod
    async def list_active(self) -> list[SyncState]:
        """List states the batch driver should keep invoking."""
        ...


class ITranslationCache(ABC):
    """Port for the persistent translation cache."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the cached translation for a key, or None."""
        ...

    @abstractmethod
    async def get_many(self, keys: list[str]) -> dict[str, str]:
        """Return cached translations for the keys that are present."""
        ...

    @abstractmethod
    async def put(self, entry: TranslationCacheEntry) -> None:
        """Store a translation. Writing an existing key is a no-op."""
        ...


class ITranslationProvider(ABC):
    """Port for a machine translation backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider name recorded in the cache."""
        ...

    @abstractmethod
    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        """Translate a single text.

        Raises:
            ProviderError: If the provider fails or returns no translation
        """
        ...

    @abstractmethod
    async def translate_batch(
        self,
        texts: list[str],
        source_lang: str,
        target_lang: str,
    ) -> list[str]:
        """Translate several texts, preserving order.

        Raises:
            ProviderError: If the provider fails
        """
        ...

    async def close(self) -> None:
        """Release network resources (optional)."""
        return None


class TermExistsError(Exception):
    """Raised by ITermRepository.create when the slug is already taken."""

    def __init__(self, taxonomy: str, slug: str, existing_id: Optional[int] = None):
        super().__init__(f"Term '{slug}' already exists in {taxonomy}")
        self.taxonomy = taxonomy
        self.slug = slug
        self.existing_id = existing_id


class ITermRepository(ABC):
    """Port for taxonomy terms (categories, scooter models)."""

    @abstractmethod
    async def find_by_external_id(self, taxonomy: str, external_id: str) -> Optional[LocalTerm]:
        ...

    @abstractmethod
    async def find_by_slug(self, taxonomy: str, slug: str) -> Optional[LocalTerm]:
        ...

    @abstractmethod
    async def attach_external_id(self, term: LocalTerm, external_id: str) -> LocalTerm:
        """Bind the vendor id to a term that has none yet.

        Raises:
            TermExistsError: If the term is already bound to another vendor id
        """
        ...

    @abstractmethod
    async def create(
        self,
        taxonomy: str,
        name: str,
        slug: str,
        external_id: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> LocalTerm:
        """Create a term.

        Raises:
            TermExistsError: If another writer created the slug first
        """
        ...


class ISyncHistoryRepository(ABC):
    """Port for the append-only run history."""

    @abstractmethod
    async def create(self, record: SyncHistoryRecord) -> None:
        ...

    @abstractmethod
    async def update(self, record: SyncHistoryRecord) -> bool:
        """Update a record unless it is already sealed.

        Returns:
            False if the stored record was sealed and the update was ignored
        """
        ...

    @abstractmethod
    async def get(self, run_id: str) -> Optional[SyncHistoryRecord]:
        ...

    @abstractmethod
    async def list_recent(self, scope: Optional[str] = None, limit: int = 20) -> list[SyncHistoryRecord]:
        """Newest runs first."""
        ...


class ISyncLogRepository(ABC):
    """Port for the operator-facing sync log feed."""

    @abstractmethod
    async def append(self, entry: LogEntry) -> None:
        ...

    @abstractmethod
    async def recent(
        self,
        scope: str,
        limit: int = 50,
        level: Optional[LogLevel] = None,
        run_id: Optional[str] = None,
    ) -> list[LogEntry]:
        """Newest entries first."""
        ...

    @abstractmethod
    async def count_errors(self, run_id: str) -> int:
        ...

    @abstractmethod
    async def prune(self, scope: str, keep: int = 1000) -> int:
        """Delete all but the newest ``keep`` entries of a scope.

        Returns:
            Number of entries deleted
        """
        ...
