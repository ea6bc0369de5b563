"""Use cases layer - Business logic orchestration for catalog sync.

This layer contains the classes that run the sync workflow:
- SyncEngine: one resumable batch per invocation
- SyncControlService: start/pause/resume/cancel and status queries
- SyncRunner: the loop that keeps invoking the engine
- ProductTransformer / TermResolver / SyncCategoriesUseCase: per-item work

Use cases depend only on ports, not concrete implementations.
"""

from .resolve_terms import (
    CATEGORY_TAXONOMY,
    KNOWN_MODEL_NAMES,
    MODEL_TAXONOMY,
    TermResolver,
    slugify,
)
from .sync_categories import SyncCategoriesUseCase, parents_first
from .sync_control import ControlResult, SyncControlService
from .sync_engine import SyncEngine, aligned_page_size
from .sync_logger import MAX_LOG_ENTRIES, SyncLogger
from .sync_runner import SyncRunner
from .transform_product import ProductTransformer

__all__ = [
    # Engine
    "SyncEngine",
    "SyncRunner",
    "aligned_page_size",
    # Control
    "ControlResult",
    "SyncControlService",
    # Items
    "ProductTransformer",
    "SyncCategoriesUseCase",
    "TermResolver",
    "CATEGORY_TAXONOMY",
    "MODEL_TAXONOMY",
    "KNOWN_MODEL_NAMES",
    "parents_first",
    "slugify",
    # Logging
    "SyncLogger",
    "MAX_LOG_ENTRIES",
]
