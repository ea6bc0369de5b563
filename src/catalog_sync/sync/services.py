"""Wiring of ports, adapters and use cases into a running sync service.

Shared by the FastAPI app and the CLI. With a database pool every port is
backed by PostgreSQL; without one the in-memory adapters are used, which
is enough for a one-off run from the command line.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..api.client import CatalogClient
from ..config import SettingsRegistry
from ..translation import Translator, create_provider
from .adapters import (
    CatalogAPIAdapter,
    InMemoryProductStore,
    InMemorySyncHistoryRepository,
    InMemorySyncLogRepository,
    InMemorySyncStateStore,
    InMemoryTermRepository,
    InMemoryTranslationCache,
    PostgresProductRepository,
    PostgresSyncHistoryRepository,
    PostgresSyncLogRepository,
    PostgresSyncStateStore,
    PostgresTermRepository,
    PostgresTranslationCache,
)
from .domain.ports import (
    IProductUpserter,
    ISyncHistoryRepository,
    ISyncLogRepository,
    ISyncStateStore,
    ITermRepository,
    ITranslationCache,
    ITranslationProvider,
)
from .use_cases import (
    ProductTransformer,
    SyncCategoriesUseCase,
    SyncControlService,
    SyncEngine,
    SyncRunner,
    TermResolver,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncServices:
    """Everything an entry point needs, plus the resources to release."""

    settings: SettingsRegistry
    state_store: ISyncStateStore
    history_repo: ISyncHistoryRepository
    log_repo: ISyncLogRepository
    control: SyncControlService
    engine: Optional[SyncEngine] = None
    runner: Optional[SyncRunner] = None
    client: Optional[CatalogClient] = None
    translator: Optional[Translator] = None
    pool: Any = None

    async def close(self) -> None:
        if self.translator is not None:
            await self.translator.close()
        if self.client is not None:
            await self.client.__aexit__(None, None, None)
            self.client = None


def build_stores(pool: Any = None) -> dict[str, Any]:
    """Storage adapters for every port, PostgreSQL when a pool is given."""
    if pool is not None:
        return {
            "state_store": PostgresSyncStateStore(pool),
            "history_repo": PostgresSyncHistoryRepository(pool),
            "log_repo": PostgresSyncLogRepository(pool),
            "translation_cache": PostgresTranslationCache(pool),
            "term_repo": PostgresTermRepository(pool),
            "product_store": PostgresProductRepository(pool),
        }
    return {
        "state_store": InMemorySyncStateStore(),
        "history_repo": InMemorySyncHistoryRepository(),
        "log_repo": InMemorySyncLogRepository(),
        "translation_cache": InMemoryTranslationCache(),
        "term_repo": InMemoryTermRepository(),
        "product_store": InMemoryProductStore(),
    }


async def build_services(
    settings: SettingsRegistry,
    pool: Any = None,
    client: Optional[CatalogClient] = None,
    provider: Optional[ITranslationProvider] = None,
    stores: Optional[dict[str, Any]] = None,
    with_engine: bool = True,
) -> SyncServices:
    """Assemble the sync service.

    Args:
        settings: Settings registry
        pool: asyncpg pool; None selects the in-memory adapters
        client: Pre-built catalog client (an open session is expected)
        provider: Pre-built translation provider
        stores: Pre-built storage adapters (see build_stores)
        with_engine: False builds only the control and query side

    Raises:
        ConfigurationError: If the engine is requested without credentials
    """
    stores = stores or build_stores(pool)
    state_store: ISyncStateStore = stores["state_store"]
    history_repo: ISyncHistoryRepository = stores["history_repo"]
    log_repo: ISyncLogRepository = stores["log_repo"]

    services = SyncServices(
        settings=settings,
        state_store=state_store,
        history_repo=history_repo,
        log_repo=log_repo,
        control=SyncControlService(state_store, history_repo, log_repo, settings),
        pool=pool,
    )
    if not with_engine:
        return services

    global_settings = settings.global_settings
    if client is None:
        global_settings.require_catalog_credentials()
        client = CatalogClient(
            api_key=global_settings.catalog_api_key,
            base_url=global_settings.catalog_api_url or None,
        )
        await client.__aenter__()
    services.client = client

    if provider is None:
        provider = create_provider(
            global_settings.translation_driver.value,
            global_settings.translation_api_key,
            model=global_settings.translation_model,
            base_url=global_settings.translation_base_url,
        )

    cache: ITranslationCache = stores["translation_cache"]
    term_repo: ITermRepository = stores["term_repo"]
    product_store: IProductUpserter = stores["product_store"]

    translator = Translator(provider, cache, default_source=global_settings.source_language)
    resolver = TermResolver(term_repo)
    catalog_api = CatalogAPIAdapter(client)

    engine = SyncEngine(
        catalog_api=catalog_api,
        state_store=state_store,
        product_upserter=product_store,
        transformer=ProductTransformer(translator, resolver),
        history_repo=history_repo,
        log_repo=log_repo,
        settings=settings,
        category_sync=SyncCategoriesUseCase(catalog_api, resolver, translator),
    )

    services.translator = translator
    services.engine = engine
    services.control.engine = engine
    services.runner = SyncRunner(engine, state_store, batch_delay=global_settings.batch_delay_seconds)

    logger.info(
        f"Sync services ready ({'postgres' if pool is not None else 'in-memory'} storage, "
        f"{provider.name} translation)"
    )
    return services
