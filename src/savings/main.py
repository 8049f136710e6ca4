"""Entry point for the savings box service.

Wires all components together and serves the FastAPI app with uvicorn.
Components are built inside the lifespan so that the HTTP client and the
database connection are opened and closed on the server's event loop.

Component wiring order (in _build_components):
1. AppSettings (configuration)
2. Logging setup
3. httpx.AsyncClient (shared outbound HTTP)
4. BcbRateSource (benchmark rate fetch)
5. RateCache (process-wide, single-flight)
6. YieldEngine (business-day compound accrual)
7. TaxEngine (IOF/IR projection)
8. BoxRepository (in-memory or SQLite)
9. BoxService (orchestration)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI

from savings.api.app import create_app
from savings.boxes.service import BoxService
from savings.config import AppSettings
from savings.logging import get_logger, setup_logging
from savings.market_data.rate_cache import RateCache
from savings.market_data.rate_source import BcbRateSource
from savings.storage.database import SavingsDatabase
from savings.storage.repository import BoxRepository, InMemoryBoxRepository
from savings.storage.sqlite_repository import SqliteBoxRepository
from savings.tax.engine import TaxEngine
from savings.yields.engine import YieldEngine


async def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all service components from settings.

    Opens the database when the SQLite backend is selected. The caller
    owns the returned http_client and database and must close them.
    """
    http_client = httpx.AsyncClient(headers={"User-Agent": "FamilySavings/1.0"})

    rate_source = BcbRateSource(settings.cdi, http_client)
    rate_cache = RateCache.from_settings(rate_source, settings.cdi)

    database: SavingsDatabase | None = None
    repository: BoxRepository
    if settings.storage.backend == "sqlite":
        database = SavingsDatabase(settings.storage.db_path)
        await database.connect()
        repository = SqliteBoxRepository(database)
    else:
        repository = InMemoryBoxRepository()

    yield_engine = YieldEngine(rate_cache)
    tax_engine = TaxEngine()
    box_service = BoxService(repository, yield_engine, tax_engine, rate_cache)

    return {
        "http_client": http_client,
        "rate_source": rate_source,
        "rate_cache": rate_cache,
        "database": database,
        "repository": repository,
        "yield_engine": yield_engine,
        "tax_engine": tax_engine,
        "box_service": box_service,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application."""
    logger = get_logger("savings.main")
    settings: AppSettings = app.state.settings

    components = await _build_components(settings)
    app.state.box_service = components["box_service"]

    logger.info(
        "lifespan_started",
        storage=settings.storage.backend,
        cdi_series=settings.cdi.series_code,
        cache_ttl_minutes=str(settings.cdi.cache_ttl_minutes),
        fallback_configured=settings.cdi.annual_fallback_rate is not None,
    )

    try:
        yield
    finally:
        await components["http_client"].aclose()
        if components["database"] is not None:
            await components["database"].close()
        logger.info("savings_service_stopped")


async def run() -> None:
    """Run the savings box API server."""
    settings = AppSettings()
    setup_logging(settings.log_level)
    logger = get_logger("savings.main")

    app = create_app(lifespan=lifespan)
    app.state.settings = settings

    logger.info("starting_api", host=settings.api.host, port=settings.api.port)

    config = uvicorn.Config(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
