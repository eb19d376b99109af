import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fintrack.config import Settings
from fintrack.core.exceptions import register_exception_handlers
from fintrack.database import build_engine, build_session_factory, create_all

@asynccontextmanager
async def lifespan(application: FastAPI):
    settings = application.state.settings

    if settings.is_sqlite:
        db_path = settings.database_url.split("///")[-1]
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = build_engine(settings.database_url)

    # Auto-create tables for SQLite in development
    if settings.is_sqlite:
        await create_all(engine)

    application.state.engine = engine
    application.state.session_factory = build_session_factory(engine)

    from fintrack.core.scheduler import setup_scheduler, shutdown_scheduler

    if settings.scheduler_enabled:
        setup_scheduler(application.state.session_factory, settings)

    yield

    shutdown_scheduler()
    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("fintrack").setLevel(settings.log_level.upper())

    fastapi_app = FastAPI(
        title="FinTrack",
        description="Personal finance tracker with recurring transactions",
        version="0.1.0",
        lifespan=lifespan,
    )
    fastapi_app.state.settings = settings

    # CORS
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    from fintrack.auth.router import router as auth_router
    from fintrack.categories.router import router as categories_router
    from fintrack.recurring.router import router as recurring_router
    from fintrack.transactions.router import router as transactions_router

    fastapi_app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
    fastapi_app.include_router(categories_router, prefix="/api/categories", tags=["categories"])
    fastapi_app.include_router(
        transactions_router, prefix="/api/transactions", tags=["transactions"]
    )
    fastapi_app.include_router(recurring_router, prefix="/api/recurring", tags=["recurring"])

    register_exception_handlers(fastapi_app)

    @fastapi_app.get("/api/system/health")
    async def health():
        return {"data": {"status": "healthy"}}

    return fastapi_app


app = create_app()
