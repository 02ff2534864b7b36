"""
Application factory.

    uvicorn marketplace.main:app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace.api.v1.conversations import router as conversations_router
from marketplace.api.v1.error_handlers import register_exception_handlers
from marketplace.config.settings import Settings, get_settings
from marketplace.core.logging import RequestIDMiddleware, setup_logging, stop_queue_logging
from marketplace.database.session import build_session_factory, create_tables, engine_from_settings
from marketplace.services.messaging_service import MessagingService

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    With `session_factory` the app uses it as-is and the lifespan does not touch the
    database (tests hand in a factory bound to their own engine); otherwise the
    lifespan creates the engine from settings and disposes of it on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings)
        engine = None
        if session_factory is None:
            engine = engine_from_settings(settings)
            if settings.DATABASE_CREATE_TABLES:
                await create_tables(engine)
            app.state.session_factory = build_session_factory(engine)
            app.state.messaging_service = MessagingService(app.state.session_factory, settings=settings)
        logger.info("app.startup", extra={"env": settings.ENV})
        try:
            yield
        finally:
            if engine is not None:
                await engine.dispose()
            logger.info("app.shutdown")
            stop_queue_logging()

    app = FastAPI(title="Marketplace Messaging", version="1.0.0", lifespan=lifespan)

    if session_factory is not None:
        app.state.session_factory = session_factory
        app.state.messaging_service = MessagingService(session_factory, settings=settings)

    app.add_middleware(RequestIDMiddleware)
    register_exception_handlers(app)
    app.include_router(conversations_router, prefix=API_PREFIX)
    return app


app = create_app()
