import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from storefront import __version__
from storefront.api import health
from storefront.core.config import Settings, settings
from storefront.core.request_context import CorrelationIdMiddleware
from storefront.core.security import resolve_session_secret
from storefront.core.session_middleware import DatabaseSessionMiddleware
from storefront.core.templates import PACKAGE_DIR
from storefront.core.utils.logging_config import init_application_logging
from storefront.core.utils.session_cleanup import SessionCleanupTask
from storefront.core.utils.session_store import SessionStore, get_session_store
from storefront.web import home

logger = logging.getLogger("storefront.main")


def create_app(config: Optional[Settings] = None, store: Optional[SessionStore] = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings to use instead of the environment-derived ones
        store: Session store to use instead of the one bound to DATABASE_URL
    """
    config = config or settings
    store = store or get_session_store()
    secret_key = resolve_session_secret(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cleanup = SessionCleanupTask(store, interval=config.SESSION_SWEEP_INTERVAL)
        app.state.session_cleanup = cleanup
        cleanup.start()
        logger.info("Storefront started", extra={"environment": config.environment_name})
        try:
            yield
        finally:
            await cleanup.stop()
            logger.info("Storefront shutdown complete")

    app = FastAPI(
        title=config.APP_NAME,
        description="Informational pages with database-backed sessions",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.session_store = store

    app.add_middleware(
        DatabaseSessionMiddleware,
        store=store,
        secret_key=secret_key,
        session_cookie=config.SESSION_COOKIE_NAME,
        max_age=config.SESSION_MAX_AGE,
        https_only=not config.DEV_MODE,
        same_site="lax",
    )
    # Outermost, so session log lines carry the request's correlation id
    app.add_middleware(CorrelationIdMiddleware)

    # Mount static files
    app.mount("/static", StaticFiles(directory=str(PACKAGE_DIR / "static")), name="static")

    app.include_router(health.router, tags=["Health"])
    app.include_router(home.router, tags=["Web"])

    # Live reload socket for development only
    if config.DEV_MODE:
        try:
            from storefront.web import livereload

            app.include_router(livereload.router, tags=["Development"])
            logger.info("Live reload socket available at /ws/livereload")
        except Exception as e:
            logger.error(f"Failed to start live reload socket: {e}")

    return app


# Initialize structured logging
init_application_logging()

app = create_app()
