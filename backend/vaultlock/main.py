"""
FastAPI app for the app lock service.

The app shell (web or native) talks to this local service to decide whether
to show its content, the sign-in screen or the lock gate.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.auth import router as auth_router
from .api.lock import router as lock_router
from .api.settings import router as settings_router
from .config import LockConfig
from .db import close_db, configure_db
from .lock.service import LockService
from .logging import get_logger

logger = get_logger("main")


def create_app(service: Optional[LockService] = None, config: Optional[LockConfig] = None) -> FastAPI:
    """Build the app. Pass ``service`` to run against prebuilt collaborators."""
    config = config or (service.config if service else LockConfig())
    owns_db = service is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        lock_service = service
        if owns_db:
            # Connects lazily on the first profile query
            configure_db(config.database_url)
            lock_service = LockService(config)
        app.state.lock_service = lock_service
        await lock_service.start()
        logger.info(f"VaultLock {__version__} ready")
        yield
        await lock_service.stop()
        if owns_db:
            await close_db()
        logger.info("VaultLock shut down")

    app = FastAPI(
        title="VaultLock",
        description="App lock and session gate for the vault client",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS for the app shell origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_origin_regex=r"http://(localhost|127\.0\.0\.1)(:[0-9]+)?",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(lock_router)
    app.include_router(settings_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now().isoformat()}

    return app
