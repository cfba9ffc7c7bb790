"""CronGuard FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import settings
from .database import init_db, close_db
from .routers import monitors_router, ping_router, settings_router, status_router, public_router
from .services.scheduler import scheduler_service

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO), format=LOG_FORMAT)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"CronGuard {__version__} starting")
    await init_db()

    if settings.scheduler_enabled:
        scheduler_service.start()
    else:
        logger.info("In-process scheduler off; sweeps run only via POST /api/sweep")

    try:
        yield
    finally:
        scheduler_service.stop()
        await close_db()
        logger.info("CronGuard stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="CronGuard",
        description="Dead man's switch monitoring for cron jobs and scheduled tasks",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # public_router after status_router so /api/status/overview is matched first
    for router in (monitors_router, ping_router, settings_router, status_router, public_router):
        app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "scheduler": scheduler_service.running}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
