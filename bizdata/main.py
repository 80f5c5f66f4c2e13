import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
import alembic.config
import alembic.command
from bizdata.core.config import settings
from bizdata.core.database import engine, AsyncSessionLocal
from bizdata.core.services import Services
from bizdata.api.router import api_router

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def run_migrations():
    """Sync function to run migrations"""
    alembic_cfg = alembic.config.Config("alembic.ini")
    alembic.command.upgrade(alembic_cfg, "head")


# Build the protocol services once, close the engine once everything is done
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Apply any pending migrations automatically when the app starts
    if settings.RUN_MIGRATIONS:
        try:
            await asyncio.to_thread(run_migrations)
            logger.info("Migrations applied successfully (or already up-to-date)")
        except Exception as e:
            # The snapshot still answers while the database is unavailable
            logger.error(f"Migration error during startup: {e}")

    app.state.services = Services(settings, AsyncSessionLocal)

    yield
    await engine.dispose()


app = FastAPI(title="Business Data Protocol API", lifespan=lifespan)

# Include the master router containing all our endpoints
app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": "Welcome to the Business Data Protocol API"}
