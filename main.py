import asyncio
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mailserver.api.v1.api import api_router
from mailserver.database import init_db
from mailserver.dependencies import get_provider, get_sync_config
from mailserver.services.sync_scheduler import run_sync_pass, sync_periodically

# Load environment variables from .env
from dotenv import load_dotenv
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Mail Server",
    description="Send email over SMTP, bulk import recipients, and sync the inbox",
    version="1.0.0"
)

origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    """Create database tables and start the scheduled sync, if enabled."""
    init_db()
    logger.info("✅ Database tables created/verified")

    config = get_sync_config()
    if config.interval_seconds > 0:
        app.state.sync_task = asyncio.create_task(
            sync_periodically(config, lambda: run_sync_pass(config, get_provider))
        )


@app.on_event("shutdown")
async def on_shutdown():
    task = getattr(app.state, "sync_task", None)
    if task is not None:
        task.cancel()


app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
