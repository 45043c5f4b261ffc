"""FastAPI application entry point.

Run the API with ``uvicorn main:app`` from ``backend/``. With ``REDIS_URL``
set, jobs run in a separate ``rq worker --with-scheduler`` process;
otherwise they run in this process and a background thread fires delayed
retries.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api import provider_accounts, sync, webhooks
from config import settings
from logging_config import setup_logging
from tasks.runtime import start_delayed_job_runner

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run held in-process jobs for the lifetime of the app."""
    runner = start_delayed_job_runner()
    try:
        yield
    finally:
        if runner is not None:
            runner.stop()


app = FastAPI(
    title="Ledger Sync",
    description="Provider sync and reconciliation for a personal finance ledger",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(sync.router)
app.include_router(provider_accounts.router)
app.include_router(webhooks.router)


@app.get("/health")
def health_check():
    """Liveness check. ``queue`` says whether jobs go to RQ or run in-process."""
    return {"status": "ok", "queue": "rq" if settings.REDIS_URL else "inline"}
