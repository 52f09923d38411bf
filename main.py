"""
Class lifecycle scheduler entry point.

Architecture:
- One Python process, one asyncio event loop
- FastAPI serves the operational endpoints (health, manual job runs)
- A JobOrchestrator (APScheduler) runs the auto-cancel and warning jobs
  in the same loop

We use FastAPI's lifespan to manage startup/shutdown so the scheduler is
created inside the running loop and torn down with the server.

Run with: python main.py [--port PORT] [--interval]
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

project_root = Path(__file__).parent

from dotenv import load_dotenv

# Load .env.local first (if exists), then .env as fallback
# .env.local is gitignored and used for local dev overrides
load_dotenv(project_root / ".env.local")
load_dotenv()

import sentry_sdk
from fastapi import FastAPI, HTTPException, Request

from class_lifecycle.config import (
    check_required_env_vars,
    get_api_port,
    get_log_level,
    is_production,
)
from class_lifecycle.database import close_engine
from class_lifecycle.jobs import JobOrchestrator, register_lifecycle_jobs

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

if os.environ.get("SENTRY_DSN"):
    sentry_sdk.init(
        dsn=os.environ["SENTRY_DSN"],
        environment="production" if is_production() else "development",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager.

    Creates the job orchestrator and starts the lifecycle jobs; stops them
    and closes database connections on shutdown.
    """
    ok, warnings = check_required_env_vars()
    for warning in warnings:
        logger.warning(f"Config: {warning}")
    if not ok:
        raise RuntimeError("Missing required environment variables")

    orchestrator = JobOrchestrator()
    register_lifecycle_jobs(orchestrator)
    app.state.orchestrator = orchestrator

    yield  # FastAPI runs here, jobs fire alongside it

    logger.info("Shutting down job orchestrator...")
    orchestrator.shutdown()
    await close_engine()


app = FastAPI(
    title="Class Lifecycle Scheduler",
    lifespan=lifespan,
)


@app.get("/health")
async def health(request: Request):
    """Health check with the currently registered jobs."""
    orchestrator: JobOrchestrator = request.app.state.orchestrator
    return {
        "status": "healthy",
        "jobs": sorted(orchestrator.status()),
    }


@app.post("/api/jobs/{job_name}/run")
async def run_job(job_name: str, request: Request):
    """Run a registered job once, right now."""
    orchestrator: JobOrchestrator = request.app.state.orchestrator
    if job_name not in orchestrator.status():
        raise HTTPException(status_code=404, detail=f"Unknown job '{job_name}'")

    completed = await orchestrator.trigger_now(job_name)
    return {"job": job_name, "completed": completed}


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Class Lifecycle Scheduler")
    parser.add_argument(
        "--port",
        type=int,
        default=get_api_port(),
        help="Port to run the server on (default: API_PORT or 8000)",
    )
    parser.add_argument(
        "--interval",
        action="store_true",
        help="Run every job on its fixed interval instead of daily times",
    )
    args = parser.parse_args()

    # Set env var so it persists across uvicorn reloads
    if args.interval:
        os.environ["SCHEDULER_MODE"] = "interval"

    # Pass app object directly (not string) to avoid module reimport issues
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=args.port,
    )
