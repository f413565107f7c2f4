"""FastAPI backend for asynchronous image generation jobs."""

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from tryon import __version__
from tryon.config import Settings, get_settings
from tryon.jobs import Dispatcher, StatusService, Worker, build_job_store, load_generator
from tryon.schemas import HealthResponse

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


def _start_embedded_worker(app: FastAPI, settings: Settings) -> None:
    worker = Worker(
        app.state.job_store,
        load_generator(settings.tryon_generator),
        idle_s=settings.tryon_worker_idle_s,
        stalled_after_s=settings.tryon_stalled_after_s,
    )
    thread = threading.Thread(target=worker.run_forever, name="embedded-worker", daemon=True)
    thread.start()
    app.state.worker = worker
    app.state.worker_thread = thread
    logger.info("Embedded worker started (generator=%s)", settings.tryon_generator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the job store for the lifetime of the process."""
    settings: Settings = app.state.settings
    store = build_job_store(settings)
    app.state.job_store = store
    app.state.dispatcher = Dispatcher(store)
    app.state.status_service = StatusService(store)
    app.state.worker = None
    if settings.tryon_embedded_worker:
        _start_embedded_worker(app, settings)
    try:
        yield
    finally:
        if app.state.worker is not None:
            app.state.worker.stop()
            app.state.worker_thread.join(timeout=5.0)
        store.close()
        logger.info("Job store closed")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="Try-on generation API",
        description="Submit image generation jobs and poll for their outcome.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # -----------------------------------------------------------------------
    # CORS
    # -----------------------------------------------------------------------
    cors_kw: dict = {
        "allow_origins": settings.cors_origin_list,
        "allow_credentials": True,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }
    if settings.cors_origin_regex:
        cors_kw["allow_origin_regex"] = settings.cors_origin_regex
    app.add_middleware(CORSMiddleware, **cors_kw)

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------
    @app.get("/health", response_model=HealthResponse)
    @app.get("/api/health", response_model=HealthResponse)
    async def health(request: Request):
        """Health check endpoint."""
        return HealthResponse(status="ok", store=request.app.state.job_store.backend)

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    from backend.routes import jobs

    app.include_router(jobs.router, prefix="/api", tags=["jobs"])
    return app


app = create_app()
