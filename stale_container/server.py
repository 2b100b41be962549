"""REST API performing checks asynchronously.

A check for an image whose tags are cached is answered right away. Otherwise
a job is queued and the client polls the job until it is redirected to the
evaluation::

    GET /api/v1/check?image=influxdb:1.5.0&constraint=>=1.5.0 <1.6.0
        -> 202 Location: /api/v1/jobs/<id>
    GET /api/v1/jobs/<id>
        -> 200 {"status": "pending"}
        -> 303 Location: /api/v1/evaluations/<id>
    GET /api/v1/evaluations/<id>
        -> 200 {"image": ..., "stale": true, ...}
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from . import __version__
from .cache import Cache, GarbageCollector, MemoryStore
from .config import CHECK_PATH, DEFAULT_PORT, EVALUATION_PATH, JOB_PATH, Config
from .evaluation import build_evaluation
from .exceptions import JobNotFound, StaleContainerError
from .image import parse_image, tag_version
from .models import Evaluation, JobStatus
from .registry import RegistryClient
from .version import RangeConstraint
from .worker import BackgroundWorker

logger = logging.getLogger(__name__)


def serve_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    config: Config,
    cache: Optional[Cache] = None,
    worker: Optional[BackgroundWorker] = None,
    registry=None,
    start_gc: bool = True,
) -> FastAPI:
    """Build the API application.

    Args:
        config:
            Service configuration.
        cache:
            Cache for tags, job markers and evaluations.
            Defaults to an in-memory cache honouring ``config.cache_ttl_hours``.
        worker:
            Background worker processing queued jobs.
            Defaults to a thread pool worker using ``registry``.
        registry:
            Registry client used by the default worker.
            Defaults to a :class:`RegistryClient` built from ``config``.
        start_gc:
            A value indicating whether the periodic cache sweep runs
            while the application is up.
    """
    if cache is None:
        cache = Cache(MemoryStore(), config.cache_ttl_seconds)
    owned_registry = None
    if worker is None:
        if registry is None:
            registry = owned_registry = RegistryClient(config)
        worker = BackgroundWorker(cache, registry, max_workers=config.job_workers)
    collector = GarbageCollector(cache, config.gc_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_gc:
            collector.start()
        try:
            yield
        finally:
            collector.stop()
            worker.close()
            if owned_registry is not None:
                owned_registry.close()

    app = FastAPI(title="stale-container", version=__version__, lifespan=lifespan)
    app.state.cache = cache
    app.state.worker = worker
    app.state.collector = collector

    @app.exception_handler(StaleContainerError)
    async def handle_known_error(request: Request, exc: StaleContainerError):
        if exc.http_status >= 500:
            logger.error(f"Encountered error: {exc}")
        return serve_error(exc.http_status, str(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        missing = [".".join(str(p) for p in e["loc"][1:]) for e in exc.errors()]
        return serve_error(400, f"Invalid or missing query parameters: {', '.join(missing)}")

    @app.get(CHECK_PATH)
    def check(
        image: str = Query(...),
        constraint: str = Query(...),
        tagPrefix: str = Query(""),
    ):
        logger.debug(f"GET check image={image} constraint={constraint!r} tagPrefix={tagPrefix!r}")

        img = parse_image(image, tagPrefix)
        tag_version(img)
        compiled = RangeConstraint.parse(constraint)

        tags = cache.get_image_tags(img)
        if tags is None:
            job_id = worker.add_job(image, constraint, tagPrefix)
            return Response(status_code=202, headers={"Location": JOB_PATH.format(job_id=job_id)})

        return build_evaluation(img, compiled, tags).to_dict()

    @app.get(JOB_PATH)
    def get_job(job_id: str):
        logger.debug(f"GET job {job_id}")
        if cache.has_evaluation(job_id):
            return Response(
                status_code=303,
                headers={"Location": EVALUATION_PATH.format(job_id=job_id)},
            )
        # the worker may not have picked the job up yet
        if cache.is_job_queued(job_id):
            return {"status": JobStatus.PENDING.value}
        raise JobNotFound("Job not found")

    @app.get(EVALUATION_PATH)
    def get_evaluation(job_id: str):
        logger.debug(f"GET evaluation {job_id}")
        raw = cache.get_raw_evaluation(job_id)
        evaluation = Evaluation.from_json(raw)
        status_code = evaluation.error.status if evaluation.failed else 200
        return Response(content=raw, status_code=status_code, media_type="application/json")

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app


def run_server(
    config: Config,
    host: str = "0.0.0.0",
    port: int = DEFAULT_PORT,
    log_level: str = "info",
) -> None:
    """Serve the API with uvicorn until interrupted."""
    app = create_app(config)
    logger.info(f"Starting server on {host}:{port}")
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=log_level))
    server.run()
