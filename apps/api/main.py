import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from workers.generator.compensator import FailureCompensator
from workers.generator.dispatcher import Dispatcher
from workers.generator.store import JobStore
from workers.generator.worker import Worker

from .config import Settings, load_settings
from .db.session import create_db_engine, make_session_factory
from .routers import process

LOGGER = logging.getLogger("aijobs.api")


def configure_logging(settings: Settings) -> None:
    log_format = "%(message)s" if settings.log_json else "%(asctime)s %(levelname)s %(name)s %(message)s"
    logging.basicConfig(level=logging.INFO, format=log_format)


def build_worker(settings: Settings) -> Worker:
    """Wire the production store, Gemini client and GCS bucket together."""
    from .services.generation import GenerationHandlers
    from .services.llm import create_client
    from .services.storage import BlobStore

    store = JobStore(make_session_factory(create_db_engine(settings)))
    handlers = GenerationHandlers(create_client(settings), BlobStore.from_settings(settings), settings)
    return Worker(
        store,
        Dispatcher(handlers.handlers()),
        FailureCompensator(store, settings.refund_policy),
        timeout_seconds=settings.generation_timeout_seconds,
    )


def create_app(settings: Optional[Settings] = None, worker: Optional[Worker] = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="AI Jobs Worker", version="0.1.0")
    app.state.settings = settings
    app.state.worker = worker or build_worker(settings)

    @app.get("/healthz")
    def healthz():
        return JSONResponse({"status": "ok", "service": settings.service_name})

    app.include_router(process.router)
    LOGGER.info(
        "worker service ready",
        extra={"service": settings.service_name, "job_types": app.state.worker.dispatcher.job_types},
    )
    return app


def main() -> None:
    import uvicorn

    settings = load_settings()
    configure_logging(settings)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
