"""JobGraph daemon — FastAPI app serving the dependency engine."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from jobgraph import __version__
from jobgraph.api.router import api_router
from jobgraph.core.config import get_settings
from jobgraph.core.database import create_tables, init_engine
from jobgraph.core.errors import JobGraphError
from jobgraph.core.log import configure_logging
from jobgraph.graph.snapshot import get_graph_state, reset_graph_state

logger = logging.getLogger("jobgraph")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    settings = get_settings()

    init_engine(settings.database_url)
    await create_tables()
    logger.info(f"Database initialized: {settings.database_url}")

    # Fresh snapshot cache; it is built lazily on the first query
    reset_graph_state()

    yield

    logger.info("JobGraph daemon stopped")


async def handle_engine_error(request: Request, exc: JobGraphError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "detail": str(exc), "kind": exc.kind},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="JobGraph",
        description="Dependency graph and resolution engine for scheduled jobs",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(api_router)
    app.add_exception_handler(JobGraphError, handle_engine_error)

    @app.get("/health")
    async def health():
        cache = get_graph_state().cache
        return {
            "status": "ok",
            "version": __version__,
            "snapshot_stale": cache.is_stale,
        }

    return app


def main():
    """Entry point for `jobgraphd` command."""
    import sys

    settings = get_settings()
    configure_logging(settings.log_level)

    host = settings.host
    port = settings.port

    # Parse CLI args (simple, no dep on typer for daemon)
    args = sys.argv[1:]
    for i, arg in enumerate(args):
        if arg == "--port" and i + 1 < len(args):
            port = int(args[i + 1])
        if arg == "--host" and i + 1 < len(args):
            host = args[i + 1]

    logger.info(f"Starting JobGraph daemon v{__version__} on {host}:{port}")

    app = create_app()
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
