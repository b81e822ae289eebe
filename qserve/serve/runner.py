"""HTTP search service over a loaded index.

Exposes ``POST /search`` and ``GET /stats`` (plus the legacy ``/_search``
and ``/_stats`` paths). Every other path answers 404 with an
``EndpointNotFound`` payload.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError as BodyValidationError
from fastapi.responses import JSONResponse

from qserve import __version__
from qserve.core.config import QServeConfig, load_config
from qserve.core.errors import EndpointNotFoundError, QServeError, RequestMalformedError
from qserve.core.properties import PropertyStore
from qserve.core.storage.index import Index, load_index

from .context import RequestContext, describe_validation_errors
from .executor import QueryExecutor
from .schema import SearchBody, SearchResponse, StatsResponse
from .translate import build_search_response

logger = logging.getLogger(__name__)

_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class SearchServer:
    """Search service bound to one index for the process lifetime."""

    def __init__(
        self,
        index: Index,
        properties: PropertyStore | None = None,
        config: QServeConfig | None = None,
    ):
        """Initialize the search server.

        Args:
            index: Loaded index; the server closes it on shutdown
            properties: Shared property store (seeded from config if None)
            config: QServeConfig instance (loads if None)
        """
        if config is None:
            config = load_config()
        self._config = config
        self.index = index
        self.properties = properties if properties is not None else PropertyStore(config.properties)
        self.executor = QueryExecutor(index, self.properties)
        self.session_id = str(uuid.uuid4())[:8]

    def search(self, body: SearchBody | None) -> SearchResponse:
        context = RequestContext.from_body(body, self._config.search)
        result_set = self.executor.execute(context)
        return build_search_response(result_set, self.index)

    def get_stats(self) -> StatsResponse:
        return StatsResponse.from_statistics(self.index.collection_statistics())

    def shutdown(self, timeout: float | None = None) -> None:
        """Wait for in-flight runs, then close the index."""
        if not self.executor.drain(timeout):
            logger.warning(
                f"{self.executor.in_flight} search run(s) still in flight after "
                f"{timeout}s; closing index anyway"
            )
        self.index.close()


def create_app(
    index: Index | None = None,
    index_path: str | Path | None = None,
    properties: PropertyStore | None = None,
    config: QServeConfig | None = None,
) -> FastAPI:
    """Create FastAPI application for search serving.

    Args:
        index: Already loaded index (loaded from index_path or config if None)
        index_path: Path to the index file, used when index is None
        properties: Shared property store (seeded from config if None)
        config: QServeConfig instance (loads if None)

    Returns:
        FastAPI app instance
    """
    server_instance: list[SearchServer] = []

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config or load_config()
        idx = index if index is not None else load_index(index_path or cfg.index.path)
        instance = SearchServer(idx, properties=properties, config=cfg)
        server_instance.append(instance)
        stats = idx.collection_statistics()
        logger.info(
            f"Search server started: session={instance.session_id}, index={idx.path}, "
            f"documents={stats.number_of_documents}"
        )
        yield
        server_instance.clear()
        logger.info("Search server shutting down")
        await asyncio.to_thread(instance.shutdown, cfg.server.drain_timeout)

    def get_server() -> SearchServer:
        if not server_instance:
            raise RuntimeError("Server not initialized")
        return server_instance[0]

    app = FastAPI(
        title="qserve",
        description="Search service over a pre-built inverted index",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.exception_handler(QServeError)
    async def handle_qserve_error(request: Request, exc: QServeError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}",
                exc_info=exc,
            )
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.kind}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(BodyValidationError)
    async def handle_malformed_body(request: Request, exc: BodyValidationError) -> JSONResponse:
        error = RequestMalformedError(describe_validation_errors(list(exc.errors())))
        logger.info(f"{request.method} {request.url.path} rejected: {error.message}")
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @app.post("/search")
    @app.post("/_search", include_in_schema=False)
    def search(body: SearchBody | None = None) -> SearchResponse:
        """Run a ranked search."""
        return get_server().search(body)

    @app.get("/stats")
    @app.get("/_stats", include_in_schema=False)
    def stats() -> StatsResponse:
        """Get collection statistics."""
        return get_server().get_stats()

    # Registered last so it only sees paths no other route matched
    @app.api_route("/{path:path}", methods=_ALL_METHODS, include_in_schema=False)
    def endpoint_not_found(path: str) -> None:
        raise EndpointNotFoundError()

    return app


def run_server(
    host: str | None = None,
    port: int | None = None,
    index_path: str | Path | None = None,
    config: QServeConfig | None = None,
) -> None:
    """Load the index and run the search server until interrupted.

    The index is loaded before binding, so a bad index path fails the
    process instead of starting a server that cannot answer.

    Args:
        host: Host to bind to (config server.host if None)
        port: Port to bind to (config server.port if None)
        index_path: Path to the index file (config index.path if None)
        config: QServeConfig instance (loads if None)

    Raises:
        IndexLoadError: If the index cannot be opened
    """
    import uvicorn

    cfg = config or load_config()
    host = host or cfg.server.host
    port = port or cfg.server.port
    index = load_index(index_path or cfg.index.path)

    logger.info(f"Starting qserve on {host}:{port} (index: {index.path})")
    app = create_app(index=index, config=cfg)
    uvicorn.run(app, host=host, port=port, log_level=cfg.logging.level.lower())
