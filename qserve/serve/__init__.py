"""HTTP serving: request contexts, execution, translation and the app."""

from .context import RequestContext, RunControls
from .executor import QueryExecutor
from .runner import SearchServer, create_app, run_server
from .schema import SearchBody, SearchHit, SearchResponse, StatsResponse

__all__ = [
    "RequestContext",
    "RunControls",
    "QueryExecutor",
    "SearchServer",
    "create_app",
    "run_server",
    "SearchBody",
    "SearchHit",
    "SearchResponse",
    "StatsResponse",
]
