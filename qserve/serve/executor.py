"""Runs one request context through the retrieval engine."""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from qserve.core.errors import RetrievalExecutionError
from qserve.core.properties import PropertyStore
from qserve.core.storage.index import Index
from qserve.engine.results import ResultSet
from qserve.utils import log_event

from .context import RequestContext

logger = logging.getLogger(__name__)


class QueryExecutor:
    """Executes search runs against a shared index and property store.

    Runs that override properties are serialised against every other run by
    the store's bracket; runs without overrides proceed concurrently.
    """

    def __init__(self, index: Index, properties: PropertyStore):
        self.index = index
        self.properties = properties
        self._in_flight = 0
        self._idle = threading.Condition()

    @property
    def in_flight(self) -> int:
        with self._idle:
            return self._in_flight

    @contextmanager
    def _track(self) -> Iterator[None]:
        with self._idle:
            self._in_flight += 1
        try:
            yield
        finally:
            with self._idle:
                self._in_flight -= 1
                if self._in_flight == 0:
                    self._idle.notify_all()

    def execute(self, context: RequestContext) -> ResultSet:
        """Run the four retrieval stages for ``context``.

        Property overrides are applied for the duration of the run and
        restored afterwards, whether or not the run succeeds.

        Args:
            context: Validated request context

        Returns:
            Result set cropped to the requested window, decorated with docnos

        Raises:
            RetrievalExecutionError: If any stage fails
        """
        start = time.time()
        with self._track():
            with self.properties.with_overrides(context.properties):
                try:
                    result_set = self._run(context)
                except Exception as e:
                    raise RetrievalExecutionError(e) from e

        elapsed_ms = (time.time() - start) * 1000
        log_event(
            "search",
            {
                "query": context.query,
                "matching_model": context.matching_model_name,
                "weighting_model": context.weighting_model_name,
                "start": context.controls.start,
                "end": context.controls.end,
                "overrides": sorted(context.properties),
                "exact_result_size": result_set.exact_result_size,
                "result_size": result_set.result_size,
                "elapsed_ms": round(elapsed_ms, 2),
            },
        )
        return result_set

    def _run(self, context: RequestContext) -> ResultSet:
        manager = self.index.manager(self.properties)
        srq = manager.new_search_request(context.query)
        srq.add_matching_model(context.matching_model_name, context.weighting_model_name)
        srq.number_of_documents_after_filtering = context.controls.window_size
        for key, value in context.controls.as_control_map().items():
            srq.set_control(key, value)
        srq.set_control("decorate", "on")

        manager.run_preprocessing(srq)
        manager.run_matching(srq)
        manager.run_postprocessing(srq)
        manager.run_postfilters(srq)
        logger.debug(f"[{srq.query_id}] stage timings: {srq.timings_ms}")
        assert srq.result_set is not None
        return srq.result_set

    def drain(self, timeout: float | None = None) -> bool:
        """Wait until no run is in flight.

        Returns:
            True if idle, False if ``timeout`` elapsed first
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout)
