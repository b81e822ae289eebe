"""Retrieval manager: runs a search request through the pipeline stages.

A run goes through four stages, always in this order:

1. pre-processing: parse the query and apply the term pipeline
2. matching: score candidate documents with the chosen models
3. post-processing: rank candidates and apply the candidate set cutoff
4. post-filtering: apply the result window and decorate results

Stages read engine settings from the shared ``PropertyStore`` at the moment
they run, so properties overridden around a run take effect for it.
"""

import logging
import math
import time
import uuid
from enum import IntEnum
from typing import TYPE_CHECKING

from qserve.core.errors import EngineError, StageOrderError, UnknownModelError
from qserve.core.properties import PropertyStore

from .matching import create_matching_model
from .query import QueryTerm, apply_pipeline, parse_query
from .results import ResultSet
from .terms import DEFAULT_TERM_PIPELINE, pipeline_from_property
from .weighting import create_weighting_model

if TYPE_CHECKING:
    from qserve.core.storage.index import Index

logger = logging.getLogger(__name__)

DEFAULT_RETRIEVED_SET_SIZE = 1000


class Stage(IntEnum):
    CREATED = 0
    PREPROCESSED = 1
    MATCHED = 2
    POSTPROCESSED = 3
    POSTFILTERED = 4


class SearchRequest:
    """State of one retrieval run."""

    def __init__(self, query: str, query_id: str | None = None):
        self.query_id = query_id or str(uuid.uuid4())[:8]
        self.original_query = query
        self.matching_model_name: str | None = None
        self.weighting_model_name: str | None = None
        self.number_of_documents_after_filtering: int | None = None
        self.query_terms: list[QueryTerm] = []
        self.result_set: ResultSet | None = None
        self.stage = Stage.CREATED
        self.timings_ms: dict[str, float] = {}
        self._controls: dict[str, str] = {}

    def add_matching_model(self, matching_model_name: str, weighting_model_name: str) -> None:
        self.matching_model_name = matching_model_name
        self.weighting_model_name = weighting_model_name

    def set_control(self, key: str, value: object) -> None:
        self._controls[key] = str(value)

    def get_control(self, key: str, default: str | None = None) -> str | None:
        return self._controls.get(key, default)

    @property
    def controls(self) -> dict[str, str]:
        return dict(self._controls)

    @property
    def decorate(self) -> bool:
        return (self.get_control("decorate") or "").lower() == "on"

    def int_control(self, key: str) -> int | None:
        raw = self.get_control(key)
        if raw is None:
            return None
        try:
            value = int(raw)
        except ValueError:
            raise EngineError(f"Control {key} must be an integer, got {raw!r}")
        if value < 0:
            raise EngineError(f"Control {key} must be >= 0, got {value}")
        return value

    def float_control(self, key: str) -> float | None:
        raw = self.get_control(key)
        if raw is None:
            return None
        try:
            value = float(raw)
        except ValueError:
            raise EngineError(f"Control {key} must be a number, got {raw!r}")
        if not math.isfinite(value):
            raise EngineError(f"Control {key} must be a finite number, got {raw!r}")
        return value


class Manager:
    """Drives search requests against one index."""

    def __init__(self, index: "Index", properties: PropertyStore):
        self.index = index
        self.properties = properties

    def new_search_request(self, query: str, query_id: str | None = None) -> SearchRequest:
        return SearchRequest(query, query_id=query_id)

    def _advance(self, srq: SearchRequest, reached: Stage, started: float) -> None:
        srq.stage = reached
        srq.timings_ms[reached.name.lower()] = round((time.perf_counter() - started) * 1000, 3)

    def _check_stage(self, srq: SearchRequest, expected: Stage, stage_name: str) -> float:
        if srq.stage != expected:
            raise StageOrderError(
                f"Cannot run {stage_name} on request {srq.query_id}: "
                f"expected stage {expected.name}, found {srq.stage.name}"
            )
        return time.perf_counter()

    def run_preprocessing(self, srq: SearchRequest) -> None:
        started = self._check_stage(srq, Stage.CREATED, "pre-processing")
        default_pipeline = self.index.properties().get("termpipelines", DEFAULT_TERM_PIPELINE)
        pipeline = pipeline_from_property(
            self.properties.get("termpipelines", default_pipeline) or ""
        )
        srq.query_terms = apply_pipeline(parse_query(srq.original_query), pipeline)
        logger.debug(f"[{srq.query_id}] query terms: {[t.term for t in srq.query_terms]}")
        self._advance(srq, Stage.PREPROCESSED, started)

    def run_matching(self, srq: SearchRequest) -> None:
        started = self._check_stage(srq, Stage.PREPROCESSED, "matching")
        if not srq.matching_model_name or not srq.weighting_model_name:
            raise UnknownModelError("No matching model was added to the search request")

        weighting = create_weighting_model(
            srq.weighting_model_name,
            self.index.collection_statistics(),
            self.properties,
            parameter=srq.float_control("c"),
        )
        matching = create_matching_model(srq.matching_model_name, self.index, weighting)
        srq.result_set = matching.match(srq.query_terms)
        self._advance(srq, Stage.MATCHED, started)

    def run_postprocessing(self, srq: SearchRequest) -> None:
        started = self._check_stage(srq, Stage.MATCHED, "post-processing")
        result_set = srq.result_set
        assert result_set is not None
        result_set.sort()
        retrieved_set_size = self.properties.get_int(
            "matching.retrieved_set_size", DEFAULT_RETRIEVED_SET_SIZE
        )
        if retrieved_set_size > 0:
            result_set.crop(0, retrieved_set_size)
        self._advance(srq, Stage.POSTPROCESSED, started)

    def run_postfilters(self, srq: SearchRequest) -> None:
        started = self._check_stage(srq, Stage.POSTPROCESSED, "post-filtering")
        result_set = srq.result_set
        assert result_set is not None

        start = srq.int_control("start") or 0
        limit = srq.number_of_documents_after_filtering
        end = srq.int_control("end")
        if end is not None:
            window = max(end - start, 0)
            limit = window if limit is None else min(limit, window)
        result_set.crop(start, None if limit is None else start + limit)

        if srq.decorate:
            result_set.add_metadata("docno", self.index.resolve_document_names(result_set.docids))
        self._advance(srq, Stage.POSTFILTERED, started)

    def run_search_request(self, srq: SearchRequest) -> ResultSet:
        """Run every stage in order and return the result set."""
        self.run_preprocessing(srq)
        self.run_matching(srq)
        self.run_postprocessing(srq)
        self.run_postfilters(srq)
        assert srq.result_set is not None
        return srq.result_set
