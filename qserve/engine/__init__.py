"""Retrieval engine: term pipeline, query parsing, weighting and matching.

Runs are driven by a ``Manager`` bound to an index and a property store.
"""

from .manager import Manager, SearchRequest, Stage
from .matching import MATCHING_MODELS, ConjunctiveMatching, Matching
from .results import ResultSet
from .weighting import BM25, TF_IDF, WEIGHTING_MODELS, DirichletLM, WeightingModel

__all__ = [
    "Manager",
    "SearchRequest",
    "Stage",
    "ResultSet",
    "Matching",
    "ConjunctiveMatching",
    "MATCHING_MODELS",
    "WeightingModel",
    "BM25",
    "TF_IDF",
    "DirichletLM",
    "WEIGHTING_MODELS",
]
