"""Weighting models.

Each model scores a whole posting list at once: given the term frequencies
and document lengths of every document containing a term, it returns one
score per document.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from qserve.core.errors import InvalidPropertyError, UnknownModelError
from qserve.core.properties import PropertyStore

if TYPE_CHECKING:
    from qserve.core.storage.index import CollectionStatistics, LexiconEntry


class WeightingModel(ABC):
    """Base class for term weighting models.

    ``parameter`` is the model's free parameter, set per request through the
    ``c`` control. When None, the model reads it from the property store.
    """

    name: str = ""

    def __init__(
        self,
        statistics: "CollectionStatistics",
        properties: PropertyStore,
        parameter: float | None = None,
    ):
        self.statistics = statistics
        self.properties = properties
        self.parameter = parameter

    @abstractmethod
    def score(self, tfs: np.ndarray, lengths: np.ndarray, entry: "LexiconEntry") -> np.ndarray:
        """Score one term's postings."""

    def _average_length(self) -> float:
        return self.statistics.average_document_length or 1.0


class BM25(WeightingModel):
    name = "BM25"

    def __init__(self, statistics, properties, parameter=None):
        super().__init__(statistics, properties, parameter)
        self.k_1 = properties.get_float("bm25.k_1", 1.2)
        self.b = parameter if parameter is not None else properties.get_float("bm25.b", 0.75)
        if self.k_1 < 0:
            raise InvalidPropertyError(f"bm25.k_1 must be >= 0, got {self.k_1}")
        if not 0.0 <= self.b <= 1.0:
            raise InvalidPropertyError(f"bm25.b must be in [0.0, 1.0], got {self.b}")

    def score(self, tfs, lengths, entry):
        n_docs = self.statistics.number_of_documents
        idf = np.log((n_docs - entry.df + 0.5) / (entry.df + 0.5) + 1.0)
        tf = tfs.astype(np.float64)
        norm = self.k_1 * (1.0 - self.b + self.b * lengths / self._average_length())
        return idf * tf * (self.k_1 + 1.0) / (tf + norm)


class TF_IDF(WeightingModel):
    """Robertson's tf combined with a smoothed inverse document frequency."""

    name = "TF_IDF"

    def __init__(self, statistics, properties, parameter=None):
        super().__init__(statistics, properties, parameter)
        self.k_1 = properties.get_float("bm25.k_1", 1.2)
        self.b = parameter if parameter is not None else properties.get_float("bm25.b", 0.75)
        if self.k_1 < 0:
            raise InvalidPropertyError(f"bm25.k_1 must be >= 0, got {self.k_1}")
        if not 0.0 <= self.b <= 1.0:
            raise InvalidPropertyError(f"bm25.b must be in [0.0, 1.0], got {self.b}")

    def score(self, tfs, lengths, entry):
        n_docs = self.statistics.number_of_documents
        idf = np.log(n_docs / max(entry.df, 1) + 1.0)
        tf = tfs.astype(np.float64)
        robertson_tf = (
            self.k_1 * tf
            / (tf + self.k_1 * (1.0 - self.b + self.b * lengths / self._average_length()))
        )
        return robertson_tf * idf


class DirichletLM(WeightingModel):
    """Query likelihood with Dirichlet prior smoothing."""

    name = "DirichletLM"

    def __init__(self, statistics, properties, parameter=None):
        super().__init__(statistics, properties, parameter)
        self.mu = parameter if parameter is not None else properties.get_float(
            "dirichletlm.mu", 2500.0
        )
        if self.mu <= 0:
            raise InvalidPropertyError(f"dirichletlm.mu must be > 0, got {self.mu}")

    def score(self, tfs, lengths, entry):
        n_tokens = max(self.statistics.number_of_tokens, 1)
        collection_probability = max(entry.cf, 1) / n_tokens
        tf = tfs.astype(np.float64)
        return np.log1p(tf / (self.mu * collection_probability)) + np.log(
            self.mu / (lengths + self.mu)
        )


WEIGHTING_MODELS: dict[str, type[WeightingModel]] = {
    model.name: model for model in (BM25, TF_IDF, DirichletLM)
}


def create_weighting_model(
    name: str,
    statistics: "CollectionStatistics",
    properties: PropertyStore,
    parameter: float | None = None,
) -> WeightingModel:
    """Instantiate a weighting model by name.

    Qualified names (``org.example.BM25``) resolve by their last component.

    Raises:
        UnknownModelError: If no model has that name
    """
    short_name = name.rsplit(".", 1)[-1]
    model_class = WEIGHTING_MODELS.get(short_name)
    if model_class is None:
        raise UnknownModelError(
            f"Unknown weighting model {name!r}. Available: {', '.join(WEIGHTING_MODELS)}"
        )
    return model_class(statistics, properties, parameter)
