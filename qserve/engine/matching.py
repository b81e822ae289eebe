"""Matching models: turn query terms into scored candidate documents."""

import logging
from typing import TYPE_CHECKING

import numpy as np

from qserve.core.errors import UnknownModelError

from .query import QueryTerm
from .results import ResultSet
from .weighting import WeightingModel

if TYPE_CHECKING:
    from qserve.core.storage.index import Index

logger = logging.getLogger(__name__)


class Matching:
    """Term-at-a-time matching over full posting lists.

    A document is a candidate when it contains at least one scoring term,
    every ``+`` term, and no ``-`` term. Its score is the weighted sum of
    its terms' scores.
    """

    name = "Matching"
    requires_all_terms = False

    def __init__(self, index: "Index", weighting: WeightingModel):
        self.index = index
        self.weighting = weighting

    def match(self, terms: list[QueryTerm]) -> ResultSet:
        scoring = [term for term in terms if not term.prohibited]
        prohibited = [term for term in terms if term.prohibited]
        if not scoring:
            return ResultSet.empty()

        required = [term for term in scoring if term.required or self.requires_all_terms]

        docid_parts: list[np.ndarray] = []
        score_parts: list[np.ndarray] = []
        required_parts: list[np.ndarray] = []
        for term in scoring:
            entry = self.index.lexicon_entry(term.term)
            if entry is None or entry.df == 0:
                if term in required:
                    logger.debug(f"Required term {term.term!r} not in lexicon")
                    return ResultSet.empty()
                continue
            postings = self.index.postings(term.term)
            scores = self.weighting.score(postings.tfs, postings.lengths, entry) * term.weight
            docid_parts.append(postings.docids)
            score_parts.append(scores)
            required_parts.append(np.full(len(postings), term in required, dtype=np.float64))

        if not docid_parts:
            return ResultSet.empty()

        all_docids = np.concatenate(docid_parts)
        docids, inverse = np.unique(all_docids, return_inverse=True)
        scores = np.bincount(inverse, weights=np.concatenate(score_parts), minlength=len(docids))

        keep = np.ones(len(docids), dtype=bool)
        if required:
            matched_required = np.bincount(
                inverse, weights=np.concatenate(required_parts), minlength=len(docids)
            )
            keep &= matched_required == len(required)
        for term in prohibited:
            keep &= ~np.isin(docids, self.index.postings(term.term).docids)

        return ResultSet(
            docids=docids[keep],
            scores=scores[keep],
            exact_result_size=int(keep.sum()),
        )


class ConjunctiveMatching(Matching):
    """Like ``Matching`` but every scoring term is required."""

    name = "ConjunctiveMatching"
    requires_all_terms = True


MATCHING_MODELS: dict[str, type[Matching]] = {
    model.name: model for model in (Matching, ConjunctiveMatching)
}


def create_matching_model(name: str, index: "Index", weighting: WeightingModel) -> Matching:
    """Instantiate a matching model by (case-insensitive) name.

    Raises:
        UnknownModelError: If no model has that name
    """
    short_name = name.rsplit(".", 1)[-1]
    for model_name, model_class in MATCHING_MODELS.items():
        if model_name.lower() == short_name.lower():
            return model_class(index, weighting)
    raise UnknownModelError(
        f"Unknown matching model {name!r}. Available: {', '.join(MATCHING_MODELS)}"
    )
