"""Tokenization and term pipelines.

A term pipeline is a comma-separated list of stage names, applied left to
right to every token. The same pipeline must be used at query time as when
the index was built, which is why the index records its own
``termpipelines`` property.
"""

import re
from collections.abc import Callable, Sequence
from functools import lru_cache

from nltk.stem import PorterStemmer

from qserve.core.errors import InvalidPropertyError

DEFAULT_TERM_PIPELINE = "Stopwords,PorterStemmer"

_TOKEN_PATTERN = re.compile(r"\w+")

STOPWORDS = frozenset({
    'a', 'about', 'above', 'after', 'again', 'against', 'all', 'am', 'an', 'and',
    'any', 'are', 'as', 'at', 'be', 'because', 'been', 'before', 'being', 'below',
    'between', 'both', 'but', 'by', 'can', 'could', 'did', 'do', 'does', 'doing',
    'down', 'during', 'each', 'few', 'for', 'from', 'further', 'had', 'has', 'have',
    'having', 'he', 'her', 'here', 'hers', 'herself', 'him', 'himself', 'his', 'how',
    'i', 'if', 'in', 'into', 'is', 'it', 'its', 'itself', 'just', 'may', 'me',
    'might', 'more', 'most', 'must', 'my', 'myself', 'no', 'nor', 'not', 'of', 'off',
    'on', 'once', 'only', 'or', 'other', 'our', 'ours', 'ourselves', 'out', 'over',
    'own', 'same', 'she', 'should', 'so', 'some', 'such', 'than', 'that', 'the',
    'their', 'theirs', 'them', 'themselves', 'then', 'there', 'these', 'they',
    'this', 'those', 'through', 'to', 'too', 'under', 'until', 'up', 'very', 'was',
    'we', 'were', 'what', 'when', 'where', 'which', 'while', 'who', 'whom', 'why',
    'will', 'with', 'would', 'you', 'your', 'yours', 'yourself', 'yourselves',
})

_stemmer = PorterStemmer()


def tokenize(text: str) -> list[str]:
    """Split text into lowercase word tokens."""
    return [token.lower() for token in _TOKEN_PATTERN.findall(text)]


def _remove_stopword(term: str) -> str | None:
    return None if term in STOPWORDS else term


def _porter_stem(term: str) -> str | None:
    return _stemmer.stem(term)


STAGES: dict[str, Callable[[str], str | None]] = {
    "Stopwords": _remove_stopword,
    "PorterStemmer": _porter_stem,
}


class TermPipeline:
    """Ordered chain of term stages; a stage returning None drops the term."""

    def __init__(self, stage_names: Sequence[str]):
        unknown = [name for name in stage_names if name not in STAGES]
        if unknown:
            raise InvalidPropertyError(
                f"Unknown term pipeline stage(s): {', '.join(unknown)}. "
                f"Available: {', '.join(STAGES)}"
            )
        self.stage_names = tuple(stage_names)
        self._stages = [STAGES[name] for name in stage_names]

    def process(self, term: str) -> str | None:
        for stage in self._stages:
            result = stage(term)
            if result is None:
                return None
            term = result
        return term

    def process_text(self, text: str) -> list[str]:
        terms = []
        for token in tokenize(text):
            term = self.process(token)
            if term is not None:
                terms.append(term)
        return terms


@lru_cache(maxsize=32)
def pipeline_from_property(value: str) -> TermPipeline:
    """Build (and cache) a pipeline from a ``termpipelines`` property value."""
    return TermPipeline([name.strip() for name in value.split(",") if name.strip()])
