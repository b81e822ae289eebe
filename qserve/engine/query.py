"""Query parsing.

Queries are whitespace-separated clauses of the form ``[+|-]word[^weight]``:

- ``+word`` requires the term in every result
- ``-word`` excludes documents containing the term
- ``word^2.5`` scales the term's contribution to the score
"""

import math
import re
from dataclasses import dataclass

from qserve.core.errors import QuerySyntaxError

from .terms import TermPipeline

_CLAUSE = re.compile(r"^(?P<op>[+-]?)(?P<word>[^\s^]*)(?:\^(?P<weight>.*))?$")


@dataclass(frozen=True)
class QueryClause:
    word: str
    weight: float = 1.0
    required: bool = False
    prohibited: bool = False


@dataclass(frozen=True)
class QueryTerm:
    term: str
    weight: float = 1.0
    required: bool = False
    prohibited: bool = False


def parse_query(text: str) -> list[QueryClause]:
    """Parse raw query text into clauses.

    Raises:
        QuerySyntaxError: On empty terms, dangling operators or bad weights
    """
    clauses = []
    for raw in text.split():
        match = _CLAUSE.match(raw)
        if match is None:
            raise QuerySyntaxError(f"Cannot parse clause {raw!r}")
        word = match.group("word")
        if not word:
            raise QuerySyntaxError(f"Clause {raw!r} has no term")

        weight = 1.0
        if match.group("weight") is not None:
            try:
                weight = float(match.group("weight"))
            except ValueError:
                raise QuerySyntaxError(f"Invalid weight in clause {raw!r}")
            if not math.isfinite(weight) or weight <= 0:
                raise QuerySyntaxError(f"Weight must be a positive number in clause {raw!r}")

        op = match.group("op")
        clauses.append(
            QueryClause(word=word, weight=weight, required=op == "+", prohibited=op == "-")
        )
    return clauses


def apply_pipeline(clauses: list[QueryClause], pipeline: TermPipeline) -> list[QueryTerm]:
    """Run each clause through the term pipeline and merge repeated terms.

    A word may yield several terms (``e-mail``) or none (stopwords). Repeated
    terms add their weights; a term is required or prohibited if any of its
    clauses is.
    """
    merged: dict[str, QueryTerm] = {}
    for clause in clauses:
        for term in pipeline.process_text(clause.word):
            previous = merged.get(term)
            if previous is None:
                merged[term] = QueryTerm(
                    term=term,
                    weight=clause.weight,
                    required=clause.required,
                    prohibited=clause.prohibited,
                )
            else:
                merged[term] = QueryTerm(
                    term=term,
                    weight=previous.weight + clause.weight,
                    required=previous.required or clause.required,
                    prohibited=previous.prohibited or clause.prohibited,
                )
    return list(merged.values())
