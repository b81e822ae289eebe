"""Ranked output of one retrieval run."""

from dataclasses import dataclass, field

import numpy as np


@dataclass
class ResultSet:
    """Internal document ids with scores, in rank order once post-processed.

    ``exact_result_size`` counts every document that matched, before any
    cutoff; ``result_size`` is the number of entries actually held.
    ``metadata`` maps a key (``docno``) to one value per held entry.
    """

    docids: np.ndarray
    scores: np.ndarray
    exact_result_size: int
    metadata: dict[str, list[str | None]] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "ResultSet":
        return cls(
            docids=np.empty(0, dtype=np.int64),
            scores=np.empty(0, dtype=np.float64),
            exact_result_size=0,
        )

    @property
    def result_size(self) -> int:
        return len(self.docids)

    @property
    def decorated(self) -> bool:
        return "docno" in self.metadata

    def sort(self) -> None:
        """Order by descending score, ties broken by ascending docid."""
        order = np.lexsort((self.docids, -self.scores))
        self.docids = self.docids[order]
        self.scores = self.scores[order]
        self.metadata = {key: [values[i] for i in order] for key, values in self.metadata.items()}

    def crop(self, start: int, end: int | None = None) -> None:
        """Keep ranks ``[start, end)``; ``exact_result_size`` is unchanged."""
        window = slice(start, end)
        self.docids = self.docids[window]
        self.scores = self.scores[window]
        self.metadata = {key: values[window] for key, values in self.metadata.items()}

    def add_metadata(self, key: str, values: list[str | None]) -> None:
        if len(values) != self.result_size:
            raise ValueError(
                f"Metadata {key!r} has {len(values)} values for {self.result_size} results"
            )
        self.metadata[key] = list(values)
