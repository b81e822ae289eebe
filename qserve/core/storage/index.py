"""Read-only handle to a pre-built SQLite index.

The index file holds five tables: ``documents`` (docid, docno, length),
``lexicon`` (term, df, cf), ``postings`` (term, docid, tf), ``fields``
(field_id, name, tokens) and ``properties`` (index-time key/value pairs).
Collection statistics are computed once at load time; the handle is never
written to afterwards, so it can be shared by concurrent requests.
"""

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from qserve.core.errors import IndexLoadError, UnknownDocumentIdError
from qserve.core.properties import PropertyStore
from qserve.engine.manager import Manager

from .db import DatabaseConnection

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("documents", "lexicon", "postings", "fields", "properties")

# Stay under SQLite's host parameter limit
_LOOKUP_BATCH = 500


@dataclass(frozen=True)
class CollectionStatistics:
    number_of_documents: int
    number_of_tokens: int
    number_of_pointers: int
    number_of_unique_terms: int
    average_document_length: float
    field_names: tuple[str, ...] = ()
    field_tokens: tuple[int, ...] = ()
    average_field_lengths: tuple[float, ...] = ()

    @property
    def number_of_fields(self) -> int:
        return len(self.field_tokens)


@dataclass(frozen=True)
class LexiconEntry:
    term: str
    df: int
    cf: int


@dataclass(frozen=True)
class Postings:
    """Posting list of one term, ordered by docid."""

    term: str
    docids: np.ndarray
    tfs: np.ndarray
    lengths: np.ndarray

    def __len__(self) -> int:
        return len(self.docids)


class Index:
    """Shared read-only view over an on-disk index."""

    def __init__(
        self,
        db: DatabaseConnection,
        statistics: CollectionStatistics,
        properties: dict[str, str],
    ):
        self._db = db
        self._statistics = statistics
        self._properties = properties

    @property
    def path(self) -> Path:
        return self._db.db_path

    @property
    def closed(self) -> bool:
        return self._db.closed

    def collection_statistics(self) -> CollectionStatistics:
        return self._statistics

    def properties(self) -> dict[str, str]:
        """Properties recorded when the index was built."""
        return dict(self._properties)

    def lexicon_entry(self, term: str) -> LexiconEntry | None:
        row = self._db.fetchone("SELECT term, df, cf FROM lexicon WHERE term = ?", (term,))
        if row is None:
            return None
        return LexiconEntry(term=row[0], df=row[1], cf=row[2])

    def postings(self, term: str) -> Postings:
        rows = self._db.fetchall(
            """SELECT p.docid, p.tf, d.length FROM postings p
               JOIN documents d ON d.docid = p.docid
               WHERE p.term = ? ORDER BY p.docid""",
            (term,),
        )
        if not rows:
            empty = np.empty(0, dtype=np.int64)
            return Postings(term=term, docids=empty, tfs=empty, lengths=empty)
        data = np.array(rows, dtype=np.int64)
        return Postings(term=term, docids=data[:, 0], tfs=data[:, 1], lengths=data[:, 2])

    def resolve_document_name(self, docid: int) -> str:
        """Return the docno of an internal document id.

        Raises:
            UnknownDocumentIdError: If the id is out of range or the lookup fails
        """
        if docid < 0:
            raise UnknownDocumentIdError(docid, "negative document id")
        try:
            row = self._db.fetchone("SELECT docno FROM documents WHERE docid = ?", (int(docid),))
        except sqlite3.Error as exc:
            raise UnknownDocumentIdError(docid, str(exc)) from exc
        if row is None:
            raise UnknownDocumentIdError(docid)
        return row[0]

    def resolve_document_names(self, docids: Sequence[int]) -> list[str | None]:
        """Batch form of ``resolve_document_name``; unknown ids map to None."""
        ids = [int(docid) for docid in docids]
        names: dict[int, str] = {}
        for start in range(0, len(ids), _LOOKUP_BATCH):
            batch = ids[start : start + _LOOKUP_BATCH]
            placeholders = ",".join("?" * len(batch))
            rows = self._db.fetchall(
                f"SELECT docid, docno FROM documents WHERE docid IN ({placeholders})",
                tuple(batch),
            )
            names.update({row[0]: row[1] for row in rows})
        return [names.get(docid) for docid in ids]

    def document_id(self, docno: str) -> int | None:
        row = self._db.fetchone("SELECT docid FROM documents WHERE docno = ?", (docno,))
        return row[0] if row else None

    def manager(self, properties: PropertyStore) -> Manager:
        """Create a retrieval manager bound to this index."""
        return Manager(self, properties)

    def close(self) -> None:
        if self._db.closed:
            logger.warning(f"Index at {self.path} is already closed")
            return
        self._db.close()
        logger.info(f"Closed index at {self.path}")


def _read_statistics(db: DatabaseConnection) -> CollectionStatistics:
    documents, tokens = db.fetchone("SELECT COUNT(*), COALESCE(SUM(length), 0) FROM documents")
    (pointers,) = db.fetchone("SELECT COUNT(*) FROM postings")
    (unique_terms,) = db.fetchone("SELECT COUNT(*) FROM lexicon")
    fields = db.fetchall("SELECT name, tokens FROM fields ORDER BY field_id")

    average_length = tokens / documents if documents else 0.0
    field_tokens = tuple(int(row[1]) for row in fields)
    return CollectionStatistics(
        number_of_documents=documents,
        number_of_tokens=tokens,
        number_of_pointers=pointers,
        number_of_unique_terms=unique_terms,
        average_document_length=average_length,
        field_names=tuple(row[0] for row in fields),
        field_tokens=field_tokens,
        average_field_lengths=tuple(
            count / documents if documents else 0.0 for count in field_tokens
        ),
    )


def load_index(path: str | Path) -> Index:
    """Open the index at ``path``.

    Args:
        path: Path to the SQLite index file

    Returns:
        Index handle, ready to serve

    Raises:
        IndexLoadError: If the file is missing, unreadable or lacks a required table
    """
    path = Path(path)
    if not path.is_file():
        raise IndexLoadError(f"Index not found at {path}")

    db = DatabaseConnection(path)
    try:
        missing = [name for name in REQUIRED_TABLES if name not in db.table_names()]
        if missing:
            raise IndexLoadError(f"Index at {path} is missing tables: {', '.join(missing)}")
        statistics = _read_statistics(db)
        properties = {row[0]: row[1] for row in db.fetchall("SELECT key, value FROM properties")}
    except sqlite3.Error as exc:
        db.close()
        raise IndexLoadError(f"Cannot read index at {path}: {exc}") from exc
    except IndexLoadError:
        db.close()
        raise

    logger.info(
        f"Loaded index at {path}: {statistics.number_of_documents} documents, "
        f"{statistics.number_of_unique_terms} terms"
    )
    return Index(db, statistics, properties)
