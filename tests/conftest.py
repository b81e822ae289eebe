# tests/conftest.py
"""Pytest configuration and shared fixtures."""

import logging
import os
import sqlite3
from collections import Counter
from pathlib import Path

import pytest

from qserve.core.config import load_config
from qserve.core.properties import PropertyStore
from qserve.core.storage.index import load_index
from qserve.engine.terms import DEFAULT_TERM_PIPELINE, pipeline_from_property

INDEX_SCHEMA = """
CREATE TABLE documents (docid INTEGER PRIMARY KEY, docno TEXT NOT NULL UNIQUE, length INTEGER NOT NULL);
CREATE TABLE lexicon (term TEXT PRIMARY KEY, df INTEGER NOT NULL, cf INTEGER NOT NULL);
CREATE TABLE postings (term TEXT NOT NULL, docid INTEGER NOT NULL, tf INTEGER NOT NULL,
                       PRIMARY KEY (term, docid));
CREATE TABLE fields (field_id INTEGER PRIMARY KEY, name TEXT NOT NULL, tokens INTEGER NOT NULL);
CREATE TABLE properties (key TEXT PRIMARY KEY, value TEXT NOT NULL);
"""

# After Stopwords,PorterStemmer: "fox" occurs in doc-a, doc-c (as "foxes")
# and twice in doc-e; "dog" in doc-a, doc-b and doc-e.
CORPUS = {
    "doc-a": "The quick brown fox jumps over the lazy dog",
    "doc-b": "A quick brown dog runs in the park",
    "doc-c": "Foxes are wild animals living in forests",
    "doc-d": "Search engines rank documents by relevance",
    "doc-e": "The dog barks at the fox and the fox runs",
}

ENGINE_PROPERTIES = {
    "bm25.k_1": "1.2",
    "bm25.b": "0.75",
    "dirichletlm.mu": "2500",
    "matching.retrieved_set_size": "1000",
}


def build_index(
    path: Path,
    documents: dict[str, str],
    termpipelines: str = DEFAULT_TERM_PIPELINE,
) -> Path:
    """Write a SQLite index for ``documents`` (docno -> text) at ``path``."""
    pipeline = pipeline_from_property(termpipelines)
    conn = sqlite3.connect(path)
    try:
        conn.executescript(INDEX_SCHEMA)
        lexicon: dict[str, tuple[int, int]] = {}
        total_tokens = 0
        for docid, (docno, text) in enumerate(documents.items()):
            terms = pipeline.process_text(text)
            total_tokens += len(terms)
            conn.execute("INSERT INTO documents VALUES (?, ?, ?)", (docid, docno, len(terms)))
            for term, tf in Counter(terms).items():
                conn.execute("INSERT INTO postings VALUES (?, ?, ?)", (term, docid, tf))
                df, cf = lexicon.get(term, (0, 0))
                lexicon[term] = (df + 1, cf + tf)
        conn.executemany(
            "INSERT INTO lexicon VALUES (?, ?, ?)",
            [(term, df, cf) for term, (df, cf) in lexicon.items()],
        )
        conn.execute("INSERT INTO fields VALUES (0, 'text', ?)", (total_tokens,))
        conn.execute("INSERT INTO properties VALUES ('termpipelines', ?)", (termpipelines,))
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture(autouse=True)
def clean_qserve_env(monkeypatch):
    """Keep QSERVE_* variables from the outer environment out of tests."""
    for key in list(os.environ):
        if key.startswith("QSERVE_"):
            monkeypatch.delenv(key)


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Drop handlers installed by setup_logging so they don't outlive the test."""
    level = logging.root.level
    yield
    for handler in logging.root.handlers[:]:
        if type(handler) is logging.StreamHandler:
            logging.root.removeHandler(handler)
    logging.root.setLevel(level)


@pytest.fixture
def index_path(tmp_path):
    return build_index(tmp_path / "index.db", CORPUS)


@pytest.fixture
def index(index_path):
    idx = load_index(index_path)
    yield idx
    if not idx.closed:
        idx.close()


@pytest.fixture
def properties():
    return PropertyStore(ENGINE_PROPERTIES)


@pytest.fixture
def config(index_path):
    cfg = load_config()
    cfg.index.path = str(index_path)
    cfg.server.drain_timeout = 1.0
    return cfg
