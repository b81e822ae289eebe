"""qserve: ranked full-text retrieval over a read-only index, served over HTTP."""

__version__ = "0.1.0"
