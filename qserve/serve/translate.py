"""Turn an engine result set into the JSON response shape."""

from qserve.core.errors import DocumentResolutionError, UnknownDocumentIdError
from qserve.core.storage.index import Index
from qserve.engine.results import ResultSet

from .schema import SearchHit, SearchResponse


def translate_results(result_set: ResultSet, index: Index) -> list[SearchHit]:
    """Map each held result to its external document name, in rank order.

    Decorated runs carry names in the ``docno`` metadata; entries missing
    there are resolved against the index.

    Raises:
        DocumentResolutionError: If any document id cannot be resolved
    """
    names = result_set.metadata.get("docno")
    hits = []
    for rank in range(result_set.result_size):
        docid = int(result_set.docids[rank])
        name = names[rank] if names is not None else None
        if name is None:
            try:
                name = index.resolve_document_name(docid)
            except UnknownDocumentIdError as e:
                raise DocumentResolutionError(str(e)) from e
        hits.append(SearchHit(doc_id=name, score=float(result_set.scores[rank])))
    return hits


def build_search_response(result_set: ResultSet, index: Index) -> SearchResponse:
    return SearchResponse(results=translate_results(result_set, index))
