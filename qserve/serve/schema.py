"""Request and response schemas for the search service."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from qserve.core.storage.index import CollectionStatistics


class SearchBody(BaseModel):
    """Body of ``POST /search``.

    Every field is optional at this level; a missing query is reported as
    ``MissingQueryError`` when the request context is built.
    """

    model_config = ConfigDict(populate_by_name=True)

    query: str | None = None
    matching_model_name: str | None = Field(default=None, alias="matchingModelName")
    weighting_model_name: str | None = Field(default=None, alias="weightingModelName")
    controls: dict[str, Any] = Field(default_factory=dict)
    properties: dict[str, Any] = Field(default_factory=dict)


class SearchHit(BaseModel):
    """One ranked document."""

    model_config = ConfigDict(populate_by_name=True)

    doc_id: str = Field(alias="_id")
    score: float = Field(alias="_score")


class SearchResponse(BaseModel):
    """Ranked results, most relevant first."""

    results: list[SearchHit] = Field(default_factory=list)


class StatsResponse(BaseModel):
    """Collection statistics of the served index."""

    model_config = ConfigDict(populate_by_name=True)

    number_of_fields: int = Field(alias="fields")
    fields_tokens: list[int] = Field(default_factory=list)
    fields_lengths: list[float] = Field(default_factory=list)
    documents: int
    tokens: int
    pointers: int
    unique_terms: int
    average_length: float

    @classmethod
    def from_statistics(cls, stats: CollectionStatistics) -> "StatsResponse":
        return cls(
            number_of_fields=stats.number_of_fields,
            fields_tokens=list(stats.field_tokens),
            fields_lengths=list(stats.average_field_lengths),
            documents=stats.number_of_documents,
            tokens=stats.number_of_tokens,
            pointers=stats.number_of_pointers,
            unique_terms=stats.number_of_unique_terms,
            average_length=stats.average_document_length,
        )
