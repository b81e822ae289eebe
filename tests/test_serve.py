"""Tests for the HTTP search service."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from qserve.core.errors import DocumentResolutionError, IndexLoadError
from qserve.core.properties import PropertyStore
from qserve.core.storage.index import CollectionStatistics
from qserve.serve.runner import SearchServer, create_app
from qserve.serve.schema import SearchBody, StatsResponse


@pytest.fixture
def client(config):
    app = create_app(config=config)
    with TestClient(app) as client:
        yield client


def doc_ids(response):
    return [hit["_id"] for hit in response.json()["results"]]


class TestSearchServer:
    @pytest.fixture
    def mock_index(self):
        index = MagicMock()
        index.collection_statistics.return_value = CollectionStatistics(
            number_of_documents=10,
            number_of_tokens=250,
            number_of_pointers=180,
            number_of_unique_terms=90,
            average_document_length=25.0,
            field_names=("title", "body"),
            field_tokens=(30, 220),
            average_field_lengths=(3.0, 22.0),
        )
        return index

    def test_init_seeds_properties_from_config(self, mock_index, config):
        server = SearchServer(mock_index, config=config)
        assert server.properties.get("bm25.b") == "0.75"
        assert len(server.session_id) == 8

    def test_init_with_shared_store(self, mock_index, config):
        store = PropertyStore({"bm25.b": "0.4"})
        server = SearchServer(mock_index, properties=store, config=config)
        assert server.properties is store

    def test_get_stats(self, mock_index, config):
        stats = SearchServer(mock_index, config=config).get_stats()
        assert isinstance(stats, StatsResponse)
        assert stats.model_dump(by_alias=True) == {
            "fields": 2,
            "fields_tokens": [30, 220],
            "fields_lengths": [3.0, 22.0],
            "documents": 10,
            "tokens": 250,
            "pointers": 180,
            "unique_terms": 90,
            "average_length": 25.0,
        }

    def test_search(self, index, config):
        server = SearchServer(index, config=config)
        response = server.search(SearchBody(query="dog -fox"))
        assert [hit.doc_id for hit in response.results] == ["doc-b"]

    def test_shutdown_closes_index(self, mock_index, config):
        server = SearchServer(mock_index, config=config)
        server.shutdown(timeout=0)
        mock_index.close.assert_called_once()


class TestSearchEndpoint:
    def test_ranked_results(self, client):
        response = client.post("/search", json={"query": "fox"})
        assert response.status_code == 200
        results = response.json()["results"]
        assert [hit["_id"] for hit in results] == ["doc-e", "doc-c", "doc-a"]
        scores = [hit["_score"] for hit in results]
        assert scores == sorted(scores, reverse=True)
        assert set(results[0]) == {"_id", "_score"}

    def test_legacy_path(self, client):
        response = client.post("/_search", json={"query": "fox"})
        assert response.status_code == 200
        assert doc_ids(response) == ["doc-e", "doc-c", "doc-a"]

    def test_no_matches(self, client):
        response = client.post("/search", json={"query": "zebra"})
        assert response.status_code == 200
        assert response.json() == {"results": []}

    def test_window(self, client):
        response = client.post("/search", json={"query": "fox", "controls": {"start": 1, "end": 2}})
        assert doc_ids(response) == ["doc-c"]

    def test_window_larger_than_results(self, client):
        response = client.post("/search", json={"query": "fox", "controls": {"start": "2", "end": "50"}})
        assert doc_ids(response) == ["doc-a"]

    def test_models_selected_per_request(self, client):
        response = client.post(
            "/search",
            json={
                "query": "fox dog",
                "matchingModelName": "ConjunctiveMatching",
                "weightingModelName": "DirichletLM",
            },
        )
        assert response.status_code == 200
        assert sorted(doc_ids(response)) == ["doc-a", "doc-e"]

    def test_property_override_is_request_scoped(self, client):
        overridden = client.post(
            "/search", json={"query": "foxes", "properties": {"termpipelines": ""}}
        )
        assert overridden.status_code == 200
        assert doc_ids(overridden) == []

        plain = client.post("/search", json={"query": "foxes"})
        assert doc_ids(plain) == ["doc-e", "doc-c", "doc-a"]

    def test_property_override_changes_scores(self, client):
        default = client.post("/search", json={"query": "fox"}).json()["results"]
        tuned = client.post(
            "/search", json={"query": "fox", "properties": {"bm25.b": 0.0}}
        ).json()["results"]
        assert tuned[1]["_score"] == pytest.approx(tuned[2]["_score"])
        assert default[1]["_score"] != pytest.approx(default[2]["_score"])


class TestErrorResponses:
    @pytest.mark.parametrize("body", [{}, {"query": None}, {"query": "  "}, {"controls": {}}])
    def test_missing_query(self, client, body):
        response = client.post("/search", json=body)
        assert response.status_code == 400
        assert response.json() == {"MissingQueryError": "Query is missing from request"}

    def test_no_body(self, client):
        response = client.post("/search")
        assert response.status_code == 400
        assert response.json() == {"MissingQueryError": "Query is missing from request"}

    def test_invalid_json(self, client):
        response = client.post(
            "/search", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400
        assert list(response.json()) == ["RequestMalformedError"]

    def test_wrong_field_type(self, client):
        response = client.post("/search", json={"query": ["fox"]})
        assert response.status_code == 400
        assert list(response.json()) == ["RequestMalformedError"]

    def test_invalid_control(self, client):
        response = client.post("/search", json={"query": "fox", "controls": {"start": "abc"}})
        assert response.status_code == 400
        assert list(response.json()) == ["InvalidControlError"]

    def test_query_syntax_error(self, client):
        response = client.post("/search", json={"query": "fox^abc"})
        assert response.status_code == 500
        payload = response.json()
        assert list(payload) == ["RetrievalExecutionError"]
        assert payload["RetrievalExecutionError"].startswith("QuerySyntaxError:")
        assert "Traceback" not in response.text

    def test_unknown_model(self, client):
        response = client.post("/search", json={"query": "fox", "weightingModelName": "PL2"})
        assert response.status_code == 500
        assert "UnknownModelError" in response.json()["RetrievalExecutionError"]

    @pytest.mark.parametrize("value", ["nan", "inf"])
    def test_non_finite_model_parameter(self, client, value):
        response = client.post(
            "/search",
            json={"query": "fox", "weightingModelName": "DirichletLM", "controls": {"c": value}},
        )
        assert response.status_code == 500
        assert response.json()["RetrievalExecutionError"].startswith("EngineError:")
        assert "finite" in response.text

    def test_non_finite_property(self, client):
        response = client.post(
            "/search",
            json={
                "query": "fox",
                "weightingModelName": "DirichletLM",
                "properties": {"dirichletlm.mu": "inf"},
            },
        )
        assert response.status_code == 500
        assert response.json()["RetrievalExecutionError"].startswith("InvalidPropertyError:")

    def test_negative_k_1_with_tf_idf(self, client):
        response = client.post(
            "/search",
            json={"query": "fox", "weightingModelName": "TF_IDF", "properties": {"bm25.k_1": "-1"}},
        )
        assert response.status_code == 500
        assert "bm25.k_1 must be >= 0" in response.json()["RetrievalExecutionError"]

    def test_failed_run_leaves_no_override_behind(self, client):
        client.post("/search", json={"query": "fox^abc", "properties": {"termpipelines": ""}})
        response = client.post("/search", json={"query": "foxes"})
        assert len(doc_ids(response)) == 3

    def test_document_resolution_error(self, client):
        with patch(
            "qserve.serve.runner.build_search_response",
            side_effect=DocumentResolutionError("Cannot resolve document id 3: no such document"),
        ):
            response = client.post("/search", json={"query": "fox"})
        assert response.status_code == 500
        assert response.json() == {
            "DocumentResolutionError": "Cannot resolve document id 3: no such document"
        }

    @pytest.mark.parametrize(
        "method, path",
        [
            ("GET", "/nonexistent"),
            ("GET", "/"),
            ("GET", "/docs"),
            ("GET", "/openapi.json"),
            ("POST", "/index"),
            ("GET", "/search"),
            ("DELETE", "/stats"),
            ("PUT", "/some/deep/path"),
        ],
    )
    def test_unknown_endpoint(self, client, method, path):
        response = client.request(method, path)
        assert response.status_code == 404
        assert response.json() == {"EndpointNotFound": "This endpoint does not exist"}


class TestStatsEndpoint:
    @pytest.mark.parametrize("path", ["/stats", "/_stats"])
    def test_stats(self, client, path):
        response = client.get(path)
        assert response.status_code == 200
        data = response.json()
        assert set(data) == {
            "fields",
            "fields_tokens",
            "fields_lengths",
            "documents",
            "tokens",
            "pointers",
            "unique_terms",
            "average_length",
        }
        assert data["documents"] == 5
        assert data["fields"] == 1
        assert data["fields_tokens"] == [data["tokens"]]
        assert data["average_length"] == pytest.approx(data["tokens"] / 5)


class TestLifecycle:
    def test_index_closed_on_shutdown(self, index, config):
        app = create_app(index=index, config=config)
        with TestClient(app) as client:
            assert client.get("/stats").status_code == 200
            assert not index.closed
        assert index.closed

    def test_bad_index_fails_startup(self, tmp_path, config):
        app = create_app(index_path=tmp_path / "missing.db", config=config)
        with pytest.raises(IndexLoadError):
            with TestClient(app):
                pass


class TestWithFakeIndex:
    @pytest.fixture
    def fake_index(self):
        index = MagicMock()
        index.collection_statistics.return_value = CollectionStatistics(
            number_of_documents=3,
            number_of_tokens=12,
            number_of_pointers=9,
            number_of_unique_terms=7,
            average_document_length=4.0,
            field_names=("text",),
            field_tokens=(12,),
            average_field_lengths=(4.0,),
        )
        return index

    @pytest.mark.parametrize("body", [{}, {"query": ""}])
    def test_missing_query_never_reaches_engine(self, fake_index, config, body):
        app = create_app(index=fake_index, config=config)
        with TestClient(app) as client:
            response = client.post("/search", json=body)

        assert response.status_code == 400
        assert response.json() == {"MissingQueryError": "Query is missing from request"}
        assert fake_index.manager.call_count == 0

    def test_stats_match_fixture(self, fake_index, config):
        app = create_app(index=fake_index, config=config)
        with TestClient(app) as client:
            response = client.get("/stats")

        assert response.json() == {
            "fields": 1,
            "fields_tokens": [12],
            "fields_lengths": [4.0],
            "documents": 3,
            "tokens": 12,
            "pointers": 9,
            "unique_terms": 7,
            "average_length": 4.0,
        }
        fake_index.close.assert_called_once()
