"""
Knowledge Search Tests

Azure AI Search and Azure OpenAI are replaced with mocks.

Run with:
    pytest tests/test_knowledge_search.py -v
"""

from unittest.mock import MagicMock

import pytest

from tools.base import ToolInputError
from tools.knowledge_search import (
    KnowledgeSearch,
    document_type_filter,
    extract_snippet,
    index_document,
    merge_search_results,
    search_knowledge,
)

SEMANTIC_HITS = [
    {"id": "a", "title": "Outage Plan", "content": "Restore feeders.", "@search.score": 0.8},
    {"id": "c", "title": "Low", "content": "Unrelated.", "@search.score": 0.4},
]
KEYWORD_HITS = [
    {"id": "a", "title": "Outage Plan", "content": "Restore feeders.", "@search.score": 5.0},
    {"id": "b", "title": "Tariff", "content": "Rates.", "document_type": "tariff", "@search.score": 0.5},
]


def fake_search(search_text=None, **kwargs):
    if search_text is None:
        return list(SEMANTIC_HITS)
    if search_text == "*":
        return [{"id": "z", "@search.score": 0.9}]
    return list(KEYWORD_HITS)


@pytest.fixture
def search_client():
    client = MagicMock()
    client.search.side_effect = fake_search
    return client


@pytest.fixture
def clients(search_client):
    clients = MagicMock()
    clients.search_index_name = "documents-index"
    clients.get_search_client.return_value = search_client
    openai = MagicMock()
    openai.embeddings.create.return_value = MagicMock(data=[MagicMock(embedding=[0.1, 0.2])])
    clients.get_openai_client.return_value = openai
    return clients


@pytest.fixture
def searcher(clients):
    return KnowledgeSearch(clients=clients)


# ============================================================================
# HELPERS
# ============================================================================


class TestHelpers:

    def test_document_type_filter(self):
        assert document_type_filter(None) is None
        assert document_type_filter(["policy", "o'brien"]) == (
            "search.in(document_type, 'policy,o''brien', ',')"
        )

    def test_short_snippet_unchanged(self):
        assert extract_snippet("Short text.") == "Short text."
        assert extract_snippet(None) == ""

    def test_snippet_cuts_at_sentence(self):
        content = "A" * 150 + ". " + "B" * 100
        assert extract_snippet(content) == "A" * 150 + "."

    def test_snippet_cuts_at_word(self):
        content = "word " * 60
        snippet = extract_snippet(content)
        assert snippet.endswith("...")
        assert not snippet[:-3].endswith(" ")

    def test_merge_boosts_semantic_and_keeps_best_score(self):
        merged = merge_search_results(
            [{"id": "a", "similarity_score": 0.5}],
            [{"id": "a", "similarity_score": 0.9}, {"id": "b", "similarity_score": 0.55}],
            max_results=5,
        )
        assert [(r["id"], r["similarity_score"]) for r in merged] == [("a", 0.9), ("b", 0.55)]

    def test_merge_truncates(self):
        merged = merge_search_results(
            [{"id": "a", "similarity_score": 0.8}],
            [{"id": "b", "similarity_score": 0.1}],
            max_results=1,
        )
        assert [r["id"] for r in merged] == ["a"]
        assert merged[0]["similarity_score"] == pytest.approx(0.96)


# ============================================================================
# SEARCH
# ============================================================================


class TestKnowledgeSearch:

    async def test_semantic_search_applies_threshold(self, searcher, clients):
        results = await searcher.semantic_search("outage", 5, 0.7)

        assert [r["id"] for r in results] == ["a"]
        assert "@search.score" not in results[0]
        clients.get_openai_client.return_value.embeddings.create.assert_called_once_with(
            model="text-embedding-ada-002", input="outage"
        )

    async def test_embedding_deployment_from_environment(self, searcher, clients, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_EMBEDDING_DEPLOYMENT", "text-embedding-3-small")
        await searcher.embed("rates")
        assert clients.get_openai_client.return_value.embeddings.create.call_args.kwargs[
            "model"
        ] == "text-embedding-3-small"

    async def test_keyword_search_passes_filter(self, searcher, search_client):
        await searcher.keyword_search("tariff", 3, ["tariff"])

        kwargs = search_client.search.call_args.kwargs
        assert kwargs["search_text"] == "tariff"
        assert kwargs["top"] == 3
        assert kwargs["filter"] == "search.in(document_type, 'tariff', ',')"

    async def test_hybrid_search_merges(self, searcher):
        results = await searcher.hybrid_search("outage", 10, 0.7)
        assert [r["id"] for r in results] == ["a", "b"]
        assert results[0]["similarity_score"] == 5.0

    async def test_missing_search_client(self, clients):
        clients.get_search_client.return_value = None
        with pytest.raises(RuntimeError):
            await KnowledgeSearch(clients=clients).keyword_search("x", 1)

    async def test_related_documents_fallback(self, searcher, search_client):
        related = await searcher.find_related_documents("a")

        assert related == [
            {"related_document_id": "z", "relationship_type": "content_similarity", "strength": 0.9}
        ]
        assert search_client.search.call_args.kwargs["filter"] == "id ne 'a'"

    async def test_related_documents_failure_is_empty(self, searcher, search_client):
        search_client.search.side_effect = RuntimeError("service unavailable")
        assert await searcher.find_related_documents("a") == []

    async def test_index_document(self, searcher, search_client):
        await searcher.index_document("doc-1", "Title", "Body", "policy", {"author": "ops"})

        [document] = search_client.upload_documents.call_args.kwargs["documents"]
        assert document["embedding"] == [0.1, 0.2]
        assert document["metadata"]["author"] == "ops"
        assert "created_date" in document["metadata"]


class TestSearchKnowledge:

    async def test_keyword_result_shape(self, searcher):
        result = await search_knowledge(query="tariff", search_type="keyword", searcher=searcher)

        assert result["status"] == "success"
        assert result["search_id"].startswith("search_")
        assert result["total_results"] == 2
        assert result["embedding_model"] is None
        first = result["results"][0]
        assert first["document_id"] == "a"
        assert first["document_type"] == "unknown"
        assert first["relationships"][0]["related_document_id"] == "z"

    async def test_metadata_can_be_excluded(self, searcher):
        result = await search_knowledge(
            query="tariff", search_type="keyword", include_metadata=False, searcher=searcher
        )
        assert all(r["metadata"] == {} for r in result["results"])

    async def test_unconfigured_clients_return_error_result(self, clients):
        clients.get_openai_client.return_value = None
        result = await search_knowledge(
            query="outage", search_type="semantic", searcher=KnowledgeSearch(clients=clients)
        )

        assert result["status"] == "error"
        assert result["results"] == []
        assert "Azure OpenAI client not initialized" in result["message"]

    async def test_requires_query(self):
        with pytest.raises(ToolInputError):
            await search_knowledge(query="")

    async def test_rejects_unknown_search_type(self):
        with pytest.raises(ToolInputError):
            await search_knowledge(query="x", search_type="fuzzy")

    async def test_rejects_bad_max_results(self):
        with pytest.raises(ToolInputError):
            await search_knowledge(query="x", max_results=0)


class TestIndexDocument:

    async def test_indexes_document(self, searcher, search_client):
        result = await index_document(
            document_id="doc-1",
            title="Storm Response Plan",
            content="Crews stage at substations before landfall.",
            document_type="procedure",
            metadata={"author": "ops"},
            searcher=searcher,
        )

        assert result["status"] == "success"
        assert result["document_id"] == "doc-1"
        assert result["content_length"] == len("Crews stage at substations before landfall.")
        assert result["indexed_at"]
        [document] = search_client.upload_documents.call_args.kwargs["documents"]
        assert document["title"] == "Storm Response Plan"
        assert document["metadata"]["author"] == "ops"

    async def test_unconfigured_clients_return_error_result(self, clients):
        clients.get_openai_client.return_value = None
        result = await index_document(
            document_id="doc-1",
            title="Plan",
            content="Body",
            document_type="procedure",
            searcher=KnowledgeSearch(clients=clients),
        )

        assert result["status"] == "error"
        assert result["indexed_at"] is None
        assert "Azure OpenAI client not initialized" in result["message"]

    async def test_requires_fields(self):
        with pytest.raises(ToolInputError, match="title, content"):
            await index_document(document_id="doc-1", document_type="policy")

    async def test_rejects_non_object_metadata(self, searcher):
        with pytest.raises(ToolInputError):
            await index_document(
                document_id="doc-1",
                title="Plan",
                content="Body",
                document_type="policy",
                metadata=["author"],
                searcher=searcher,
            )
