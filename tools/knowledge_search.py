# Copyright (c) Microsoft. All rights reserved.
"""
Knowledge Search Tool

Searches the Azure AI Search document index with Azure OpenAI embeddings
(vector search), full-text keyword search, or a hybrid of both.

Index document shape:
- {"id", "title", "content", "document_type", "embedding": [...],
   "metadata": {...}, "relationships": [{"related_document_id", ...}]}
"""

import asyncio
import logging
import math
import os
import time
from datetime import datetime, timezone

from azure.search.documents.models import VectorizedQuery

from services.azure_clients import AzureClientsManager
from services.observability import azure_dependency_span
from tools.base import ToolInputError, ToolProgress, error_id, new_id, now_iso

SEARCH_TYPES = ("semantic", "keyword", "hybrid")

SELECT_FIELDS = ["id", "title", "content", "document_type", "metadata", "relationships"]
SNIPPET_LENGTH = 200
SEMANTIC_BOOST = 1.2
HYBRID_SEMANTIC_SHARE = 0.7
HYBRID_KEYWORD_SHARE = 0.5
MAX_RELATED_DOCUMENTS = 3


def embedding_deployment() -> str:
    return os.environ.get("AZURE_OPENAI_EMBEDDING_DEPLOYMENT", "text-embedding-ada-002")


def document_type_filter(document_types: list[str] | None) -> str | None:
    """OData filter restricting results to the given document types."""
    if not document_types:
        return None
    values = ",".join(str(t).replace("'", "''") for t in document_types)
    return f"search.in(document_type, '{values}', ',')"


def extract_snippet(content: str | None, max_length: int = SNIPPET_LENGTH) -> str:
    """
    Shorten content for display.

    Prefers cutting after the last full sentence in the first half of the
    window, then at a word boundary, then mid-word.
    """
    if not content:
        return ""
    if len(content) <= max_length:
        return content

    truncated = content[:max_length]
    last_sentence = truncated.rfind(". ")
    if last_sentence > max_length * 0.5:
        return truncated[:last_sentence + 1]

    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.7:
        return truncated[:last_space] + "..."

    return truncated + "..."


def merge_search_results(
    semantic_results: list[dict],
    keyword_results: list[dict],
    max_results: int,
) -> list[dict]:
    """
    Merge hybrid results by document id.

    Semantic scores are boosted; a keyword hit on the same document keeps the
    higher of the two scores.
    """
    merged: dict[str, dict] = {}
    for result in semantic_results:
        merged[result["id"]] = {
            **result,
            "similarity_score": result["similarity_score"] * SEMANTIC_BOOST,
        }

    for result in keyword_results:
        existing = merged.get(result["id"])
        if existing is None:
            merged[result["id"]] = dict(result)
        else:
            existing["similarity_score"] = max(
                existing["similarity_score"], result["similarity_score"]
            )

    ordered = sorted(merged.values(), key=lambda r: r["similarity_score"], reverse=True)
    return ordered[:max_results]


def _as_result(document: dict) -> dict:
    result = {k: v for k, v in document.items() if not k.startswith("@search.")}
    result["similarity_score"] = document.get("@search.score") or 0
    return result


class KnowledgeSearch:
    """
    Vector, keyword and hybrid search over the document index.

    The SDK clients are synchronous; calls run in worker threads so the
    hybrid queries can run concurrently.
    """

    def __init__(self, clients: AzureClientsManager | None = None):
        self.clients = clients or AzureClientsManager.get_instance()

    def _search_client(self):
        client = self.clients.get_search_client()
        if client is None:
            raise RuntimeError("Azure AI Search client not initialized")
        return client

    def _openai_client(self):
        client = self.clients.get_openai_client()
        if client is None:
            raise RuntimeError("Azure OpenAI client not initialized")
        return client

    async def embed(self, text: str) -> list[float]:
        client = self._openai_client()
        deployment = embedding_deployment()
        async with azure_dependency_span("openai", "embeddings.create", deployment):
            response = await asyncio.to_thread(
                client.embeddings.create, model=deployment, input=text
            )
        return response.data[0].embedding

    async def semantic_search(
        self,
        query: str,
        max_results: int,
        similarity_threshold: float,
        document_types: list[str] | None = None,
    ) -> list[dict]:
        logging.info("Generating query embedding using Azure OpenAI")
        vector = await self.embed(query)
        client = self._search_client()

        def run() -> list[dict]:
            results = client.search(
                search_text=None,
                vector_queries=[VectorizedQuery(
                    vector=vector,
                    k_nearest_neighbors=max_results,
                    fields="embedding",
                    exhaustive=True,
                )],
                select=SELECT_FIELDS,
                filter=document_type_filter(document_types),
                top=max_results,
            )
            return [_as_result(doc) for doc in results]

        async with azure_dependency_span("search", "vector_search", self.clients.search_index_name):
            results = await asyncio.to_thread(run)
        return [r for r in results if r["similarity_score"] >= similarity_threshold]

    async def keyword_search(
        self,
        query: str,
        max_results: int,
        document_types: list[str] | None = None,
    ) -> list[dict]:
        logging.info("Performing keyword search")
        client = self._search_client()

        def run() -> list[dict]:
            results = client.search(
                search_text=query,
                search_fields=["title", "content"],
                select=SELECT_FIELDS,
                filter=document_type_filter(document_types),
                query_type="simple",
                top=max_results,
            )
            return [_as_result(doc) for doc in results]

        async with azure_dependency_span("search", "keyword_search", self.clients.search_index_name):
            return await asyncio.to_thread(run)

    async def hybrid_search(
        self,
        query: str,
        max_results: int,
        similarity_threshold: float,
        document_types: list[str] | None = None,
    ) -> list[dict]:
        logging.info("Performing hybrid search (keyword + semantic)")
        semantic_results, keyword_results = await asyncio.gather(
            self.semantic_search(
                query,
                math.ceil(max_results * HYBRID_SEMANTIC_SHARE),
                similarity_threshold,
                document_types,
            ),
            self.keyword_search(
                query,
                math.ceil(max_results * HYBRID_KEYWORD_SHARE),
                document_types,
            ),
        )
        return merge_search_results(semantic_results, keyword_results, max_results)

    async def find_related_documents(
        self, document_id: str, max_related: int = MAX_RELATED_DOCUMENTS
    ) -> list[dict]:
        """Other documents in the index; failures yield an empty list."""
        try:
            client = self._search_client()
            escaped = str(document_id).replace("'", "''")

            def run() -> list[dict]:
                results = client.search(
                    search_text="*",
                    filter=f"id ne '{escaped}'",
                    select=["id", "title", "document_type"],
                    top=max_related,
                )
                return [
                    {
                        "related_document_id": doc["id"],
                        "relationship_type": "content_similarity",
                        "strength": doc.get("@search.score") or 0.5,
                    }
                    for doc in results
                ]

            return await asyncio.to_thread(run)
        except Exception as e:
            logging.warning(f"Could not find related documents for {document_id}: {e}")
            return []

    async def format_results(self, results: list[dict], include_metadata: bool) -> list[dict]:
        logging.info(f"Formatting {len(results)} search results")
        formatted = []
        for result in results:
            relationships = result.get("relationships") or []
            if not relationships:
                relationships = await self.find_related_documents(result["id"])
            formatted.append({
                "document_id": result["id"],
                "title": result.get("title") or "Untitled Document",
                "content_snippet": extract_snippet(result.get("content")),
                "similarity_score": round(result["similarity_score"], 2),
                "document_type": result.get("document_type") or "unknown",
                "metadata": (result.get("metadata") or {}) if include_metadata else {},
                "relationships": relationships,
            })
        return formatted

    async def index_document(
        self,
        document_id: str,
        title: str,
        content: str,
        document_type: str,
        metadata: dict | None = None,
    ) -> None:
        """
        Embed a document's content and upload it to the index.

        Raises:
            RuntimeError: If the Search or OpenAI client is not configured.
        """
        embedding = await self.embed(content)
        timestamp = datetime.now(timezone.utc).isoformat()
        document = {
            "id": document_id,
            "title": title,
            "content": content,
            "document_type": document_type,
            "embedding": embedding,
            "metadata": {
                "created_date": timestamp,
                "modified_date": timestamp,
                **(metadata or {}),
            },
        }

        client = self._search_client()
        async with azure_dependency_span("search", "upload_documents", self.clients.search_index_name):
            await asyncio.to_thread(client.upload_documents, documents=[document])
        logging.info(f"Document {document_id} indexed successfully")


async def search_knowledge(
    query: str | None = None,
    search_type: str = "hybrid",
    max_results: int = 10,
    similarity_threshold: float = 0.7,
    document_types: list[str] | None = None,
    include_metadata: bool = True,
    progress: ToolProgress | None = None,
    searcher: KnowledgeSearch | None = None,
) -> dict:
    """
    Search the knowledge base.

    Args:
        query: Search text.
        search_type: semantic, keyword or hybrid.
        max_results: Maximum number of results.
        similarity_threshold: Minimum vector similarity for semantic hits.
        document_types: Restrict to these document types.
        include_metadata: Include document metadata in results.
        progress: Transparency progress reporter.
        searcher: Search implementation, for tests.

    Returns:
        A knowledge search result dict; missing clients and SDK errors
        produce a result with status "error".

    Raises:
        ToolInputError: If the query is missing or a parameter is invalid.
    """
    if not query:
        raise ToolInputError("query parameter is required")
    search_type = search_type or "hybrid"
    if search_type not in SEARCH_TYPES:
        raise ToolInputError(
            f"Invalid search_type '{search_type}'. Expected one of: {', '.join(SEARCH_TYPES)}"
        )
    if max_results is None:
        max_results = 10
    if not isinstance(max_results, int) or isinstance(max_results, bool) or max_results < 1:
        raise ToolInputError("max_results must be a positive integer")
    if similarity_threshold is None:
        similarity_threshold = 0.7

    progress = progress or ToolProgress()
    searcher = searcher or KnowledgeSearch()
    logging.info(f"Knowledge Search: Starting {search_type} search")
    start = time.monotonic()

    try:
        await progress.step(1, 3, f"Running {search_type} search")
        if search_type == "semantic":
            results = await searcher.semantic_search(
                query, max_results, similarity_threshold, document_types
            )
        elif search_type == "keyword":
            results = await searcher.keyword_search(query, max_results, document_types)
        else:
            results = await searcher.hybrid_search(
                query, max_results, similarity_threshold, document_types
            )
        processing_time_ms = int((time.monotonic() - start) * 1000)

        await progress.step(2, 3, "Formatting results")
        await progress.step(3, 3, "Resolving document relationships")
        formatted = await searcher.format_results(results, include_metadata is not False)

        return {
            "search_id": new_id("search"),
            "status": "success",
            "query": query,
            "search_type": search_type,
            "results": formatted,
            "total_results": len(results),
            "processing_time_ms": processing_time_ms,
            "embedding_model": embedding_deployment() if search_type != "keyword" else None,
            "processed_at": now_iso(),
            "message": (
                f"Knowledge search completed successfully. Found {len(results)} "
                f"relevant documents using {search_type} search."
            ),
        }

    except Exception as e:
        logging.exception(f"Error in knowledge search: {e}")
        return {
            "search_id": error_id(),
            "status": "error",
            "query": query,
            "search_type": search_type,
            "results": [],
            "total_results": 0,
            "processing_time_ms": 0,
            "processed_at": now_iso(),
            "message": f"Knowledge search failed: {e}",
        }


async def index_document(
    document_id: str | None = None,
    title: str | None = None,
    content: str | None = None,
    document_type: str | None = None,
    metadata: dict | None = None,
    progress: ToolProgress | None = None,
    searcher: KnowledgeSearch | None = None,
) -> dict:
    """
    Add a document to the knowledge base.

    Returns:
        An indexing result dict; missing clients and SDK errors produce a
        result with status "error".

    Raises:
        ToolInputError: If a required field is missing or metadata is not an object.
    """
    fields = {
        "document_id": document_id,
        "title": title,
        "content": content,
        "document_type": document_type,
    }
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise ToolInputError(f"Missing required parameter(s): {', '.join(missing)}")
    if metadata is not None and not isinstance(metadata, dict):
        raise ToolInputError("metadata must be an object")

    progress = progress or ToolProgress()
    searcher = searcher or KnowledgeSearch()
    logging.info(f"Knowledge Search: Indexing document {document_id}")

    try:
        await progress.step(1, 2, "Generating document embedding")
        await progress.step(2, 2, "Uploading document to the search index")
        await searcher.index_document(document_id, title, content, document_type, metadata)

        return {
            "document_id": document_id,
            "status": "success",
            "document_type": document_type,
            "content_length": len(content),
            "embedding_model": embedding_deployment(),
            "indexed_at": now_iso(),
            "message": f"Document {document_id} indexed successfully.",
        }

    except Exception as e:
        logging.exception(f"Error indexing document {document_id}: {e}")
        return {
            "document_id": document_id,
            "status": "error",
            "document_type": document_type,
            "indexed_at": None,
            "message": f"Document indexing failed: {e}",
        }
