"""
Indexed-content retrieval over a persistent ChromaDB catalog of shows.

The collection is populated outside this project; here it is read-only and
treated as a service that returns ranked text snippets.
"""
import asyncio
import json
import threading
from typing import Any, Dict, List

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from showpicks.core.config import Settings, settings as default_settings
from showpicks.core.telemetry import get_telemetry

telemetry = get_telemetry('retrieval.search')

RETRIEVER_TOOL_NAME = "content_retriever"

_chroma_clients: Dict[str, Any] = {}
_chroma_lock = threading.Lock()


def get_chroma_collection(settings: Settings = default_settings):
    """One client per database path; chroma clients are safe to share."""
    import chromadb
    with _chroma_lock:
        client = _chroma_clients.get(settings.CHROMA_DB_PATH)
        if client is None:
            client = chromadb.PersistentClient(path=settings.CHROMA_DB_PATH)
            _chroma_clients[settings.CHROMA_DB_PATH] = client
    return client.get_or_create_collection(
        name=settings.CHROMA_COLLECTION_NAME,
        metadata={"hnsw:space": "cosine"},
    )


def _parse_results(search_results: dict) -> List[Dict[str, Any]]:
    """Flatten a chroma query response (one query) into ranked snippets."""
    snippets = []
    if not search_results or not search_results.get("ids") or not search_results["ids"][0]:
        return snippets

    documents = (search_results.get("documents") or [[]])[0]
    metadatas = (search_results.get("metadatas") or [[]])[0]
    distances = (search_results.get("distances") or [[]])[0]
    for idx in range(len(search_results["ids"][0])):
        metadata = (metadatas[idx] if idx < len(metadatas) else None) or {}
        snippets.append({
            "title": metadata.get("title", ""),
            "content": documents[idx] if idx < len(documents) else "",
            "distance": distances[idx] if idx < len(distances) else None,
        })
    return snippets


def query_catalog(query: str, collection, top_k: int) -> List[Dict[str, Any]]:
    results = collection.query(
        query_texts=[query],
        n_results=top_k,
        include=["documents", "metadatas", "distances"],
    )
    snippets = _parse_results(results)
    telemetry.log_info("Catalog retrieval completed", query=query[:100], results=len(snippets))
    return snippets


class RetrieverArgs(BaseModel):
    query: str = Field(
        ...,
        description="What to look up in the indexed show catalog, e.g. 'slow-burn political dramas'",
    )


def make_retriever_tool(settings: Settings = default_settings, collection=None) -> BaseTool:
    """Build the content_retriever tool. `collection` defaults to the configured chroma collection."""

    def _lookup(query: str) -> List[Dict[str, Any]]:
        # opening the chroma client touches disk, so it runs off the event loop too
        target = collection if collection is not None else get_chroma_collection(settings)
        return query_catalog(query, target, settings.RETRIEVER_TOP_K)

    @tool(RETRIEVER_TOOL_NAME, args_schema=RetrieverArgs)
    async def content_retriever(query: str) -> str:
        """Look up TV shows in the curated catalog index, returning titles and descriptions."""
        snippets = await asyncio.to_thread(_lookup, query)
        return json.dumps(snippets, ensure_ascii=False)

    return content_retriever
