"""
Web search capability exposed to the agent as the `web_search` tool.

Providers:
- duckduckgo: free, no key (duckduckgo_search)
- tavily: Tavily REST API, needs TAVILY_API_KEY
"""
import asyncio
import json
from typing import Any, Dict, List

import requests
from duckduckgo_search import DDGS
from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from showpicks.core.config import Settings, settings as default_settings
from showpicks.core.telemetry import get_telemetry

telemetry = get_telemetry('tools.search')

WEB_SEARCH_TOOL_NAME = "web_search"
TAVILY_URL = "https://api.tavily.com/search"


class WebSearchArgs(BaseModel):
    query: str = Field(
        ...,
        description=(
            "A focused web search query for TV shows matching the user's preferences. "
            "Example: 'best cerebral sci-fi TV series with complex plots'"
        ),
    )


def _duckduckgo_search(query: str, max_results: int) -> List[Dict[str, str]]:
    results = DDGS().text(query, max_results=max_results) or []
    return [
        {"title": r.get("title", ""), "url": r.get("href", ""), "content": r.get("body", "")}
        for r in results
    ]


# ---- requests session with retry on HTTP 5xx/429 ----
_session = requests.Session()
_retry = Retry(total=2, backoff_factor=0.5,
               status_forcelist=(429, 500, 502, 503, 504),
               allowed_methods=frozenset(["POST"]))
_session.mount("https://", HTTPAdapter(max_retries=_retry))


def _tavily_search(query: str, max_results: int, api_key: str, timeout: float) -> List[Dict[str, str]]:
    if not api_key:
        raise RuntimeError("Tavily API key not configured")
    payload = {
        "query": query,
        "max_results": max_results,
        "search_depth": "basic",
        "include_answer": False,
        "include_raw_content": False,
    }
    headers = {"Authorization": f"Bearer {api_key}", "content-type": "application/json"}
    resp = _session.post(TAVILY_URL, headers=headers, json=payload, timeout=timeout)
    resp.raise_for_status()
    return [
        {"title": r.get("title", ""), "url": r.get("url", ""), "content": r.get("content", "")}
        for r in resp.json().get("results", [])
    ]


def search_web(query: str, settings: Settings = default_settings) -> List[Dict[str, Any]]:
    """
    Runs one search against the configured provider.
    Errors propagate; the tool invoker decides how they surface.
    """
    telemetry.log_info("Web search", provider=settings.SEARCH_PROVIDER, query=query[:100])
    if settings.SEARCH_PROVIDER == "tavily":
        results = _tavily_search(query, settings.SEARCH_MAX_RESULTS, settings.TAVILY_API_KEY, settings.SEARCH_TIMEOUT_S)
    elif settings.SEARCH_PROVIDER == "duckduckgo":
        results = _duckduckgo_search(query, settings.SEARCH_MAX_RESULTS)
    else:
        raise ValueError(f"unsupported SEARCH_PROVIDER: {settings.SEARCH_PROVIDER}")
    telemetry.track_metric("web_search_results", len(results))
    return results


def make_web_search_tool(settings: Settings = default_settings) -> BaseTool:
    """Build the web_search tool bound to the configured provider."""

    @tool(WEB_SEARCH_TOOL_NAME, args_schema=WebSearchArgs)
    async def web_search(query: str) -> str:
        """Search the web for TV shows, returning titles, links and short descriptions."""
        results = await asyncio.to_thread(search_web, query, settings)
        return json.dumps(results, ensure_ascii=False)

    return web_search
