"""
Tavily web search providers.

Both providers return `SearchResult` records without ids; the orchestrator
assigns ids when a batch is ingested. `TavilySearch` calls the Tavily Python
client directly, `MCPSearch` goes through an MCP JSON-RPC endpoint that
proxies Tavily.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from tavily import TavilyClient

from .mcp_client import MCPToolClient
from .models import SearchResult

logger = logging.getLogger(__name__)


def normalize_results(response: Any) -> List[SearchResult]:
    """Map a Tavily-style payload onto `SearchResult` records.

    ``content`` is Tavily's query-focused snippet and becomes the highlight;
    ``raw_content`` (when requested) becomes the full text.
    """
    entries: List[Any] = []
    if isinstance(response, dict):
        entries = response.get("results") or response.get("data") or []
        if not isinstance(entries, list):
            entries = [entries]
    elif isinstance(response, list):
        entries = response
    elif response is not None:
        entries = [response]

    results: List[SearchResult] = []
    for entry in entries:
        if not isinstance(entry, dict):
            results.append(SearchResult(title=str(entry), text=str(entry)))
            continue
        snippet = entry.get("content") or entry.get("snippet") or entry.get("summary") or ""
        text = entry.get("raw_content") or entry.get("text") or snippet
        score = entry.get("score")
        results.append(
            SearchResult(
                url=entry.get("url") or entry.get("link") or "",
                title=entry.get("title") or entry.get("name") or None,
                text=text or None,
                highlights=[snippet] if snippet else [],
                highlight_scores=[float(score)] if snippet and isinstance(score, (int, float)) else [],
            )
        )
    return results


def _finish(query: str, results: List[SearchResult], include_text: bool, include_highlights: bool) -> List[SearchResult]:
    if not include_text or not include_highlights:
        results = [
            result.model_copy(
                update={
                    "text": result.text if include_text else None,
                    "highlights": result.highlights if include_highlights else [],
                    "highlight_scores": result.highlight_scores if include_highlights else [],
                }
            )
            for result in results
        ]
    logger.info("Search for '%s' returned %d results", query, len(results))
    return results


class TavilySearch:
    """Search through the Tavily Python client."""

    def __init__(self, *, client: TavilyClient, search_kwargs: Optional[Dict[str, Any]] = None) -> None:
        self._client = client
        self._search_kwargs = dict(search_kwargs or {})

    async def search(
        self,
        query: str,
        *,
        include_text: bool = True,
        include_highlights: bool = True,
        num_results: int = 5,
    ) -> List[SearchResult]:
        logger.info("Executing Tavily search for: %s", query)
        payload = {
            **self._search_kwargs,
            "max_results": num_results,
            "include_raw_content": include_text,
        }
        response = await asyncio.to_thread(self._client.search, query=query, **payload)
        return _finish(query, normalize_results(response), include_text, include_highlights)


class MCPSearch:
    """Search through a Tavily tool hosted on an MCP JSON-RPC server."""

    def __init__(self, *, client: MCPToolClient, search_kwargs: Optional[Dict[str, Any]] = None) -> None:
        self._client = client
        self._search_kwargs = dict(search_kwargs or {})

    async def search(
        self,
        query: str,
        *,
        include_text: bool = True,
        include_highlights: bool = True,
        num_results: int = 5,
    ) -> List[SearchResult]:
        logger.info("Executing MCP search for: %s", query)
        payload = {
            **self._search_kwargs,
            "query": query,
            "max_results": num_results,
            "include_raw_content": include_text,
        }
        response = await asyncio.to_thread(lambda: self._client.call_tool(**payload))
        return _finish(query, normalize_results(response), include_text, include_highlights)
