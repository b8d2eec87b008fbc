"""
Deep Research Agent (Tavily + OpenAI)

- Reasoning runs on Microsoft AutoGen assistants (agentchat/core/ext stack)
  over any OpenAI-compatible chat model.
- Web search goes to Tavily, either directly or through an MCP JSON-RPC proxy.
- `ResearchOrchestrator` drives the rounds; this module wires it together
  from the environment and offers a synchronous entry point.

Required env:
  - OPENAI_API_KEY
  - TAVILY_API_KEY, or TAVILY_MCP_BASE_URL (+ optional TAVILY_MCP_API_KEY)
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from tavily import TavilyClient

from .mcp_client import MCPServerConfig, MCPToolClient
from .orchestrator import DEFAULT_MAX_ROUNDS, DEFAULT_NUM_RESULTS, ResearchOrchestrator, ResearchReasoner, SearchProvider
from .reasoning import AutoGenReasoner, build_openai_client
from .research_events import (
    QUERIES_GENERATED,
    SEARCH_RESULTS,
    EventBus,
    InteractionLogWriter,
    ResearchEventLog,
    Subscriber,
)
from .search import MCPSearch, TavilySearch

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise EnvironmentError(f"{name} must be an integer, got {raw!r}.") from None


class ResearchAgent:
    """Runs round-based web research on a topic and returns a footnoted answer."""

    def __init__(
        self,
        *,
        temperature: Optional[float] = None,
        openai_model_name: Optional[str] = None,
        verbose: bool = False,
        max_rounds: Optional[int] = None,
        num_results: Optional[int] = None,
        num_queries: int = 3,
        tavily_kwargs: Optional[dict] = None,
        tavily_mcp_base_url: Optional[str] = None,
        tavily_mcp_api_key: Optional[str] = None,
        tavily_mcp_tool_name: str = "tavily.search",
        observers: Optional[Sequence[Subscriber]] = None,
        reasoner: Optional[ResearchReasoner] = None,
        search: Optional[SearchProvider] = None,
    ) -> None:
        self._verbose = verbose
        self._max_rounds = max_rounds or _env_int("RESEARCH_MAX_ROUNDS", DEFAULT_MAX_ROUNDS)
        self._num_results = num_results or _env_int("RESEARCH_NUM_RESULTS", DEFAULT_NUM_RESULTS)
        self._observers: List[Subscriber] = list(observers or [])

        if reasoner is None:
            if not os.getenv("OPENAI_API_KEY"):
                raise EnvironmentError("OPENAI_API_KEY is not set.")
            model_name = openai_model_name or os.getenv("OPENAI_MODEL", "gpt-5-nano")
            logger.info("Initializing reasoning engine with OpenAI model '%s'", model_name)
            reasoner = AutoGenReasoner(
                model_client=build_openai_client(openai_model_name=model_name, temperature=temperature),
                num_queries=num_queries,
            )
        self._reasoner = reasoner

        if search is None:
            search = self._build_search(
                tavily_kwargs=tavily_kwargs,
                tavily_mcp_base_url=tavily_mcp_base_url or os.getenv("TAVILY_MCP_BASE_URL"),
                tavily_mcp_api_key=tavily_mcp_api_key or os.getenv("TAVILY_MCP_API_KEY"),
                tavily_mcp_tool_name=tavily_mcp_tool_name,
            )
        self._search = search

        self._log_writer = InteractionLogWriter(Path("logs"))
        self._last_events = ResearchEventLog()

    def run(self, topic: str, max_rounds: Optional[int] = None) -> str:
        """Back-compat: delegate to .invoke()."""
        return self.invoke(topic, max_rounds=max_rounds)

    def invoke(self, topic: str, max_rounds: Optional[int] = None) -> str:
        """Research ``topic`` synchronously. Use `ainvoke` inside a running event loop."""
        return asyncio.run(self.ainvoke(topic, max_rounds=max_rounds))

    async def ainvoke(self, topic: str, max_rounds: Optional[int] = None) -> str:
        event_log = ResearchEventLog()
        bus = EventBus([event_log, *self._observers])
        if self._verbose:
            self._log_writer.start(topic)
            bus.subscribe(self._log_writer)
        self._last_events = event_log

        orchestrator = ResearchOrchestrator(
            reasoner=self._reasoner,
            search=self._search,
            events=bus,
            default_max_rounds=self._max_rounds,
            num_results=self._num_results,
        )
        answer: Optional[str] = None
        try:
            answer = await orchestrator.run(topic, max_rounds=max_rounds)
            logger.info("Research topic processed successfully.")
            self._persist_response(topic=topic, response=answer)
            self._log_writer.finalize(final_response=answer)
            return answer
        except Exception as exc:
            logger.exception("Error while running the research session.")
            self._log_writer.finalize(final_response=answer, error=str(exc))
            raise

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _build_search(
        self,
        *,
        tavily_kwargs: Optional[dict],
        tavily_mcp_base_url: Optional[str],
        tavily_mcp_api_key: Optional[str],
        tavily_mcp_tool_name: str,
    ) -> SearchProvider:
        if tavily_mcp_base_url:
            logger.info("Using Tavily search via MCP endpoint %s", tavily_mcp_base_url)
            client = MCPToolClient(
                config=MCPServerConfig(
                    base_url=tavily_mcp_base_url,
                    api_key=tavily_mcp_api_key or os.getenv("TAVILY_API_KEY"),
                    tool_name=tavily_mcp_tool_name,
                )
            )
            return MCPSearch(client=client, search_kwargs=tavily_kwargs)
        api_key = os.getenv("TAVILY_API_KEY")
        if not api_key:
            raise EnvironmentError("Set TAVILY_API_KEY or TAVILY_MCP_BASE_URL to enable web search.")
        return TavilySearch(client=TavilyClient(api_key=api_key), search_kwargs=tavily_kwargs)

    def _persist_response(self, *, topic: str, response: str) -> None:
        if not self._verbose:
            return
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        safe_topic = re.sub(r"[^a-zA-Z0-9-_ ]", "", topic).strip()[:50]
        filename = f"{timestamp}_{safe_topic or 'topic'}.md"
        output_dir = Path("responses")
        output_dir.mkdir(parents=True, exist_ok=True)
        file_path = output_dir / filename
        content = f"# {topic}\n\n{response}\n"
        file_path.write_text(content, encoding="utf-8")
        logger.info("Saved response to %s", file_path)

    @property
    def last_events(self) -> ResearchEventLog:
        """Return the step log of the most recent session."""

        return self._last_events

    @property
    def last_query_plan(self) -> List[str]:
        """Return the query plan generated for the most recent session."""

        event = self._last_events.latest(QUERIES_GENERATED)
        return list(event.data.query_plan) if event else []

    @property
    def last_sources(self) -> List[Dict[str, Any]]:
        """Return every source gathered during the most recent session."""

        event = self._last_events.latest(SEARCH_RESULTS)
        if not event:
            return []
        return [
            {"id": result.id, "title": result.title, "url": result.url}
            for result in event.data["all_search_results"]
        ]
