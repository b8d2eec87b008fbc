"""
Reasoning engine backed by Microsoft AutoGen assistants.

Every operation runs a fresh single-turn `AssistantAgent`, so concurrent
calls (gap analysis alongside fact extraction) never share chat history.
Structured answers are parsed into the pydantic models of `models`.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TypeVar

from autogen_agentchat.agents import AssistantAgent
from autogen_agentchat.messages import BaseChatMessage
from autogen_core.models import ChatCompletionClient, ModelInfo
from autogen_ext.models.openai import OpenAIChatCompletionClient
from pydantic import BaseModel, ValidationError

from .errors import ReasoningOutputError
from .knowledge_gaps import KnowledgeGapLedger
from .models import (
    ExtractedFact,
    ExtractedFactList,
    FollowUpQueryGeneration,
    KnowledgeGapAnalysis,
    Reflection,
    SearchQueryList,
    SearchResult,
)
from .research_prompts import (
    FACT_EXTRACTION_PROMPT,
    FOLLOW_UP_PROMPT,
    GAP_ANALYSIS_PROMPT,
    QUERY_GENERATION_PROMPT,
    REFLECTION_PROMPT,
    answer_prompt,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

MAX_SOURCE_TEXT_CHARS = 4000


class AutoGenReasoner:
    """Implements the research reasoning contracts with an OpenAI-compatible chat model."""

    def __init__(self, *, model_client: ChatCompletionClient, num_queries: int = 3) -> None:
        self._model_client = model_client
        self._num_queries = max(1, num_queries)

    async def generate_query(
        self, topic: str, current_date: str, num_queries: Optional[int] = None
    ) -> SearchQueryList:
        system_message = QUERY_GENERATION_PROMPT.format(
            current_date=current_date, num_queries=num_queries or self._num_queries
        )
        task = f"Research topic:\n{topic}"
        return await self._ask_json("query_planner", system_message, task, SearchQueryList)

    async def reflect(
        self,
        batch: Sequence[SearchResult],
        topic: str,
        current_date: str,
        query_plan: Sequence[str],
        answered: Sequence[int],
        unanswered: Sequence[int],
        current_gap: Optional[str],
        round_number: int,
        max_rounds: int,
    ) -> Reflection:
        system_message = REFLECTION_PROMPT.format(
            current_date=current_date, round_number=round_number, max_rounds=max_rounds
        )
        task = "\n\n".join(
            [
                f"Research topic:\n{topic}",
                "Query plan:\n" + format_query_plan(query_plan),
                f"Already answered question indices: {list(answered)}",
                f"Still unanswered question indices: {list(unanswered)}",
                f"Knowledge gap currently pursued: {current_gap or 'none'}",
                "Search results:\n" + format_sources(batch),
            ]
        )
        return await self._ask_json("research_reflector", system_message, task, Reflection)

    async def analyze_knowledge_gaps(
        self,
        ledger: KnowledgeGapLedger,
        reflection: Reflection,
        query_plan: Sequence[str],
        round_number: int,
    ) -> KnowledgeGapAnalysis:
        task = "\n\n".join(
            [
                f"Round: {round_number}",
                "Query plan:\n" + format_query_plan(query_plan),
                "Current knowledge gap ledger:\n" + _dumps(ledger.to_dict()),
                "Latest reflection:\n" + _dumps(reflection.model_dump()),
            ]
        )
        return await self._ask_json("gap_analyst", GAP_ANALYSIS_PROMPT, task, KnowledgeGapAnalysis)

    async def generate_follow_up_queries(
        self,
        target_gap: str,
        previous_queries: Sequence[str],
        reflection: Reflection,
        query_plan: Sequence[str],
        round_number: int,
        unanswered: Sequence[int],
    ) -> FollowUpQueryGeneration:
        tried = "\n".join(f"- {query}" for query in previous_queries) or "- none"
        task = "\n\n".join(
            [
                f"Knowledge gap to close:\n{target_gap}",
                f"Queries already tried for this gap:\n{tried}",
                f"Round: {round_number}",
                "Query plan:\n" + format_query_plan(query_plan),
                f"Unanswered question indices: {list(unanswered)}",
                "Latest reflection:\n" + _dumps(reflection.model_dump()),
            ]
        )
        return await self._ask_json("follow_up_planner", FOLLOW_UP_PROMPT, task, FollowUpQueryGeneration)

    async def extract_relevant_facts(
        self,
        sources: Sequence[SearchResult],
        topic: str,
        query_plan: Sequence[str],
        reflection: Reflection,
        current_date: str,
    ) -> List[ExtractedFact]:
        system_message = FACT_EXTRACTION_PROMPT.format(current_date=current_date)
        task = "\n\n".join(
            [
                f"Research topic:\n{topic}",
                "Query plan:\n" + format_query_plan(query_plan),
                f"Knowledge gap noted by the reviewer: {reflection.knowledge_gap or 'none'}",
                "Sources:\n" + format_sources(sources),
            ]
        )
        result = await self._ask_json("fact_extractor", system_message, task, ExtractedFactList)
        return result.facts

    async def create_answer(self, current_date: str, topic: str, sources: Sequence[SearchResult]) -> str:
        task = f"Research topic:\n{topic}\n\nSources:\n{format_sources(sources)}"
        return await self._ask("research_reporter", answer_prompt(current_date=current_date), task)

    async def create_answer_from_facts(
        self, current_date: str, topic: str, facts: Sequence[ExtractedFact]
    ) -> str:
        task = f"Research topic:\n{topic}\n\nExtracted facts:\n{format_facts(facts)}"
        return await self._ask("research_reporter", answer_prompt(current_date=current_date), task)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _ask(self, name: str, system_message: str, task: str) -> str:
        agent = AssistantAgent(
            name=name,
            model_client=self._model_client,
            system_message=system_message,
            description=f"Single-turn {name.replace('_', ' ')} for the research loop.",
            tools=[],
            max_tool_iterations=1,
        )
        result = await agent.run(task=task)
        text = extract_text(result.messages, preferred_source=name)
        logger.info("%s output: %s", name, text)
        return text

    async def _ask_json(self, name: str, system_message: str, task: str, model: Type[M]) -> M:
        text = await self._ask(name, system_message, task)
        return parse_model(text, model, operation=name)


def parse_model(text: str, model: Type[M], *, operation: str) -> M:
    """Validate the JSON payload embedded in ``text`` against ``model``."""
    payload = _extract_json(text)
    if payload.startswith("[") and model is ExtractedFactList:
        payload = '{"facts": ' + payload + "}"
    try:
        return model.model_validate_json(payload)
    except ValidationError as exc:
        logger.debug("Failed to parse %s output as %s", operation, model.__name__)
        raise ReasoningOutputError(operation=operation, raw_output=text, reason=str(exc)) from exc


def _extract_json(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
        cleaned = cleaned.strip()
    starts = [idx for idx in (cleaned.find("{"), cleaned.find("[")) if idx != -1]
    if not starts:
        return cleaned
    start = min(starts)
    end = cleaned.rfind("}" if cleaned[start] == "{" else "]")
    if end < start:
        return cleaned[start:]
    return cleaned[start : end + 1]


def format_query_plan(query_plan: Sequence[str]) -> str:
    return "\n".join(f"{idx}. {question}" for idx, question in enumerate(query_plan))


def format_sources(sources: Iterable[SearchResult]) -> str:
    chunks: List[str] = []
    for source in sources:
        entry: Dict[str, Any] = {
            "id": source.id,
            "title": source.title,
            "url": source.url,
            "highlights": source.highlights,
            "text": (source.text or "")[:MAX_SOURCE_TEXT_CHARS],
        }
        chunks.append(_dumps(entry))
    return "\n".join(chunks) or "(no sources)"


def format_facts(facts: Iterable[ExtractedFact]) -> str:
    lines: List[str] = []
    for fact_set in facts:
        for fact in fact_set.relevant_facts:
            lines.append(f"- [source {fact_set.source_id}] {fact}")
    return "\n".join(lines) or "(no facts)"


def _dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False)


def _last_chat_message(messages: Iterable[Any], preferred_source: Optional[str] = None) -> BaseChatMessage:
    candidate: Optional[BaseChatMessage] = None
    for message in reversed(list(messages)):
        if not isinstance(message, BaseChatMessage):
            continue
        if preferred_source and getattr(message, "source", None) == preferred_source:
            return message
        if candidate is None:
            candidate = message
    if candidate:
        return candidate
    raise RuntimeError("Assistant did not produce a chat response.")


def extract_text(messages: Iterable[Any], preferred_source: Optional[str] = None) -> str:
    final_message = _last_chat_message(messages, preferred_source=preferred_source)
    to_text = getattr(final_message, "to_text", None)
    if callable(to_text):
        return to_text().strip()
    return str(final_message).strip()


def build_openai_client(
    *,
    openai_model_name: str,
    temperature: Optional[float] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> ChatCompletionClient:
    model_info: ModelInfo = {
        "vision": False,
        "function_calling": False,
        "json_output": True,
        "structured_output": False,
        "family": "openai",
    }
    client_kwargs: Dict[str, Any] = {
        "model": openai_model_name,
        "api_key": api_key or os.environ["OPENAI_API_KEY"],
        "base_url": base_url or os.getenv("OPENAI_API_BASE_URL", "https://api.openai.com/v1"),
        "include_name_in_message": False,
        "model_info": model_info,
    }
    if temperature is not None:
        client_kwargs["temperature"] = temperature
    return OpenAIChatCompletionClient(**client_kwargs)
