"""
Round-based research orchestration.

A session runs rounds of search, reflection, gap analysis and fact
extraction until the reasoning engine judges the evidence sufficient, the
gap analysis stops the research, or the round budget runs out. The raw
answer is then passed through the footnote rewriter.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from .citations import rewrite_with_source_map, rewrite_with_sources
from .errors import CollaboratorError, InvalidInvocationError, InvariantViolationError
from .knowledge_gaps import KnowledgeGapLedger
from .models import (
    ExtractedFact,
    FollowUpQueryGeneration,
    KnowledgeGapAnalysis,
    Reflection,
    SearchQueryList,
    SearchResult,
)
from .research_events import (
    ANSWER,
    FOLLOWUP_QUERY_GENERATION,
    INPUT,
    KNOWLEDGE_GAP_ANALYSIS,
    MAX_STEPS_REACHED,
    QUERIES_GENERATED,
    REFLECTION_COMPLETE,
    SEARCH_RESULTS,
    SEARCHING,
    SUMMARIZATION,
    EventBus,
)
from .research_state import ResearchSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ROUNDS = 10
DEFAULT_NUM_RESULTS = 5
GENERIC_FOLLOW_UP_TARGET = "Continue research based on unanswered questions"
SWITCHING_STATUSES = ("new", "switching")


class ResearchReasoner(Protocol):
    """Reasoning engine that plans, judges and writes on behalf of the orchestrator."""

    async def generate_query(
        self, topic: str, current_date: str, num_queries: Optional[int] = None
    ) -> SearchQueryList: ...

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
    ) -> Reflection: ...

    async def analyze_knowledge_gaps(
        self,
        ledger: KnowledgeGapLedger,
        reflection: Reflection,
        query_plan: Sequence[str],
        round_number: int,
    ) -> KnowledgeGapAnalysis: ...

    async def generate_follow_up_queries(
        self,
        target_gap: str,
        previous_queries: Sequence[str],
        reflection: Reflection,
        query_plan: Sequence[str],
        round_number: int,
        unanswered: Sequence[int],
    ) -> FollowUpQueryGeneration: ...

    async def extract_relevant_facts(
        self,
        sources: Sequence[SearchResult],
        topic: str,
        query_plan: Sequence[str],
        reflection: Reflection,
        current_date: str,
    ) -> List[ExtractedFact]: ...

    async def create_answer(self, current_date: str, topic: str, sources: Sequence[SearchResult]) -> str: ...

    async def create_answer_from_facts(
        self, current_date: str, topic: str, facts: Sequence[ExtractedFact]
    ) -> str: ...


class SearchProvider(Protocol):
    async def search(
        self,
        query: str,
        *,
        include_text: bool = True,
        include_highlights: bool = True,
        num_results: int = DEFAULT_NUM_RESULTS,
    ) -> List[SearchResult]: ...


class ResearchOrchestrator:
    """Drives one research session per `run` call."""

    def __init__(
        self,
        *,
        reasoner: ResearchReasoner,
        search: SearchProvider,
        events: Optional[EventBus] = None,
        default_max_rounds: int = DEFAULT_MAX_ROUNDS,
        num_results: int = DEFAULT_NUM_RESULTS,
    ) -> None:
        self._reasoner = reasoner
        self._search = search
        self._events = events or EventBus()
        self._default_max_rounds = default_max_rounds
        self._num_results = max(1, num_results)

    @property
    def events(self) -> EventBus:
        return self._events

    async def run(
        self,
        topic: str,
        max_rounds: Optional[int] = None,
        current_date: Optional[str] = None,
    ) -> str:
        """Research ``topic`` and return the cited answer."""
        session = self._start_session(topic, max_rounds, current_date)
        logger.info("Deep research requested: '%s' (max %d rounds)", session.topic, session.max_rounds)
        self._events.publish(INPUT, session.topic)

        plan = await self._call(
            "generate-query",
            self._reasoner.generate_query(session.topic, session.current_date),
        )
        if not plan.queries:
            raise InvariantViolationError("No research queries were generated for this topic.")
        session.start_plan(plan.query_plan, plan.queries)
        logger.info(
            "Initial plan has %d questions; executing %d queries",
            len(session.query_plan),
            len(session.queries),
        )
        self._events.publish(QUERIES_GENERATED, plan)

        while session.rounds_left > 0:
            batch = await self._search_round(session)

            session.rounds_left -= 1
            if session.rounds_left == 0:
                logger.info("Generating answer (due to being out of rounds)...")
                self._events.publish(MAX_STEPS_REACHED)
                return await self._answer(session)

            reflection = await self._reflect(session, batch)
            gap_analysis, new_facts = await self._analyze_and_extract(session, batch, reflection)

            if new_facts is not None:
                session.facts.add(new_facts)
                logger.info("Extracted %d fact sets; %d in total", len(new_facts), len(session.facts))
                self._events.publish(
                    SUMMARIZATION,
                    {"is_extracting": False, "extracted_facts": new_facts},
                    replace=True,
                )

            if gap_analysis is not None:
                session.ledger.replace(gap_analysis.updated_gap_history)
                logger.info(
                    "Gap analysis completed: continue=%s next_gap=%r status=%s",
                    gap_analysis.should_continue_research,
                    gap_analysis.next_gap_to_research,
                    gap_analysis.gap_status,
                )
                self._events.publish(KNOWLEDGE_GAP_ANALYSIS, gap_analysis)

            if reflection.is_sufficient or gap_analysis is None or not gap_analysis.should_continue_research:
                logger.info("Research sufficient or no more gaps to pursue; generating answer...")
                return await self._answer(session)

            await self._prepare_follow_ups(session, reflection, gap_analysis)
            session.round += 1

        raise InvariantViolationError("Research loop ended without producing an answer.")

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------
    def _start_session(
        self, topic: Any, max_rounds: Optional[int], current_date: Optional[str]
    ) -> ResearchSession:
        if not isinstance(topic, str) or not topic.strip():
            raise InvalidInvocationError("Research topic must be a non-empty string.")
        if current_date is None:
            current_date = date.today().isoformat()
        if not isinstance(current_date, str) or not current_date.strip():
            raise InvalidInvocationError("Current date must be a non-empty string.")
        rounds = self._default_max_rounds if max_rounds is None else max_rounds
        if isinstance(rounds, bool) or not isinstance(rounds, int) or rounds < 1:
            raise InvalidInvocationError(f"max_rounds must be a positive integer, got {rounds!r}.")
        return ResearchSession(topic=topic.strip(), current_date=current_date.strip(), max_rounds=rounds)

    async def _search_round(self, session: ResearchSession) -> List[SearchResult]:
        statuses = {query: "pending" for query in session.queries}
        self._events.publish(SEARCHING, dict(statuses))

        async def search_one(query: str) -> List[SearchResult]:
            results = await self._call(
                "search",
                self._search.search(
                    query,
                    include_text=True,
                    include_highlights=True,
                    num_results=self._num_results,
                ),
            )
            statuses[query] = "completed"
            self._events.publish(SEARCHING, dict(statuses), replace=True)
            return results

        per_query = await _gather_or_cancel(*(search_one(query) for query in session.queries))
        batch = session.ingest(result for results in per_query for result in results)
        for result in batch:
            logger.info("Search result %s: %s (%s)", result.id, result.title, result.url)
        if not batch:
            logger.warning("No search results returned for round %d", session.round)
        self._events.publish(
            SEARCH_RESULTS,
            {"search_results": batch, "all_search_results": list(session.all_search_results)},
        )
        return batch

    async def _reflect(self, session: ResearchSession, batch: List[SearchResult]) -> Reflection:
        logger.info(
            "Reflecting on %d search results (answered=%s, unanswered=%s)",
            len(batch),
            session.coverage.answered(),
            session.coverage.unanswered(),
        )
        reflection = await self._call(
            "reflect",
            self._reasoner.reflect(
                batch,
                session.topic,
                session.current_date,
                session.query_plan,
                session.coverage.answered(),
                session.coverage.unanswered(),
                session.ledger.current_description,
                session.round,
                session.max_rounds,
            ),
        )
        session.coverage.mark_answered(reflection.answered_questions)
        logger.info(
            "Reflection: sufficient=%s answered=%s relevant=%d",
            reflection.is_sufficient,
            reflection.answered_questions,
            len(reflection.relevant_summary_ids),
        )
        self._events.publish(
            REFLECTION_COMPLETE,
            {
                "reflection": reflection,
                "answered_questions": session.coverage.answered(),
                "unanswered_questions": session.coverage.unanswered(),
                "relevant_summaries_count": len(reflection.relevant_summary_ids),
            },
        )
        return reflection

    async def _analyze_and_extract(
        self, session: ResearchSession, batch: List[SearchResult], reflection: Reflection
    ) -> Tuple[Optional[KnowledgeGapAnalysis], Optional[List[ExtractedFact]]]:
        async def nothing() -> None:
            return None

        gap_step: Awaitable[Any] = nothing()
        if not reflection.is_sufficient:
            gap_step = self._call(
                "knowledge-gap-analysis",
                self._reasoner.analyze_knowledge_gaps(
                    session.ledger, reflection, session.query_plan, session.round
                ),
            )

        fact_step: Awaitable[Any] = nothing()
        if reflection.relevant_summary_ids:
            wanted = set(reflection.relevant_summary_ids)
            unknown = wanted - session.assigned_ids
            if unknown:
                logger.warning("Reflection referenced unknown source ids: %s", sorted(unknown))
            relevant = [result for result in batch if result.id in wanted]
            logger.info("Extracting facts from %d relevant sources...", len(relevant))
            self._events.publish(
                SUMMARIZATION, {"is_extracting": True, "relevant_sources_count": len(relevant)}
            )
            fact_step = self._call(
                "fact-extraction",
                self._reasoner.extract_relevant_facts(
                    relevant, session.topic, session.query_plan, reflection, session.current_date
                ),
            )

        gap_analysis, facts = await _gather_or_cancel(gap_step, fact_step)
        return gap_analysis, (list(facts) if facts is not None else None)

    async def _prepare_follow_ups(
        self, session: ResearchSession, reflection: Reflection, gap_analysis: KnowledgeGapAnalysis
    ) -> None:
        target = gap_analysis.next_gap_to_research
        follow_ups = await self._call(
            "follow-up-queries",
            self._reasoner.generate_follow_up_queries(
                target or GENERIC_FOLLOW_UP_TARGET,
                session.ledger.previous_queries_for(target),
                reflection,
                session.query_plan,
                session.round,
                session.coverage.unanswered(),
            ),
        )
        if not follow_ups.queries:
            raise InvariantViolationError(
                "Research is insufficient but no follow-up queries were generated."
            )

        if gap_analysis.gap_status in SWITCHING_STATUSES:
            index = session.ledger.select_by_description(target)
            if target is not None and index == KnowledgeGapLedger.NO_GAP:
                raise InvariantViolationError(
                    f"Gap analysis selected '{target}' which is absent from the updated gap history."
                )

        logger.info("Generated %d follow-up queries for round %d", len(follow_ups.queries), session.round + 1)
        self._events.publish(FOLLOWUP_QUERY_GENERATION, follow_ups)
        session.queries = list(follow_ups.queries)

    async def _answer(self, session: ResearchSession) -> str:
        if not session.facts.is_empty():
            logger.info("Answering from %d extracted fact sets", len(session.facts))
            raw_answer = await self._call(
                "answer",
                self._reasoner.create_answer_from_facts(
                    session.current_date, session.topic, session.facts.facts
                ),
            )
            answer = rewrite_with_source_map(raw_answer, session.source_map())
        else:
            logger.info("Answering from %d raw search results", len(session.all_search_results))
            raw_answer = await self._call(
                "answer",
                self._reasoner.create_answer(
                    session.current_date, session.topic, list(session.all_search_results)
                ),
            )
            answer = rewrite_with_sources(raw_answer, session.all_search_results)
        self._events.publish(ANSWER, answer)
        return answer

    @staticmethod
    async def _call(phase: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except Exception as exc:
            logger.exception("Research phase '%s' failed.", phase)
            raise CollaboratorError(phase=phase, message=str(exc)) from exc


async def _gather_or_cancel(*awaitables: Awaitable[Any]) -> List[Any]:
    """Await all branches; on the first failure cancel the rest and re-raise it."""
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        # Collect the cancelled branches so their outcomes are retrieved.
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
