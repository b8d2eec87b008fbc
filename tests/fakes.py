"""Scripted collaborators for orchestrator tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from deep_research.models import (
    ExtractedFact,
    FollowUpQueryGeneration,
    KnowledgeGapAnalysis,
    Reflection,
    SearchQueryList,
    SearchResult,
)

ReflectionScript = Union[Reflection, Callable[[List[SearchResult]], Reflection]]


class FakeReasoner:
    """Returns scripted outputs in order and records every call."""

    def __init__(
        self,
        *,
        plan: Optional[SearchQueryList] = None,
        reflections: Sequence[ReflectionScript] = (),
        analyses: Sequence[KnowledgeGapAnalysis] = (),
        follow_ups: Sequence[FollowUpQueryGeneration] = (),
        facts: Optional[Callable[[List[SearchResult]], List[ExtractedFact]]] = None,
        failures: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self.plan = plan or SearchQueryList(
            queries=["q1", "q2"],
            rationale="cover the basics",
            query_plan=["What is it?", "Why does it matter?", "What comes next?"],
        )
        self.reflections = list(reflections)
        self.analyses = list(analyses)
        self.follow_ups = list(follow_ups)
        self.facts = facts or (lambda sources: [ExtractedFact(source_id=s.id, relevant_facts=[f"fact from {s.title}"]) for s in sources])
        self.failures = failures or {}
        self.calls: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls[name].append(kwargs)
        if name in self.failures:
            raise self.failures[name]

    async def generate_query(self, topic, current_date, num_queries=None):
        self._record("generate_query", topic=topic, current_date=current_date)
        return self.plan

    async def reflect(self, batch, topic, current_date, query_plan, answered, unanswered, current_gap, round_number, max_rounds):
        self._record(
            "reflect",
            batch=list(batch),
            answered=list(answered),
            unanswered=list(unanswered),
            current_gap=current_gap,
            round_number=round_number,
            max_rounds=max_rounds,
        )
        script = self.reflections.pop(0)
        return script(list(batch)) if callable(script) else script

    async def analyze_knowledge_gaps(self, ledger, reflection, query_plan, round_number):
        self._record("analyze_knowledge_gaps", ledger=ledger.to_dict(), round_number=round_number)
        return self.analyses.pop(0)

    async def generate_follow_up_queries(self, target_gap, previous_queries, reflection, query_plan, round_number, unanswered):
        self._record(
            "generate_follow_up_queries",
            target_gap=target_gap,
            previous_queries=list(previous_queries),
            round_number=round_number,
            unanswered=list(unanswered),
        )
        return self.follow_ups.pop(0)

    async def extract_relevant_facts(self, sources, topic, query_plan, reflection, current_date):
        self._record("extract_relevant_facts", sources=list(sources))
        return self.facts(list(sources))

    async def create_answer(self, current_date, topic, sources):
        self._record("create_answer", sources=list(sources))
        cited = ",".join(source.id for source in sources[:2])
        return f"Answer about {topic} [^{cited}]"

    async def create_answer_from_facts(self, current_date, topic, facts):
        self._record("create_answer_from_facts", facts=list(facts))
        return f"Fact answer about {topic} [^{facts[0].source_id}] and [^missing]"


class FakeSearch:
    """Returns ``per_query`` results for each query and records the queries."""

    def __init__(self, *, per_query: int = 2, fail_on: Optional[str] = None, barrier: Optional[int] = None) -> None:
        self.per_query = per_query
        self.fail_on = fail_on
        self.queries: List[str] = []
        self.kwargs: List[Dict[str, Any]] = []
        self._barrier = barrier
        self._started = 0
        self._all_started = asyncio.Event() if barrier else None

    async def search(self, query, *, include_text=True, include_highlights=True, num_results=5):
        self.queries.append(query)
        self.kwargs.append(
            {"include_text": include_text, "include_highlights": include_highlights, "num_results": num_results}
        )
        if self._all_started is not None:
            self._started += 1
            if self._started >= self._barrier:
                self._all_started.set()
            await self._all_started.wait()
        if query == self.fail_on:
            raise ConnectionError(f"search backend down for {query}")
        return [
            SearchResult(
                url=f"https://example.com/{query}/{idx}",
                title=f"{query} result {idx}",
                text=f"Body text for {query} #{idx}",
                highlights=[f"highlight {idx}"],
                highlight_scores=[0.5],
            )
            for idx in range(self.per_query)
        ]


def reflection(**overrides: Any) -> Reflection:
    values: Dict[str, Any] = {"is_sufficient": False}
    values.update(overrides)
    return Reflection(**values)


def relevant_first(is_sufficient: bool, answered: Sequence[int] = ()) -> Callable[[List[SearchResult]], Reflection]:
    """Reflection script marking the first result of the batch as relevant."""

    def script(batch: List[SearchResult]) -> Reflection:
        return Reflection(
            is_sufficient=is_sufficient,
            answered_questions=list(answered),
            relevant_summary_ids=[batch[0].id],
        )

    return script
