"""
State models supporting the research workflow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Set
from uuid import uuid4

from .knowledge_gaps import KnowledgeGapLedger
from .models import ExtractedFact, SearchResult

SOURCE_ID_LENGTH = 4


class QuestionCoverage:
    """Tracks which query-plan questions have been reported answered.

    Indices are only ever added; a question never returns to the unanswered set.
    """

    def __init__(self, plan_length: int) -> None:
        self._plan_length = max(0, plan_length)
        self._answered: Set[int] = set()

    @property
    def plan_length(self) -> int:
        return self._plan_length

    def mark_answered(self, indices: Iterable[int]) -> None:
        for idx in indices:
            if isinstance(idx, int) and 0 <= idx < self._plan_length:
                self._answered.add(idx)

    def answered(self) -> List[int]:
        return sorted(self._answered)

    def unanswered(self) -> List[int]:
        return [idx for idx in range(self._plan_length) if idx not in self._answered]


class FactStore:
    """Append-only collection of extracted fact sets."""

    def __init__(self) -> None:
        self._facts: List[ExtractedFact] = []

    def add(self, facts: Iterable[ExtractedFact]) -> None:
        self._facts.extend(facts)

    def is_empty(self) -> bool:
        return not self._facts

    @property
    def facts(self) -> List[ExtractedFact]:
        return list(self._facts)

    def __len__(self) -> int:
        return len(self._facts)

    def __iter__(self) -> Iterator[ExtractedFact]:
        return iter(list(self._facts))


@dataclass(slots=True)
class ResearchSession:
    """Mutable state of one research run, owned by a single orchestrator call."""

    topic: str
    current_date: str
    max_rounds: int
    query_plan: List[str] = field(default_factory=list)
    queries: List[str] = field(default_factory=list)
    rounds_left: int = 0
    round: int = 1
    all_search_results: List[SearchResult] = field(default_factory=list)
    facts: FactStore = field(default_factory=FactStore)
    coverage: QuestionCoverage = field(default_factory=lambda: QuestionCoverage(0))
    ledger: KnowledgeGapLedger = field(default_factory=KnowledgeGapLedger)
    assigned_ids: Set[str] = field(default_factory=set)
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        self.rounds_left = self.max_rounds

    def start_plan(self, query_plan: List[str], queries: List[str]) -> None:
        self.query_plan = list(query_plan)
        self.queries = list(queries)
        self.coverage = QuestionCoverage(len(self.query_plan))

    def new_source_id(self) -> str:
        """Return a short id not yet handed out in this session."""
        while True:
            candidate = uuid4().hex[:SOURCE_ID_LENGTH]
            if candidate not in self.assigned_ids:
                self.assigned_ids.add(candidate)
                return candidate

    def ingest(self, results: Iterable[SearchResult]) -> List[SearchResult]:
        """Assign fresh ids to a search batch and append it to the history."""
        batch: List[SearchResult] = []
        for result in results:
            stamped = result.model_copy(update={"id": self.new_source_id()})
            self.all_search_results.append(stamped)
            batch.append(stamped)
        return batch

    def source_map(self) -> Dict[str, Dict[str, Optional[str]]]:
        return {
            result.id: {"url": result.url, "title": result.title}
            for result in self.all_search_results
        }
