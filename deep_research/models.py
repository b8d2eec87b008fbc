"""
Pydantic records exchanged between the orchestrator and its collaborators.

The reasoning engine answers in JSON; every structured response is validated
against one of these models before the orchestrator reads it.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

GapLifecycle = Literal["new", "active", "resolved", "abandoned"]
GapStatus = Literal["new", "continuing", "switching", "none"]


class SearchQueryList(BaseModel):
    queries: List[str] = Field(default_factory=list)
    rationale: str = ""
    query_plan: List[str] = Field(default_factory=list)


class SearchResult(BaseModel):
    id: str = ""
    url: str = ""
    title: Optional[str] = None
    text: Optional[str] = None
    highlights: List[str] = Field(default_factory=list)
    highlight_scores: List[float] = Field(default_factory=list)


class Reflection(BaseModel):
    is_sufficient: bool
    answered_questions: List[int] = Field(default_factory=list)
    unanswered_questions: List[int] = Field(default_factory=list)
    relevant_summary_ids: List[str] = Field(default_factory=list)
    knowledge_gap: Optional[str] = None
    new_gaps_identified: Optional[List[str]] = None
    current_gap_closed: Optional[bool] = None
    follow_up_queries: Optional[List[str]] = None


class KnowledgeGap(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    status: GapLifecycle = "new"
    attempt_count: int = 0
    previous_queries: List[str] = Field(default_factory=list)
    related_question_ids: List[int] = Field(default_factory=list)


class KnowledgeGapAnalysis(BaseModel):
    updated_gap_history: List[KnowledgeGap] = Field(default_factory=list)
    should_continue_research: bool
    next_gap_to_research: Optional[str] = None
    gap_status: GapStatus = "none"
    reasoning: str = ""


class ExtractedFact(BaseModel):
    source_id: str
    relevant_facts: List[str] = Field(default_factory=list)


class ExtractedFactList(BaseModel):
    """Envelope used when the reasoning engine returns several fact sets at once."""

    facts: List[ExtractedFact] = Field(default_factory=list)


class FollowUpQueryGeneration(BaseModel):
    queries: List[str] = Field(default_factory=list)
    query_strategy: str = ""
    rationale: str = ""
