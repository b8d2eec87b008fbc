"""Tests for the AutoGen reasoning engine."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest
from autogen_agentchat.messages import TextMessage

from deep_research.errors import ReasoningOutputError
from deep_research.knowledge_gaps import KnowledgeGapLedger
from deep_research.models import (
    ExtractedFact,
    ExtractedFactList,
    KnowledgeGapAnalysis,
    Reflection,
    SearchQueryList,
    SearchResult,
)
from deep_research.reasoning import AutoGenReasoner, format_facts, format_query_plan, parse_model


def agent_replying(text, source):
    agent = Mock()
    agent.run = AsyncMock(
        return_value=SimpleNamespace(
            messages=[
                TextMessage(content="the task", source="user"),
                TextMessage(content=text, source=source),
            ]
        )
    )
    return agent


class TestParseModel:
    def test_plain_json(self):
        plan = parse_model('{"queries": ["a"], "rationale": "r", "query_plan": ["q?"]}', SearchQueryList, operation="t")

        assert plan.queries == ["a"]
        assert plan.query_plan == ["q?"]

    def test_code_fenced_json_with_prose(self):
        text = '```json\n{"is_sufficient": true, "answered_questions": [0]}\n```'

        reflection = parse_model(text, Reflection, operation="t")

        assert reflection.is_sufficient is True
        assert reflection.answered_questions == [0]

    def test_json_embedded_in_prose(self):
        text = 'Here you go: {"should_continue_research": false, "gap_status": "none"} Thanks.'

        analysis = parse_model(text, KnowledgeGapAnalysis, operation="t")

        assert analysis.should_continue_research is False

    def test_bare_fact_array_is_wrapped(self):
        text = '[{"source_id": "ab12", "relevant_facts": ["x"]}]'

        result = parse_model(text, ExtractedFactList, operation="t")

        assert result.facts == [ExtractedFact(source_id="ab12", relevant_facts=["x"])]

    def test_invalid_output_raises(self):
        with pytest.raises(ReasoningOutputError) as excinfo:
            parse_model("I cannot help with that.", Reflection, operation="research_reflector")

        assert excinfo.value.operation == "research_reflector"
        assert excinfo.value.raw_output == "I cannot help with that."

    def test_unknown_gap_status_is_rejected(self):
        with pytest.raises(ReasoningOutputError):
            parse_model('{"should_continue_research": true, "gap_status": "pondering"}', KnowledgeGapAnalysis, operation="t")


class TestFormatting:
    def test_query_plan_is_zero_indexed(self):
        assert format_query_plan(["a?", "b?"]) == "0. a?\n1. b?"

    def test_facts_carry_source_ids(self):
        facts = [ExtractedFact(source_id="ab12", relevant_facts=["one", "two"])]

        assert format_facts(facts) == "- [source ab12] one\n- [source ab12] two"


class TestAutoGenReasoner:
    @pytest.mark.asyncio
    async def test_generate_query_parses_plan(self):
        reply = '{"queries": ["ssb market"], "rationale": "start broad", "query_plan": ["What is it?"]}'
        with patch("deep_research.reasoning.AssistantAgent", return_value=agent_replying(reply, "query_planner")) as cls:
            reasoner = AutoGenReasoner(model_client=Mock(), num_queries=2)
            plan = await reasoner.generate_query("solid-state batteries", "2024-05-01")

        assert plan.queries == ["ssb market"]
        kwargs = cls.call_args.kwargs
        assert kwargs["name"] == "query_planner"
        assert "2024-05-01" in kwargs["system_message"]
        assert "write 2 short" in kwargs["system_message"]

    @pytest.mark.asyncio
    async def test_reflect_sends_source_ids(self):
        reply = '{"is_sufficient": false, "relevant_summary_ids": ["ab12"]}'
        agent = agent_replying(reply, "research_reflector")
        with patch("deep_research.reasoning.AssistantAgent", return_value=agent):
            reasoner = AutoGenReasoner(model_client=Mock())
            reflection = await reasoner.reflect(
                [SearchResult(id="ab12", url="https://a", title="A", text="body")],
                "topic",
                "2024-05-01",
                ["q?"],
                [],
                [0],
                None,
                1,
                3,
            )

        assert reflection.relevant_summary_ids == ["ab12"]
        task = agent.run.call_args.kwargs["task"]
        assert '"id": "ab12"' in task
        assert "Still unanswered question indices: [0]" in task

    @pytest.mark.asyncio
    async def test_each_call_gets_a_fresh_agent(self):
        reply = '{"should_continue_research": true, "next_gap_to_research": "g", "gap_status": "new"}'
        with patch(
            "deep_research.reasoning.AssistantAgent",
            side_effect=lambda **kwargs: agent_replying(reply, kwargs["name"]),
        ) as cls:
            reasoner = AutoGenReasoner(model_client=Mock())
            for _ in range(2):
                await reasoner.analyze_knowledge_gaps(KnowledgeGapLedger(), Reflection(is_sufficient=False), ["q?"], 1)

        assert cls.call_count == 2

    @pytest.mark.asyncio
    async def test_create_answer_returns_text(self):
        agent = agent_replying("  Answer [^ab12]  ", "research_reporter")
        with patch("deep_research.reasoning.AssistantAgent", return_value=agent):
            reasoner = AutoGenReasoner(model_client=Mock())
            answer = await reasoner.create_answer("2024-05-01", "topic", [SearchResult(id="ab12", url="https://a")])

        assert answer == "Answer [^ab12]"
