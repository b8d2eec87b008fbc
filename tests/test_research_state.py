"""Tests for session bookkeeping: question coverage, facts and source ids."""

from unittest.mock import patch
from uuid import UUID

from deep_research.models import ExtractedFact, SearchResult
from deep_research.research_state import FactStore, QuestionCoverage, ResearchSession


class TestQuestionCoverage:
    def test_starts_with_every_question_unanswered(self):
        coverage = QuestionCoverage(4)

        assert coverage.answered() == []
        assert coverage.unanswered() == [0, 1, 2, 3]

    def test_mark_answered_is_a_union(self):
        coverage = QuestionCoverage(4)

        coverage.mark_answered([2, 0])
        coverage.mark_answered([])
        coverage.mark_answered([0, 3])

        assert coverage.answered() == [0, 2, 3]
        assert coverage.unanswered() == [1]

    def test_out_of_range_indices_are_ignored(self):
        coverage = QuestionCoverage(2)

        coverage.mark_answered([-1, 2, 99, 1])

        assert coverage.answered() == [1]
        assert coverage.unanswered() == [0]

    def test_unanswered_is_complement_of_answered(self):
        coverage = QuestionCoverage(6)
        for batch in ([1], [4, 5], [1, 2]):
            coverage.mark_answered(batch)
            assert sorted(coverage.answered() + coverage.unanswered()) == list(range(6))
            assert not set(coverage.answered()) & set(coverage.unanswered())


class TestFactStore:
    def test_append_only_in_order(self):
        store = FactStore()
        assert store.is_empty()

        store.add([ExtractedFact(source_id="a", relevant_facts=["x"])])
        store.add([ExtractedFact(source_id="a", relevant_facts=["x"]), ExtractedFact(source_id="b")])

        assert not store.is_empty()
        assert len(store) == 3
        assert [fact.source_id for fact in store] == ["a", "a", "b"]

    def test_facts_returns_a_copy(self):
        store = FactStore()
        store.add([ExtractedFact(source_id="a")])

        store.facts.clear()

        assert len(store) == 1


class TestResearchSession:
    def test_rounds_left_starts_at_max_rounds(self):
        session = ResearchSession(topic="t", current_date="2024-01-01", max_rounds=3)

        assert session.rounds_left == 3
        assert session.round == 1

    def test_ingest_assigns_short_ids_and_keeps_history(self):
        session = ResearchSession(topic="t", current_date="2024-01-01", max_rounds=3)

        first = session.ingest([SearchResult(url="https://a"), SearchResult(url="https://b")])
        second = session.ingest([SearchResult(url="https://c")])

        ids = [result.id for result in first + second]
        assert all(len(source_id) == 4 for source_id in ids)
        assert len(set(ids)) == 3
        assert [result.url for result in session.all_search_results] == ["https://a", "https://b", "https://c"]
        assert session.source_map()[ids[2]] == {"url": "https://c", "title": None}

    def test_colliding_ids_are_regenerated(self):
        session = ResearchSession(topic="t", current_date="2024-01-01", max_rounds=3)
        uuids = [UUID(int=0xAAAA << 112), UUID(int=0xAAAA << 112), UUID(int=0xBBBB << 112)]

        with patch("deep_research.research_state.uuid4", side_effect=uuids):
            first = session.new_source_id()
            second = session.new_source_id()

        assert first == "aaaa"
        assert second == "bbbb"

    def test_start_plan_sizes_coverage(self):
        session = ResearchSession(topic="t", current_date="2024-01-01", max_rounds=3)

        session.start_plan(["a?", "b?"], ["q"])

        assert session.coverage.unanswered() == [0, 1]
        assert session.queries == ["q"]
