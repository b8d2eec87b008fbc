"""Tests for footnote rewriting."""

import pytest

from deep_research.citations import rewrite_citations, rewrite_with_source_map, rewrite_with_sources
from deep_research.models import SearchResult

SOURCES = {
    "abc": {"title": "A", "url": "u1"},
    "def": {"title": "B", "url": "u2"},
}


def resolve(source_id):
    return SOURCES.get(source_id)


class TestRewriteCitations:
    def test_numbers_markers_and_appends_definitions(self):
        result = rewrite_citations("See [^abc] and [^def,ghi]", resolve)

        body, block = result.split("\n\n---\n\n")
        assert body == "See [^1] and [^2,3]"
        assert block.split("\n") == [
            "[^1]: [A](u1)",
            "[^2]: [B](u2)",
            "[^3]: Reference not found",
        ]

    def test_repeated_ids_reuse_their_number(self):
        result = rewrite_citations("One [^def]. Two [^abc]. Three [^def, abc].", resolve)

        assert result == (
            "One [^1]. Two [^2]. Three [^1,2].\n\n---\n\n"
            "[^1]: [B](u2)\n"
            "[^2]: [A](u1)"
        )

    def test_identical_markers_replaced_everywhere(self):
        result = rewrite_citations("[^abc] start, [^abc] middle, [^abc] end", resolve)

        assert result.startswith("[^1] start, [^1] middle, [^1] end\n\n---\n\n")
        assert result.count("[^1]: [A](u1)") == 1

    def test_text_without_markers_is_untouched(self):
        text = "No citations here.\n\n---\n\nJust a rule and [a link](http://x)."

        assert rewrite_citations(text, resolve) == text

    def test_rewrite_is_idempotent(self):
        once = rewrite_citations("See [^abc] and [^def,ghi]", resolve)

        assert rewrite_citations(once, resolve) == once

    def test_new_markers_continue_existing_numbering(self):
        once = rewrite_citations("See [^abc].", resolve)
        extended = once.replace("See [^1].", "See [^1] and [^def].")

        result = rewrite_citations(extended, resolve)

        assert result == "See [^1] and [^2].\n\n---\n\n[^1]: [A](u1)\n[^2]: [B](u2)"

    @pytest.mark.parametrize("raw_id", ["a.b+c", "x(1)", "$d*", "q|r"])
    def test_ids_with_regex_characters_are_replaced_literally(self, raw_id):
        sources = {raw_id: {"title": "Special", "url": "https://s"}}

        result = rewrite_citations(f"Claim [^{raw_id}].", sources.get)

        assert result == "Claim [^1].\n\n---\n\n[^1]: [Special](https://s)"

    def test_missing_title_falls_back_to_url(self):
        result = rewrite_citations("Claim [^x]", {"x": {"title": None, "url": "https://x.io"}}.get)

        assert result.endswith("[^1]: [https://x.io](https://x.io)")

    def test_empty_marker_pieces_are_ignored(self):
        result = rewrite_citations("Claim [^abc,,] and [^ , ]", resolve)

        assert result == "Claim [^1] and [^ , ]\n\n---\n\n[^1]: [A](u1)"

    def test_definition_lines_are_not_markers(self):
        text = "Claim [^abc].\n[^abc]: hand-written note"

        result = rewrite_citations(text, resolve)

        assert result == "Claim [^1].\n[^abc]: hand-written note\n\n---\n\n[^1]: [A](u1)"

    def test_marker_followed_by_colon_mid_sentence_is_cited(self):
        result = rewrite_citations("Prices rose [^abc]: a 40% jump.", resolve)

        assert result == "Prices rose [^1]: a 40% jump.\n\n---\n\n[^1]: [A](u1)"

    def test_multiline_title_stays_on_one_definition_line(self):
        sources = {"abc": {"title": "Line one\nLine two", "url": "u1"}}

        once = rewrite_citations("Claim [^abc].", sources.get)

        assert once == "Claim [^1].\n\n---\n\n[^1]: [Line one Line two](u1)"
        assert rewrite_citations(once, sources.get) == once

    def test_brackets_in_title_are_escaped(self):
        sources = {"abc": {"title": "Report [2024] final", "url": "u1"}}

        once = rewrite_citations("Claim [^abc].", sources.get)

        assert once.endswith(r"[^1]: [Report \[2024\] final](u1)")
        assert rewrite_citations(once, sources.get) == once


class TestCallShapes:
    def test_rewrite_with_sources_resolves_by_result_id(self):
        sources = [
            SearchResult(id="k3f9", url="https://a.example", title="Alpha"),
            SearchResult(id="0a1b", url="https://b.example", title="Beta"),
        ]

        result = rewrite_with_sources("Fact [^0a1b] then [^k3f9]", sources)

        assert result == (
            "Fact [^1] then [^2]\n\n---\n\n"
            "[^1]: [Beta](https://b.example)\n"
            "[^2]: [Alpha](https://a.example)"
        )

    def test_rewrite_with_source_map_marks_unknown_ids(self):
        source_map = {"k3f9": {"url": "https://a.example", "title": "Alpha"}}

        result = rewrite_with_source_map("Fact [^k3f9] and [^zzzz]", source_map)

        assert result.endswith("[^1]: [Alpha](https://a.example)\n[^2]: Reference not found")
