"""
Footnote rewriting for generated answers.

Answers cite sources with markers such as ``[^k3f9]`` or ``[^k3f9, 0a1b]``
where the ids are the short source ids handed out during the session. The
rewriter renumbers them by first appearance and appends a bibliography::

    See [^1] and [^2,3]

    ---

    [^1]: [Title](https://example.com)
    [^2]: ...
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .models import SearchResult

logger = logging.getLogger(__name__)

MARKER_PATTERN = re.compile(r"\[\^([^\]]+)\]")
DEFINITION_PATTERN = re.compile(r"^\[\^(\d+)\]: .*$")
DEFINITIONS_SEPARATOR = "\n\n---\n\n"
NOT_FOUND = "Reference not found"

SourceReference = Mapping[str, Optional[str]]
Resolver = Callable[[str], Optional[SourceReference]]


def rewrite_citations(raw_text: str, resolve: Resolver) -> str:
    """Renumber footnote markers in ``raw_text`` and append their definitions.

    Text without markers comes back unchanged. Text that already carries a
    definitions block keeps its numbered markers, so rewriting is idempotent.
    """
    body, existing_block, defined = _split_definitions(raw_text)

    numbers: Dict[str, int] = {}
    replacements: Dict[str, str] = {}
    definitions: List[str] = []
    next_number = max(defined, default=0) + 1

    for match in MARKER_PATTERN.finditer(body):
        if _is_definition_line(match):
            continue
        marker = match.group(0)
        ids = [piece.strip() for piece in match.group(1).split(",") if piece.strip()]
        if not ids:
            continue
        assigned: List[int] = []
        for raw_id in ids:
            if raw_id not in numbers:
                if raw_id.isdigit() and int(raw_id) in defined:
                    numbers[raw_id] = int(raw_id)
                else:
                    numbers[raw_id] = next_number
                    definitions.append(_definition(next_number, raw_id, resolve))
                    next_number += 1
            assigned.append(numbers[raw_id])
        replacements.setdefault(marker, "[^" + ",".join(str(n) for n in assigned) + "]")

    if not replacements:
        return raw_text

    def substitute(match: re.Match) -> str:
        if _is_definition_line(match):
            return match.group(0)
        return replacements.get(match.group(0), match.group(0))

    body = MARKER_PATTERN.sub(substitute, body)
    logger.debug("Rewrote %d footnote markers into %d new definitions", len(replacements), len(definitions))

    if not definitions:
        return body + existing_block
    if existing_block:
        return body + existing_block.rstrip("\n") + "\n" + "\n".join(definitions)
    return body + DEFINITIONS_SEPARATOR + "\n".join(definitions)


def rewrite_with_sources(raw_text: str, sources: Iterable[SearchResult]) -> str:
    """Resolve markers directly against search results keyed by their id."""
    by_id = {source.id: {"url": source.url, "title": source.title} for source in sources if source.id}
    return rewrite_citations(raw_text, by_id.get)


def rewrite_with_source_map(raw_text: str, source_map: Mapping[str, SourceReference]) -> str:
    """Resolve markers through an ``id -> {url, title}`` map of the whole session."""
    return rewrite_citations(raw_text, source_map.get)


def _definition(number: int, raw_id: str, resolve: Resolver) -> str:
    reference = resolve(raw_id)
    if not reference:
        logger.info("Citation id '%s' has no matching source", raw_id)
        return f"[^{number}]: {NOT_FOUND}"
    # Definitions must stay on one line to be recognised on a later pass.
    url = "".join((reference.get("url") or "").split())
    title = " ".join((reference.get("title") or "").split()) or url
    title = title.replace("[", r"\[").replace("]", r"\]")
    return f"[^{number}]: [{title}]({url})"


def _is_definition_line(match: re.Match) -> bool:
    """``[^id]:`` opening a line defines a footnote rather than citing it."""
    text = match.string
    at_line_start = match.start() == 0 or text[match.start() - 1] == "\n"
    return at_line_start and text.startswith(":", match.end())


def _split_definitions(text: str) -> Tuple[str, str, set]:
    """Separate a trailing definitions block produced by an earlier rewrite."""
    idx = text.rfind(DEFINITIONS_SEPARATOR)
    if idx == -1:
        return text, "", set()
    tail = text[idx + len(DEFINITIONS_SEPARATOR):]
    lines = [line for line in tail.split("\n") if line.strip()]
    if not lines:
        return text, "", set()
    defined = set()
    for line in lines:
        match = DEFINITION_PATTERN.match(line)
        if not match:
            return text, "", set()
        defined.add(int(match.group(1)))
    return text[:idx], text[idx:], defined
