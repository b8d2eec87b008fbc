"""Ledger of knowledge gaps authored by the gap-analysis collaborator."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import KnowledgeGap

logger = logging.getLogger(__name__)


class KnowledgeGapLedger:
    """
    Stores the gap list reported by the latest gap analysis plus a pointer to
    the gap currently being pursued.

    The gap list is only ever replaced as a whole; the ledger never edits a
    gap's status or query history itself.
    """

    NO_GAP = -1

    def __init__(self, gaps: Optional[Iterable[KnowledgeGap]] = None) -> None:
        self._gaps: List[KnowledgeGap] = list(gaps or [])
        self._current_gap_index = self.NO_GAP

    @property
    def gaps(self) -> List[KnowledgeGap]:
        return list(self._gaps)

    @property
    def current_gap_index(self) -> int:
        return self._current_gap_index

    @property
    def current_gap(self) -> Optional[KnowledgeGap]:
        if self._current_gap_index == self.NO_GAP:
            return None
        return self._gaps[self._current_gap_index]

    @property
    def current_description(self) -> Optional[str]:
        gap = self.current_gap
        return gap.description if gap else None

    def replace(self, gaps: Iterable[KnowledgeGap]) -> None:
        """Swap in the gap history returned by a gap analysis.

        The current pointer is kept when it still indexes into the new list and
        reset otherwise.
        """
        self._gaps = list(gaps)
        if self._current_gap_index >= len(self._gaps):
            logger.info(
                "Current gap index %d no longer valid for %d gaps; clearing selection.",
                self._current_gap_index,
                len(self._gaps),
            )
            self._current_gap_index = self.NO_GAP

    def find(self, description: Optional[str]) -> int:
        if description is None:
            return self.NO_GAP
        for idx, gap in enumerate(self._gaps):
            if gap.description == description:
                return idx
        return self.NO_GAP

    def select_by_description(self, description: Optional[str]) -> int:
        """Point at the gap with this description, or at no gap when none matches."""
        self._current_gap_index = self.find(description)
        if description is not None and self._current_gap_index == self.NO_GAP:
            logger.warning("No knowledge gap matches '%s'; no gap is active.", description)
        return self._current_gap_index

    def previous_queries_for(self, description: Optional[str]) -> List[str]:
        idx = self.find(description)
        if idx == self.NO_GAP:
            return []
        return list(self._gaps[idx].previous_queries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gaps": [gap.model_dump() for gap in self._gaps],
            "current_gap_index": self._current_gap_index,
        }

    def __len__(self) -> int:
        return len(self._gaps)
