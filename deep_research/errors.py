"""Exceptions raised by a research session."""

from __future__ import annotations

from typing import Optional


class ResearchError(RuntimeError):
    """Base class for every failure that aborts a research session."""


class InvalidInvocationError(ResearchError, ValueError):
    """Raised before any collaborator call when the session inputs are unusable."""


class InvariantViolationError(ResearchError):
    """Raised when a collaborator's output breaks an orchestration invariant."""


class ReasoningOutputError(ResearchError):
    """Raised when the reasoning engine returns text that does not fit the expected schema."""

    def __init__(self, *, operation: str, raw_output: str, reason: str) -> None:
        super().__init__(f"Unparseable output from {operation}: {reason}")
        self.operation = operation
        self.raw_output = raw_output


class CollaboratorError(ResearchError):
    """Wraps a rejected external call and names the phase that failed.

    The original exception is always chained as ``__cause__``.
    """

    def __init__(self, *, phase: str, message: Optional[str] = None) -> None:
        super().__init__(f"Research phase '{phase}' failed" + (f": {message}" if message else ""))
        self.phase = phase
