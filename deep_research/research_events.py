"""
Outbound event port of the research orchestrator.

Presentation layers subscribe to step transitions through an `EventBus`
injected into the orchestrator. Observers only listen: whatever they do, the
orchestration continues the same way.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable
from uuid import uuid4

from pydantic import BaseModel

logger = logging.getLogger(__name__)

INPUT = "input"
QUERIES_GENERATED = "queries-generated"
SEARCHING = "searching"
SEARCH_RESULTS = "search-results"
REFLECTION_COMPLETE = "reflection-complete"
SUMMARIZATION = "summarization"
KNOWLEDGE_GAP_ANALYSIS = "knowledge-gap-analysis"
FOLLOWUP_QUERY_GENERATION = "followup-query-generation"
MAX_STEPS_REACHED = "max-steps-reached"
ANSWER = "answer"

EVENT_TYPES = (
    INPUT,
    QUERIES_GENERATED,
    SEARCHING,
    SEARCH_RESULTS,
    REFLECTION_COMPLETE,
    SUMMARIZATION,
    KNOWLEDGE_GAP_ANALYSIS,
    FOLLOWUP_QUERY_GENERATION,
    MAX_STEPS_REACHED,
    ANSWER,
)


def _utc_timestamp() -> str:
    return datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(slots=True)
class ResearchEvent:
    """One step transition. ``replace`` marks an update of the previous step of the same type."""

    type: str
    data: Any = None
    replace: bool = False
    timestamp: str = field(default_factory=_utc_timestamp)


@runtime_checkable
class ResearchObserver(Protocol):
    def notify(self, event: ResearchEvent) -> None: ...


Subscriber = Union[ResearchObserver, Callable[[ResearchEvent], None]]


class EventBus:
    """Fans events out to every subscriber in registration order."""

    def __init__(self, subscribers: Optional[List[Subscriber]] = None) -> None:
        self._subscribers: List[Subscriber] = list(subscribers or [])

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def publish(self, event_type: str, data: Any = None, *, replace: bool = False) -> ResearchEvent:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown research event type '{event_type}'.")
        event = ResearchEvent(type=event_type, data=data, replace=replace)
        for subscriber in self._subscribers:
            handler = subscriber.notify if isinstance(subscriber, ResearchObserver) else subscriber
            try:
                handler(event)
            except Exception:
                logger.exception("Observer %r failed on '%s' event; ignoring.", subscriber, event_type)
        return event


class ResearchEventLog:
    """Keeps the session's steps so a UI can replay them."""

    def __init__(self) -> None:
        self.steps: List[ResearchEvent] = []

    def notify(self, event: ResearchEvent) -> None:
        if event.replace:
            for idx in range(len(self.steps) - 1, -1, -1):
                if self.steps[idx].type == event.type:
                    self.steps[idx] = event
                    return
        self.steps.append(event)

    def latest(self, event_type: str) -> Optional[ResearchEvent]:
        for event in reversed(self.steps):
            if event.type == event_type:
                return event
        return None

    def of_type(self, event_type: str) -> List[ResearchEvent]:
        return [event for event in self.steps if event.type == event_type]

    def transcript(self) -> str:
        return "\n".join(f"[{e.timestamp}] {e.type}: {_summarize(e.data)}" for e in self.steps)


class InteractionLogWriter:
    """Persists every event of one session to a JSON file under ``log_dir``."""

    def __init__(self, log_dir: Union[str, Path] = "logs") -> None:
        self._log_dir = Path(log_dir)
        self._current_log: Optional[Dict[str, Any]] = None
        self._current_log_path: Optional[Path] = None

    @property
    def path(self) -> Optional[Path]:
        return self._current_log_path

    def start(self, topic: str) -> None:
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - filesystem issues
            logger.warning("Unable to create log directory %s: %s", self._log_dir, exc)
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        file_name = f"research_session_{timestamp}_{uuid4().hex[:8]}.json"
        self._current_log_path = self._log_dir / file_name
        self._current_log = {
            "timestamp": timestamp,
            "topic": topic,
            "steps": [],
        }

    def notify(self, event: ResearchEvent) -> None:
        if not self._current_log:
            return
        self._current_log["steps"].append(
            {
                "type": event.type,
                "replace": event.replace,
                "timestamp": event.timestamp,
                "data": make_serializable(event.data),
            }
        )

    def finalize(self, *, final_response: Optional[str], error: Optional[str] = None) -> Optional[Path]:
        if not self._current_log or not self._current_log_path:
            return None
        if final_response is not None:
            self._current_log["final_response"] = final_response
        if error:
            self._current_log["error"] = error
        written = self._current_log_path
        try:
            serialized = json.dumps(self._current_log, indent=2, ensure_ascii=False)
            written.write_text(serialized, encoding="utf-8")
            logger.info("Wrote interaction log to %s", written)
        except OSError as exc:  # pragma: no cover - filesystem issues
            logger.warning("Failed to write interaction log %s: %s", written, exc)
            written = None
        finally:
            self._current_log = None
            self._current_log_path = None
        return written


def make_serializable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump()
    try:
        json.dumps(data)
        return data
    except TypeError:
        if isinstance(data, dict):
            return {str(key): make_serializable(value) for key, value in data.items()}
        if isinstance(data, (list, set, tuple)):
            return [make_serializable(item) for item in data]
        return repr(data)


def _summarize(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    text = json.dumps(make_serializable(data), ensure_ascii=False)
    return text if len(text) <= 200 else text[:197] + "..."
