"""
Deep research loop package.

Import `ResearchAgent` directly from here for the ready-wired agent, or
`ResearchOrchestrator` to supply your own reasoning and search
collaborators:

```python
from deep_research import ResearchAgent

agent = ResearchAgent()
print(agent.invoke("State of solid-state batteries"))
```
"""

from .citations import rewrite_citations  # noqa: F401
from .errors import (  # noqa: F401
    CollaboratorError,
    InvalidInvocationError,
    InvariantViolationError,
    ResearchError,
)
from .orchestrator import ResearchOrchestrator  # noqa: F401
from .research_agent import ResearchAgent  # noqa: F401
from .research_events import EventBus, ResearchEvent, ResearchEventLog  # noqa: F401

__all__ = [
    "CollaboratorError",
    "EventBus",
    "InvalidInvocationError",
    "InvariantViolationError",
    "ResearchAgent",
    "ResearchError",
    "ResearchEvent",
    "ResearchEventLog",
    "ResearchOrchestrator",
    "rewrite_citations",
]
