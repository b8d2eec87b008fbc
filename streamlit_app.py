"""
Streamlit entry point for the Deep Research Agent.

Provides a chat-style interface on top of `ResearchAgent`, preserving the
conversation history per browser session and surfacing the query plan,
knowledge gaps and gathered sources of the latest run in sidebar expanders.
"""

from __future__ import annotations

import logging
from typing import Dict, List

import streamlit as st
from dotenv import load_dotenv

from deep_research import ResearchAgent
from deep_research.research_events import KNOWLEDGE_GAP_ANALYSIS

# Ensure environment variables from .env are loaded before instantiating the agent.
load_dotenv()

LOGGER = logging.getLogger(__name__)


def _empty_metadata() -> Dict[str, list]:
    return {"query_plan": [], "knowledge_gaps": [], "sources": [], "transcript": []}


@st.cache_resource(show_spinner=False)
def _get_agent() -> ResearchAgent:
    """Create a singleton ResearchAgent per Streamlit process."""
    return ResearchAgent()


def _init_session_state() -> None:
    """Initialize keys stored in st.session_state."""
    if "messages" not in st.session_state:
        st.session_state.messages: List[Dict[str, str]] = []
    if "metadata" not in st.session_state:
        st.session_state.metadata = _empty_metadata()


def _render_sidebar() -> None:
    """Render sidebar controls and metadata viewers."""
    with st.sidebar:
        st.header("Session Controls")
        if st.button("Clear conversation", use_container_width=True):
            st.session_state.messages = []
            st.session_state.metadata = _empty_metadata()
            st.rerun()

        st.divider()
        st.header("Latest Run Details")
        metadata = st.session_state.metadata
        with st.expander("Query plan", expanded=False):
            if metadata["query_plan"]:
                for idx, question in enumerate(metadata["query_plan"], start=1):
                    st.markdown(f"{idx}. {question}")
            else:
                st.caption("No plan generated yet.")

        with st.expander("Knowledge gaps", expanded=False):
            if metadata["knowledge_gaps"]:
                for gap in metadata["knowledge_gaps"]:
                    st.markdown(f"- **{gap['status']}** {gap['description']} ({gap['attempt_count']} attempts)")
            else:
                st.caption("No knowledge gaps recorded.")

        with st.expander("Sources", expanded=False):
            if metadata["sources"]:
                for source in metadata["sources"]:
                    st.markdown(f"- `{source['id']}` [{source['title'] or source['url']}]({source['url']})")
            else:
                st.caption("No sources gathered yet.")

        with st.expander("Step transcript", expanded=False):
            if metadata["transcript"]:
                st.code("\n".join(metadata["transcript"]), language="text")
            else:
                st.caption("No steps recorded yet.")


def _collect_metadata(agent: ResearchAgent) -> Dict[str, list]:
    gap_event = agent.last_events.latest(KNOWLEDGE_GAP_ANALYSIS)
    gaps = [gap.model_dump() for gap in gap_event.data.updated_gap_history] if gap_event else []
    return {
        "query_plan": agent.last_query_plan,
        "knowledge_gaps": gaps,
        "sources": agent.last_sources,
        "transcript": agent.last_events.transcript().splitlines(),
    }


def main() -> None:
    st.set_page_config(
        page_title="Deep Research Agent",
        layout="wide",
    )

    st.title("Deep Research Agent")
    st.caption(
        "Enter a research topic; the agent searches the web in rounds and writes a footnoted answer."
    )

    _init_session_state()
    _render_sidebar()

    try:
        agent = _get_agent()
    except Exception as exc:  # pragma: no cover - missing credentials
        error_message = (
            "Failed to initialize the research agent. "
            "Verify API keys in your environment and restart the app.\n\n"
            f"Details: {exc}"
        )
        LOGGER.exception("Streamlit failed to initialize ResearchAgent: %s", exc)
        st.error(error_message)
        return

    # Replay the chat history.
    for message in st.session_state.messages:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])

    prompt = st.chat_input("What should I research?")
    if not prompt:
        return

    st.session_state.messages.append({"role": "user", "content": prompt})
    with st.chat_message("user"):
        st.markdown(prompt)

    with st.chat_message("assistant"):
        placeholder = st.empty()
        with st.spinner("Researching your topic..."):
            try:
                response = agent.invoke(prompt)
            except Exception as exc:  # pragma: no cover - surfaced to UI
                LOGGER.exception("Agent invocation failed: %s", exc)
                response = f"The research session was aborted:\n\n{exc}"
        placeholder.markdown(response)

    st.session_state.messages.append({"role": "assistant", "content": response})
    st.session_state.metadata = _collect_metadata(agent)


if __name__ == "__main__":
    main()
