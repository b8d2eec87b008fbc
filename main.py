"""
Command line interface for the Deep Research Agent.

Loads API keys from environment variables (via `.env`), creates a ResearchAgent,
and enters an interactive loop that researches each topic typed in.
"""

import logging

from dotenv import load_dotenv

from deep_research import ResearchAgent, ResearchEvent
from deep_research.research_events import (
    FOLLOWUP_QUERY_GENERATION,
    KNOWLEDGE_GAP_ANALYSIS,
    MAX_STEPS_REACHED,
    QUERIES_GENERATED,
    REFLECTION_COMPLETE,
    SEARCH_RESULTS,
)

# --- Logging configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def print_progress(event: ResearchEvent) -> None:
    """Print a one-line summary of the major research steps."""
    if event.type == QUERIES_GENERATED:
        print(f"Planned {len(event.data.query_plan)} questions; searching: {', '.join(event.data.queries)}")
    elif event.type == SEARCH_RESULTS:
        print(f"  collected {len(event.data['search_results'])} sources")
    elif event.type == REFLECTION_COMPLETE:
        print(f"  answered questions so far: {event.data['answered_questions']}")
    elif event.type == KNOWLEDGE_GAP_ANALYSIS:
        print(f"  next gap: {event.data.next_gap_to_research or '-'}")
    elif event.type == FOLLOWUP_QUERY_GENERATION:
        print(f"Follow-up searches: {', '.join(event.data.queries)}")
    elif event.type == MAX_STEPS_REACHED:
        print("Round budget exhausted; writing the answer.")


def main() -> None:
    """Run the command line loop for the research agent."""
    logger.info("Loading environment variables from .env file...")
    load_dotenv()

    try:
        agent = ResearchAgent(observers=[print_progress])
    except Exception as exc:
        logger.exception("Failed to initialize the research agent: %s", exc)
        return

    print(
        "\nWelcome to the Deep Research Agent!\n"
        "Type a research topic and press Enter.  Type 'quit' to exit.\n"
    )

    while True:
        try:
            topic = input("> ").strip()
        except EOFError:
            logger.info("EOF received; exiting.")
            break

        if not topic:
            continue
        if topic.lower() in {"quit", "exit", "q"}:
            logger.info("User requested exit.")
            break

        try:
            logger.info("Researching topic: %s", topic)
            answer = agent.invoke(topic)
            print(f"\n{answer}\n")
            logger.info("Answer delivered successfully.")
        except Exception as exc:
            logger.exception("Error while researching topic: %s", exc)
            print(f"An error occurred: {exc}\n")

    logger.info("Session ended. Goodbye!")
    print("Goodbye!")


if __name__ == "__main__":
    main()
