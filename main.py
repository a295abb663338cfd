"""abot web research

Simple CLI for running one web-research query.
"""

import argparse
import asyncio

from webresearch.agents.orchestrator import ResearchOrchestrator
from webresearch.config import settings
from webresearch.models.schemas import ResearchStatus
from webresearch.services.prompt_context import build_search_context, source_text
from webresearch.tools.web_utils import extract_domain


async def run_research(
    query: str,
    *,
    summarize: bool = False,
    deadline: float | None = None,
    conversation_id: str | None = None,
    max_results: int | None = None,
    show_context: bool = False,
) -> int:
    """Run research on the given query and print the sources."""
    print(f"Research query: {query}")
    print("-" * 50)

    async with ResearchOrchestrator(
        conversation_id=conversation_id,
        max_results=max_results,
    ) as orchestrator:
        response = await orchestrator.research(query, summarize, deadline_seconds=deadline)

    if response.status == ResearchStatus.SEARCH_FAILED:
        print(f"\n[!] Web search failed: {response.error}")
        return 1
    if response.status == ResearchStatus.DEADLINE_EXCEEDED:
        print("\n[~] Deadline reached, showing partial results")

    for i, result in enumerate(response.results, 1):
        marker = "+" if result.is_populated else "-"
        print(f"\n[{marker}] {i}. {extract_domain(result.url)}")
        print(f"    {result.url}")
        text = source_text(result, fallback_words=60)
        if text:
            print(f"    {text[:300]}")

    print(f"\n{'=' * 50}")
    print(f"Status: {response.status.value}  Sources: {len(response.results)}")

    if show_context:
        print(f"{'=' * 50}")
        print(build_search_context(query, response.results))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="abot web research pipeline")
    parser.add_argument("--query", "-q", required=True, help="Research query")
    parser.add_argument(
        "--summarize",
        "-s",
        action="store_true",
        help="Summarize each page with the configured chat backend",
    )
    parser.add_argument(
        "--deadline",
        "-d",
        type=float,
        default=settings.research_deadline_seconds,
        help="Overall deadline in seconds (default: from config)",
    )
    parser.add_argument("--conversation-id", "-c", help="Reuse a conversation cache directory")
    parser.add_argument("--max-results", "-n", type=int, help="Maximum URLs to fetch")
    parser.add_argument(
        "--show-context",
        action="store_true",
        help="Print the prompt context that would be sent to the chat backend",
    )
    return parser


def main():
    args = build_parser().parse_args()
    raise SystemExit(
        asyncio.run(
            run_research(
                args.query,
                summarize=args.summarize,
                deadline=args.deadline,
                conversation_id=args.conversation_id,
                max_results=args.max_results,
                show_context=args.show_context,
            )
        )
    )


if __name__ == "__main__":
    main()
