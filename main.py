"""DeepResearch - multi-phase research engine

Simple CLI for running research queries.
"""

import argparse
import asyncio

from deepresearch.models.research import EffortLevel
from deepresearch.services.research_runner import DeepResearch


def print_event(event) -> None:
    event_type = event.event.value
    data = event.data

    if event_type == "phase-started":
        print(f"\n[~] {data.get('message', data.get('phase'))}...")

    elif event_type == "phase-completed":
        print(f"  [+] {data.get('phase')} complete ({data.get('duration_ms')}ms)")

    elif event_type == "source-extracted":
        print(f"  [+] Extracted source {data.get('source_id', '')[:8]} ({data.get('word_count')} words)")

    elif event_type == "finding-discovered":
        print(f"  [*] {data.get('finding', '')[:100]}")

    elif event_type == "progress-update":
        print(f"  [{int(data.get('progress', 0) * 100):3d}%] {data.get('message', '')}")

    elif event_type == "quality-check":
        sota = " (SOTA)" if data.get("is_sota") else ""
        print(f"\n[*] Quality score: {data.get('score', 0):.2f}{sota}")

    elif event_type == "error":
        label = "Warning" if data.get("recoverable") else "Error"
        print(f"\n[!] {label}: {data.get('error', 'Unknown error')}")


async def run_research(query: str, effort: str, context: str | None = None):
    """Run research on the given query."""
    print(f"Research query: {query}")
    print(f"Effort: {effort}")
    print("-" * 50)

    service = DeepResearch()
    execution = service.research(query, effort, context=context)
    async for event in execution:
        print_event(event)

    result = execution.result
    print(f"\n\n[*] Research {result.status.value}")
    print(f"   Runtime: {result.stats.duration_ms}ms")
    print(f"   Sources: {len(result.sources)}")
    if result.error:
        print(f"   Error: {result.error}")
    if result.synthesis is None:
        return

    synthesis = result.synthesis
    print(f"\n{'='*50}")
    print("REPORT:")
    print(f"{'='*50}")
    print(synthesis.executive_summary)
    for section in synthesis.sections:
        print(f"\n## {section.title}\n")
        print(section.content)
    if synthesis.citations:
        print("\nSources:")
        for citation in synthesis.citations:
            print(f"  {citation.id} {citation.title} - {citation.url}")


def main():
    parser = argparse.ArgumentParser(description="DeepResearch multi-phase research engine")
    parser.add_argument("--query", "-q", required=True, help="Research query")
    parser.add_argument(
        "--effort",
        "-e",
        choices=[level.value for level in EffortLevel],
        default="standard",
        help="Effort preset (default: standard)",
    )
    parser.add_argument("--context", "-c", help="Extra context for query decomposition")

    args = parser.parse_args()

    asyncio.run(run_research(args.query, args.effort, args.context))


if __name__ == "__main__":
    main()
