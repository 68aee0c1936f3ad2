"""One routine per pipeline phase.

Each routine reads and mutates the shared ResearchSession and yields progress
events. Concurrent tasks mutate the session right after their own await returns,
so no locking is needed under the single event loop.
"""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator

from loguru import logger

from deepresearch.agents.session import ResearchSession
from deepresearch.config import settings
from deepresearch.models.content import AnalysisContext, AnalyzedContent, ScrapeOptions
from deepresearch.models.events import ResearchEvent
from deepresearch.models.knowledge_graph import KnowledgeGraph, MindMap
from deepresearch.models.research import EffortConfig, SearchStrategy, SubQuery
from deepresearch.models.synthesis import Synthesis
from deepresearch.research_core.graph.builder import KnowledgeGraphBuilder
from deepresearch.research_core.ports import ResearchPorts, SearchOptions, SearchResult
from deepresearch.research_core.ranking.ranker import RankingCriteria, SourceRanker
from deepresearch.services import streaming
from deepresearch.services.executor import BoundedExecutor, batch_items

PROGRESS_BATCH_SIZE = 5
MAX_PER_DOMAIN = 3
RECURSIVE_FINDINGS = 5
RECURSIVE_MAX_RESULTS = 5
RECURSIVE_TIMEOUT_MS = 20000


class SynthesisIncompleteError(RuntimeError):
    """The synthesizer stream ended without a "complete" event."""


@dataclass(slots=True)
class Visualizations:
    graph: KnowledgeGraph
    mind_map: MindMap
    charts: list[dict] = field(default_factory=list)
    timeline: list[dict] = field(default_factory=list)


def calculate_total_steps(sub_query_count: int, effort: EffortConfig) -> int:
    search_steps = math.ceil(sub_query_count / effort.parallelism)
    batch_steps = math.ceil(effort.max_sources / PROGRESS_BATCH_SIZE)
    # ranking + extraction + analysis + synthesis, visualization, quality
    return search_steps + 1 + 2 * batch_steps + 3


def _progress(session: ResearchSession, message: str) -> ResearchEvent:
    return streaming.progress_update(session.session_id, session.progress, message, session.stats_snapshot())


async def search_phase(
    session: ResearchSession,
    ports: ResearchPorts,
    effort: EffortConfig,
    executor: BoundedExecutor,
) -> AsyncIterator[ResearchEvent]:
    query = session.query
    sub_queries = query.sub_queries
    source_limit = effort.max_sources * 2
    max_results = math.ceil(effort.max_sources / max(len(sub_queries), 1))

    async def run_search(sub_query: SubQuery) -> SearchResult:
        options = SearchOptions(
            max_results=max_results,
            timeout_ms=int(settings.search_timeout_seconds * 1000),
            strategy=sub_query.strategy,
            language=query.language,
        )
        result = await ports.search.search(sub_query.query, options)
        for source in result.sources:
            if len(session.sources) >= source_limit:
                break
            session.add_source(source)
        return result

    for group, batch in enumerate(batch_items(sub_queries, effort.parallelism), start=1):
        step_id = f"search-batch-{group}"
        yield streaming.step_started(
            session.session_id, step_id, "search", f"Searching {len(batch)} queries", parallel_group=group
        )

        outcomes = await executor.map(run_search, batch)
        session.search_queries += len(batch)
        failures = [o for o in outcomes if not o.ok]
        for outcome in failures:
            yield streaming.error(
                session.session_id,
                f"Search failed for '{outcome.item.query}': {outcome.error}",
                recoverable=True,
                step_id=step_id,
            )

        session.steps_completed += 1
        yield streaming.step_completed(
            session.session_id,
            step_id,
            success=len(failures) < len(batch),
            result_summary=f"Found {len(session.sources)} unique sources",
        )
        yield _progress(session, f"Completed search batch {group}")


async def rank_phase(session: ResearchSession, ranker: SourceRanker, effort: EffortConfig) -> None:
    query = session.query
    ranked = ranker.rank(
        list(session.sources.values()),
        RankingCriteria(
            query=query.original_query,
            topics=query.main_topics,
            prefer_recent=query.temporal_focus == "recent",
        ),
    )
    ranked = ranked[: effort.max_sources]
    # diversify() runs after ranking so the best entries per domain survive.
    session.ranked_sources = ranker.diversify(ranked, MAX_PER_DOMAIN)
    session.steps_completed += 1


async def extract_phase(session: ResearchSession, ports: ResearchPorts) -> AsyncIterator[ResearchEvent]:
    options = ScrapeOptions(
        timeout_ms=settings.scrape_timeout_ms,
        extract_media=True,
        max_content_length=settings.scrape_max_content_chars,
    )
    urls = [s.url for s in session.ranked_sources if ports.scraper.can_scrape_without_browser(s.url)]

    extracted = 0
    for group, batch in enumerate(batch_items(urls, PROGRESS_BATCH_SIZE), start=1):
        step_id = f"extract-batch-{group}"
        yield streaming.step_started(
            session.session_id, step_id, "extract", f"Extracting {len(batch)} pages", parallel_group=group
        )

        succeeded = 0
        async for content in ports.scraper.scrape_many(batch, options):
            extracted += 1
            if not content.success:
                yield streaming.error(
                    session.session_id,
                    f"Extraction failed for {content.url}: {content.error or 'unknown error'}",
                    recoverable=True,
                    step_id=step_id,
                )
                continue
            succeeded += 1
            session.scraped[content.url] = content
            source = session.sources.get(content.url)
            yield streaming.source_extracted(
                session.session_id,
                source.id if source else "",
                content.word_count,
                len(content.media),
            )

        session.steps_completed += 1
        yield streaming.step_completed(
            session.session_id,
            step_id,
            success=succeeded > 0,
            result_summary=f"Extracted {succeeded}/{len(batch)} pages",
        )
        yield _progress(session, f"Extracted {extracted}/{len(urls)} pages")


async def analyze_phase(
    session: ResearchSession,
    ports: ResearchPorts,
    executor: BoundedExecutor,
) -> AsyncIterator[ResearchEvent]:
    query = session.query

    async def run_analysis(url: str) -> AnalyzedContent | None:
        source = session.sources.get(url)
        if source is None:
            return None
        analyzed = await ports.analyzer.analyze(
            session.scraped[url].content,
            AnalysisContext(query=query.original_query, topics=list(query.main_topics), source_id=source.id),
        )
        session.analyzed[source.id] = analyzed
        return analyzed

    urls = list(session.scraped)
    for group, batch in enumerate(batch_items(urls, PROGRESS_BATCH_SIZE), start=1):
        step_id = f"analyze-batch-{group}"
        yield streaming.step_started(
            session.session_id, step_id, "analyze", f"Analyzing {len(batch)} sources", parallel_group=group
        )

        outcomes = await executor.map(run_analysis, batch)
        for outcome in outcomes:
            if not outcome.ok:
                yield streaming.error(
                    session.session_id,
                    f"Analysis failed for {outcome.item}: {outcome.error}",
                    recoverable=True,
                    step_id=step_id,
                )
            elif outcome.value is not None and outcome.value.key_points:
                yield streaming.finding_discovered(
                    session.session_id, outcome.value.key_points[0], [outcome.value.source_id]
                )

        session.steps_completed += 1
        yield streaming.step_completed(
            session.session_id,
            step_id,
            success=any(o.ok for o in outcomes),
            result_summary=f"Analyzed {len(session.analyzed)} sources",
        )
        yield _progress(session, f"Analyzed {len(session.analyzed)} sources")


def follow_up_queries(session: ResearchSession) -> list[SubQuery]:
    findings = [point for analyzed in session.analyzed.values() for point in analyzed.key_points]
    return [
        SubQuery(
            id=str(uuid.uuid4()),
            query=f"{session.query.original_query} {finding}",
            purpose=f"Deep dive into: {finding}",
            strategy=SearchStrategy.BROAD,
            priority=5,
            depth=1,
        )
        for finding in findings[:RECURSIVE_FINDINGS]
    ]


async def recursive_search_phase(
    session: ResearchSession,
    ports: ResearchPorts,
    effort: EffortConfig,
    executor: BoundedExecutor,
) -> AsyncIterator[ResearchEvent]:
    sub_queries = follow_up_queries(session)
    if not sub_queries:
        return

    started = session.elapsed_ms
    yield streaming.phase_started(
        session.session_id, "recursing", f"Generated {len(sub_queries)} follow-up queries from findings"
    )
    yield streaming.phase_started(session.session_id, "searching", "Executing recursive search for deeper insights")

    options = SearchOptions(
        max_results=RECURSIVE_MAX_RESULTS,
        timeout_ms=RECURSIVE_TIMEOUT_MS,
        strategy=SearchStrategy.BROAD,
        language=session.query.language,
    )
    source_limit = effort.max_sources * 2

    async def run_search(sub_query: SubQuery) -> SearchResult:
        result = await ports.search.search(sub_query.query, options)
        for source in result.sources:
            session.add_source(source, limit=source_limit)
        return result

    outcomes = await executor.map(run_search, sub_queries)
    session.search_queries += len(sub_queries)
    for outcome in outcomes:
        if not outcome.ok:
            yield streaming.error(
                session.session_id,
                f"Follow-up search failed for '{outcome.item.query}': {outcome.error}",
                recoverable=True,
                step_id="recursive-search",
            )

    yield streaming.phase_completed(session.session_id, "searching", session.elapsed_ms - started)
    yield streaming.phase_completed(session.session_id, "recursing", session.elapsed_ms - started)
    yield _progress(session, f"Recursive search found {len(session.sources)} sources in total")


async def synthesize_phase(session: ResearchSession, ports: ResearchPorts) -> Synthesis:
    synthesis: Synthesis | None = None
    async for event in ports.synthesizer.synthesize(
        list(session.analyzed.values()),
        list(session.sources.values()),
        session.query,
    ):
        logger.debug(f"Synthesis event: {event.type}")
        if event.type == "complete":
            data = event.data
            synthesis = data if isinstance(data, Synthesis) else Synthesis.model_validate(data)

    if synthesis is None:
        raise SynthesisIncompleteError("Synthesis failed to complete")
    session.steps_completed += 1
    return synthesis


async def visualize_phase(session: ResearchSession, builder: KnowledgeGraphBuilder) -> Visualizations:
    query = session.query
    graph = builder.build(list(session.analyzed.values()))
    root_topic = query.main_topics[0] if query.main_topics else query.original_query
    mind_map = builder.to_mind_map(graph, root_topic)
    session.steps_completed += 1
    return Visualizations(graph=graph, mind_map=mind_map)
