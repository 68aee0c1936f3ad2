from __future__ import annotations

import inspect
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Optional, Protocol

from deepresearch.agents import phases
from deepresearch.agents.query_decomposer import QueryDecomposer
from deepresearch.agents.session import ResearchSession
from deepresearch.models.events import ResearchEvent
from deepresearch.models.research import EffortConfig, ResearchResult, ResearchStatus
from deepresearch.research_core.graph.builder import KnowledgeGraphBuilder
from deepresearch.research_core.ports import ResearchPorts
from deepresearch.research_core.quality import QualityAssessor
from deepresearch.research_core.ranking.ranker import SourceRanker
from deepresearch.services import streaming
from deepresearch.services.executor import BoundedExecutor
from deepresearch.services.logger import log_research_step, session_logger

EventCallback = Callable[[ResearchEvent], Any]


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


@dataclass(slots=True)
class OrchestratorConfig:
    effort: EffortConfig
    cancel_event: Optional[CancelSignal] = None


class ResearchExecution:
    """Handle for one research run.

    Iterate it with ``async for`` to stream events, or ``await wait()`` to drain
    the stream and get the final ResearchResult. Nothing runs until one of the two
    starts consuming; events can only be consumed once.
    """

    def __init__(self, session_id: str, on_event: EventCallback | None = None):
        self.session_id = session_id
        self._on_event = on_event
        self._events: AsyncIterator[ResearchEvent] | None = None
        self._result: ResearchResult | None = None
        self._consuming = False

    def _bind(self, events: AsyncIterator[ResearchEvent]) -> None:
        self._events = events

    def _finish(self, result: ResearchResult) -> None:
        self._result = result

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> ResearchResult:
        if self._result is None:
            raise RuntimeError("Research execution has not finished yet")
        return self._result

    async def __aiter__(self) -> AsyncIterator[ResearchEvent]:
        if self._consuming:
            raise RuntimeError("Research events are already being consumed")
        self._consuming = True
        try:
            async for event in self._events:
                if self._on_event is not None:
                    outcome = self._on_event(event)
                    if inspect.isawaitable(outcome):
                        await outcome
                yield event
        finally:
            self._consuming = False

    async def wait(self) -> ResearchResult:
        if self._result is None:
            async for _ in self:
                pass
        return self.result

    async def aclose(self) -> None:
        """Abandon the run early; session state is still released."""
        close = getattr(self._events, "aclose", None)
        if close is not None:
            await close()


class ResearchOrchestrator:
    """Drives the research phases for one query at a time.

    decomposing -> searching -> ranking -> extracting -> analyzing -> quality check
    -> (synthesizing | recursing -> searching -> synthesizing) -> visualizing.
    """

    def __init__(
        self,
        ports: ResearchPorts,
        config: OrchestratorConfig,
        *,
        ranker: SourceRanker | None = None,
        graph_builder: KnowledgeGraphBuilder | None = None,
        decomposer: QueryDecomposer | None = None,
    ):
        self.ports = ports
        self.config = config
        self.ranker = ranker or SourceRanker()
        self.graph_builder = graph_builder or KnowledgeGraphBuilder()
        self.decomposer = decomposer or QueryDecomposer(ports.llm)
        self.assessor = QualityAssessor(config.effort.max_sources, config.effort.quality_threshold)
        self.executor = BoundedExecutor(config.effort.parallelism)
        self.session: ResearchSession | None = None
        self._running = False

    def execute(
        self,
        query_text: str,
        context: str | None = None,
        on_event: EventCallback | None = None,
    ) -> ResearchExecution:
        session = ResearchSession()
        execution = ResearchExecution(session.session_id, on_event)
        execution._bind(self._run(session, query_text, context, execution))
        return execution

    def _cancelled(self) -> bool:
        signal = self.config.cancel_event
        return bool(signal is not None and signal.is_set())

    async def _run(
        self,
        session: ResearchSession,
        query_text: str,
        context: str | None,
        execution: ResearchExecution,
    ) -> AsyncIterator[ResearchEvent]:
        if self._running:
            raise RuntimeError("ResearchOrchestrator does not support overlapping executions")
        self._running = True
        self.session = session
        sid = session.session_id
        effort = self.config.effort
        phase_clock: dict[str, float] = {}
        log = session_logger(sid)

        def start(phase: str, message: str) -> ResearchEvent:
            phase_clock[phase] = time.monotonic()
            log_research_step(sid, phase, "started", {"message": message})
            return streaming.phase_started(sid, phase, message)

        def finish(phase: str) -> ResearchEvent:
            duration_ms = int((time.monotonic() - phase_clock.get(phase, time.monotonic())) * 1000)
            log_research_step(sid, phase, "completed", {"duration_ms": duration_ms})
            return streaming.phase_completed(sid, phase, duration_ms)

        log.info(f"Research started: {query_text[:120]!r} (effort={effort.level.value})")
        try:
            yield start("decomposing", "Decomposing query into sub-queries")
            query = await self.decomposer.decompose(query_text, effort, context)
            session.query = query
            session.total_steps = phases.calculate_total_steps(len(query.sub_queries), effort)
            yield finish("decomposing")

            yield start("searching", f"Searching {len(query.sub_queries)} queries in parallel")
            async for event in phases.search_phase(session, self.ports, effort, self.executor):
                yield event
            yield finish("searching")

            if self._cancelled():
                log.info("Research stopped after search phase")
                log_research_step(sid, "stopped", "stopped", session.stats_snapshot())
                execution._finish(session.build_result(ResearchStatus.STOPPED))
                return

            yield start("ranking", "Ranking and selecting sources")
            await phases.rank_phase(session, self.ranker, effort)
            yield finish("ranking")

            yield start("extracting", f"Extracting content from {len(session.ranked_sources)} sources")
            async for event in phases.extract_phase(session, self.ports):
                yield event
            yield finish("extracting")

            yield start("analyzing", "Analyzing content and extracting insights")
            async for event in phases.analyze_phase(session, self.ports, self.executor):
                yield event
            yield finish("analyzing")

            quality = self.assessor.assess(session.sources.values(), len(session.analyzed))
            session.quality = quality
            yield streaming.quality_check(sid, quality, effort.auto_stop_on_quality)

            if quality.is_sota and effort.auto_stop_on_quality:
                yield start("synthesizing", "SOTA quality reached - generating report")
            else:
                if effort.recursion_depth > 1 and not quality.is_sota:
                    async for event in phases.recursive_search_phase(session, self.ports, effort, self.executor):
                        yield event
                yield start("synthesizing", "Generating comprehensive report")

            synthesis = await phases.synthesize_phase(session, self.ports)
            yield finish("synthesizing")

            extra: dict[str, Any] = {"synthesis": synthesis}
            if effort.enable_visualizations:
                yield start("visualizing", "Generating visualizations")
                visuals = await phases.visualize_phase(session, self.graph_builder)
                extra.update(
                    knowledge_graph=visuals.graph,
                    mind_map=visuals.mind_map,
                    charts=visuals.charts,
                    timeline=visuals.timeline,
                )
                yield finish("visualizing")

            yield streaming.completed(sid, session.elapsed_ms, quality.overall)
            execution._finish(session.build_result(ResearchStatus.COMPLETED, **extra))
            log.info(f"Research completed in {session.elapsed_ms}ms with {len(session.sources)} sources")
        except Exception as exc:
            log.exception(f"Research failed: {exc}")
            log_research_step(sid, "failed", "failed", {"error": str(exc)})
            yield streaming.error(sid, str(exc) or exc.__class__.__name__, recoverable=False)
            execution._finish(session.build_result(ResearchStatus.FAILED, error=str(exc) or exc.__class__.__name__))
        finally:
            session.clear()
            self._running = False
            log.debug("Research session state cleared")
