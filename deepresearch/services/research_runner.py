from __future__ import annotations

from typing import Any

from deepresearch.agents.analyzer_agent import LLMContentAnalyzer
from deepresearch.agents.orchestrator import (
    CancelSignal,
    EventCallback,
    OrchestratorConfig,
    ResearchExecution,
    ResearchOrchestrator,
)
from deepresearch.agents.synthesizer_agent import LLMSynthesizer
from deepresearch.config import settings
from deepresearch.llm_client import LLMClient
from deepresearch.models.research import EffortLevel, ResearchResult, build_effort_config
from deepresearch.research_core.ports import ResearchPorts
from deepresearch.services.logger import log_event
from deepresearch.tools.web_scraper import WebScraper
from deepresearch.tools.web_search import WebSearchAdapter


def create_default_ports() -> ResearchPorts:
    """Wire the OpenRouter, search and scraper adapters from settings."""
    llm = LLMClient()
    return ResearchPorts(
        llm=llm,
        search=WebSearchAdapter(),
        scraper=WebScraper(),
        analyzer=LLMContentAnalyzer(llm),
        synthesizer=LLMSynthesizer(llm),
    )


class DeepResearch:
    """Entry point: one fresh orchestrator per research call, shared ports."""

    def __init__(self, ports: ResearchPorts | None = None):
        self.ports = ports or create_default_ports()

    def research(
        self,
        query: str,
        effort: EffortLevel | str | None = None,
        overrides: dict[str, Any] | None = None,
        context: str | None = None,
        cancel_event: CancelSignal | None = None,
        on_event: EventCallback | None = None,
    ) -> ResearchExecution:
        effort_config = build_effort_config(effort or settings.default_effort, overrides)
        log_event(
            event_type="research_requested",
            message="Research requested",
            query=query[:100],
            effort=effort_config.level.value,
        )
        orchestrator = ResearchOrchestrator(
            self.ports,
            OrchestratorConfig(effort=effort_config, cancel_event=cancel_event),
        )
        return orchestrator.execute(query, context, on_event)

    async def research_quick(self, query: str, context: str | None = None) -> ResearchResult:
        """Run at standard effort and return only the final result."""
        execution = self.research(query, EffortLevel.STANDARD, context=context)
        return await execution.wait()
