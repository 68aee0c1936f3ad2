from __future__ import annotations

import pytest
from pydantic import ValidationError

from deepresearch.models.research import EffortLevel, ResearchStatus, build_effort_config
from deepresearch.services.research_runner import DeepResearch, create_default_ports
from deepresearch.tools.web_scraper import WebScraper
from deepresearch.tools.web_search import WebSearchAdapter
from fakes import make_ports


def test_build_effort_config_merges_and_validates_overrides():
    config = build_effort_config("deep", {"max_sources": 30, "level": "max"})
    assert config.level == EffortLevel.DEEP
    assert config.max_sources == 30
    assert config.parallelism == 15

    with pytest.raises(ValidationError):
        build_effort_config("standard", {"parallelism": 50})


def test_presets_are_not_shared_between_calls():
    first = build_effort_config("standard")
    first.max_sources = 99
    assert build_effort_config("standard").max_sources == 25


def test_create_default_ports_wires_real_adapters():
    ports = create_default_ports()
    assert isinstance(ports.search, WebSearchAdapter)
    assert isinstance(ports.scraper, WebScraper)
    assert ports.analyzer.llm is ports.llm
    assert ports.synthesizer.llm is ports.llm


@pytest.mark.asyncio
async def test_research_quick_returns_completed_result():
    result = await DeepResearch(make_ports()).research_quick("fusion energy")

    assert result.status == ResearchStatus.COMPLETED
    assert result.query.effort.level == EffortLevel.STANDARD


@pytest.mark.asyncio
async def test_research_uses_a_fresh_orchestrator_per_call():
    service = DeepResearch(make_ports())
    seen = []

    first = service.research("fusion energy", "deep", on_event=seen.append)
    second = service.research("fission energy")

    first_result = await first.wait()
    second_result = await second.wait()

    assert first_result.query.effort.level == EffortLevel.DEEP
    assert second_result.status == ResearchStatus.COMPLETED
    assert seen
