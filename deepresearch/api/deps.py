from __future__ import annotations

from functools import lru_cache

from deepresearch.models.research import EFFORT_PRESETS
from deepresearch.models.schemas import EffortInfo
from deepresearch.services.research_runner import DeepResearch


@lru_cache(maxsize=1)
def get_research_service() -> DeepResearch:
    """Shared research entry point; adapters and their caches live as long as the app."""
    return DeepResearch()


def get_available_efforts() -> list[EffortInfo]:
    return [
        EffortInfo(
            level=preset.level,
            max_sources=preset.max_sources,
            parallelism=preset.parallelism,
            recursion_depth=preset.recursion_depth,
            quality_threshold=preset.quality_threshold,
            timeout_ms=preset.timeout_ms,
        )
        for preset in EFFORT_PRESETS.values()
    ]
