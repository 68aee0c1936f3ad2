from __future__ import annotations

import asyncio
import json as _json

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from deepresearch.agents.orchestrator import ResearchExecution
from deepresearch.api.deps import get_available_efforts, get_research_service
from deepresearch.models.research import ResearchResult
from deepresearch.models.schemas import EffortsResponse, ResearchRequest
from deepresearch.services import logger as log_service
from deepresearch.services import streaming
from deepresearch.services.research_runner import DeepResearch

router = APIRouter(prefix="/api/research", tags=["research"])


def _start(
    service: DeepResearch, request: ResearchRequest, cancel_event: asyncio.Event | None = None
) -> ResearchExecution:
    try:
        return service.research(
            request.query,
            request.effort,
            request.overrides or None,
            request.context,
            cancel_event=cancel_event,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_json.loads(e.json())) from e


@router.get("/efforts", response_model=EffortsResponse)
async def list_efforts():
    """Available effort presets."""
    return EffortsResponse(efforts=get_available_efforts())


@router.post("", response_model=ResearchResult)
async def run_research(request: ResearchRequest, service: DeepResearch = Depends(get_research_service)):
    """Run a research query to completion and return the final result."""
    execution = _start(service, request)
    return await execution.wait()


@router.post("/stream")
async def stream_research(request: ResearchRequest, service: DeepResearch = Depends(get_research_service)):
    """SSE endpoint that streams research events, then the final result."""
    cancel_event = asyncio.Event()
    execution = _start(service, request, cancel_event)

    async def event_generator():
        log_service.log_event(
            event_type="research_started",
            message="Research stream started",
            session_id=execution.session_id,
            query=request.query[:100],
        )
        try:
            async for event in execution:
                yield {
                    "event": event.event.value,
                    "data": _json.dumps(event.to_dict(), default=str),
                }
            yield {"event": "result", "data": execution.result.model_dump_json()}
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in research stream",
                error=str(e),
                session_id=execution.session_id,
            )
            error_event = streaming.error(execution.session_id, "Research stream failed unexpectedly.")
            yield {
                "event": error_event.event.value,
                "data": _json.dumps(error_event.to_dict(), default=str),
            }
        finally:
            # Client went away or the stream ended; either way release the run.
            cancel_event.set()
            await execution.aclose()

    return EventSourceResponse(event_generator())
