"""Analysis API routes.

POST /analyses runs the full two-phase pipeline and returns the terminal
outcome. POST /analyses/stream publishes each pipeline transition as a
Server-Sent Event so clients can render the local diagnosis before AI
guidance arrives.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from hemoscan.dependencies import get_pipeline
from hemoscan.schemas import AnalysisOutcome, CBCSample, PipelineSnapshot
from hemoscan.services.pipeline import AnalysisPipeline
from hemoscan.services.reference_ranges import ReferenceRangeConfigError, reference_table

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analyses"])


@router.get("/reference-ranges")
async def get_reference_ranges() -> list[dict]:
    """Return the sex-specific reference range for every CBC marker."""
    return reference_table()


@router.post("/analyses", response_model=AnalysisOutcome)
async def create_analysis(
    sample: CBCSample,
    pipeline: AnalysisPipeline = Depends(get_pipeline),
) -> AnalysisOutcome:
    """Screen a CBC panel and return the augmented (or fallback) result.

    Args:
        sample: Validated CBC panel (422 on malformed input).

    Returns:
        AnalysisOutcome with guidance and diet plan always populated.

    Raises:
        HTTPException: 500 if the reference table is misconfigured.
    """
    try:
        return await pipeline.run(sample)
    except ReferenceRangeConfigError:
        logger.exception("Reference range table is misconfigured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Reference ranges are misconfigured.",
        )


def _sse(event_type: str, data_json: str) -> str:
    return f"event: {event_type}\ndata: {data_json}\n\n"


@router.post("/analyses/stream")
async def create_analysis_stream(
    sample: CBCSample,
    pipeline: AnalysisPipeline = Depends(get_pipeline),
) -> StreamingResponse:
    """Stream pipeline transitions as Server-Sent Events.

    SSE event types:
    - event: local_ready — Diagnosis with guidance/diet not yet computed
    - event: augmented | fallback — merged result
    - event: done — AnalysisOutcome (record id and warnings)
    - event: error — error details

    The analysis continues in the background and is archived even if the
    client disconnects.
    """
    event_queue: asyncio.Queue[tuple[str, str] | None] = asyncio.Queue()

    async def enqueue(snapshot: PipelineSnapshot) -> None:
        await event_queue.put((snapshot.state.value, snapshot.model_dump_json()))

    try:
        handle = await pipeline.start(sample, observers=[enqueue])
    except ReferenceRangeConfigError:
        logger.exception("Reference range table is misconfigured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Reference ranges are misconfigured.",
        )

    async def finish() -> None:
        try:
            outcome = await handle.outcome()
            await event_queue.put(("done", outcome.model_dump_json()))
        except Exception:
            logger.exception("Unexpected error during analysis stream")
            await event_queue.put(("error", json.dumps({"detail": "An error occurred during analysis."})))
        finally:
            await event_queue.put(None)

    asyncio.create_task(finish())

    async def event_generator():
        while True:
            try:
                event = await event_queue.get()
                if event is None:
                    break
                event_type, data_json = event
                yield _sse(event_type, data_json)
            except asyncio.CancelledError:
                # Client disconnected - analysis continues in background
                break

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
