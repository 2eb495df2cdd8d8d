from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from painradar.core.dependencies import get_handlers, get_queue_manager
from painradar.core.security import require_cron_secret
from painradar.modules.queue.handlers import JobHandler, process_next
from painradar.modules.queue.manager import QueueManager
from painradar.modules.queue.schemas import (
    EnqueueResponse,
    JobStatusResponse,
    JobType,
    ProcessResponse,
)

router = APIRouter(prefix="/queue", tags=["queue"])


@router.post(
    "/enqueue",
    response_model=EnqueueResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def enqueue(queue: QueueManager = Depends(get_queue_manager)) -> EnqueueResponse:
    """Start a generation cycle by queueing a coordinator job."""
    job_id = await queue.enqueue_coordinator()
    return EnqueueResponse(job_id=job_id, message="Coordinator job queued")


@router.post(
    "/process",
    response_model=ProcessResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def process(
    queue: QueueManager = Depends(get_queue_manager),
    handlers: dict[JobType, JobHandler] = Depends(get_handlers),
):
    """Run one worker tick. Failed jobs are reported with a 500."""
    response = await process_next(queue, handlers)
    if not response.success:
        return JSONResponse(status_code=500, content=response.model_dump(mode="json"))
    return response


@router.get("/status/{job_id}", response_model=JobStatusResponse)
async def job_status(
    job_id: str,
    queue: QueueManager = Depends(get_queue_manager),
) -> JobStatusResponse:
    job = await queue.status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(
        job_id=job.id,
        type=job.type,
        status=job.status,
        queue_position=await queue.queue_position(job.id),
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        result=job.result,
        error=job.error,
    )
