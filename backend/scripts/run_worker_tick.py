#!/usr/bin/env python3
"""Queue worker tick.

Optionally enqueues a coordinator job, then runs one or more worker ticks
against the configured queue store, Reddit source and database. Use it in
place of the HTTP cron endpoints for local runs.

Usage:
    python -m scripts.run_worker_tick --enqueue
    python -m scripts.run_worker_tick --ticks 5
    python -m scripts.run_worker_tick --enqueue --ticks 10
"""
from __future__ import annotations

import argparse
import asyncio

import structlog

from painradar.core.dependencies import (
    build_handlers,
    get_document_source,
    get_queue_manager,
    get_record_store,
)
from painradar.modules.queue.handlers import process_next
from painradar.modules.queue.store import get_store

logger = structlog.get_logger()


async def run(enqueue: bool, ticks: int) -> None:
    queue = get_queue_manager()
    handlers = build_handlers(queue, get_document_source(), get_record_store())

    try:
        if enqueue:
            job_id = await queue.enqueue_coordinator()
            logger.info("coordinator_enqueued", job_id=job_id)

        for tick in range(1, ticks + 1):
            response = await process_next(queue, handlers)
            logger.info(
                "tick_done",
                tick=tick,
                job_id=response.job_id,
                job_type=response.job_type.value if response.job_type else None,
                success=response.success,
                message=response.message,
                error=response.error,
            )
            if response.job_id is None:
                break

        logger.info("worker_finished", pending=await queue.pending_count())
    finally:
        await get_store().close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run Pain Radar queue worker ticks")
    parser.add_argument("--enqueue", action="store_true", help="Enqueue a coordinator job first")
    parser.add_argument("--ticks", type=int, default=1, help="Number of worker ticks to run")
    args = parser.parse_args()
    asyncio.run(run(enqueue=args.enqueue, ticks=args.ticks))


if __name__ == "__main__":
    main()
