"""
Job Queue
=========

RQ queues for Case.dev status polling. A user clicking "refresh" on an
OCR job goes to the high queue; routine transcription polls use default.

Redis is optional: when it cannot be reached the poll runs inline and
the caller gets its result straight away.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, Callable, List

from redis import Redis
from rq import Queue, Retry

from ..config import get_settings

logger = logging.getLogger(__name__)

QUEUE_HIGH = "high"
QUEUE_DEFAULT = "default"
QUEUE_LOW = "low"

# Worker listen order
ALL_QUEUES: List[str] = [QUEUE_HIGH, QUEUE_DEFAULT, QUEUE_LOW]

RETRY_INTERVALS = [10, 30, 60]
REDIS_CONNECT_TIMEOUT = 2


def redis_connection() -> Redis:
    return Redis.from_url(get_settings().redis_url, socket_connect_timeout=REDIS_CONNECT_TIMEOUT)


def _run_inline(func: Callable, args: tuple, kwargs: Dict[str, Any], job_id: Optional[str]) -> Dict[str, Any]:
    name = getattr(func, "__name__", "job")
    try:
        return {"job_id": job_id or "sync", "status": "done", "result": func(*args, **kwargs)}
    except Exception as e:
        logger.error(f"Inline job {name} failed: {e}")
        return {"job_id": job_id or "sync", "status": "failed", "error": str(e)}


def enqueue_job(
    func: Callable,
    *args,
    queue_name: str = QUEUE_DEFAULT,
    job_id: Optional[str] = None,
    timeout: int = 600,
    retry: int = 3,
    meta: Optional[Dict[str, Any]] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Queue `func(*args, **kwargs)` on RQ.

    Returns:
        {job_id, status, queue, enqueued_at} when queued, or
        {job_id: "sync", status: done|failed, result|error} when Redis
        is unreachable and the job ran inline
    """
    try:
        job = Queue(queue_name, connection=redis_connection()).enqueue(
            func,
            *args,
            job_id=job_id,
            job_timeout=timeout,
            retry=Retry(max=retry, interval=RETRY_INTERVALS) if retry > 0 else None,
            meta=meta or {},
            **kwargs
        )
    except Exception as e:
        logger.warning(f"Redis unavailable ({e}); running {getattr(func, '__name__', 'job')} inline")
        return _run_inline(func, args, kwargs, job_id)

    logger.info(f"Enqueued {func.__name__} as {job.id} on {queue_name}")
    return {
        "job_id": job.id,
        "status": job.get_status(),
        "queue": queue_name,
        "enqueued_at": datetime.utcnow().isoformat(),
    }


def get_queue_stats() -> Dict[str, Any]:
    """Per-queue length and failed count; {available: False} without Redis"""
    try:
        conn = redis_connection()
        conn.ping()
    except Exception as e:
        return {"available": False, "error": str(e)}

    queues = {}
    for name in ALL_QUEUES:
        queue = Queue(name, connection=conn)
        queues[name] = {"length": len(queue), "failed": queue.failed_job_registry.count}
    return {"available": True, "queues": queues}
