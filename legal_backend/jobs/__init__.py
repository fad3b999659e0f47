"""
Job Queue Package
=================

Background polling with Redis Queue (RQ).
"""

from .queue import enqueue_job, get_queue_stats
from .tasks import (
    poll_ocr_job,
    poll_transcription_job,
    task_poll_ocr_job,
    task_poll_transcription_job,
)

__all__ = [
    # Queue management
    "enqueue_job", "get_queue_stats",
    # Tasks
    "poll_ocr_job",
    "poll_transcription_job",
    "task_poll_ocr_job",
    "task_poll_transcription_job",
]
