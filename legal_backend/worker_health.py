"""
Worker Health Server
====================

Hosting platforms may require an HTTP healthcheck even for the RQ
worker service. This app answers `/health` with the queue state while
`python -m legal_backend.jobs.worker` runs alongside it.

    uvicorn legal_backend.worker_health:app --port 8001
"""

from datetime import datetime

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .jobs import get_queue_stats

app = FastAPI(title="legal_backend worker health", docs_url=None, redoc_url=None)


@app.get("/health")
async def health():
    queues = get_queue_stats()
    body = {
        "status": "healthy" if queues.get("available") else "degraded",
        "queues": queues,
        "timestamp": datetime.utcnow().isoformat(),
    }
    return JSONResponse(status_code=200 if queues.get("available") else 503, content=body)
