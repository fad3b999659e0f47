#!/usr/bin/env python3
"""
Development runner
==================

    python -m legal_backend.run

PORT sets the listen port (default 8000). Start the poll worker
separately with `python -m legal_backend.jobs.worker`.
"""

import os

import uvicorn


def main():
    port = int(os.environ.get("PORT", "8000"))
    print(f"Legal Workspace Backend on http://localhost:{port}")
    print(f"  API docs: http://localhost:{port}/docs")
    print(f"  Health:   http://localhost:{port}/health")

    uvicorn.run("legal_backend.api:app", host="0.0.0.0", port=port, reload=True)


if __name__ == "__main__":
    main()
