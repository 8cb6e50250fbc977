"""Hit ingestion endpoint.

This is the thin FastAPI adapter. It parses the JSON body, snapshots the
request headers and caller, and hands both to the processor.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from leanstats.api.auth import request_context

router = APIRouter(prefix="/api/v1")


@router.post("/hits")
async def receive_hit(request: Request) -> Response:
    """Receive a page-view hit from the tracker script.

    201 when tracked. 204 (no body) when the hit was skipped for any
    reason. Privacy policy, duplicate, rate limit and storage failure all
    produce the same answer. 400 on a malformed payload.
    """
    from leanstats.main import get_processor

    processor = get_processor()
    body_bytes = await request.body()

    try:
        body = json.loads(body_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None

    if not isinstance(body, dict):
        return JSONResponse(
            status_code=400,
            content={"code": "invalid_json", "message": "Request body must be a JSON object."},
        )

    context = request_context(request)
    tracked = await run_in_threadpool(processor.process, body, context)

    if tracked:
        return JSONResponse(status_code=201, content={"tracked": True})
    return Response(status_code=204)
