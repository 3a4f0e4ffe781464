"""FastAPI 用の共通ミドルウェア群。"""

from __future__ import annotations

import re
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.responses import JSONResponse

from contact_intake.core.logging import log_error, log_request
from contact_intake.core.models import FAILURE_MESSAGE


RequestHandler = Callable[[Request], Awaitable[Response]]

_REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9\-_.]{1,64}")


def _resolve_request_id(request: Request) -> str:
    provided = request.headers.get("X-Request-Id")
    if provided and _REQUEST_ID_PATTERN.fullmatch(provided):
        return provided
    return str(uuid.uuid4())


async def request_id_middleware(request: Request, call_next: RequestHandler) -> Response:
    """X-Request-Id を受理・生成しレスポンスヘッダへ付与する。"""

    request_id = _resolve_request_id(request)
    request.state.request_id = request_id

    started = time.perf_counter()
    request.state.request_started = started
    try:
        response = await call_next(request)
    except Exception as exc:
        latency_ms = int((time.perf_counter() - started) * 1000)
        log_error(
            event="http.unhandled_error",
            request_id=request_id,
            error=exc,
            path=request.url.path,
            status=500,
            latency_ms=latency_ms,
        )
        response = JSONResponse({"status": "failed", "message": FAILURE_MESSAGE}, status_code=500)

    latency_ms = int((time.perf_counter() - started) * 1000)
    response.headers["X-Request-Id"] = request_id
    response.headers["X-Response-Time-Ms"] = str(latency_ms)
    log_request(
        path=request.url.path,
        status=response.status_code,
        request_id=request_id,
        latency_ms=latency_ms,
    )
    return response
