"""問い合わせフォーム受付エンドポイント。"""

from __future__ import annotations

import json
import math
from typing import Any

from fastapi import APIRouter, Depends, Request
from starlette.responses import JSONResponse

from contact_intake.core.identity import identity_from_request
from contact_intake.core.models import (
    RATE_LIMITED_MESSAGE,
    VALIDATION_MESSAGE,
    Accepted,
    Failed,
    IntakeResult,
    RejectedRateLimited,
    RejectedSilently,
    RejectedValidation,
)
from contact_intake.core.settings import Settings
from contact_intake.features.contact_post.schemas_contact_post import (
    ContactFailedResponse,
    ContactInvalidResponse,
    ContactRateLimitedResponse,
    ContactResponse,
)
from contact_intake.features.contact_post.usecase_contact_post import ContactIntake

router = APIRouter(tags=["contact"])


async def get_settings(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[attr-defined]


async def get_contact_intake(request: Request) -> ContactIntake:
    return request.app.state.contact_intake  # type: ignore[attr-defined]


@router.post(
    "/contact",
    response_model=ContactResponse,
    responses={
        422: {"model": ContactInvalidResponse},
        429: {"model": ContactRateLimitedResponse},
        500: {"model": ContactFailedResponse},
    },
)
async def contact(
    request: Request,
    settings: Settings = Depends(get_settings),
    intake: ContactIntake = Depends(get_contact_intake),
) -> JSONResponse:
    raw = await _read_submission(request)
    identity = identity_from_request(
        request,
        trust_forwarded_for=settings.trust_forwarded_for,
        trusted_proxy_count=settings.trusted_proxy_count,
    )
    request_id = getattr(request.state, "request_id", "-")
    result = await intake.handle(raw, identity=identity, request_id=request_id)
    return render_result(result)


async def _read_submission(request: Request) -> dict[str, Any]:
    """JSON オブジェクト以外の本文は空の入力として扱う。"""

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    if not isinstance(payload, dict):
        return {}
    return payload


def render_result(result: IntakeResult) -> JSONResponse:
    """IntakeResult を HTTP レスポンスへ変換する。"""

    if isinstance(result, (Accepted, RejectedSilently)):
        body = ContactResponse(message=result.message)
        return JSONResponse(body.model_dump(), status_code=200)
    if isinstance(result, RejectedValidation):
        invalid = ContactInvalidResponse(
            message=VALIDATION_MESSAGE,
            field_errors=result.field_errors,
        )
        return JSONResponse(invalid.model_dump(), status_code=422)
    if isinstance(result, RejectedRateLimited):
        retry_after = max(1, math.ceil(result.retry_after))
        limited = ContactRateLimitedResponse(
            message=RATE_LIMITED_MESSAGE,
            retry_after=retry_after,
        )
        return JSONResponse(
            limited.model_dump(),
            status_code=429,
            headers={"Retry-After": str(retry_after)},
        )
    failed = result if isinstance(result, Failed) else Failed()
    return JSONResponse(ContactFailedResponse(message=failed.message).model_dump(), status_code=500)
