"""問い合わせ受付ユースケース。

検証 → ハニーポット → レート制限 → 通知送信 の順に 1 度だけ通し、
どの段階で止まっても外部に出して安全な IntakeResult に変換して返す。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping

from starlette.concurrency import run_in_threadpool

from contact_intake.core.logging import log_error, log_event
from contact_intake.core.models import (
    Accepted,
    Delivered,
    DispatchOutcome,
    Failed,
    FieldErrorSet,
    IntakeResult,
    PartiallyDelivered,
    RejectedRateLimited,
    RejectedSilently,
    RejectedValidation,
    ValidatedMessage,
)
from contact_intake.core.rate_limiter import (
    DynamoDbRateLimiter,
    InMemoryRateLimiter,
    RateLimiter,
)
from contact_intake.core.settings import Settings
from contact_intake.features.contact_post.abuse_contact_post import is_trapped
from contact_intake.features.contact_post.dispatcher_contact_post import (
    NotificationDispatcher,
    RetryPolicy,
    SesMailTransport,
)
from contact_intake.features.contact_post.validator_contact_post import validate


class ContactIntake:
    def __init__(self, *, rate_limiter: RateLimiter, dispatcher: NotificationDispatcher) -> None:
        self.rate_limiter = rate_limiter
        self.dispatcher = dispatcher
        self._inflight: set[asyncio.Task[DispatchOutcome]] = set()

    async def handle(
        self,
        raw: Mapping[str, Any],
        *,
        identity: str,
        request_id: str = "-",
    ) -> IntakeResult:
        """1 件の送信を処理する。例外は投げず、必ず IntakeResult を返す。"""

        try:
            return await self._run(raw, identity=identity, request_id=request_id)
        except Exception as exc:
            log_error(
                event="contact.unexpected_error",
                request_id=request_id,
                error=exc,
                identity=identity,
            )
            return Failed()

    async def _run(self, raw: Mapping[str, Any], *, identity: str, request_id: str) -> IntakeResult:
        validated = validate(raw)
        if isinstance(validated, FieldErrorSet):
            log_event(
                "contact.invalid",
                request_id=request_id,
                identity=identity,
                fields=validated.fields,
            )
            return RejectedValidation(field_errors=validated.errors)

        if is_trapped(validated):
            # 送信者の入力は残さず、識別キーのみ記録する。レート枠も消費しない。
            log_event("contact.trapped", request_id=request_id, identity=identity)
            return RejectedSilently()

        decision = await run_in_threadpool(self.rate_limiter.allow, identity)
        if not decision.allowed:
            log_event(
                "contact.rate_limited",
                request_id=request_id,
                identity=identity,
                retry_after=round(decision.retry_after, 3),
            )
            return RejectedRateLimited(retry_after=decision.retry_after)

        outcome = await self._dispatch_once(validated, request_id=request_id)
        if isinstance(outcome, Delivered):
            log_event("contact.accepted", request_id=request_id, identity=identity)
            return Accepted()
        if isinstance(outcome, PartiallyDelivered):
            log_event(
                "contact.partially_delivered",
                level=logging.WARNING,
                request_id=request_id,
                identity=identity,
                ack_cause=outcome.ack_cause,
            )
            return Accepted()

        log_event(
            "contact.failed",
            level=logging.ERROR,
            request_id=request_id,
            identity=identity,
            cause=outcome.cause,
        )
        return Failed()

    async def _dispatch_once(self, message: ValidatedMessage, *, request_id: str) -> DispatchOutcome:
        # 呼び出し元がキャンセルされても送信処理は最後まで走らせる（再送はしない）。
        task = asyncio.ensure_future(self.dispatcher.dispatch(message, request_id=request_id))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        task.add_done_callback(_make_dispatch_observer(request_id))
        return await asyncio.shield(task)


def _make_dispatch_observer(request_id: str) -> Callable[[asyncio.Task[DispatchOutcome]], None]:
    def _observe(task: asyncio.Task[DispatchOutcome]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event(
                "contact.dispatch_crashed",
                level=logging.ERROR,
                request_id=request_id,
                error_type=type(exc).__name__,
            )

    return _observe


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.rate_limit_backend == "dynamodb":
        return DynamoDbRateLimiter(
            table_name=settings.rate_limit_table,
            region=settings.region,
            budget=settings.rate_limit_budget,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return InMemoryRateLimiter(
        budget=settings.rate_limit_budget,
        window_seconds=settings.rate_limit_window_seconds,
    )


def build_contact_intake(settings: Settings) -> ContactIntake:
    """Settings から本番用の依存を組み立てる。"""

    dispatcher = NotificationDispatcher(
        transport=SesMailTransport(region=settings.region, source=settings.mail_from),
        operator_address=settings.operator_address,
        subject_tag=settings.subject_tag,
        ack_enabled=settings.ack_enabled,
        policy=RetryPolicy(
            max_retries=settings.dispatch_max_retries,
            backoff_base_seconds=settings.dispatch_backoff_base_seconds,
            backoff_max_seconds=settings.dispatch_backoff_max_seconds,
            timeout_seconds=settings.dispatch_timeout_seconds,
        ),
    )
    return ContactIntake(rate_limiter=build_rate_limiter(settings), dispatcher=dispatcher)
