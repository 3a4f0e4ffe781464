"""問い合わせ通知の送信。

運営者宛ての通知を 1 通送り、設定に応じて送信者へ自動返信を送る。
一時的な失敗のみ指数バックオフで再送し、恒久的な失敗や送信済みか
判別できない失敗は再送しない（二重送信より取りこぼしを選ぶ）。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    HTTPClientError,
    ReadTimeoutError,
)
from botocore.exceptions import ConnectionError as BotoConnectionError
from starlette.concurrency import run_in_threadpool

from contact_intake.clients import ses_client
from contact_intake.core.logging import log_event
from contact_intake.core.models import (
    Delivered,
    DispatchFailed,
    DispatchOutcome,
    OutboundMail,
    PartiallyDelivered,
    ValidatedMessage,
)

ACK_SUBJECT = "Thanks for getting in touch"
ACK_BODY = (
    "Hi,\n\n"
    "Thanks for reaching out through my portfolio site. Your message has been "
    "received and I'll reply as soon as I can.\n\n"
    "This is an automated message, please do not reply to it."
)

_TRANSIENT_CODES = {
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "InternalFailure",
    "InternalError",
    "RequestTimeout",
    "RequestTimeoutException",
}


class DispatchError(RuntimeError):
    """通知送信の失敗。`code` のみ外部（ログ）へ出す。"""

    default_code = "DISPATCH_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code


class TransientDispatchError(DispatchError):
    default_code = "TRANSIENT"


class PermanentDispatchError(DispatchError):
    default_code = "PERMANENT"


class AmbiguousDispatchError(DispatchError):
    """送信が相手に届いたか判別できない失敗。再送しない。"""

    default_code = "AMBIGUOUS"


class DispatchTimeoutError(DispatchError):
    default_code = "TIMEOUT"


class MailTransport(Protocol):
    def send(self, mail: OutboundMail) -> None:
        ...


class SesMailTransport:
    """Amazon SES を使ったトランスポート。botocore の例外を分類して投げ直す。"""

    def __init__(self, *, region: str, source: str) -> None:
        self.region = region
        self.source = source

    def send(self, mail: OutboundMail) -> None:
        try:
            ses_client.send_email(
                region=self.region,
                source=self.source,
                to_addresses=[mail.to_address],
                subject=mail.subject,
                body_text=mail.body_text,
                reply_to=[mail.reply_to] if mail.reply_to else None,
            )
        except ClientError as exc:
            raise classify_client_error(exc) from exc
        except ReadTimeoutError as exc:
            raise AmbiguousDispatchError("SES 応答待ちでタイムアウトしました。", code="READ_TIMEOUT") from exc
        except BotoConnectionError as exc:
            raise TransientDispatchError("SES への接続に失敗しました。", code="CONNECTION") from exc
        except HTTPClientError as exc:
            raise AmbiguousDispatchError("SES との通信が途中で切断されました。", code="HTTP_CLIENT") from exc
        except BotoCoreError as exc:
            raise PermanentDispatchError("SES クライアントの設定エラーです。", code="CLIENT_CONFIG") from exc


def classify_client_error(exc: ClientError) -> DispatchError:
    """SES の ClientError を一時的/恒久的に振り分ける。"""

    error = exc.response.get("Error", {})
    code = str(error.get("Code") or "UNKNOWN")
    status = int(exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0)
    if code in _TRANSIENT_CODES or status >= 500 or status == 429:
        return TransientDispatchError("SES の一時的なエラーです。", code=code)
    return PermanentDispatchError("SES が送信を拒否しました。", code=code)


@dataclass(slots=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 8.0
    timeout_seconds: float = 20.0

    def delay_for(self, retry_number: int) -> float:
        """`retry_number` 回目（0 始まり）の再送前に待つ秒数。"""

        return min(self.backoff_base_seconds * (2**retry_number), self.backoff_max_seconds)


def build_operator_mail(
    message: ValidatedMessage, *, operator_address: str, subject_tag: str
) -> OutboundMail:
    """運営者宛ての通知。送信者の入力はそのまま転記する。"""

    body_text = "\n".join(
        [
            "New message from the contact form.",
            "",
            f"Name: {message.sender_name}",
            f"Email: {message.sender_email}",
            f"Subject: {message.subject}",
            "",
            message.body,
        ]
    )
    return OutboundMail(
        to_address=operator_address,
        subject=f"{subject_tag} {message.subject}",
        body_text=body_text,
        reply_to=message.sender_email,
    )


def build_ack_mail(message: ValidatedMessage) -> OutboundMail:
    # 第三者宛てのスパム中継に使われないよう、送信者の入力は一切含めない。
    return OutboundMail(
        to_address=message.sender_email,
        subject=ACK_SUBJECT,
        body_text=ACK_BODY,
    )


class NotificationDispatcher:
    def __init__(
        self,
        *,
        transport: MailTransport,
        operator_address: str,
        subject_tag: str,
        ack_enabled: bool = True,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.operator_address = operator_address
        self.subject_tag = subject_tag
        self.ack_enabled = ack_enabled
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def dispatch(self, message: ValidatedMessage, *, request_id: str = "-") -> DispatchOutcome:
        """運営者通知 → 自動返信の順に送り、1 つの結果にまとめて返す。

        制限時間は両方の送信で共有する。
        """

        deadline = asyncio.get_running_loop().time() + self.policy.timeout_seconds
        primary = build_operator_mail(
            message,
            operator_address=self.operator_address,
            subject_tag=self.subject_tag,
        )
        primary_cause = await self._deliver(
            primary, path="primary", deadline=deadline, request_id=request_id
        )
        if primary_cause is not None:
            return DispatchFailed(cause=primary_cause)

        if not self.ack_enabled:
            return Delivered()

        # 自動返信の失敗は運営者通知の成否に影響させない。
        ack_cause = await self._deliver(
            build_ack_mail(message), path="ack", deadline=deadline, request_id=request_id
        )
        if ack_cause is not None:
            return PartiallyDelivered(ack_cause=ack_cause)
        return Delivered()

    async def _deliver(
        self, mail: OutboundMail, *, path: str, deadline: float, request_id: str
    ) -> str | None:
        """送信に成功すれば None、失敗すれば原因コードを返す。"""

        try:
            await self._send_with_retry(
                mail, path=path, deadline=deadline, request_id=request_id
            )
        except DispatchError as exc:
            log_event(
                "contact.dispatch_failed",
                level=logging.WARNING,
                request_id=request_id,
                path=path,
                error_type=type(exc).__name__,
                code=exc.code,
            )
            return exc.code
        return None

    async def _send_with_retry(
        self, mail: OutboundMail, *, path: str, deadline: float, request_id: str
    ) -> None:
        loop = asyncio.get_running_loop()
        for attempt in range(self.policy.max_retries + 1):
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise DispatchTimeoutError("通知送信の制限時間を超えました。")
            try:
                await self._attempt(mail, timeout=remaining)
                return
            except TransientDispatchError as exc:
                if attempt >= self.policy.max_retries:
                    raise
                delay = self.policy.delay_for(attempt)
                if loop.time() + delay >= deadline:
                    raise DispatchTimeoutError("再送前に制限時間を超えます。") from exc
                log_event(
                    "contact.dispatch_retry",
                    level=logging.WARNING,
                    request_id=request_id,
                    path=path,
                    attempt=attempt + 1,
                    delay_seconds=delay,
                    code=exc.code,
                )
                await self._sleep(delay)

    async def _attempt(self, mail: OutboundMail, *, timeout: float) -> None:
        task = asyncio.ensure_future(run_in_threadpool(self.transport.send, mail))
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            # 送信中のスレッドは打ち切らず、結果だけを捨てる。以降の試行もしない。
            task.add_done_callback(_discard_result)
            raise DispatchTimeoutError("通知送信がタイムアウトしました。")
        task.result()


def _discard_result(task: asyncio.Future[None]) -> None:
    if not task.cancelled():
        task.exception()
