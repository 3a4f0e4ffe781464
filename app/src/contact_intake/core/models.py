"""ユースケース間で共有するデータモデル。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

SUCCESS_MESSAGE = "Thanks for your message! I'll get back to you soon."
FAILURE_MESSAGE = "Your message could not be sent. Please try again later."
VALIDATION_MESSAGE = "Please correct the highlighted fields."
RATE_LIMITED_MESSAGE = "Too many messages. Please try again later."


@dataclass(frozen=True, slots=True)
class ValidatedMessage:
    """全フィールドの制約を満たした問い合わせ内容。"""

    sender_name: str
    sender_email: str
    subject: str
    body: str
    trap_field: str = ""


@dataclass(frozen=True, slots=True)
class FieldErrorSet:
    """フィールド名 → エラーメッセージ一覧。"""

    errors: dict[str, list[str]]

    @property
    def fields(self) -> list[str]:
        return list(self.errors)


@dataclass(frozen=True, slots=True)
class RateDecision:
    allowed: bool
    retry_after: float = 0.0


@dataclass(frozen=True, slots=True)
class OutboundMail:
    """トランスポートへ渡す 1 通分のメール。"""

    to_address: str
    subject: str
    body_text: str
    reply_to: str | None = None


# DispatchOutcome


@dataclass(frozen=True, slots=True)
class Delivered:
    pass


@dataclass(frozen=True, slots=True)
class PartiallyDelivered:
    """運営者への通知は成功し、送信者への自動返信だけが失敗した。"""

    ack_cause: str


@dataclass(frozen=True, slots=True)
class DispatchFailed:
    cause: str


DispatchOutcome = Union[Delivered, PartiallyDelivered, DispatchFailed]


# IntakeResult


@dataclass(frozen=True, slots=True)
class Accepted:
    message: str = SUCCESS_MESSAGE


@dataclass(frozen=True, slots=True)
class RejectedValidation:
    field_errors: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RejectedRateLimited:
    retry_after: float


@dataclass(frozen=True, slots=True)
class RejectedSilently:
    """ハニーポットに掛かった送信。呼び出し側には Accepted と同じ表示を返す。"""

    message: str = SUCCESS_MESSAGE


@dataclass(frozen=True, slots=True)
class Failed:
    message: str = FAILURE_MESSAGE


IntakeResult = Union[
    Accepted,
    RejectedValidation,
    RejectedRateLimited,
    RejectedSilently,
    Failed,
]
