"""`/contact` のリクエスト/レスポンススキーマ。"""

from __future__ import annotations

import re
from typing import Any, Literal

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 255
SUBJECT_MIN_LENGTH = 5
SUBJECT_MAX_LENGTH = 200
BODY_MIN_LENGTH = 20
BODY_MAX_LENGTH = 5000

# 先頭は文字（任意の言語）、以降は文字・空白・ハイフン・アポストロフィのみ。
_NAME_PATTERN = re.compile(r"[^\W\d_](?:[^\W\d_]|[ '’\-])*")
_LINE_BREAKS = re.compile(r"[\r\n\u2028\u2029]")


class ContactFormModel(BaseModel):
    """問い合わせフォームの入力制約。欠けたキーは空文字として扱う。"""

    sender_name: str = Field("", min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)
    sender_email: str = Field("", max_length=EMAIL_MAX_LENGTH)
    subject: str = Field("", min_length=SUBJECT_MIN_LENGTH, max_length=SUBJECT_MAX_LENGTH)
    body: str = Field("", min_length=BODY_MIN_LENGTH, max_length=BODY_MAX_LENGTH)
    # ハニーポット。空白のみの値も非空として扱うため trim しない。
    trap_field: str = ""

    model_config = ConfigDict(extra="ignore", frozen=True, validate_default=True)

    @field_validator("sender_name", "sender_email", "subject", "body", mode="before")
    @classmethod
    def strip_surrounding_whitespace(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("trap_field", mode="before")
    @classmethod
    def coerce_trap_to_text(cls, value: Any) -> str:
        # 型エラーで隠しフィールドの存在を知らせない。null 以外は文字列化して罠判定に回す。
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        return str(value)

    @field_validator("sender_name")
    @classmethod
    def check_name_characters(cls, value: str) -> str:
        if not _NAME_PATTERN.fullmatch(value):
            raise PydanticCustomError(
                "name_characters",
                "Name may only contain letters, spaces, hyphens and apostrophes.",
            )
        return value

    @field_validator("sender_email")
    @classmethod
    def check_email_syntax(cls, value: str) -> str:
        if not value:
            raise PydanticCustomError("email_required", "Email is required.")
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError:
            raise PydanticCustomError(
                "email_syntax", "Please enter a valid email address."
            ) from None
        # 構文チェックの後で小文字化する。
        return value.lower()

    @field_validator("subject")
    @classmethod
    def check_single_line(cls, value: str) -> str:
        if _LINE_BREAKS.search(value):
            raise PydanticCustomError(
                "subject_single_line", "Subject must be a single line."
            )
        return value


class ContactResponse(BaseModel):
    """受付完了レスポンス。ハニーポット時も同じ形で返す。"""

    status: Literal["accepted"] = "accepted"
    message: str

    model_config = ConfigDict(extra="forbid")


class ContactInvalidResponse(BaseModel):
    status: Literal["invalid"] = "invalid"
    message: str
    field_errors: dict[str, list[str]] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ContactRateLimitedResponse(BaseModel):
    status: Literal["rate_limited"] = "rate_limited"
    message: str
    retry_after: int

    model_config = ConfigDict(extra="forbid")


class ContactFailedResponse(BaseModel):
    status: Literal["failed"] = "failed"
    message: str

    model_config = ConfigDict(extra="forbid")
