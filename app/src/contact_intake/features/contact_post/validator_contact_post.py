"""問い合わせ入力の検証。

不正な入力は想定内のケースなので例外にはせず、フィールドごとの
エラー一覧（FieldErrorSet）として返す。副作用は持たない。
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import ValidationError

from contact_intake.core.models import FieldErrorSet, ValidatedMessage
from contact_intake.features.contact_post.schemas_contact_post import ContactFormModel

FIELD_LABELS = {
    "sender_name": "Name",
    "sender_email": "Email",
    "subject": "Subject",
    "body": "Message",
    "trap_field": "This field",
}


def validate(raw: Mapping[str, Any]) -> ValidatedMessage | FieldErrorSet:
    """全フィールドを検証し、問題があればすべてまとめて返す。"""

    try:
        form = ContactFormModel.model_validate(dict(raw))
    except ValidationError as exc:
        return FieldErrorSet(errors=_collect_errors(exc))

    return ValidatedMessage(
        sender_name=form.sender_name,
        sender_email=form.sender_email,
        subject=form.subject,
        body=form.body,
        trap_field=form.trap_field,
    )


def _collect_errors(exc: ValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = error.get("loc") or ()
        if not loc:
            continue
        field = str(loc[0])
        message = _to_message(field, error)
        messages = errors.setdefault(field, [])
        if message not in messages:
            messages.append(message)
    return errors


def _to_message(field: str, error: Mapping[str, Any]) -> str:
    label = FIELD_LABELS.get(field, field)
    error_type = error.get("type")
    ctx = error.get("ctx") or {}

    if error_type == "string_too_short":
        if ctx.get("min_length") and _is_missing(error):
            return f"{label} is required."
        return f"{label} must be at least {ctx.get('min_length')} characters."
    if error_type == "string_too_long":
        return f"{label} must be at most {ctx.get('max_length')} characters."
    if error_type == "string_type":
        return f"{label} must be text."
    return str(error.get("msg") or f"{label} is invalid.")


def _is_missing(error: Mapping[str, Any]) -> bool:
    return error.get("input") == ""
