"""JSONロギングの共通ヘルパー。

送信者が入力した自由記述（氏名・件名・本文）はログに載せない。
呼び出し側が渡す値もすべて `sanitize` を通してから出力する。
"""

from __future__ import annotations

import json
import logging
import re
import traceback
from typing import Any

_LOGGER = logging.getLogger("contact_intake")

_MAX_VALUE_LENGTH = 200
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize(value: Any) -> Any:
    """ログ出力用に文字列を無害化する。文字列以外はそのまま返す。"""

    if isinstance(value, str):
        cleaned = _CONTROL_CHARS.sub("?", value)
        if len(cleaned) > _MAX_VALUE_LENGTH:
            return cleaned[:_MAX_VALUE_LENGTH] + "..."
        return cleaned
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value]
    if isinstance(value, dict):
        return {sanitize(str(key)): sanitize(item) for key, item in value.items()}
    return value


def log_request(*, path: str, status: int, request_id: str, latency_ms: int) -> None:
    payload = {
        "level": "INFO",
        "path": sanitize(path),
        "status": status,
        "request_id": sanitize(request_id),
        "latency_ms": latency_ms,
    }
    _LOGGER.info(json.dumps(payload, ensure_ascii=False))


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """パイプラインの状態遷移を 1 行の JSON として記録する。"""

    payload: dict[str, Any] = {
        "level": logging.getLevelName(level),
        "event": event,
    }
    for key, value in fields.items():
        payload[key] = sanitize(value)
    _LOGGER.log(level, json.dumps(payload, ensure_ascii=False))


def log_error(
    *,
    event: str,
    request_id: str,
    error: Any,
    **fields: Any,
) -> None:
    payload: dict[str, Any] = {
        "level": "ERROR",
        "event": event,
        "request_id": sanitize(request_id),
        "error_json": _to_error_json(error),
        "traceback": traceback.format_exc(),
    }
    for key, value in fields.items():
        payload[key] = sanitize(value)
    _LOGGER.error(json.dumps(payload, ensure_ascii=False))


def _to_error_json(error: Any) -> str:
    if isinstance(error, (dict, list)):
        return json.dumps(sanitize(error), ensure_ascii=False)
    if isinstance(error, BaseException):
        return json.dumps({"type": type(error).__name__}, ensure_ascii=False)
    return json.dumps({"message": sanitize(str(error))}, ensure_ascii=False)
