"""アプリ全体で共有する設定読み込みロジック。"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable

import boto3
from botocore.exceptions import ClientError
from dotenv import load_dotenv


_DEFAULT_REGION = "ap-northeast-1"
_LOCAL_ENV = "local"
_DEFAULT_SUBJECT_TAG = "[Portfolio Contact]"
_RATE_LIMIT_BACKENDS = ("memory", "dynamodb")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True)
class Settings:
    """環境非依存で参照できる設定値の集合。"""

    app_env: str
    region: str
    mail_from: str
    operator_address: str
    subject_tag: str = _DEFAULT_SUBJECT_TAG
    ack_enabled: bool = True
    rate_limit_budget: int = 5
    rate_limit_window_seconds: float = 3600.0
    rate_limit_backend: str = "memory"
    rate_limit_table: str = ""
    dispatch_max_retries: int = 3
    dispatch_backoff_base_seconds: float = 0.5
    dispatch_backoff_max_seconds: float = 8.0
    dispatch_timeout_seconds: float = 20.0
    trust_forwarded_for: bool = False
    trusted_proxy_count: int = 1
    allowed_origins: tuple[str, ...] = ()
    ssm_path_prefix: str | None = None

    @property
    def is_local(self) -> bool:
        return self.app_env == _LOCAL_ENV


def _load_json_list(name: str) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"環境変数 {name} の JSON パースに失敗しました。") from exc
    if not isinstance(parsed, list):
        raise ValueError(f"環境変数 {name} は JSON 配列である必要があります。")
    return [str(item) for item in parsed]


def _get_required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"環境変数 {name} が未設定です。")
    return value


def _get_int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"環境変数 {name} は整数である必要があります。") from exc
    if value < minimum:
        raise ValueError(f"環境変数 {name} は {minimum} 以上である必要があります。")
    return value


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"環境変数 {name} は数値である必要があります。") from exc
    if value <= 0:
        raise ValueError(f"環境変数 {name} は正の数である必要があります。")
    return value


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"環境変数 {name} は真偽値である必要があります。")


def _fetch_ssm_parameters(
    region: str, names: Iterable[str], prefix: str
) -> dict[str, str]:
    name_list = [f"{prefix}/{name}" for name in names]
    client = boto3.client("ssm", region_name=region)
    try:
        resp = client.get_parameters(Names=name_list, WithDecryption=True)
    except ClientError as exc:  # pragma: no cover - boto3 例外ラップ
        raise RuntimeError("SSM パラメータ取得に失敗しました。") from exc

    found = {item["Name"]: item["Value"] for item in resp.get("Parameters", [])}
    missing = {name for name in name_list if name not in found}
    if missing:
        raise ValueError(f"SSM パラメータ未設定: {', '.join(sorted(missing))}")
    return found


def _load_tuning(
    *,
    app_env: str,
    region: str,
    mail_from: str,
    operator_address: str,
    ssm_path_prefix: str | None,
) -> Settings:
    """環境変数由来のチューニング値を読み込んで Settings を組み立てる。"""

    backend = os.getenv("RATE_LIMIT_BACKEND", "memory").strip().lower()
    if backend not in _RATE_LIMIT_BACKENDS:
        raise ValueError(f"RATE_LIMIT_BACKEND は {_RATE_LIMIT_BACKENDS} のいずれかです。")
    table = os.getenv("RATE_LIMIT_TABLE", "")
    if backend == "dynamodb" and not table:
        raise ValueError("RATE_LIMIT_BACKEND=dynamodb には RATE_LIMIT_TABLE が必要です。")

    return Settings(
        app_env=app_env,
        region=region,
        mail_from=mail_from,
        operator_address=operator_address,
        subject_tag=os.getenv("CONTACT_SUBJECT_TAG", _DEFAULT_SUBJECT_TAG),
        ack_enabled=_get_bool_env("CONTACT_ACK_ENABLED", True),
        rate_limit_budget=_get_int_env("RATE_LIMIT_BUDGET", 5, minimum=1),
        rate_limit_window_seconds=_get_float_env("RATE_LIMIT_WINDOW_SECONDS", 3600.0),
        rate_limit_backend=backend,
        rate_limit_table=table,
        dispatch_max_retries=_get_int_env("DISPATCH_MAX_RETRIES", 3),
        dispatch_backoff_base_seconds=_get_float_env("DISPATCH_BACKOFF_BASE_SECONDS", 0.5),
        dispatch_backoff_max_seconds=_get_float_env("DISPATCH_BACKOFF_MAX_SECONDS", 8.0),
        dispatch_timeout_seconds=_get_float_env("DISPATCH_TIMEOUT_SECONDS", 20.0),
        trust_forwarded_for=_get_bool_env("TRUST_FORWARDED_FOR", False),
        trusted_proxy_count=_get_int_env("TRUSTED_PROXY_COUNT", 1, minimum=1),
        allowed_origins=tuple(_load_json_list("ALLOWED_ORIGINS")),
        ssm_path_prefix=ssm_path_prefix,
    )


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """環境に応じて `.env` または SSM から設定を構築する。"""

    app_env = os.getenv("APP_ENV", _LOCAL_ENV)
    region = os.getenv("REGION", _DEFAULT_REGION)

    if app_env == _LOCAL_ENV:
        # 既存の環境変数を優先する。
        load_dotenv(override=False)
        return _load_tuning(
            app_env=app_env,
            region=region,
            mail_from=_get_required_env("MAIL_FROM"),
            operator_address=_get_required_env("CONTACT_OPERATOR_ADDRESS"),
            ssm_path_prefix=None,
        )

    prefix = os.getenv("SSM_PATH_PREFIX", "/app/prod")
    required_keys = [
        "mail/from",
        "contact/operator_address",
    ]
    values = _fetch_ssm_parameters(region=region, names=required_keys, prefix=prefix)

    def from_ssm(key: str) -> str:
        return values[f"{prefix}/{key}"]

    return _load_tuning(
        app_env=app_env,
        region=region,
        mail_from=from_ssm("mail/from"),
        operator_address=from_ssm("contact/operator_address"),
        ssm_path_prefix=prefix,
    )
