from __future__ import annotations

import os

os.environ.setdefault("MAIL_FROM", "no-reply@portfolio.dev")
os.environ.setdefault("CONTACT_OPERATOR_ADDRESS", "owner@portfolio.dev")

import pytest

from contact_intake.core import settings as core_settings

_TUNING_ENV = (
    "APP_ENV",
    "REGION",
    "SSM_PATH_PREFIX",
    "CONTACT_SUBJECT_TAG",
    "CONTACT_ACK_ENABLED",
    "RATE_LIMIT_BUDGET",
    "RATE_LIMIT_WINDOW_SECONDS",
    "RATE_LIMIT_BACKEND",
    "RATE_LIMIT_TABLE",
    "DISPATCH_MAX_RETRIES",
    "DISPATCH_BACKOFF_BASE_SECONDS",
    "DISPATCH_BACKOFF_MAX_SECONDS",
    "DISPATCH_TIMEOUT_SECONDS",
    "TRUST_FORWARDED_FOR",
    "TRUSTED_PROXY_COUNT",
    "ALLOWED_ORIGINS",
)


@pytest.fixture(autouse=True)
def basic_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """アプリ初期化に必要な環境変数をテスト時にセットする。"""

    monkeypatch.setenv("MAIL_FROM", "no-reply@portfolio.dev")
    monkeypatch.setenv("CONTACT_OPERATOR_ADDRESS", "owner@portfolio.dev")
    for name in _TUNING_ENV:
        monkeypatch.delenv(name, raising=False)
    core_settings.load_settings.cache_clear()
