"""contact_post のテストで共有するフェイクとファクトリ。"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

import pytest

from contact_intake.core.models import OutboundMail
from contact_intake.core.rate_limiter import InMemoryRateLimiter
from contact_intake.features.contact_post.dispatcher_contact_post import (
    NotificationDispatcher,
    RetryPolicy,
)
from contact_intake.features.contact_post.usecase_contact_post import ContactIntake

OPERATOR = "owner@portfolio.dev"
SUBJECT_TAG = "[Portfolio Contact]"


class RecordingTransport:
    """送信内容を記録するトランスポート。`failures` の例外を順に投げる。"""

    def __init__(
        self,
        failures: list[Exception | None] | None = None,
        *,
        always_fail: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.calls = 0
        self.sent: list[OutboundMail] = []
        self._failures = list(failures or [])
        self._always_fail = always_fail
        self._delay = delay
        self._lock = threading.Lock()

    def send(self, mail: OutboundMail) -> None:
        with self._lock:
            self.calls += 1
            failure = self._failures.pop(0) if self._failures else None
        if self._delay:
            time.sleep(self._delay)
        if self._always_fail is not None:
            raise self._always_fail
        if failure is not None:
            raise failure
        with self._lock:
            self.sent.append(mail)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def valid_payload() -> dict[str, str]:
    return {
        "sender_name": "Ada Lovelace",
        "sender_email": "Ada@Lovelace.dev",
        "subject": "Collaboration idea",
        "body": "I enjoyed your portfolio and would like to talk about a project.",
        "trap_field": "",
    }


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def transport_factory() -> type[RecordingTransport]:
    return RecordingTransport


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_dispatcher(recording_sleep: RecordingSleep) -> Callable[..., NotificationDispatcher]:
    def _make(transport: Any, **overrides: Any) -> NotificationDispatcher:
        policy = overrides.pop("policy", None) or RetryPolicy(
            max_retries=3,
            backoff_base_seconds=0.5,
            backoff_max_seconds=8.0,
            timeout_seconds=5.0,
        )
        options: dict[str, Any] = {
            "operator_address": OPERATOR,
            "subject_tag": SUBJECT_TAG,
            "ack_enabled": True,
            "sleep": recording_sleep,
        }
        options.update(overrides)
        return NotificationDispatcher(transport=transport, policy=policy, **options)

    return _make


@pytest.fixture
def make_intake(
    transport: RecordingTransport,
    make_dispatcher: Callable[..., NotificationDispatcher],
) -> Callable[..., ContactIntake]:
    def _make(
        *,
        budget: int = 5,
        window_seconds: float = 3600.0,
        transport_override: Any = None,
        **dispatcher_overrides: Any,
    ) -> ContactIntake:
        dispatcher = make_dispatcher(transport_override or transport, **dispatcher_overrides)
        limiter = InMemoryRateLimiter(budget=budget, window_seconds=window_seconds)
        return ContactIntake(rate_limiter=limiter, dispatcher=dispatcher)

    return _make
