"""送信者ごとのレート制限。

`allow` は「判定」と「カウント加算」を 1 つの不可分な操作として行う。
同一送信者から同時に届いたリクエストが合算で上限を超えることはない。
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Protocol

from botocore.client import BaseClient
from botocore.exceptions import ClientError

from contact_intake.clients import dynamodb_client
from contact_intake.core.models import RateDecision

Clock = Callable[[], float]

_SWEEP_INTERVAL = 256


class RateLimiter(Protocol):
    def allow(self, identity: str) -> RateDecision:
        ...


class InMemoryRateLimiter:
    """スライディングウィンドウ（送信時刻のログ）による単一プロセス向け実装。"""

    def __init__(
        self,
        *,
        budget: int = 5,
        window_seconds: float = 3600.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if budget < 1:
            raise ValueError("budget は 1 以上である必要があります。")
        if window_seconds <= 0:
            raise ValueError("window_seconds は正の数である必要があります。")
        self.budget = budget
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._calls = 0

    def allow(self, identity: str) -> RateDecision:
        with self._lock:
            now = self._clock()
            self._calls += 1
            if self._calls % _SWEEP_INTERVAL == 0:
                self._sweep(now)

            window = self._windows.setdefault(identity, deque())
            self._trim(window, now)
            if len(window) >= self.budget:
                retry_after = window[0] + self.window_seconds - now
                return RateDecision(allowed=False, retry_after=max(retry_after, 0.001))
            window.append(now)
            return RateDecision(allowed=True)

    def tracked_identities(self) -> int:
        with self._lock:
            return len(self._windows)

    def _trim(self, window: Deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

    def _sweep(self, now: float) -> None:
        for identity in list(self._windows):
            window = self._windows[identity]
            self._trim(window, now)
            if not window:
                del self._windows[identity]


class DynamoDbRateLimiter:
    """DynamoDB の条件付き UpdateItem による固定ウィンドウ実装。

    テーブルはパーティションキー `pk` (S) を持ち、`expires_at` を TTL 属性に
    設定しておく。期限切れのアイテムは DynamoDB 側で削除される。
    """

    def __init__(
        self,
        *,
        table_name: str,
        region: str,
        budget: int = 5,
        window_seconds: float = 3600.0,
        client: BaseClient | None = None,
        clock: Clock = time.time,
    ) -> None:
        if budget < 1:
            raise ValueError("budget は 1 以上である必要があります。")
        if window_seconds <= 0:
            raise ValueError("window_seconds は正の数である必要があります。")
        self.table_name = table_name
        self.region = region
        self.budget = budget
        self.window_seconds = window_seconds
        self._client = client
        self._clock = clock

    def allow(self, identity: str) -> RateDecision:
        now = self._clock()
        window_index = math.floor(now / self.window_seconds)
        window_end = (window_index + 1) * self.window_seconds
        client = self._client or dynamodb_client.get_client(self.region)
        try:
            client.update_item(
                TableName=self.table_name,
                Key={"pk": {"S": f"contact#{identity}#{window_index}"}},
                UpdateExpression="ADD #count :one SET #expires = :expires",
                ConditionExpression="attribute_not_exists(#count) OR #count < :budget",
                ExpressionAttributeNames={"#count": "count", "#expires": "expires_at"},
                ExpressionAttributeValues={
                    ":one": {"N": "1"},
                    ":budget": {"N": str(self.budget)},
                    ":expires": {"N": str(math.ceil(window_end + self.window_seconds))},
                },
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ConditionalCheckFailedException":
                return RateDecision(allowed=False, retry_after=max(window_end - now, 0.001))
            raise
        return RateDecision(allowed=True)
