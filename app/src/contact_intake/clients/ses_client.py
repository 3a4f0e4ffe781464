"""SES 送信に利用する boto3 クライアントラッパー。"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable

import boto3
from botocore.client import BaseClient
from botocore.config import Config

# 再送はディスパッチャ側で制御するため、botocore 自身のリトライは無効化する。
_CLIENT_CONFIG = Config(
    connect_timeout=5,
    read_timeout=10,
    retries={"mode": "standard", "total_max_attempts": 1},
)


@lru_cache(maxsize=None)
def get_client(region: str) -> BaseClient:
    """リージョン固定の SES クライアントを返す。"""

    return boto3.client("ses", region_name=region, config=_CLIENT_CONFIG)


def send_email(
    *,
    region: str,
    source: str,
    to_addresses: Iterable[str],
    subject: str,
    body_text: str | None = None,
    body_html: str | None = None,
    reply_to: Iterable[str] | None = None,
) -> dict[str, Any]:
    """テキスト/HTML混在の単純なメール送信を行う。"""

    client = get_client(region)
    body: dict[str, dict[str, str]] = {}
    if body_text:
        body["Text"] = {"Charset": "UTF-8", "Data": body_text}
    if body_html:
        body["Html"] = {"Charset": "UTF-8", "Data": body_html}

    kwargs: dict[str, Any] = {
        "Source": source,
        "Destination": {"ToAddresses": list(to_addresses)},
        "Message": {"Subject": {"Charset": "UTF-8", "Data": subject}, "Body": body},
    }
    if reply_to:
        kwargs["ReplyToAddresses"] = list(reply_to)
    return client.send_email(**kwargs)
