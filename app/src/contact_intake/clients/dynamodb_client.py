"""DynamoDB とのやり取りに使う boto3 クライアントのラッパー。"""

from __future__ import annotations

from functools import lru_cache

import boto3
from botocore.client import BaseClient
from botocore.config import Config

# 1 リクエスト内の短い更新なので、待ち時間は短めに抑える。
_CLIENT_CONFIG = Config(
    connect_timeout=2,
    read_timeout=2,
    retries={"mode": "standard", "total_max_attempts": 2},
)


@lru_cache(maxsize=None)
def get_client(region: str) -> BaseClient:
    """リージョンに紐づく DynamoDB クライアントを返す。"""

    return boto3.client("dynamodb", region_name=region, config=_CLIENT_CONFIG)
