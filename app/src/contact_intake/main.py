"""問い合わせ受付 API のエントリポイント（Lambda / ローカル）。"""

from __future__ import annotations

import logging
import os
from typing import Any

import uvicorn
from mangum import Mangum

from .app import create_app

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(message)s")

app = create_app()
# lifespan を使う処理は無い。
_handler = Mangum(app, lifespan="off")


def lambda_handler(event: dict[str, Any], context: Any) -> Any:
    """API Gateway 経由の `POST /contact` を FastAPI へ渡す。"""
    return _handler(event, context)


def run_local() -> None:
    """`contact-intake-api` コマンドで開発用サーバーを起動する。

    インメモリのレート制限はプロセス単位なので、ワーカーは 1 つで動かす。
    `APP_RELOAD=1` でコード変更時の自動リロードを有効にする。
    """
    host = os.getenv("APP_HOST", "127.0.0.1")
    port = int(os.getenv("APP_PORT", "8000"))
    reload = os.getenv("APP_RELOAD") == "1"
    uvicorn.run("contact_intake.main:app", host=host, port=port, reload=reload, workers=1)


if __name__ == "__main__":
    run_local()
