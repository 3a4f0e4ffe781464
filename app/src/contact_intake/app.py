"""FastAPI アプリケーションの組み立てを担当するモジュール。"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.middleware import request_id_middleware
from .core.settings import load_settings
from .features.contact_post.router_contact_post import router as contact_router
from .features.contact_post.usecase_contact_post import build_contact_intake


def create_app() -> FastAPI:
    """コア設定や共通ミドルウェアを組み込んだ FastAPI アプリを返す。"""

    settings = load_settings()
    app = FastAPI(title="contact-intake", version="0.1.0")
    app.state.settings = settings  # type: ignore[attr-defined]
    app.state.contact_intake = build_contact_intake(settings)  # type: ignore[attr-defined]
    app.middleware("http")(request_id_middleware)
    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.allowed_origins),
            allow_methods=["POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-Request-Id"],
            expose_headers=["Retry-After", "X-Request-Id"],
        )

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        return {"status": "ok", "env": settings.app_env}

    app.include_router(contact_router)

    return app
