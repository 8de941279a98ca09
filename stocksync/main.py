import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from stocksync.context import AppContext, build_context
from stocksync.routes import products
from stocksync.routes import sync as sync_routes


def _env_flag(name: str, default: str = "1") -> bool:
    return os.getenv(name, default).strip() in ("1", "true", "TRUE", "yes", "YES")


def create_app(context: Optional[AppContext] = None, autostart: Optional[bool] = None) -> FastAPI:
    app = FastAPI(
        title="Stock Sync From CSV",
        version="1.0.0",
    )

    # ----------------------------
    #  CORS
    # ----------------------------
    origins_env = os.getenv("CORS_ORIGINS", "")
    allowed_origins = [o.strip() for o in origins_env.split(",") if o.strip()] if origins_env else ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ----------------------------
    #  ROUTES
    # ----------------------------
    app.include_router(sync_routes.router)
    app.include_router(products.router)

    @app.get("/")
    def root():
        return {
            "ok": True,
            "service": "Stock Sync From CSV",
            "docs": "/docs",
            "health": "/health",
        }

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.head("/health")
    def health_head():
        return Response(status_code=200)

    # ----------------------------
    #  STARTUP / SHUTDOWN
    # ----------------------------
    @app.on_event("startup")
    def on_startup() -> None:
        if getattr(app.state, "context", None) is None:
            app.state.context = build_context()

        start = autostart if autostart is not None else _env_flag("STOCKSYNC_AUTOSTART")
        if start:
            app.state.context.start()

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        ctx = getattr(app.state, "context", None)
        if ctx is not None:
            ctx.stop()

    if context is not None:
        app.state.context = context

    return app


app = create_app()
