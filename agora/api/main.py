"""
agora.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn agora.api.main:app --reload --port 8000

or ``python -m agora.api.main``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from agora.api.deps import get_router  # noqa: E402
from agora.api.routes.attachments import router as attachments_router  # noqa: E402
from agora.api.routes.discussions import router as discussions_router  # noqa: E402
from agora.api.routes.engagement import router as engagement_router  # noqa: E402
from agora.api.routes.members import router as members_router  # noqa: E402
from agora.api.routes.moderation import router as moderation_router  # noqa: E402
from agora.api.routes.replies import router as replies_router  # noqa: E402
from agora.config import load_config, set_config  # noqa: E402
from agora.errors import ForumError  # noqa: E402
from agora.services import notification_service  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: config, notification pool, tenant pools."""
    cfg = load_config(os.getenv("AGORA_CONFIG", "config.yaml"))
    set_config(cfg)
    notification_service.configure(
        notification_service.build_dispatcher(cfg), workers=cfg.notification_workers
    )
    router = get_router()
    logger.info("%s API started (central: %s)", cfg.community_name, router.central.url.database)
    yield
    notification_service.shutdown()
    router.dispose()
    logger.info("%s API shutting down", cfg.community_name)


app = FastAPI(
    title="Agora Forum API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ForumError)
async def forum_error_handler(request: Request, exc: ForumError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Mount routers
app.include_router(discussions_router, prefix="/api")
app.include_router(replies_router, prefix="/api")
app.include_router(engagement_router, prefix="/api")
app.include_router(moderation_router, prefix="/api")
app.include_router(members_router, prefix="/api")
app.include_router(attachments_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
