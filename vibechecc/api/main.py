"""
vibechecc.api.main — FastAPI application entry point
=====================================================

Run with::

    vibechecc-api                       # port from config.yaml
    uvicorn vibechecc.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from vibechecc.api.deps import get_cache, get_config, get_engine  # noqa: E402
from vibechecc.api.routes.points import router as points_router  # noqa: E402
from vibechecc.api.routes.ratings import router as ratings_router  # noqa: E402
from vibechecc.api.routes.vibes import router as vibes_router  # noqa: E402
from vibechecc.api.routes.votes import router as votes_router  # noqa: E402
from vibechecc.config import VibecheccConfig  # noqa: E402
from vibechecc.database.engine import init_db  # noqa: E402
from vibechecc.errors import (  # noqa: E402
    AuthorizationError,
    EconomyError,
    InsufficientFundsError,
    InvalidRatingError,
    LedgerNotInitializedError,
    NotAuthenticatedError,
    NotFoundError,
    ProtectedTargetError,
    RateLimitedError,
    TransactionConflictError,
)
from vibechecc.services import notification_service  # noqa: E402

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
ERROR_STATUS: list[tuple[type[EconomyError], int]] = [
    (NotAuthenticatedError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidRatingError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InsufficientFundsError, status.HTTP_402_PAYMENT_REQUIRED),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ProtectedTargetError, status.HTTP_403_FORBIDDEN),
    (LedgerNotInitializedError, status.HTTP_409_CONFLICT),
    (TransactionConflictError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: EconomyError) -> int:
    for exc_type, code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


DEFAULT_APP_NAME = "vibechecc"
DEFAULT_API_PORT = 8000


def _load_config() -> VibecheccConfig | None:
    try:
        return get_config()
    except FileNotFoundError:
        logger.warning("No config file found, using defaults")
        return None


def _cors_origins(cfg: VibecheccConfig | None = None) -> list[str]:
    """Resolve allowed CORS origins from env, then config, with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
      3) ``cors_origins`` in config.yaml
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    if cfg is not None:
        return list(cfg.cors_origins)
    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — verify schema, warm the settings cache."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    cfg = _load_config()
    if cfg is not None:
        notification_service.set_enabled(cfg.notifications_enabled)

    engine = get_engine()
    init_db(engine)
    get_cache(engine)
    logger.info("vibechecc API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("vibechecc API shutting down")


_cfg = _load_config()

app = FastAPI(
    title=f"{_cfg.app_name if _cfg else DEFAULT_APP_NAME} Economy API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(_cfg),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EconomyError)
async def economy_error_handler(request: Request, exc: EconomyError) -> JSONResponse:
    body: dict = {"error": exc.reason, "message": str(exc)}
    if isinstance(exc, InsufficientFundsError):
        body["required"] = exc.required
    return JSONResponse(status_code=status_for(exc), content=body)


app.include_router(votes_router, prefix="/api")
app.include_router(ratings_router, prefix="/api")
app.include_router(points_router, prefix="/api")
app.include_router(vibes_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


def main() -> None:
    """Serve the API on the port from ``config.yaml``."""
    cfg = _load_config()
    port = cfg.api_port if cfg else DEFAULT_API_PORT
    uvicorn.run("vibechecc.api.main:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
