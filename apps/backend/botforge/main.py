import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from botforge.context import build_context
from botforge.routes.artifacts import artifacts_router
from botforge.services.errors import RateLimitExceededError, ServiceError

logging.basicConfig(
    level=os.getenv("BOTFORGE_LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

SENTRY_DSN = os.getenv("SENTRY_DSN") or ""
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
        release=os.getenv("SENTRY_RELEASE") or None,
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
        integrations=[FastApiIntegration()],
        send_default_pii=False,
    )

logger = logging.getLogger("botforge.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "context", None) is None:
        app.state.context = build_context()
        logger.info("Application context ready (%d model tier(s))", len(app.state.context.settings.tiers))
    yield


app = FastAPI(lifespan=lifespan)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    headers = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        sentry_sdk.capture_exception(exc)
    return JSONResponse(status_code=exc.status_code, content=exc.payload(), headers=headers)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
    sentry_sdk.capture_exception(exc)
    return JSONResponse(status_code=500, content={"error": "internal error"})


@app.get("/")
def health():
    return {"status": "ok"}


app.include_router(artifacts_router)
