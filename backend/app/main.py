import logging
import logging.config

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.deps import relay_error_status
from app.api.metrics import router as metrics_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import get_settings
from app.services.realtime import RealtimeServices, shutdown_realtime, startup_realtime
from skytalk.realtime.errors import RelayError, StoreUnavailableError


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
    "loggers": {
        # Relay and presence chatter gets its own handler so it can be tuned separately.
        "skytalk.realtime": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "sqlalchemy.engine": {
            "level": "WARNING",
        },
    },
}


logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_origin_regex=settings.cors_allow_origin_regex,
)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Render realtime-layer errors that escape an HTTP route."""

    if isinstance(exc, StoreUnavailableError):
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=relay_error_status(exc),
        content={"detail": exc.message, "code": exc.code},
    )


@app.get("/health", tags=["system"])
def health_check() -> dict[str, str | int]:
    """Liveness probe reporting how many users hold a realtime connection."""
    realtime: RealtimeServices | None = getattr(app.state, "realtime", None)
    return {
        "status": "ok" if realtime is not None else "starting",
        "environment": settings.environment,
        "online_users": len(realtime.registry) if realtime is not None else 0,
    }


@app.on_event("startup")
async def _startup() -> None:
    await startup_realtime(app)


@app.on_event("shutdown")
async def _shutdown() -> None:
    await shutdown_realtime(app)


app.include_router(api_router, prefix="/api")
app.include_router(ws_router)
app.include_router(metrics_router)
