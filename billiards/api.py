from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import storage
from .config import get_cors_origins
from .logging_config import setup_logging
from .services.exceptions import ServiceError
from .services.matches import cleanup_expired_matches
from .routes.users import router as auth_router, users_router
from .routes.matches import router as matches_router
from .routes.admin import router as admin_router
from .routes.stats import router as stats_router

logger = logging.getLogger(__name__)

# seconds between sweeps for matches whose start time has passed
CLEANUP_INTERVAL = 60 * 60

# ensure cached data does not leak across reloads
storage.invalidate_cache()


async def _cleanup_loop() -> None:
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL)
        try:
            await asyncio.to_thread(cleanup_expired_matches)
        except Exception:
            logger.exception("expired match cleanup failed")


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    cleanup_expired_matches()
    task = asyncio.create_task(_cleanup_loop())
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


app = FastAPI(title="Billiards Club API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request, exc):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(ServiceError)
def service_error_handler(request, exc: ServiceError):
    content = {"detail": exc.message, **exc.extra}
    if len(exc.errors) > 1:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(matches_router)
app.include_router(admin_router)
app.include_router(stats_router)


@app.get("/")
def health():
    return {"message": "Billiards Club API is running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
