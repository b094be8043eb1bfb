from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sync_api.api.routes import sync, webhooks
from sync_api.core.config import get_settings
from sync_api.core.errors import ApiError, status_for
from sync_api.db.session import SessionLocal, engine
from sync_worker.errors import SyncError
from sync_worker.models import Base
from sync_worker.scheduler import SyncScheduler

settings = get_settings()
app = FastAPI(title=settings.app_name)

_scheduler: SyncScheduler | None = None


@app.on_event("startup")
def startup() -> None:
    global _scheduler
    Base.metadata.create_all(bind=engine)
    if settings.scheduler_enabled:
        _scheduler = SyncScheduler(SessionLocal, refresh_seconds=settings.scheduler_refresh_seconds)
        _scheduler.start()


@app.on_event("shutdown")
def shutdown() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
        _scheduler = None


@app.exception_handler(SyncError)
def sync_error_handler(_: Request, exc: SyncError) -> JSONResponse:
    return JSONResponse(status_code=status_for(exc), content={"detail": ApiError.from_sync_error(exc).to_dict()})


@app.exception_handler(RequestValidationError)
def request_validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"code": "validation_error", "message": "Invalid request", "details": jsonable_encoder(exc.errors())})


app.include_router(sync.router)
app.include_router(webhooks.router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
