from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog
from coursepay.api import admin, checkout, instructors
from coursepay.config import settings
from coursepay.db import engine, ping_db
from coursepay.errors import CoursePayError
from coursepay.log import configure_logging
from coursepay.models import Base
from coursepay.metrics import metrics_asgi_app

logger = structlog.get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # runs once at startup
    configure_logging(settings.log_level, settings.log_json)
    Base.metadata.create_all(bind=engine)
    if not settings.gateway_configured:
        logger.warning("payment_gateway_not_configured")
    yield

app = FastAPI(title="CoursePay Settlement", lifespan=lifespan)


app.mount("/metrics", metrics_asgi_app)

app.include_router(checkout.router)
app.include_router(admin.router)
app.include_router(instructors.router)


@app.exception_handler(CoursePayError)
async def coursepay_error_handler(request: Request, exc: CoursePayError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=type(exc).__name__, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # malformed input is a 400 across this API
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.get("/")
def root():
    return {"service": "coursepay", "docs": "/docs"}

@app.get("/healthz")
def healthz():
    try:
        ping_db()
        return {"ok": True, "db": "up"}
    except Exception:
        return {"ok": False, "db": "down"}
