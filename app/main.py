"""
Main FastAPI application for the creator payments API.
Serves health, payments (intents, status, webhooks), media access, library and metrics.
"""
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import health, media, payments
from app.core.config import settings
from app.core.logging import configure_logging
from app.payments.errors import PaymentError
from app.utils.metrics import router as metrics_router


configure_logging()
logger = logging.getLogger("app.api")

app = FastAPI(
    title="Creator Payments API",
    description="Payment intents, webhook reconciliation and content access",
    version="1.0.0",
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get(settings.request_id_header) or str(uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = round((time.perf_counter() - start) * 1000, 2)
    response.headers[settings.request_id_header] = request_id
    logger.info(
        "http_request",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "latency_ms": latency_ms,
        },
    )
    return response


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(
        level,
        "request_failed",
        extra={"path": request.url.path, "status_code": exc.status_code, "error": exc.code},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message, **({"context": exc.detail} if exc.detail else {})},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "validation_error", "detail": "Invalid request", "context": {"errors": jsonable_encoder(exc.errors())}},
    )


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(payments.router)
app.include_router(media.router)
app.include_router(metrics_router)
