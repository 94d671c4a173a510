import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from app.core.logging import bind_request_context, configure_logging, get_logger
from app.db.init import init_db
from app.deps import build_services
from app.routers import admin, auth, calls, hosts, payments, wallet
from app.stores.base import get_store

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

app = FastAPI(
    title="Voice Chat Economy API",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_context(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(auth.router, prefix="/v1/auth", tags=["auth"])
app.include_router(wallet.router, prefix="/v1/wallet", tags=["wallet"])
app.include_router(calls.router, prefix="/v1/calls", tags=["calls"])
app.include_router(hosts.router, prefix="/v1/hosts", tags=["hosts"])
app.include_router(payments.router, prefix="/v1/payments", tags=["payments"])
app.include_router(admin.router, prefix="/v1/admin", tags=["admin"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    if settings.store_backend == "mongo":
        await init_db()
        log.info("startup", msg="DB connected")
    # Tests install their own wiring before the app starts.
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(get_store(settings), settings)
    log.info("startup", store_backend=settings.store_backend)


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
