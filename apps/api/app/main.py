import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from pydantic import ValidationError

from app.api.errors import validation_error_response
from app.api.routes import router as api_router
from app.authz.guards import AccessDeniedError, denied_response
from app.core.auth import get_identity_provider
from app.core.config import get_settings
from app.identity import ClerkIdentityProvider
from app.logging import configure_logging
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("app.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("system.started", extra={"reason": settings.app_env})
    yield
    provider = get_identity_provider()
    if isinstance(provider, ClerkIdentityProvider):
        provider.close()
    logger.info("system.stopped")


app = FastAPI(title="Agency Hub API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(ValidationError)
async def pydantic_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return validation_error_response(request, exc, "validation_failed")


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError) -> JSONResponse:
    return denied_response(request, exc.decision)


setup_otel(get_settings())

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
