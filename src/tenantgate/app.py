"""FastAPI application factory for TenantGate."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tenantgate.common.config import get_settings
from tenantgate.common.exceptions import TenantGateError, ValidationError
from tenantgate.common.ratelimit import RegistrationRateLimitMiddleware, SlidingWindowLimiter
from tenantgate.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from tenantgate.deps import close_http_client, get_db
        db = get_db()
        await db.init()
        await db.create_all()
        yield
        # Shutdown
        await close_http_client()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from tenantgate.tenants.router import REGISTER_PATH

    app.add_middleware(
        RegistrationRateLimitMiddleware,
        limiter=SlidingWindowLimiter(
            settings.register_rate_limit,
            settings.register_rate_window,
            max_clients=settings.register_rate_max_clients,
        ),
        path=REGISTER_PATH,
    )

    @app.exception_handler(TenantGateError)
    async def tenantgate_error_handler(request: Request, exc: TenantGateError):
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                extra={"path": request.url.path, "code": exc.code, "detail": exc.message},
            )
        body = ErrorResponse(error=type(exc).__name__, code=exc.code, detail=exc.message)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # field locations and messages only, submitted values may hold secrets
        detail = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        return await tenantgate_error_handler(request, ValidationError(detail))

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from tenantgate.tenants.router import router as tenant_router
    from tenantgate.federation.router import router as auth_router

    app.include_router(tenant_router, tags=["tenants"])
    app.include_router(auth_router)

    return app
