import uvicorn
from fastapi import FastAPI, Request

from dealvault.api.routes.health import router as health_router
from dealvault.api.routes.identity import router as identity_router
from dealvault.api.routes.redeem import router as redeem_router
from dealvault.api.routes.vendor_sessions import router as vendor_sessions_router
from dealvault.api.routes.visibility import router as visibility_router
from dealvault.api.routes.vouchers import router as vouchers_router
from dealvault.core.config import get_settings
from dealvault.core.logging import bind_operation_context, clear_operation_context, configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    is_dev = settings.app_env == "dev"

    app = FastAPI(
        title="Deal Vault Voucher API",
        version="0.1.0",
        docs_url="/docs" if is_dev else None,
        redoc_url="/redoc" if is_dev else None,
    )

    @app.middleware("http")
    async def scope_log_context(request: Request, call_next):
        clear_operation_context()
        bind_operation_context(method=request.method, path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_operation_context()

    app.include_router(health_router)
    app.include_router(identity_router)
    app.include_router(vouchers_router)
    app.include_router(redeem_router)
    app.include_router(vendor_sessions_router)
    app.include_router(visibility_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "dealvault.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
