from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from norruva.api.v1 import audit
from norruva.api.v1 import companies
from norruva.api.v1 import compliance_paths
from norruva.api.v1 import developer
from norruva.api.v1 import index
from norruva.api.v1 import products
from norruva.api.v1 import tickets
from norruva.api.v1 import users
from norruva.api.v1 import workflow

from norruva.core.config import settings
from norruva.core.dependencies import ServiceContainer
from norruva.core.exceptions import DomainError, RateLimitExceeded, ValidationFailed
from norruva.core.logging import setup_logging
from norruva.db.seed import issue_demo_api_keys, seed_demo_data


async def domain_error_handler(request: Request, exc: DomainError):
    content = {"detail": exc.message}
    headers = None

    if isinstance(exc, ValidationFailed) and exc.errors:
        content["errors"] = exc.errors
    if isinstance(exc, RateLimitExceeded):
        headers = {"Retry-After": str(exc.retry_after)}

    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    setup_logging()

    if container is None:
        container = ServiceContainer()
        if settings.seed_demo_data:
            seed_demo_data(container.store)
            issue_demo_api_keys(container.store, container.api_keys)

    app = FastAPI(title=settings.app_name)
    app.state.container = container

    # Middlewares
    origins = []

    if settings.allowed_hosts:
        origins = settings.allowed_hosts.split(",")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DomainError, domain_error_handler)

    # Register routes
    app.include_router(index.router, prefix="/api/v1")
    app.include_router(products.router, prefix="/api/v1/products")
    app.include_router(workflow.router, prefix="/api/v1/products")
    app.include_router(audit.router, prefix="/api/v1/audit-logs")
    app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(
        developer.api_keys_router, prefix="/api/v1/api-keys", tags=["Developer"])
    app.include_router(
        developer.webhooks_router, prefix="/api/v1/webhooks", tags=["Developer"])
    app.include_router(companies.router, prefix="/api/v1/companies", tags=["Companies"])
    app.include_router(compliance_paths.router,
                       prefix="/api/v1/compliance-paths", tags=["Compliance"])
    app.include_router(tickets.router,
                       prefix="/api/v1/service-tickets", tags=["Service Tickets"])

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=None,
    )
