import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rcms.config import settings
from rcms.exceptions import CaseLifecycleError

logger = logging.getLogger(__name__)

# Error kind -> HTTP status; anything unlisted is a 409
STATUS_BY_KIND = {
    "not_found": 404,
    "guardrail_violation": 409,
    "acceptance_required": 403,
    "illegal_transition": 409,
    "conflict": 409,
    "integrity_violation": 409,
    "ceiling_violation": 422,
    "rationale_required": 422,
    "invalid_score_edit": 422,
    "store_failure": 503,
}


async def lifecycle_error_handler(request: Request, exc: CaseLifecycleError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 409)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.kind}): {exc}")
    return JSONResponse(status_code=status_code, content=exc.to_detail())


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
    )

    # Routers
    from rcms.routes.v1.api import api_router

    app.include_router(api_router, prefix=settings.API_V1_STR)
    app.add_exception_handler(CaseLifecycleError, lifecycle_error_handler)

    # Set all CORS enabled origins
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Health Check
    @app.get("/health")
    def health_check():
        return {"status": "ok", "version": settings.VERSION}

    return app


app = create_app()
