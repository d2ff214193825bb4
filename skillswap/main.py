from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
from dotenv import load_dotenv
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import asyncio
import logging
from .api.v1.api import router as api_router
from .core.config import configure_logging, get_settings
from .core.dependencies import Services, build_store
from .core.exceptions import SkillSwapError
from .core.scheduler import run_scheduled_tasks

# Load environment variables
load_dotenv()
configure_logging()

logger = logging.getLogger("main")

def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the API. Tests pass their own ``services`` to run against an in-memory store."""
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = Services(build_store(settings), settings=settings)
        logger.info(f"Starting up: {settings.storage_backend} store in {settings.environment} environment")

        # Start scheduler in a background task
        task = None
        if settings.environment == "production":
            task = asyncio.create_task(
                run_scheduled_tasks(app.state.services.swaps, settings.expiry_sweep_interval_seconds)
            )
            logger.info("Started scheduler for background tasks")

        yield

        logger.info("Shutting down")
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("Scheduler task cancelled")

    app = FastAPI(
        title=settings.app_name,
        description="""
        API for the SkillSwap app.

        Users offer skills, request swaps with each other, and rate completed swaps.

        ## Authentication

        Every endpoint except the public rating listings expects a bearer JWT whose
        `sub` claim is the user id. A `role` claim of `admin` unlocks moderation endpoints.
        """,
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        swagger_ui_parameters={
            "persistAuthorization": True,
            "displayRequestDuration": True,
            "defaultModelsExpandDepth": -1,
            "docExpansion": "none",
        },
    )
    app.state.services = services

    # Configure CORS
    origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
        settings.frontend_url,
    ]
    logger.debug(f"CORS origins: {origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        openapi_schema.setdefault("components", {})["securitySchemes"] = {
            "bearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "Enter the token without the 'Bearer' prefix",
            }
        }
        for path, operations in openapi_schema.get("paths", {}).items():
            # Public endpoints
            if path in ("/", "/health") or "/ratings/user/" in path:
                continue
            for method in operations:
                if method != "parameters":
                    operations[method]["security"] = [{"bearerAuth": []}]

        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi

    @app.get("/")
    async def root():
        return {"message": f"Welcome to the {settings.app_name}", "environment": settings.environment}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "environment": settings.environment}

    @app.exception_handler(SkillSwapError)
    async def skillswap_exception_handler(request: Request, exc: SkillSwapError):
        if exc.status_code == 409:
            logger.warning(f"{request.method} {request.url.path}: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Add exception handler for validation errors
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        # Drop the "body"/"query"/"path" prefix so the field matches the model attribute
        loc = [str(part) for part in first.get("loc", ())[1:]]
        return JSONResponse(
            status_code=422,
            content={
                "detail": first.get("msg", "Invalid request"),
                "kind": "validation_error",
                "field": ".".join(loc) or None,
            },
        )

    return app

app = create_app()
