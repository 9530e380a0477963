"""
FastAPI application serving the library GraphQL API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from strawberry.fastapi import GraphQLRouter

from api.config import config as api_config
from api.context import get_context
from api.models import ErrorResponse, HealthResponse
from api.pubsub import PubSub
from api.resolvers import LibraryResolvers
from api.schema import schema
from library.database import LibraryDatabase
from utilities.config import config
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)


def create_app(database: Optional[LibraryDatabase] = None) -> FastAPI:
    """
    Build the application.

    Args:
        database: Ready-to-use database manager. When omitted one is created
            from configuration and connected during startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        setup_logging(
            log_level=config.log_level,
            log_format=config.log_format,
            log_file=config.get_log_file_path(),
            debug=config.debug
        )
        logger.info("Starting library API")

        db = database
        if db is None:
            db = LibraryDatabase(config.mongodb_uri, config.mongodb_database, config.mongodb_timeout_ms)
            logger.info("Connecting to MongoDB", database=config.mongodb_database)
            try:
                await db.connect()
                logger.info("Database connection established")
            except Exception as e:
                # Keep serving; queries will report the database errors themselves.
                logger.error("Failed to connect to database", error=str(e))

        app.state.resolvers = LibraryResolvers(db, PubSub())

        yield

        logger.info("Shutting down library API")
        if database is None:
            await db.disconnect()

    app = FastAPI(
        title=api_config.api_title,
        description=api_config.api_description,
        version=api_config.api_version,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_credentials=api_config.cors_allow_credentials,
        allow_methods=api_config.cors_allow_methods,
        allow_headers=api_config.cors_allow_headers,
    )

    graphql_app = GraphQLRouter(
        schema,
        context_getter=get_context,
        graphql_ide="graphiql" if api_config.debug else None,
    )
    app.include_router(graphql_app, prefix=api_config.graphql_path)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc: HTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=str(exc.detail),
                status_code=exc.status_code
            ).model_dump(),
            headers=exc.headers
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc: Exception):
        """Handle general exceptions."""
        logger.error("Unhandled exception", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc) if api_config.debug else None,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
            ).model_dump()
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint."""
        resolvers: Optional[LibraryResolvers] = getattr(request.app.state, "resolvers", None)
        db_status = "unknown"
        if resolvers is not None:
            health_info = await resolvers.database.health_check()
            db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.now(timezone.utc),
            version=api_config.api_version,
            database_status=db_status
        )

    return app


app = create_app()
