"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from coordinator.api.dependencies import default_finding_source
from coordinator.api.v1.router import api_router
from coordinator.core.collaborators import CaseAccessRoleResolver, CollaboratorGateway
from coordinator.core.config import settings
from coordinator.core.database import async_session_maker, close_database, init_database
from coordinator.services.approval_workflow_service import ApprovalWorkflowService
from coordinator.services.red_flag_service import RedFlagService
from coordinator.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


async def seed_system_definitions() -> None:
    """Insert the built-in approval workflows and red-flag patterns."""
    async with async_session_maker() as session:
        gateway = CollaboratorGateway(CaseAccessRoleResolver(session))
        workflows = await ApprovalWorkflowService(session, gateway=gateway).seed_system_definitions()
        patterns = await RedFlagService(
            session, default_finding_source, gateway=gateway
        ).seed_system_patterns()
    LOGGER.info(f"Seeded {workflows} workflow definition(s) and {patterns} red-flag pattern(s)")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events for the FastAPI application.
    """
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    try:
        LOGGER.info("Initializing database...")
        await init_database(auto_migrate=settings.auto_migrate)
        if settings.seed_system_definitions:
            await seed_system_definitions()
        LOGGER.info("Database initialized successfully")
    except Exception as e:
        LOGGER.error("Failed to initialize database", exc_info=True, extra={"error": str(e)})
        raise

    yield

    LOGGER.info("Shutting down application")
    await close_database()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Coordination, approval and escalation layer for multi-agent deal analysis",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health=f"{settings.api_v1_prefix}/health",
    )


app.include_router(api_router, prefix=settings.api_v1_prefix)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "coordinator.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
