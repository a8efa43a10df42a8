from fastapi import APIRouter

from coordinator.api.v1.endpoints import (
    approvals,
    dependencies,
    health,
    messages,
    red_flags,
    tasks,
)

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(messages.router, prefix="/messages", tags=["Messages"])
api_router.include_router(dependencies.router, prefix="/dependencies", tags=["Dependencies"])
api_router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["Approvals"])
api_router.include_router(red_flags.router, prefix="/red-flags", tags=["Red Flags"])

__all__ = ["api_router"]
