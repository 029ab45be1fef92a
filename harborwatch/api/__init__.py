"""API routers for HarborWatch."""

from fastapi import APIRouter

from harborwatch.api import snapshot, system

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(snapshot.router, tags=["snapshot"])
api_router.include_router(system.router, prefix="/system", tags=["system"])

__all__ = ["api_router"]
