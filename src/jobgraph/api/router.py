"""Main API router."""

from fastapi import APIRouter

from jobgraph.api.dependencies import router as dependencies_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(dependencies_router)
