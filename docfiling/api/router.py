"""
Top-level API router.
Combines all sub-routers into a single router.
"""

from fastapi import APIRouter

from docfiling.api.batches import router as batches_router
from docfiling.api.cache import router as cache_router
from docfiling.api.corrections import router as corrections_router
from docfiling.api.exports import router as exports_router
from docfiling.api.health import router as health_router
from docfiling.api.jobs import router as jobs_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(corrections_router)
api_router.include_router(cache_router)
api_router.include_router(exports_router)
api_router.include_router(batches_router)
api_router.include_router(jobs_router)
