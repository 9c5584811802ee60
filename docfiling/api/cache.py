"""
/api/v1/cache endpoints.
Content-addressed classification cache: lookup, store, hit telemetry and
invalidation sweeps.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from docfiling.dependencies import get_classification_cache, verify_api_key
from docfiling.feedback.cache import ClassificationCache
from docfiling.schemas.feedback import (
    CacheCheckResult,
    InvalidatePatternRequest,
    InvalidationResult,
    StoreCacheRequest,
)

router = APIRouter(prefix="/api/v1/cache", tags=["cache"], dependencies=[Depends(verify_api_key)])


@router.get("/{content_hash}", response_model=CacheCheckResult)
async def check_cache(
    content_hash: str,
    cache: ClassificationCache = Depends(get_classification_cache),
):
    return await cache.check(content_hash)


@router.post("", status_code=status.HTTP_201_CREATED)
async def store_classification(
    request: StoreCacheRequest,
    cache: ClassificationCache = Depends(get_classification_cache),
):
    cache_id = await cache.store(
        request.content_hash,
        request.file_name_pattern,
        request.classification,
        client_type=request.client_type,
    )
    return {"cache_id": cache_id}


@router.post("/entries/{cache_id}/hit", status_code=status.HTTP_204_NO_CONTENT)
async def record_cache_hit(
    cache_id: str,
    cache: ClassificationCache = Depends(get_classification_cache),
):
    if not await cache.record_hit(cache_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cache entry not found")


@router.post("/{content_hash}/invalidate", response_model=InvalidationResult)
async def invalidate_by_hash(
    content_hash: str,
    cache: ClassificationCache = Depends(get_classification_cache),
):
    return InvalidationResult(invalidated_count=await cache.invalidate_by_hash(content_hash))


@router.post("/invalidate", response_model=InvalidationResult)
async def invalidate_by_pattern(
    request: InvalidatePatternRequest,
    cache: ClassificationCache = Depends(get_classification_cache),
):
    if not request.pattern and request.older_than is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide a pattern, older_than, or both",
        )
    count = await cache.invalidate_by_pattern(
        pattern=request.pattern,
        client_type=request.client_type,
        older_than=request.older_than,
    )
    return InvalidationResult(invalidated_count=count)
