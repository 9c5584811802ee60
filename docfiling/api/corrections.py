"""
/api/v1/corrections endpoints.
Capture reviewer overrides and serve them back to the classifier as context.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from docfiling.api.errors import to_http_exception
from docfiling.dependencies import get_correction_service, verify_api_key
from docfiling.errors import CorrectionValidationError
from docfiling.feedback.corrections import CorrectionService
from docfiling.schemas.feedback import (
    CaptureCorrectionRequest,
    ConsolidatedRules,
    CorrectionStats,
    CorrectionSummary,
    FilingCorrectionRecord,
    RelevantCorrection,
    TargetedCorrection,
    TargetedCorrectionsRequest,
)

router = APIRouter(prefix="/api/v1/corrections", tags=["corrections"], dependencies=[Depends(verify_api_key)])


@router.post("", response_model=FilingCorrectionRecord, status_code=status.HTTP_201_CREATED)
async def capture_correction(
    request: CaptureCorrectionRequest,
    service: CorrectionService = Depends(get_correction_service),
):
    try:
        return await service.capture(request)
    except CorrectionValidationError as e:
        raise to_http_exception(e)


@router.get("", response_model=list[CorrectionSummary])
async def list_corrections(service: CorrectionService = Depends(get_correction_service)):
    """Flattened view of every correction, newest first."""
    return await service.list_corrections()


@router.get("/relevant", response_model=list[RelevantCorrection])
async def relevant_corrections(
    file_type: str = Query(...),
    category: str = Query(...),
    file_name: str = Query(...),
    limit: Optional[int] = Query(None, ge=1, le=50),
    service: CorrectionService = Depends(get_correction_service),
):
    return await service.get_relevant_corrections(file_type, category, file_name, limit=limit)


@router.post("/targeted", response_model=list[TargetedCorrection])
async def targeted_corrections(
    request: TargetedCorrectionsRequest,
    service: CorrectionService = Depends(get_correction_service),
):
    return await service.get_targeted_corrections(
        request.confused_between,
        request.current_classification,
        request.file_name,
        limit=request.limit,
    )


@router.get("/rules", response_model=ConsolidatedRules)
async def consolidated_rules(
    file_type: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=50),
    service: CorrectionService = Depends(get_correction_service),
):
    return await service.get_consolidated_rules(file_type=file_type, category=category, limit=limit)


@router.get("/stats", response_model=CorrectionStats)
async def correction_stats(
    since: Optional[datetime] = Query(None),
    service: CorrectionService = Depends(get_correction_service),
):
    return await service.get_correction_stats(since=since)


@router.delete("/by-item/{source_item_id}")
async def delete_corrections_for_item(
    source_item_id: str,
    service: CorrectionService = Depends(get_correction_service),
):
    deleted = await service.delete_corrections_for_item(source_item_id)
    return {"source_item_id": source_item_id, "deleted": deleted}
