"""
/api/v1/exports endpoints.
Training-data export jobs and their JSONL artifacts.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse

from docfiling.dependencies import get_export_service, verify_api_key
from docfiling.feedback.training_export import TrainingExportService
from docfiling.models.enums import ExportStatus
from docfiling.schemas.exports import (
    CreateExportRequest,
    CreateExportResponse,
    ExportDetail,
    TrainingExportRecord,
)

router = APIRouter(prefix="/api/v1/exports", tags=["exports"], dependencies=[Depends(verify_api_key)])


@router.post("", response_model=CreateExportResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_export(
    request: CreateExportRequest,
    service: TrainingExportService = Depends(get_export_service),
):
    """Record a pending export and queue its generation."""
    export = await service.create_export(request)
    return CreateExportResponse(export_id=export.id, status=export.status)


@router.get("", response_model=list[TrainingExportRecord])
async def list_exports(
    user_id: str = Query(...),
    service: TrainingExportService = Depends(get_export_service),
):
    return await service.list_exports(user_id)


@router.get("/{export_id}", response_model=ExportDetail)
async def get_export(
    export_id: str,
    service: TrainingExportService = Depends(get_export_service),
):
    export = await service.get_export(export_id)
    if export is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Export not found")
    return export


@router.get("/{export_id}/download", response_class=PlainTextResponse)
async def download_export(
    export_id: str,
    service: TrainingExportService = Depends(get_export_service),
):
    export = await service.get_export(export_id)
    if export is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Export not found")
    if export.status != ExportStatus.COMPLETED or export.download_path is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Export is {export.status.value}; no artifact available",
        )
    return PlainTextResponse(
        service.read_artifact(export),
        media_type="application/x-ndjson",
        headers={"Content-Disposition": f'attachment; filename="{export.export_name}.jsonl"'},
    )
