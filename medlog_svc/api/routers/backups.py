"""
Backups router - encrypted backup files, export and restore.

All endpoints require API key authentication. Restoring replaces every
record and attachment and must be confirmed with confirm=true.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Response

from schemas import (
    BackupFileResponse,
    BackupPreferencesResponse,
    BackupPreferencesUpdate,
    BackupRequest,
    ExportResponse,
    RestoreBlobRequest,
    RestoreRequest,
    RestoreResponse,
)
from services import BackupConfig, BackupService
from core.auth import verify_api_key
from core.dependencies import get_backup_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/backups",
    tags=["Backups"],
    dependencies=[Depends(verify_api_key)],
)


def _preferences_response(config: BackupConfig) -> BackupPreferencesResponse:
    return BackupPreferencesResponse(auto_backup=config.auto_backup, has_password=bool(config.password))


# =============================================================================
# PREFERENCES
# =============================================================================

@router.get("/preferences", response_model=BackupPreferencesResponse, summary="Get backup preferences")
async def get_preferences(backup_service: BackupService = Depends(get_backup_service)):
    return _preferences_response(backup_service.get_config())


@router.put("/preferences", response_model=BackupPreferencesResponse, summary="Save backup preferences")
async def save_preferences(
    payload: BackupPreferencesUpdate,
    backup_service: BackupService = Depends(get_backup_service),
):
    """
    Raises:
    - 400 Bad Request: auto_backup enabled without a password
    """
    config = backup_service.save_config(
        BackupConfig(password=payload.password or "", auto_backup=payload.auto_backup)
    )
    return _preferences_response(config)


# =============================================================================
# BACKUP FILES
# =============================================================================

@router.get("", response_model=List[BackupFileResponse], summary="List backup files")
async def list_backups(backup_service: BackupService = Depends(get_backup_service)):
    return [BackupFileResponse(**info.to_dict()) for info in backup_service.list_backups()]


@router.post("", response_model=BackupFileResponse, status_code=201, summary="Create a backup file")
async def create_backup(
    payload: BackupRequest,
    backup_service: BackupService = Depends(get_backup_service),
):
    """Encrypt all records and attachments into a new manual backup file."""
    name = backup_service.create_backup(payload.password)
    info = next(i for i in backup_service.list_backups() if i.name == name)
    return BackupFileResponse(**info.to_dict())


@router.post("/export", response_model=ExportResponse, summary="Export an encrypted backup")
async def export_backup(
    payload: BackupRequest,
    backup_service: BackupService = Depends(get_backup_service),
):
    return ExportResponse(blob=backup_service.export_blob(payload.password))


@router.post("/restore", response_model=RestoreResponse, summary="Restore from an uploaded backup")
async def restore_blob(
    payload: RestoreBlobRequest,
    backup_service: BackupService = Depends(get_backup_service),
):
    """
    Raises:
    - 400 Bad Request: wrong password or corrupted backup; nothing is changed
    - 409 Conflict: confirm was not set
    """
    result = backup_service.restore_from_blob(payload.blob, payload.password, confirm=payload.confirm)
    return RestoreResponse(**vars(result))


@router.get("/{file_name}", summary="Download a backup file", response_class=Response)
async def download_backup(
    file_name: str,
    backup_service: BackupService = Depends(get_backup_service),
):
    blob = backup_service.read_backup(file_name)
    return Response(
        content=blob,
        media_type="text/plain",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.delete("/{file_name}", status_code=204, summary="Delete a backup file")
async def delete_backup(
    file_name: str,
    backup_service: BackupService = Depends(get_backup_service),
):
    backup_service.delete_backup(file_name)
    return Response(status_code=204)


@router.post("/{file_name}/restore", response_model=RestoreResponse, summary="Restore from a backup file")
async def restore_file(
    file_name: str,
    payload: RestoreRequest,
    backup_service: BackupService = Depends(get_backup_service),
):
    result = backup_service.restore_from_file(file_name, payload.password, confirm=payload.confirm)
    return RestoreResponse(**vars(result))
