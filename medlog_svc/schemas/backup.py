"""
Pydantic schemas for backup and restore.

Passwords are accepted but never returned.
"""
from typing import Optional

from pydantic import BaseModel, Field


class BackupPreferencesUpdate(BaseModel):
    password: Optional[str] = Field(None, max_length=200, description="Backup passphrase; empty clears it")
    auto_backup: bool = Field(False, description="Back up automatically at service start")


class BackupPreferencesResponse(BaseModel):
    auto_backup: bool
    has_password: bool


class BackupRequest(BaseModel):
    password: Optional[str] = Field(None, max_length=200, description="Overrides the saved passphrase")


class BackupFileResponse(BaseModel):
    name: str
    size: int
    is_auto: bool


class ExportResponse(BaseModel):
    blob: str = Field(..., description="Encrypted backup as base64 text")


class RestoreRequest(BaseModel):
    password: Optional[str] = Field(None, max_length=200)
    confirm: bool = Field(False, description="Must be true: restore replaces all records and attachments")


class RestoreBlobRequest(RestoreRequest):
    blob: str = Field(..., min_length=1, description="Encrypted backup as base64 text")


class RestoreResponse(BaseModel):
    records: int
    attachments: int
    backup_timestamp: Optional[str] = None
