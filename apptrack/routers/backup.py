"""
Backup API Endpoints
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import User
from ..errors import ok
from ..services.backup import BackupService, repair_data, serialize_backup, validate_data

router = APIRouter()


class CreateBackupRequest(BaseModel):
    description: str = Field("Manual backup", max_length=500)
    type: Literal["manual", "automatic", "migration"] = "manual"
    tags: list[str] = []


class RestoreRequest(BaseModel):
    backup_id: str


class ValidateRequest(BaseModel):
    backup_id: Optional[str] = None
    data: Optional[list[dict]] = None


class RepairRequest(BaseModel):
    data: list[dict]


class CompareRequest(BaseModel):
    version_a: str
    version_b: str = "current"


@router.post("/create")
async def create_backup(
    body: CreateBackupRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    backup = BackupService(db, current_user).create_backup(body.description, body.type, body.tags)
    return ok(serialize_backup(backup))


@router.get("/list")
async def list_backups(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok([serialize_backup(b) for b in BackupService(db, current_user).list_backups()])


@router.post("/restore")
async def restore_backup(
    body: RestoreRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(BackupService(db, current_user).restore_backup(body.backup_id))


@router.post("/validate")
async def validate_backup(
    body: ValidateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if body.data is not None:
        return ok(validate_data(body.data))
    return ok(BackupService(db, current_user).validate_backup(body.backup_id))


@router.post("/repair")
async def repair(
    body: RepairRequest,
    current_user: User = Depends(get_current_user),
):
    return ok(repair_data(body.data))


@router.post("/compare")
async def compare_versions(
    body: CompareRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(BackupService(db, current_user).compare_versions(body.version_a, body.version_b))


@router.get("/health")
async def backup_health(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(BackupService(db, current_user).health())


@router.get("/history")
async def backup_history(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    backups = BackupService(db, current_user).history(limit)
    return ok([serialize_backup(b) for b in backups])


@router.post("/cleanup")
async def cleanup_corrupted(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    removed = BackupService(db, current_user).cleanup_corrupted()
    return ok({"removed": removed, "count": len(removed)})


@router.get("/statistics")
async def backup_statistics(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(BackupService(db, current_user).statistics())


@router.delete("/{backup_id}")
async def delete_backup(
    backup_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    BackupService(db, current_user).delete_backup(backup_id)
    return ok({"id": backup_id, "deleted": True})
