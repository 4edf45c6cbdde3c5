"""Backup and restore routes (manager only).

Endpoints:
    GET   /api/backup/jobs              All jobs, newest first
    GET   /api/backup/jobs/{id}         One job (poll for progress)
    POST  /api/backup/start             Start a backup job
    GET   /api/backup/download/{id}     Download a completed backup archive
    POST  /api/backup/upload            Upload a .zip archive for restore
    POST  /api/restore/start            Start a restore job from an archive

Starting a job returns at once with the pending job; the work runs as a
background task with its own sessions, so the job row is committed
before the task is scheduled.
"""

import asyncio
import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import require_role
from tradeledger.config import settings
from tradeledger.database import get_db
from tradeledger.middleware.exceptions import ValidationError
from tradeledger.models.user import User, UserRole
from tradeledger.schemas.accounting import BackupJobOut, BackupUploadOut, RestoreStart
from tradeledger.services import backup as svc
from tradeledger.services.backup import BackupRunner, get_backup_runner
from tradeledger.utils.activity import log_activity

router = APIRouter()
restore_router = APIRouter()


@router.get("/jobs", response_model=list[BackupJobOut])
async def list_jobs(
    db: AsyncSession = Depends(get_db),
    _manager: User = Depends(require_role(UserRole.MANAGER)),
):
    return await svc.list_jobs(db)


@router.get("/jobs/{job_id}", response_model=BackupJobOut)
async def get_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    _manager: User = Depends(require_role(UserRole.MANAGER)),
):
    return await svc.get_job(db, job_id)


@router.post("/start", response_model=BackupJobOut, status_code=status.HTTP_202_ACCEPTED)
async def start_backup(
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(require_role(UserRole.MANAGER)),
    runner: BackupRunner = Depends(get_backup_runner),
):
    job = await svc.create_job(db, "backup", manager)
    await log_activity(
        db, manager,
        action="started",
        entity_type="backup",
        entity_id=job.id,
        summary="Backup started",
    )
    await db.commit()
    runner.start(job)
    return job


@router.get("/download/{job_id}")
async def download_backup(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    _manager: User = Depends(require_role(UserRole.MANAGER)),
):
    job = await svc.get_job(db, job_id)
    if job.job_type != "backup" or job.status != "completed" or not job.output_path:
        raise HTTPException(status_code=400, detail="Backup is not completed")
    path = Path(job.output_path)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Backup file not found")
    return FileResponse(path, media_type="application/zip", filename=path.name)


@router.post("/upload", response_model=BackupUploadOut, status_code=status.HTTP_201_CREATED)
async def upload_backup(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(require_role(UserRole.MANAGER)),
):
    if not svc.allowed_upload_name(file.filename):
        raise ValidationError("Only .zip backup archives are accepted", field="file")

    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise ValidationError("Backup archive is too large", field="file")
    target = Path(settings.backup_dir) / f"uploaded-{uuid.uuid4().hex[:8]}-{Path(file.filename).name}"
    target.parent.mkdir(parents=True, exist_ok=True)
    await asyncio.to_thread(target.write_bytes, content)

    await log_activity(
        db, manager,
        action="uploaded",
        entity_type="backup",
        entity_code=target.name,
        summary=f"Uploaded backup {file.filename}",
        details={"file_size": len(content)},
    )
    return BackupUploadOut(backup_path=str(target), file_size=len(content))


@restore_router.post("/start", response_model=BackupJobOut, status_code=status.HTTP_202_ACCEPTED)
async def start_restore(
    body: RestoreStart,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(require_role(UserRole.MANAGER)),
    runner: BackupRunner = Depends(get_backup_runner),
):
    if not Path(body.backup_path).is_file():
        raise ValidationError("Backup file does not exist", field="backup_path")

    job = await svc.create_job(db, "restore", manager, backup_path=body.backup_path)
    await log_activity(
        db, manager,
        action="started",
        entity_type="restore",
        entity_id=job.id,
        summary=f"Restore started from {Path(body.backup_path).name}",
    )
    await db.commit()
    runner.start(job)
    return job
