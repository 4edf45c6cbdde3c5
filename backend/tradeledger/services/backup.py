"""Backup and restore jobs.

Starting a job only inserts a `BackupJob` row and schedules the work as
an asyncio task; the caller gets the job id back at once and polls the
row for progress.  A failure is recorded on the job (status "failed"
plus the error message) and never surfaces to whoever started it.

Archive layout (zip):
    manifest.json    version, created_at, per-table row counts, file list
    database.json    {table_name: [row, ...]} for every table
    media/...        payment attachments from settings.upload_dir
"""

import asyncio
import enum
import json
import logging
import os
import zipfile
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from sqlalchemy import Date, DateTime, Enum, Numeric, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradeledger.config import settings
from tradeledger.database import Base, async_session
from tradeledger.middleware.exceptions import ExternalJobError, NotFoundError
from tradeledger.models.backup_job import BackupJob
from tradeledger.models.user import User

logger = logging.getLogger("tradeledger.backup")

BACKUP_VERSION = "1.0.0"
MANIFEST_NAME = "manifest.json"
DATABASE_NAME = "database.json"
MEDIA_PREFIX = "media/"
# Job bookkeeping survives a restore
SKIP_TABLES = {"backup_jobs"}


# ── Row encoding ─────────────────────────────────────────────

def _encode(value):
    if isinstance(value, enum.Enum):
        return value.name
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _decode(column, value):
    if value is None:
        return None
    if isinstance(column.type, Enum) and column.type.enum_class:
        return column.type.enum_class[value]
    if isinstance(column.type, Numeric):
        return Decimal(value)
    if isinstance(column.type, DateTime):
        return datetime.fromisoformat(value)
    if isinstance(column.type, Date):
        return date.fromisoformat(value)
    return value


def _tables():
    import tradeledger.models  # noqa: F401

    return [t for t in Base.metadata.sorted_tables if t.name not in SKIP_TABLES]


async def dump_tables(db: AsyncSession) -> dict[str, list[dict]]:
    data = {}
    for table in _tables():
        result = await db.execute(select(table))
        data[table.name] = [
            {key: _encode(value) for key, value in row._mapping.items()}
            for row in result.all()
        ]
    return data


async def restore_tables(db: AsyncSession, data: dict[str, list[dict]]) -> dict[str, int]:
    """Replace every table's rows with the archived ones.

    Deletes children before parents and inserts parents before children.
    Tables missing from the archive end up empty.
    """
    tables = _tables()
    for table in reversed(tables):
        await db.execute(delete(table))

    counts = {}
    for table in tables:
        rows = [
            {
                name: _decode(table.c[name], value)
                for name, value in row.items()
                if name in table.c
            }
            for row in data.get(table.name, [])
        ]
        if rows:
            await db.execute(insert(table), rows)
        counts[table.name] = len(rows)
    return counts


# ── Archive I/O (run in a worker thread) ─────────────────────

def _media_files(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file())


def write_archive(path: Path, manifest: dict, data: dict, media_root: Path) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(MANIFEST_NAME, json.dumps(manifest, indent=2, ensure_ascii=False))
        zf.writestr(DATABASE_NAME, json.dumps(data, ensure_ascii=False))
        for file in _media_files(media_root):
            zf.write(file, MEDIA_PREFIX + file.relative_to(media_root).as_posix())
    return path.stat().st_size


def read_archive(path: Path, media_root: Path) -> tuple[dict, dict]:
    """Read manifest and table data, and unpack media into `media_root`."""
    if not path.is_file():
        raise ExternalJobError(f"Backup archive not found: {path}")
    try:
        zf = zipfile.ZipFile(path)
    except zipfile.BadZipFile as exc:
        raise ExternalJobError(f"Invalid backup: {exc}") from exc

    with zf:
        names = set(zf.namelist())
        for required in (MANIFEST_NAME, DATABASE_NAME):
            if required not in names:
                raise ExternalJobError(f"Invalid backup: {required} not found")
        manifest = json.loads(zf.read(MANIFEST_NAME))
        data = json.loads(zf.read(DATABASE_NAME))

        root = media_root.resolve()
        for name in names:
            if not name.startswith(MEDIA_PREFIX) or name.endswith("/"):
                continue
            target = (root / name[len(MEDIA_PREFIX):]).resolve()
            if root not in target.parents:
                raise ExternalJobError(f"Invalid backup: unsafe media path {name}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(zf.read(name))
    return manifest, data


# ── Job rows ─────────────────────────────────────────────────

async def create_job(
    db: AsyncSession, job_type: str, user: User, backup_path: str | None = None,
) -> BackupJob:
    job = BackupJob(
        job_type=job_type,
        status="pending",
        progress=0,
        backup_path=backup_path,
        created_by=user.id,
    )
    db.add(job)
    await db.flush()
    return job


async def get_job(db: AsyncSession, job_id: str) -> BackupJob:
    job = await db.get(BackupJob, job_id)
    if not job:
        raise NotFoundError("Backup job", job_id)
    return job


async def list_jobs(db: AsyncSession) -> list[BackupJob]:
    result = await db.execute(select(BackupJob).order_by(BackupJob.created_at.desc()))
    return list(result.scalars().all())


async def _set(session_factory: async_sessionmaker, job_id: str, **fields) -> None:
    async with session_factory() as db:
        await db.execute(update(BackupJob).where(BackupJob.id == job_id).values(**fields))
        await db.commit()


async def _fail(session_factory: async_sessionmaker, job_id: str, exc: Exception) -> None:
    message = str(exc) or type(exc).__name__
    await _set(
        session_factory, job_id,
        status="failed",
        error=message,
        completed_at=datetime.utcnow(),
    )


# ── Job bodies ───────────────────────────────────────────────

async def run_backup_job(session_factory: async_sessionmaker, job_id: str) -> None:
    try:
        await _set(session_factory, job_id, status="running", progress=5, started_at=datetime.utcnow())

        async with session_factory() as db:
            data = await dump_tables(db)
        await _set(session_factory, job_id, progress=40)

        media_root = Path(settings.upload_dir)
        created_at = datetime.utcnow()
        media = await asyncio.to_thread(_media_files, media_root)
        manifest = {
            "version": BACKUP_VERSION,
            "created_at": created_at.isoformat(),
            "tables": {name: len(rows) for name, rows in data.items()},
            "files": [MANIFEST_NAME, DATABASE_NAME]
            + [MEDIA_PREFIX + p.relative_to(media_root).as_posix() for p in media],
        }
        output = Path(settings.backup_dir) / f"backup-{created_at:%Y%m%d-%H%M%S}-{job_id[:8]}.zip"
        size = await asyncio.to_thread(write_archive, output, manifest, data, media_root)
        await _set(session_factory, job_id, progress=90)

        await _set(
            session_factory, job_id,
            status="completed",
            progress=100,
            output_path=str(output),
            file_size=size,
            manifest=manifest,
            completed_at=datetime.utcnow(),
        )
        logger.info("Backup %s written to %s (%d bytes)", job_id, output, size)
    except Exception as exc:
        logger.exception("Backup %s failed", job_id)
        await _fail(session_factory, job_id, exc)


async def run_restore_job(session_factory: async_sessionmaker, job_id: str, backup_path: str) -> None:
    try:
        await _set(session_factory, job_id, status="running", progress=5, started_at=datetime.utcnow())

        manifest, data = await asyncio.to_thread(
            read_archive, Path(backup_path), Path(settings.upload_dir)
        )
        await _set(session_factory, job_id, progress=30)

        async with session_factory() as db:
            try:
                counts = await restore_tables(db, data)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
            db.expire_all()

        await _set(
            session_factory, job_id,
            status="completed",
            progress=100,
            manifest={**manifest, "restored": counts},
            completed_at=datetime.utcnow(),
        )
        logger.info("Restore %s from %s complete", job_id, backup_path)
    except Exception as exc:
        logger.exception("Restore %s failed", job_id)
        await _fail(session_factory, job_id, exc)


# ── Runner ───────────────────────────────────────────────────

class BackupRunner:
    """Schedules job bodies as background tasks on the running loop."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self._tasks: set[asyncio.Task] = set()

    def start(self, job: BackupJob) -> asyncio.Task:
        if job.job_type == "restore":
            coro = run_restore_job(self.session_factory, job.id, job.backup_path)
        else:
            coro = run_backup_job(self.session_factory, job.id)
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


_runner = BackupRunner(async_session)


def get_backup_runner() -> BackupRunner:
    return _runner


def allowed_upload_name(filename: str | None) -> bool:
    return bool(filename) and os.path.splitext(filename)[1].lower() == ".zip"
