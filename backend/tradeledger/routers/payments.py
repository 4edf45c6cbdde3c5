"""Shipment payment routes.

Endpoints:
    GET    /api/payments                             List with filters + allocation summary
    POST   /api/payments                             Record a payment (JSON or multipart)
    GET    /api/payments/stats                       Totals across shipments
    GET    /api/payments/{id}                        One payment
    GET    /api/payments/{id}/attachment             Download the receipt file
    GET    /api/payments/{id}/attachment/preview     Receipt file inline
    PATCH  /api/payments/{id}/attachment             Finalize attachment metadata
    DELETE /api/payments/{id}                        Delete (manager only)

A multipart POST carries the payment fields as form fields and an
optional `attachment` file, stored under `<upload_dir>/payments/`.
"""

import asyncio
import uuid
from datetime import date, datetime, time, timedelta
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from tradeledger.auth.deps import require_permission, require_role
from tradeledger.config import settings
from tradeledger.database import get_db
from tradeledger.middleware.exceptions import ValidationError
from tradeledger.models.payment import ShipmentPayment
from tradeledger.models.shipment import Shipment
from tradeledger.models.user import User, UserRole
from tradeledger.schemas.payment import (
    AllocationSummary,
    AttachmentFinalize,
    PaymentCreate,
    PaymentDeleteOut,
    PaymentOut,
    PaymentStats,
)
from tradeledger.services import payments as svc
from tradeledger.services.currency import ZERO, round2

router = APIRouter()

ATTACHMENT_DIR = "payments"
ALLOWED_ATTACHMENT_TYPES = {
    "image/jpeg", "image/png", "image/webp", "image/gif", "application/pdf",
}


def _out(payment: ShipmentPayment) -> PaymentOut:
    out = PaymentOut.model_validate(payment)
    out.allocation_summary = AllocationSummary(**svc.allocation_summary(payment))
    return out


async def _store_attachment(upload: UploadFile) -> dict:
    """Save an uploaded receipt and return its attachment metadata."""
    content = await upload.read()
    if len(content) > settings.max_upload_bytes:
        raise ValidationError("Attachment is too large", field="attachment")
    mime = upload.content_type or "application/octet-stream"
    if mime not in ALLOWED_ATTACHMENT_TYPES:
        raise ValidationError(f"Unsupported attachment type: {mime}", field="attachment")

    suffix = Path(upload.filename or "").suffix.lower()
    name = f"{uuid.uuid4().hex}{suffix}"
    target = _attachment_file(f"{ATTACHMENT_DIR}/{name}")
    target.parent.mkdir(parents=True, exist_ok=True)
    await asyncio.to_thread(target.write_bytes, content)
    return {
        "attachment_url": f"{ATTACHMENT_DIR}/{name}",
        "attachment_original_name": upload.filename,
        "attachment_mime_type": mime,
        "attachment_size": len(content),
    }


def _attachment_file(url: str) -> Path:
    return Path(settings.upload_dir) / url


def _attachment_path(payment: ShipmentPayment) -> Path:
    if not payment.attachment_url:
        raise HTTPException(status_code=404, detail="Payment has no attachment")
    root = Path(settings.upload_dir).resolve()
    path = (root / payment.attachment_url).resolve()
    if root not in path.parents or not path.is_file():
        raise HTTPException(status_code=404, detail="Attachment file not found")
    return path


# ── List / stats ─────────────────────────────────────────────

@router.get("/", response_model=list[PaymentOut])
async def list_payments(
    shipment_id: str | None = Query(None),
    party_type: str | None = Query(None),
    party_id: str | None = Query(None),
    cost_component: str | None = Query(None),
    payment_method: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("payments.read")),
):
    stmt = select(ShipmentPayment)
    if shipment_id:
        stmt = stmt.where(ShipmentPayment.shipment_id == shipment_id)
    if party_type:
        stmt = stmt.where(ShipmentPayment.party_type == party_type)
    if party_id:
        stmt = stmt.where(ShipmentPayment.party_id == party_id)
    if cost_component:
        stmt = stmt.where(ShipmentPayment.cost_component == cost_component)
    if payment_method:
        stmt = stmt.where(ShipmentPayment.payment_method == payment_method)
    if date_from:
        stmt = stmt.where(ShipmentPayment.payment_date >= datetime.combine(date_from, time.min))
    if date_to:
        # Inclusive: everything up to the end of that day
        stmt = stmt.where(
            ShipmentPayment.payment_date < datetime.combine(date_to + timedelta(days=1), time.min)
        )

    result = await db.execute(
        stmt.order_by(ShipmentPayment.payment_date.desc(), ShipmentPayment.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return [_out(p) for p in result.scalars().all()]


@router.get("/stats", response_model=PaymentStats)
async def payment_stats(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("payments.read")),
):
    totals = (await db.execute(
        select(
            func.coalesce(func.sum(Shipment.final_total_cost_egp), 0),
            func.coalesce(func.sum(Shipment.total_paid_egp), 0),
            func.coalesce(func.sum(Shipment.balance_egp), 0),
        ).where(Shipment.status != "archived")
    )).one()
    count = await db.scalar(select(func.count(ShipmentPayment.id))) or 0
    last = (await db.execute(
        select(ShipmentPayment)
        .order_by(ShipmentPayment.payment_date.desc(), ShipmentPayment.created_at.desc())
        .limit(1)
    )).scalar_one_or_none()

    return PaymentStats(
        total_cost_egp=round2(totals[0] or ZERO),
        total_paid_egp=round2(totals[1] or ZERO),
        total_balance_egp=round2(totals[2] or ZERO),
        payment_count=count,
        last_payment=_out(last) if last else None,
    )


# ── Create ───────────────────────────────────────────────────

@router.post("/", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
async def create_payment(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("payments.write")),
):
    """Record a payment.  JSON body, or multipart form with an optional
    `attachment` file."""
    attachment = None
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        data = {k: v for k, v in form.items() if not isinstance(v, UploadFile)}
        body = PaymentCreate.model_validate(data)
        upload = form.get("attachment")
        if isinstance(upload, UploadFile) and upload.filename:
            attachment = await _store_attachment(upload)
    else:
        try:
            payload = await request.json()
        except ValueError:
            raise ValidationError("Request body must be JSON or multipart form data")
        body = PaymentCreate.model_validate(payload)

    try:
        payment = await svc.create_payment(db, body, user, attachment=attachment)
    except Exception:
        # A rejected payment leaves no receipt file behind
        if attachment:
            _attachment_file(attachment["attachment_url"]).unlink(missing_ok=True)
        raise
    return _out(payment)


# ── Single payment ───────────────────────────────────────────

@router.get("/{payment_id}", response_model=PaymentOut)
async def get_payment(
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("payments.read")),
):
    return _out(await svc.get_payment(db, payment_id))


@router.get("/{payment_id}/attachment")
async def download_attachment(
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("payments.read")),
):
    payment = await svc.get_payment(db, payment_id)
    return FileResponse(
        _attachment_path(payment),
        media_type=payment.attachment_mime_type or "application/octet-stream",
        filename=payment.attachment_original_name or Path(payment.attachment_url).name,
    )


@router.get("/{payment_id}/attachment/preview")
async def preview_attachment(
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("payments.read")),
):
    payment = await svc.get_payment(db, payment_id)
    return FileResponse(
        _attachment_path(payment),
        media_type=payment.attachment_mime_type or "application/octet-stream",
        content_disposition_type="inline",
        filename=payment.attachment_original_name or Path(payment.attachment_url).name,
    )


@router.patch("/{payment_id}/attachment", response_model=PaymentOut)
async def finalize_attachment(
    payment_id: str,
    body: AttachmentFinalize,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("payments.write")),
):
    return _out(await svc.finalize_attachment(db, payment_id, body, user))


@router.delete("/{payment_id}", response_model=PaymentDeleteOut)
async def delete_payment(
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_role(UserRole.MANAGER)),
):
    return await svc.delete_payment(db, payment_id, user)
