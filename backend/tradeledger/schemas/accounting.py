"""Schemas for accounting reports and backup jobs."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class MovementOut(BaseModel):
    date: datetime
    shipment_id: str
    shipment_code: str
    shipment_name: str | None
    party_type: str
    party_id: str | None
    party_name: str | None
    movement_type: str
    movement_label: str
    cost_component: str | None
    payment_method: str | None
    original_currency: str
    amount_original: Decimal
    amount_rmb: Decimal | None
    amount_egp: Decimal
    direction: str  # cost | payment
    is_allocation: bool
    payment_id: str | None
    user_name: str | None
    attachment_url: str | None
    attachment_original_name: str | None


class MovementReportOut(BaseModel):
    movements: list[MovementOut]
    total_cost_egp: Decimal
    total_paid_egp: Decimal
    net_movement: Decimal
    total_cost_rmb: Decimal
    total_paid_rmb: Decimal
    net_movement_rmb: Decimal


class PaymentMethodRow(BaseModel):
    payment_method: str
    payment_count: int
    total_amount_egp: Decimal
    total_amount_rmb: Decimal


class PartyBalanceRow(BaseModel):
    party_id: str
    party_name: str | None
    shipment_count: int
    total_cost_rmb: Decimal
    total_cost_egp: Decimal
    total_paid_rmb: Decimal
    total_paid_egp: Decimal
    balance_egp: Decimal
    balance_rmb: Decimal


# ── Backup ───────────────────────────────────────────────────

class BackupJobOut(BaseModel):
    id: str
    job_type: str
    status: str
    progress: int
    backup_path: str | None
    output_path: str | None
    file_size: int | None
    manifest: dict | None
    error: str | None
    created_by: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class RestoreStart(BaseModel):
    backup_path: str


class BackupUploadOut(BaseModel):
    backup_path: str
    file_size: int
