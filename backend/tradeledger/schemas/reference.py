"""Schemas for suppliers, shipping companies and exchange rates."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, field_validator

from tradeledger.services.currency import SUPPORTED_CURRENCIES


# ── Suppliers ────────────────────────────────────────────────

class SupplierCreate(BaseModel):
    name: str
    country: str | None = "China"
    contact_name: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    notes: str | None = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class SupplierUpdate(BaseModel):
    name: str | None = None
    country: str | None = None
    contact_name: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    notes: str | None = None
    is_active: bool | None = None


class SupplierOut(BaseModel):
    id: str
    name: str
    country: str | None
    contact_name: str | None
    phone: str | None
    email: str | None
    address: str | None
    notes: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Shipping companies ───────────────────────────────────────

class ShippingCompanyCreate(BaseModel):
    name: str
    contact_name: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    address: str | None = None
    notes: str | None = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class ShippingCompanyUpdate(BaseModel):
    name: str | None = None
    contact_name: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    address: str | None = None
    notes: str | None = None
    is_active: bool | None = None


class ShippingCompanyOut(BaseModel):
    id: str
    name: str
    contact_name: str | None
    phone: str | None
    email: str | None
    website: str | None
    address: str | None
    notes: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Exchange rates ───────────────────────────────────────────

class ExchangeRateCreate(BaseModel):
    rate_date: date
    from_currency: str = "RMB"
    to_currency: str = "EGP"
    rate_value: Decimal
    source: str | None = "manual"

    @field_validator("from_currency", "to_currency")
    @classmethod
    def valid_currency(cls, v: str) -> str:
        if v not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Currency must be one of {', '.join(SUPPORTED_CURRENCIES)}")
        return v

    @field_validator("rate_value")
    @classmethod
    def rate_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Rate must be greater than zero")
        return v


class ExchangeRateOut(BaseModel):
    id: str
    rate_date: date
    from_currency: str
    to_currency: str
    rate_value: Decimal
    source: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
