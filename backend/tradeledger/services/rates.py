"""Stored exchange-rate lookups."""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.config import settings
from tradeledger.models.exchange_rate import ExchangeRate


async def latest_rate(db: AsyncSession, from_currency: str, to_currency: str) -> Decimal | None:
    """Most recent stored rate for a currency pair, or None."""
    result = await db.execute(
        select(ExchangeRate.rate_value)
        .where(
            ExchangeRate.from_currency == from_currency,
            ExchangeRate.to_currency == to_currency,
        )
        .order_by(ExchangeRate.rate_date.desc(), ExchangeRate.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def purchase_rate_or_default(db: AsyncSession, given: Decimal | None) -> Decimal:
    """Request rate, else the latest stored RMB→EGP rate, else the configured default."""
    if given is not None:
        return given
    stored = await latest_rate(db, "RMB", "EGP")
    if stored is not None:
        return stored
    return settings.default_rmb_to_egp_rate
