"""Exchange rate routes: history, latest per pair, record a rate."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import require_permission
from tradeledger.database import get_db
from tradeledger.models.exchange_rate import ExchangeRate
from tradeledger.models.user import User
from tradeledger.schemas.reference import ExchangeRateCreate, ExchangeRateOut

router = APIRouter()


@router.get("/", response_model=list[ExchangeRateOut])
async def list_exchange_rates(
    from_currency: str | None = Query(None),
    to_currency: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipping.read")),
):
    stmt = select(ExchangeRate)
    if from_currency:
        stmt = stmt.where(ExchangeRate.from_currency == from_currency)
    if to_currency:
        stmt = stmt.where(ExchangeRate.to_currency == to_currency)
    stmt = stmt.order_by(ExchangeRate.rate_date.desc(), ExchangeRate.created_at.desc()).limit(limit)
    result = await db.execute(stmt)
    return [ExchangeRateOut.model_validate(r) for r in result.scalars().all()]


@router.get("/latest", response_model=ExchangeRateOut)
async def latest_exchange_rate(
    from_currency: str = Query("RMB"),
    to_currency: str = Query("EGP"),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipping.read")),
):
    result = await db.execute(
        select(ExchangeRate)
        .where(
            ExchangeRate.from_currency == from_currency,
            ExchangeRate.to_currency == to_currency,
        )
        .order_by(ExchangeRate.rate_date.desc(), ExchangeRate.created_at.desc())
        .limit(1)
    )
    rate = result.scalar_one_or_none()
    if not rate:
        raise HTTPException(status_code=404, detail=f"No {from_currency}→{to_currency} rate recorded")
    return ExchangeRateOut.model_validate(rate)


@router.post("/", response_model=ExchangeRateOut, status_code=status.HTTP_201_CREATED)
async def create_exchange_rate(
    body: ExchangeRateCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipping.write")),
):
    if body.from_currency == body.to_currency:
        raise HTTPException(status_code=400, detail="from_currency and to_currency must differ")
    rate = ExchangeRate(**body.model_dump())
    db.add(rate)
    await db.flush()
    await db.refresh(rate)
    return ExchangeRateOut.model_validate(rate)
