"""Return case state machine: pending → resolved (terminal)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from tradeledger.middleware.exceptions import ConflictError, ValidationError
from tradeledger.services.currency import ZERO, round2, to_decimal
from tradeledger.services.ledger import BALANCE_REDUCING_RESOLUTIONS

PENDING = "pending"
RESOLVED = "resolved"

RESOLUTIONS = ("accepted_return", "deduct_value", "exchange", "damaged")
DEFAULT_RESOLUTION = "deduct_value"


def resolve_return_case(
    case,
    margin_egp,
    resolution: str | None = None,
    resolution_note: str | None = None,
    resolved_by: str | None = None,
    now: datetime | None = None,
):
    """Move a pending case to resolved and record the agreed margin.

    Raises:
        ConflictError: the case is already resolved.
        ValidationError: negative/missing margin or unknown resolution.
    """
    if case.status == RESOLVED:
        raise ConflictError("Return case is already resolved", error_code="RETURN_CASE_RESOLVED")

    margin = to_decimal(margin_egp, default=Decimal("-1"))
    if margin_egp is None or margin < 0:
        raise ValidationError("Margin must be zero or greater", field="margin_egp")

    resolution = resolution or DEFAULT_RESOLUTION
    if resolution not in RESOLUTIONS:
        raise ValidationError(f"Unknown resolution: {resolution}", field="resolution")

    case.status = RESOLVED
    case.resolution = resolution
    # Exchanges and damaged goods carry no balance effect, so no margin
    case.margin_egp = round2(margin) if resolution in BALANCE_REDUCING_RESOLUTIONS else round2(ZERO)
    case.resolution_note = resolution_note
    case.resolved_at = now or datetime.utcnow()
    case.resolved_by = resolved_by
    return case
