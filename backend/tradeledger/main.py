import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tradeledger.config import settings
from tradeledger.middleware.exceptions import register_exception_handlers
from tradeledger.middleware.security import HTTPSRedirectMiddleware, SecurityHeadersMiddleware
from tradeledger.routers import (
    accounting,
    auth,
    backup,
    exchange_rates,
    health,
    inventory,
    local_trade,
    notifications,
    payments,
    shipments,
    shipping_companies,
    suppliers,
    users,
)
from tradeledger.services.scheduler import lifespan

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title="TradeLedger",
    description="Import shipment costing, payment allocation and local trade ledger",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(SecurityHeadersMiddleware)

# HTTPS redirect (production only)
app.add_middleware(HTTPSRedirectMiddleware, force_https=False)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/users", tags=["users"])

# Reference data
app.include_router(suppliers.router, prefix="/api/suppliers", tags=["suppliers"])
app.include_router(
    shipping_companies.router, prefix="/api/shipping-companies", tags=["shipping-companies"]
)
app.include_router(exchange_rates.router, prefix="/api/exchange-rates", tags=["exchange-rates"])

# Import shipments
app.include_router(shipments.router, prefix="/api/shipments", tags=["shipments"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["inventory"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(accounting.router, prefix="/api/accounting", tags=["accounting"])

# Local trade
app.include_router(local_trade.router, prefix="/api/local-trade", tags=["local-trade"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])

# Maintenance
app.include_router(backup.router, prefix="/api/backup", tags=["backup"])
app.include_router(backup.restore_router, prefix="/api/restore", tags=["backup"])
