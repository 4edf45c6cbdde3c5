"""Aggregate model imports for Alembic auto-detection."""

from tradeledger.models.user import User, UserRole  # noqa: F401
from tradeledger.models.activity_log import ActivityLog  # noqa: F401

# Reference data
from tradeledger.models.supplier import Supplier  # noqa: F401
from tradeledger.models.shipping_company import ShippingCompany  # noqa: F401
from tradeledger.models.exchange_rate import ExchangeRate  # noqa: F401

# Import shipments
from tradeledger.models.shipment import (  # noqa: F401
    Shipment, ShipmentItem, ShipmentShippingDetails,
)
from tradeledger.models.payment import ShipmentPayment, PaymentAllocation  # noqa: F401
from tradeledger.models.inventory_movement import InventoryMovement  # noqa: F401

# Local trade
from tradeledger.models.party import Party, PartySeason  # noqa: F401
from tradeledger.models.local_trade import (  # noqa: F401
    LocalInvoice, LocalInvoiceLine, LocalPayment, LocalReceipt,
)
from tradeledger.models.return_case import ReturnCase  # noqa: F401
from tradeledger.models.collection import PartyCollection  # noqa: F401
from tradeledger.models.notification import Notification  # noqa: F401

# Operations
from tradeledger.models.backup_job import BackupJob  # noqa: F401
