"""Role-based permissions for the back office.

Design:
  - Each role has a set of DEFAULT permissions (defined here, not in DB).
  - Managers can grant/revoke individual permissions per user via
    `User.custom_permissions` (a JSON dict of {perm: True/False} overrides).
  - `resolve_permissions(role, custom_permissions)` computes the effective
    permission set for a given user.
  - The effective set is embedded in the JWT so most checks are token-only
    (no DB roundtrip).

Permission naming: `<resource>.<action>`
  Resources: users, suppliers, shipping, shipments, payments, inventory,
             parties, local_trade, reports, backup
  Actions:   read, write, delete
"""

from __future__ import annotations


# ── All known permissions ───────────────────────────────────

ALL_PERMISSIONS: set[str] = {
    # User management
    "users.read",
    "users.write",

    # Reference data
    "suppliers.read",
    "suppliers.write",
    "shipping.read",             # shipping companies + exchange rates
    "shipping.write",

    # Import shipments
    "shipments.read",
    "shipments.write",
    "shipments.delete",          # archive

    # Shipment payments (financial, restricted)
    "payments.read",
    "payments.write",
    "payments.delete",

    # Stock
    "inventory.read",
    "inventory.write",

    # Local trade: parties, invoices, payments, returns, collections
    "parties.read",
    "parties.write",
    "local_trade.read",
    "local_trade.write",

    # Reports
    "reports.read",

    # Backup / restore
    "backup.manage",
}


# ── Role → default permissions ──────────────────────────────

ROLE_DEFAULTS: dict[str, set[str]] = {
    "manager": ALL_PERMISSIONS.copy(),

    "accountant": {
        "suppliers.read", "suppliers.write",
        "shipping.read", "shipping.write",
        "shipments.read", "shipments.write",
        "payments.read", "payments.write",
        "inventory.read",
        "parties.read", "parties.write",
        "local_trade.read", "local_trade.write",
        "reports.read",
    },

    "inventory": {
        "suppliers.read",
        "shipping.read",
        "shipments.read", "shipments.write",
        "inventory.read", "inventory.write",
        "parties.read",
        "local_trade.read",
    },

    "viewer": {
        "suppliers.read",
        "shipping.read",
        "shipments.read",
        "inventory.read",
        "parties.read",
        "local_trade.read",
    },
}


# ── Resolution ──────────────────────────────────────────────

def resolve_permissions(
    role: str,
    custom_overrides: dict[str, bool] | None = None,
) -> list[str]:
    """Compute effective permissions for a user.

    1. Start with the role's defaults.
    2. Apply custom_overrides: {perm: True} adds, {perm: False} removes.
    3. Return a sorted list (for stable JWT claims).
    """
    base = ROLE_DEFAULTS.get(role, set()).copy()

    if custom_overrides:
        for perm, granted in custom_overrides.items():
            if perm not in ALL_PERMISSIONS:
                continue  # ignore unknown permissions
            if granted:
                base.add(perm)
            else:
                base.discard(perm)

    return sorted(base)


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement."""
    return required in user_permissions
