"""
Capability Constants and Role Mappings

WHY: Authorization decisions are made once at the blueprint boundary from a
single role -> capability table, instead of role checks scattered through
handlers.

Identity is established upstream; requests carry X-User-Id and X-User-Role.
"""

# =============================================================================
# ROLES
# =============================================================================

ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_SALES = "SALES"

VALID_ROLES = [ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_MANAGER, ROLE_SALES]


# =============================================================================
# CAPABILITY DEFINITIONS
# =============================================================================

# Each capability is defined as: (code, description)
CAPABILITY_DEFINITIONS = [
    ("VIEW_LEDGER", "View customers, invoices, stock, returns and history"),
    ("MANAGE_CATALOG", "Maintain brands, categories, units, warehouses, materials and products"),
    ("MANAGE_CUSTOMERS", "Create and edit customers"),
    ("ADJUST_STOCK", "Create IN/OUT stock adjustments"),
    ("TRANSFER_STOCK", "Move stock between warehouses"),
    ("CREATE_INVOICE", "Create CASH and CREDIT invoices"),
    ("RECORD_PAYMENT", "Record invoice and customer payments"),
    ("MANAGE_CREDIT", "Issue cash refunds and pay invoices from credit"),
    ("PROCESS_RETURN", "Book returns against invoices"),
    ("MANAGE_DAMAGED", "Reprice or discard damaged items"),
    ("REVERSE_PAYMENT", "Delete a customer payment and unwind its allocations"),
    ("RECONCILE", "Run reconciliation repair over invoice bookkeeping"),
]

ALL_CAPABILITIES = frozenset(code for code, _ in CAPABILITY_DEFINITIONS)


# =============================================================================
# DEFAULT ROLE MAPPINGS
# =============================================================================

_SALES_CAPABILITIES = frozenset({
    "VIEW_LEDGER",
    "MANAGE_CUSTOMERS",
    "CREATE_INVOICE",
    "RECORD_PAYMENT",
    "PROCESS_RETURN",
})

_MANAGER_CAPABILITIES = _SALES_CAPABILITIES | {
    "MANAGE_CATALOG",
    "ADJUST_STOCK",
    "TRANSFER_STOCK",
    "MANAGE_CREDIT",
    "MANAGE_DAMAGED",
}

ROLE_CAPABILITIES = {
    ROLE_SUPER_ADMIN: ALL_CAPABILITIES,
    ROLE_ADMIN: ALL_CAPABILITIES - {"REVERSE_PAYMENT"},
    ROLE_MANAGER: _MANAGER_CAPABILITIES,
    ROLE_SALES: _SALES_CAPABILITIES,
}


def has_capability(role: str | None, capability: str) -> bool:
    return capability in ROLE_CAPABILITIES.get((role or "").upper(), frozenset())
