from __future__ import annotations

BROAD_WAREHOUSE_ROLES = {"ADMIN", "FACTORY_MANAGER"}

PERMISSIONS = [
    ("TRANSFER_VIEW", "View transfers"),
    ("TRANSFER_CREATE", "Create and cancel transfers"),
    ("TRANSFER_EDIT", "Edit transfer header fields"),
    ("TRANSFER_APPROVE", "Approve or reject pending transfers"),
    ("TRANSFER_COMPLETE", "Confirm reception of transfers"),
    ("STOCK_VIEW", "View stock, alerts, adjustments and movements"),
    ("STOCK_ADJUST", "Adjust stock counters and minimum levels"),
]

ROLE_PERMISSIONS: dict[str, set[str]] = {
    "ADMIN": {code for code, _ in PERMISSIONS},
    "FACTORY_MANAGER": {code for code, _ in PERMISSIONS},
    "WAREHOUSE_MANAGER": {
        "TRANSFER_VIEW",
        "TRANSFER_CREATE",
        "TRANSFER_EDIT",
        "TRANSFER_APPROVE",
        "TRANSFER_COMPLETE",
        "STOCK_VIEW",
        "STOCK_ADJUST",
    },
    "SUPERVISOR": {"TRANSFER_VIEW", "TRANSFER_CREATE", "TRANSFER_COMPLETE", "STOCK_VIEW"},
    "STAFF": {"TRANSFER_VIEW", "TRANSFER_CREATE", "STOCK_VIEW"},
}


def _normalize_role(role: str | None) -> str:
    return (role or "").upper()


def has_permission(role: str | None, permission_key: str) -> bool:
    return permission_key in ROLE_PERMISSIONS.get(_normalize_role(role), set())


def has_broad_warehouse_scope(role: str | None) -> bool:
    return _normalize_role(role) in BROAD_WAREHOUSE_ROLES
