# Overview: Permission catalog package.
# Re-exports the catalog and lookup helpers.

from .categories import PermissionModule
from .definitions import (
    PERMISSION_DEFINITIONS,
    ADMINISTRATION_PERMISSIONS,
    MASTER_DATA_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    PROCUREMENT_PERMISSIONS,
    PAYABLES_PERMISSIONS,
    FINANCE_PERMISSIONS,
)
from .helpers import (
    PREDICATE_PERMISSIONS,
    get_all_permission_names,
    get_permissions_by_module,
    get_permission_definition,
    predicate_name,
    validate_permission_name,
)

__all__ = [
    "PermissionModule",
    "PERMISSION_DEFINITIONS",
    "ADMINISTRATION_PERMISSIONS",
    "MASTER_DATA_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "PROCUREMENT_PERMISSIONS",
    "PAYABLES_PERMISSIONS",
    "FINANCE_PERMISSIONS",
    "PREDICATE_PERMISSIONS",
    "get_all_permission_names",
    "get_permissions_by_module",
    "get_permission_definition",
    "predicate_name",
    "validate_permission_name",
]
