# Overview: Utility functions for permission catalog lookups and validation.

import re

from .definitions import PERMISSION_DEFINITIONS


def get_all_permission_names():
    """Get list of all permission names in catalog order."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_permissions_by_module(module):
    """Get all permissions in a module."""
    return [perm for perm in PERMISSION_DEFINITIONS if perm[1] == module]


def get_permission_definition(name):
    """Get full definition for a permission name."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == name:
            return {
                "name": perm[0],
                "module": perm[1],
                "component": perm[2],
                "description": perm[3],
            }
    return None


def validate_permission_name(name):
    """Check if a permission name is in the catalog."""
    return name in get_all_permission_names()


def predicate_name(permission_name: str) -> str:
    """
    Convenience predicate for a permission name.

    "View PO" -> "can_view_po", "view-item-group" -> "can_view_item_group",
    "approve_payments" -> "can_approve_payments".
    """
    slug = re.sub(r"[^a-z0-9]+", "_", permission_name.lower()).strip("_")
    return f"can_{slug}"


# Built once; the catalog is immutable at runtime.
PREDICATE_PERMISSIONS = {predicate_name(name): name for name in get_all_permission_names()}
