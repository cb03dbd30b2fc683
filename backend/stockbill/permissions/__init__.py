# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    ADMIN_ROLE,
    PERMISSION_DEFINITIONS,
    PRODUCT_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    BILLING_PERMISSIONS,
    PAYMENT_PERMISSIONS,
    REPORT_PERMISSIONS,
    WILDCARD_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS, ROLE_NAMES
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
    default_permissions_for_role,
)
from .identity import Identity
from .evaluator import (
    Authorization,
    as_authorization,
    can_access_branch,
    has_permission,
    has_role,
    is_admin,
)

__all__ = [
    "PermissionCategory",
    "ADMIN_ROLE",
    "PERMISSION_DEFINITIONS",
    "PRODUCT_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "BILLING_PERMISSIONS",
    "PAYMENT_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "WILDCARD_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLE_NAMES",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
    "default_permissions_for_role",
    "Identity",
    "Authorization",
    "as_authorization",
    "can_access_branch",
    "has_permission",
    "has_role",
    "is_admin",
]
