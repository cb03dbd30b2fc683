# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# Evaluator constants
ADMIN_ROLE = "admin"
WILDCARD_VERBS = ("read", "write", "delete")


# -- PRODUCTS --

PRODUCT_PERMISSIONS = [
    (
        "products.read",
        "View Products",
        "View the product catalog of the user's branch",
        PermissionCategory.PRODUCTS,
    ),
    (
        "products.create",
        "Create Products",
        "Add products to the catalog",
        PermissionCategory.PRODUCTS,
    ),
    (
        "products.update",
        "Update Products",
        "Edit product details and pricing",
        PermissionCategory.PRODUCTS,
    ),
    (
        "products.delete",
        "Delete Products",
        "Deactivate products (soft delete)",
        PermissionCategory.PRODUCTS,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "inventory.adjust",
        "Adjust Stock",
        "Record manual stock corrections (restock, shrink, damage)",
        PermissionCategory.INVENTORY,
    ),
]


# -- BILLING --

BILLING_PERMISSIONS = [
    (
        "billing.create",
        "Create Invoices",
        "Create invoices; decrements stock for every line",
        PermissionCategory.BILLING,
    ),
]


# -- PAYMENTS --

PAYMENT_PERMISSIONS = [
    (
        "payments.create",
        "Record Payments",
        "Record credit/debit payments, optionally against an invoice",
        PermissionCategory.PAYMENTS,
    ),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    (
        "reports.read",
        "View Reports",
        "View sales and stock reports",
        PermissionCategory.REPORTS,
    ),
]


# -- WILDCARDS --
# "<verb>:all" grants every permission code that starts with "<verb>:".

WILDCARD_PERMISSIONS = [
    (
        f"{verb}:all",
        f"All {verb} permissions",
        f"Grants every permission prefixed with '{verb}:'",
        PermissionCategory.WILDCARD,
    )
    for verb in WILDCARD_VERBS
]


PERMISSION_DEFINITIONS = (
    PRODUCT_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + BILLING_PERMISSIONS
    + PAYMENT_PERMISSIONS
    + REPORT_PERMISSIONS
    + WILDCARD_PERMISSIONS
)
