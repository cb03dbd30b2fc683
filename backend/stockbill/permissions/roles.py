# Overview: Default permission grants per role.
# Admin needs no grants: the evaluator bypasses checks for the admin role.

ROLE_NAMES = ("admin", "manager", "user")

DEFAULT_ROLE_PERMISSIONS = {
    "admin": ["*"],
    "manager": [
        "products.read",
        "products.create",
        "products.update",
        "products.delete",
        "inventory.adjust",
        "billing.create",
        "payments.create",
        "reports.read",
    ],
    "user": [
        "products.read",
        "products.create",
        "billing.create",
        "reports.read",
    ],
}
