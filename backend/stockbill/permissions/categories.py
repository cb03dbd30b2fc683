# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for grouping and CLI display."""
    PRODUCTS = "PRODUCTS"
    INVENTORY = "INVENTORY"
    BILLING = "BILLING"
    PAYMENTS = "PAYMENTS"
    REPORTS = "REPORTS"
    WILDCARD = "WILDCARD"
