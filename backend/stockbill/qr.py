# Overview: Product QR payload codec and scan lookup.

"""
QR codes printed on shelf labels carry a small JSON document:

    {"type": "product", "id": "12", "sku": "ELE-7K2Q9A", "name": "...", "price": 499.0, "branch": "main"}

Rendering the image is a client concern; the backend only builds and
checks the payload and resolves a scan to a sellable product.
"""

from __future__ import annotations

import json
import math
from numbers import Real

from .extensions import db
from .errors import AuthorizationError, NotFoundError, ValidationError
from .models import Product
from .permissions import as_authorization


def build_product_payload(product: Product) -> str:
    if product.id is None or not product.sku or not product.name:
        raise ValidationError("Product id, sku and name are required for a QR payload")
    if product.price_cents is None:
        raise ValidationError("Product price is required for a QR payload")
    data = {
        "type": "product",
        "id": str(product.id),
        "sku": product.sku,
        "name": product.name,
        "price": product.price_cents / 100,
    }
    if product.branch_id:
        data["branch"] = product.branch_id
    return json.dumps(data, separators=(",", ":"))


def parse_payload(raw) -> dict | None:
    """Decode a scanned payload; None if it is not a JSON object."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, (str, bytes)):
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _non_empty_str(value) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip() != ""


def validate_product_payload(data) -> bool:
    if not isinstance(data, dict):
        return False
    if data.get("type") != "product":
        return False
    if not all(_non_empty_str(data.get(key)) for key in ("id", "sku", "name")):
        return False
    price = data.get("price")
    if isinstance(price, bool) or not isinstance(price, Real):
        return False
    return math.isfinite(price) and price > 0


def scan_product(subject, raw) -> Product:
    """
    Resolve a scanned payload to an active, in-stock product the caller may sell.

    Lookup is by id first, then by SKU (labels may outlive a re-import
    that changed ids).
    """
    authz = as_authorization(subject)

    data = parse_payload(raw)
    if data is None:
        raise ValidationError("Invalid QR code format")
    if not validate_product_payload(data):
        raise ValidationError("Invalid product QR code")

    product = None
    product_id = str(data["id"]).strip()
    if product_id.isdigit():
        product = db.session.get(Product, int(product_id))
    if product is None or not product.is_active:
        product = (
            db.session.query(Product)
            .filter(Product.sku == str(data["sku"]).strip(), Product.is_active.is_(True))
            .first()
        )
    if product is None or not product.is_active:
        raise NotFoundError("Product not found or inactive")

    if not authz.can_access_branch(product.branch_id):
        raise AuthorizationError("Product not available in your branch")
    if product.stock <= 0:
        raise ValidationError("Product is out of stock")
    return product
