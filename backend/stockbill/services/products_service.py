# backend/stockbill/services/products_service.py
"""
Products Service with Branch Scoping

- list_products shows active products of the caller's branch (admins: all
  branches, or the branch they filter on)
- create_product writes into the caller's branch; a client-supplied branch
  is honoured for admins only
- update_product / delete_product answer "not found" for products in
  other branches
- stock is never patched here; opening stock goes through the stock ledger
"""
from __future__ import annotations

import secrets
import string

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Product
from ..permissions import as_authorization
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    enforce_rules_product,
    parse_opening_stock,
    validate_payload,
)
from .concurrency import run_with_retry
from .inventory_service import increment_stock
from .pagination import paginate
from .tenant_service import (
    ensure_record_visible,
    require_active_branch,
    resolve_branch_scope,
    resolve_write_branch,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "category", "brand", "unit",
        "price_cents", "cost_price_cents", "min_stock", "max_stock", "is_active",
    },
    required_on_create={"name", "category", "price_cents"},
)

SORTABLE_FIELDS = {
    "name": Product.name,
    "sku": Product.sku,
    "category": Product.category,
    "price_cents": Product.price_cents,
    "stock": Product.stock,
    "created_at": Product.created_at,
}

SKU_ALPHABET = string.ascii_uppercase + string.digits


def generate_sku(category: str) -> str:
    """<first three letters of the category>-<six random characters>, e.g. ELE-7K2Q9A."""
    letters = "".join(ch for ch in (category or "") if ch.isalnum())[:3].upper() or "GEN"
    suffix = "".join(secrets.choice(SKU_ALPHABET) for _ in range(6))
    return f"{letters}-{suffix}"


def _sku_taken(sku: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def _barcode_taken(barcode: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def _unique_generated_sku(category: str, attempts: int = 5) -> str:
    for _ in range(attempts):
        sku = generate_sku(category)
        if not _sku_taken(sku):
            return sku
    raise ConflictError("Could not generate a unique SKU; supply one explicitly")


def list_products(
    subject,
    *,
    branch: str | None = None,
    category: str | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Branch-scoped listing of active products with pagination.

    search is a case-insensitive substring match over name, sku, barcode
    and description.
    """
    authz = as_authorization(subject)
    scope = resolve_branch_scope(authz, branch)

    query = scope.apply(db.session.query(Product), Product.branch_id)
    query = query.filter(Product.is_active.is_(True))

    if category:
        query = query.filter(Product.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.barcode.ilike(pattern),
            Product.description.ilike(pattern),
        ))

    sort_by = sort_by or "name"
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(sorted(SORTABLE_FIELDS))}")
    column = SORTABLE_FIELDS[sort_by]
    if (sort_order or "asc").lower() == "desc":
        query = query.order_by(column.desc(), Product.id.desc())
    else:
        query = query.order_by(column.asc(), Product.id.asc())

    return paginate(query, page, per_page)


def get_product(subject, product_id: int) -> Product:
    authz = as_authorization(subject)
    return ensure_record_visible(authz, db.session.get(Product, product_id), "Product")


def create_product(subject, payload: dict) -> dict:
    """
    Create a product in the caller's branch.

    Raises:
        AuthorizationError: caller lacks products.create or has no branch
        ValidationError: payload fails the product policy
        ConflictError: SKU (or barcode) already exists in any branch
    """
    authz = as_authorization(subject)
    authz.require("products.create")

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    requested_branch = payload.pop("branch", None)
    opening_stock = parse_opening_stock(payload.pop("stock", None))

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    branch_id = resolve_write_branch(authz, requested_branch)

    if not patch.get("sku"):
        patch["sku"] = _unique_generated_sku(patch["category"])
    elif _sku_taken(patch["sku"]):
        raise ConflictError("SKU already exists")
    if patch.get("barcode") and _barcode_taken(patch["barcode"]):
        raise ConflictError("Barcode already exists")

    product = Product(branch_id=branch_id, stock=0, **patch)
    db.session.add(product)
    try:
        db.session.flush()
        if opening_stock:
            increment_stock(
                product.id,
                opening_stock,
                reason="Opening stock",
                reference=product.sku,
                actor=authz.user_id,
            )
        db.session.commit()
    except IntegrityError:
        # Lost a race for the same SKU/barcode
        db.session.rollback()
        raise ConflictError("SKU already exists")
    except Exception:
        db.session.rollback()
        raise

    return product.to_dict()


def update_product(subject, product_id: int, payload: dict) -> dict:
    """
    Patch a product.

    If the payload carries `version_id`, it must match the stored version;
    a mismatch means someone else changed the product first (409).
    """
    authz = as_authorization(subject)
    authz.require("products.update")

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    requested_branch = payload.pop("branch", None)
    expected_version = payload.pop("version_id", None)
    if expected_version is not None:
        expected_version = coerce_int(expected_version, "version_id")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)

    def _op() -> Product:
        product = ensure_record_visible(authz, db.session.get(Product, product_id), "Product")
        if expected_version is not None and product.version_id != expected_version:
            raise ConflictError("Product was modified by another request; reload and retry")
        enforce_rules_product(patch, current=product)

        if "sku" in patch and patch["sku"] != product.sku and _sku_taken(patch["sku"], exclude_id=product.id):
            raise ConflictError("SKU already exists")
        if patch.get("barcode") and _barcode_taken(patch["barcode"], exclude_id=product.id):
            raise ConflictError("Barcode already exists")

        # Only admins may move a product between branches
        if requested_branch and authz.can_admin() and requested_branch != product.branch_id:
            product.branch_id = require_active_branch(str(requested_branch)).id

        for key, value in patch.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    try:
        product = run_with_retry(_op)
    except StaleDataError:
        db.session.rollback()
        raise ConflictError("Product was modified by another request; reload and retry")
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists")
    except Exception:
        db.session.rollback()
        raise

    return product.to_dict()


def delete_product(subject, product_id: int) -> dict:
    """Soft-delete: products are deactivated, never removed (invoices reference them)."""
    authz = as_authorization(subject)
    authz.require("products.delete")

    def _op() -> Product:
        product = ensure_record_visible(authz, db.session.get(Product, product_id), "Product")
        if product.is_active:
            product.is_active = False
        db.session.commit()
        return product

    try:
        product = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
    return product.to_dict()
