# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/stockbill/services/inventory_service.py
"""
Stock Ledger Invariants (authoritative)

Stock model:
- Product.stock is the current on-hand count. It is mutated ONLY here, and
  ONLY by a single conditional UPDATE; never read-modify-write in Python.
- Every mutation appends exactly one StockMovement in the same transaction.
  quantity is always positive; `type` gives the direction (in / out).

Business invariants:
- Stock never goes negative. A decrement whose WHERE clause
  (stock >= quantity) matches no row is an InsufficientStockError and
  writes nothing.
- If the movement append fails after the stock write, the whole
  transaction is rolled back and StockLedgerError is raised. The two never
  diverge in committed state.

Transactions:
- decrement_stock / increment_stock do not commit. The caller owns the
  unit of work (an invoice, an adjustment) and commits once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, StockLedgerError, ValidationError
from ..models import Product, StockMovement
from ..permissions import as_authorization
from .concurrency import is_retryable, run_with_retry
from .pagination import paginate
from .tenant_service import ensure_record_visible, resolve_branch_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockChange:
    product_id: int
    new_stock: int
    movement: StockMovement


def _require_positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return quantity


def _current_stock(product_id: int) -> tuple[int, str]:
    stock, branch_id = (
        db.session.query(Product.stock, Product.branch_id)
        .filter(Product.id == product_id)
        .one()
    )
    return stock, branch_id


def _append_movement(
    *,
    product_id: int,
    branch_id: str,
    movement_type: str,
    quantity: int,
    reason: str,
    reference: str | None,
    actor: str | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        branch_id=branch_id,
        type=movement_type,
        quantity=quantity,
        reason=reason,
        reference=reference,
        created_by=str(actor) if actor is not None else None,
    )
    try:
        db.session.add(movement)
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        if is_retryable(exc):
            raise
        logger.error(
            "Stock movement append failed after stock write; rolled back "
            "(product_id=%s type=%s quantity=%s reference=%s)",
            product_id, movement_type, quantity, reference,
            exc_info=True,
        )
        raise StockLedgerError("Stock movement could not be recorded") from exc
    return movement


def decrement_stock(
    product_id: int,
    quantity: int,
    *,
    reason: str,
    reference: str | None = None,
    actor: str | None = None,
    branch_id: str | None = None,
) -> StockChange:
    """
    Atomically take `quantity` units out of stock.

    The decrement and the insufficiency check are one statement:
        UPDATE products SET stock = stock - :q
        WHERE id = :id AND is_active AND stock >= :q
    so two concurrent callers can never both pass the check on the same
    units. When `branch_id` is given the product must also belong to it.

    Raises:
        InsufficientStockError: fewer than `quantity` units on hand
        NotFoundError: product missing, inactive, or in another branch
        StockLedgerError: movement could not be appended (fatal)
    """
    _require_positive_quantity(quantity)

    conditions = [
        Product.id == product_id,
        Product.is_active.is_(True),
        Product.stock >= quantity,
    ]
    if branch_id is not None:
        conditions.append(Product.branch_id == branch_id)

    stmt = (
        update(Product)
        .where(*conditions)
        .values(stock=Product.stock - quantity, version_id=Product.version_id + 1)
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)

    if result.rowcount != 1:
        product = db.session.get(Product, product_id, populate_existing=True)
        if product is None or not product.is_active or (branch_id is not None and product.branch_id != branch_id):
            raise NotFoundError(f"Product {product_id} not found")
        raise InsufficientStockError(product.id, product.name, product.stock, quantity)

    new_stock, product_branch = _current_stock(product_id)
    movement = _append_movement(
        product_id=product_id,
        branch_id=product_branch,
        movement_type="out",
        quantity=quantity,
        reason=reason,
        reference=reference,
        actor=actor,
    )
    return StockChange(product_id=product_id, new_stock=new_stock, movement=movement)


def increment_stock(
    product_id: int,
    quantity: int,
    *,
    reason: str,
    reference: str | None = None,
    actor: str | None = None,
) -> StockChange:
    """Put `quantity` units into stock (restock, opening stock, corrections)."""
    _require_positive_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity, version_id=Product.version_id + 1)
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise NotFoundError(f"Product {product_id} not found")

    new_stock, product_branch = _current_stock(product_id)
    movement = _append_movement(
        product_id=product_id,
        branch_id=product_branch,
        movement_type="in",
        quantity=quantity,
        reason=reason,
        reference=reference,
        actor=actor,
    )
    return StockChange(product_id=product_id, new_stock=new_stock, movement=movement)


def aggregate_quantities(items) -> dict[int, int]:
    """Sum requested quantity per product, preserving first-seen order."""
    totals: dict[int, int] = {}
    for product_id, quantity in items:
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


def check_availability(items) -> list[dict]:
    """
    Validation pass: compare requested quantities against current stock.

    `items` is an iterable of (product_id, quantity). Quantities for the
    same product are summed first, so two lines of 3 against a stock of 5
    are short. Returns one shortfall dict per product, in request order;
    an empty list means everything fits. Writes nothing.
    """
    shortfalls = []
    for product_id, requested in aggregate_quantities(items).items():
        product = db.session.get(Product, product_id, populate_existing=True)
        available = product.stock if product is not None and product.is_active else 0
        if available < requested:
            shortfalls.append({
                "product_id": product_id,
                "product_name": product.name if product is not None else None,
                "available": available,
                "requested": requested,
            })
    return shortfalls


def require_availability(items) -> None:
    """Raise InsufficientStockError for the first short product, if any."""
    shortfalls = check_availability(items)
    if shortfalls:
        first = shortfalls[0]
        raise InsufficientStockError(
            first["product_id"], first["product_name"], first["available"], first["requested"]
        )


def adjust_stock(subject, *, product_id: int, quantity_delta: int, reason: str, reference: str | None = None) -> dict:
    """
    Manual stock correction (restock, shrink, damage, count correction).

    Positive deltas record an "in" movement, negative deltas an "out"
    movement and are subject to the same never-negative rule as sales.
    """
    authz = as_authorization(subject)
    authz.require("inventory.adjust")

    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int) or quantity_delta == 0:
        raise ValidationError("quantity_delta must be a non-zero integer")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    def _op() -> dict:
        product = ensure_record_visible(authz, db.session.get(Product, product_id), "Product")
        if quantity_delta > 0:
            change = increment_stock(
                product.id, quantity_delta, reason=reason, reference=reference, actor=authz.user_id
            )
        else:
            change = decrement_stock(
                product.id, -quantity_delta, reason=reason, reference=reference,
                actor=authz.user_id, branch_id=product.branch_id,
            )
        db.session.commit()
        return {"product_id": product.id, "stock": change.new_stock, "movement": change.movement.to_dict()}

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def list_movements(
    subject,
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    reference: str | None = None,
    branch: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Branch-scoped movement history, newest first."""
    authz = as_authorization(subject)
    scope = resolve_branch_scope(authz, branch)

    query = scope.apply(db.session.query(StockMovement), StockMovement.branch_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    if reference:
        query = query.filter(StockMovement.reference == reference)

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    return paginate(query, page, per_page)
