# Overview: Invoice creation pipeline (numbering, totals, two-phase stock commit) and invoice queries.

"""
Invoice Transaction Orchestrator

create_invoice() runs as one unit of work:

1. Authorize billing.create.
2. Validate the draft (pure; nothing touches the database).
3. Resolve the branch: non-admins always bill in their own branch.
4. Load products (active, same branch) and compute line and invoice totals.
5. Phase 1: check every product's stock against the summed requested
   quantity. Any shortfall fails the invoice before anything is written.
6. Allocate INV-%06d from the sequence row, persist the invoice and items.
7. Phase 2: one conditional decrement per item, each with its "out"
   movement referencing the invoice number.
8. Commit once.

If a phase-2 decrement loses a race with another invoice, the rollback
undoes the invoice row, the sequence increment and the decrements already
applied. Nothing is ever partially committed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import AppError, InsufficientStockError, InternalError, ValidationError
from ..models import Invoice, InvoiceItem, Product, PAYMENT_METHODS, PAYMENT_STATUSES
from ..permissions import as_authorization
from ..time_utils import parse_date_bound
from ..validation import MAX_PRICE_CENTS, require_cents, require_positive_int
from .concurrency import run_with_retry
from .document_service import INVOICE_DOCUMENT_TYPE, ensure_sequence, next_invoice_number
from .inventory_service import decrement_stock, require_availability
from .pagination import paginate
from .payment_service import get_payment_summary
from .tenant_service import ensure_record_visible, resolve_branch_scope, resolve_write_branch

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class DraftItem:
    product_id: int
    quantity: int
    price_cents: int | None = None
    discount_cents: int = 0


@dataclass(frozen=True)
class InvoiceDraft:
    customer: CustomerInfo
    items: list[DraftItem]
    tax_cents: int = 0
    discount_cents: int = 0
    payment_method: str = "cash"
    notes: str | None = None
    branch: str | None = None


@dataclass
class PricedLine:
    product: Product
    quantity: int
    unit_price_cents: int
    discount_cents: int
    line_total_cents: int


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int
    line_totals: list[int] = field(default_factory=list)


def _clean_str(value, label: str, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{label} exceeds max length {max_length}")
    return value or None


def parse_draft(payload: dict) -> InvoiceDraft:
    """Validate and normalize a client invoice payload."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    customer_raw = payload.get("customer")
    if not isinstance(customer_raw, dict):
        raise ValidationError("customer is required")
    name = _clean_str(customer_raw.get("name"), "customer.name")
    if not name:
        raise ValidationError("customer.name is required")
    email = _clean_str(customer_raw.get("email"), "customer.email")
    if email and not EMAIL_RE.match(email):
        raise ValidationError("customer.email is not a valid email address")
    customer = CustomerInfo(
        name=name,
        email=email.lower() if email else None,
        phone=_clean_str(customer_raw.get("phone"), "customer.phone", 32),
        address=_clean_str(customer_raw.get("address"), "customer.address", 512),
    )

    items_raw = payload.get("items")
    if not isinstance(items_raw, list) or not items_raw:
        raise ValidationError("At least one item is required")

    items = []
    for index, raw in enumerate(items_raw, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        price = raw.get("price_cents")
        items.append(DraftItem(
            product_id=require_positive_int(raw.get("product_id"), f"items[{index}].product_id"),
            quantity=require_positive_int(raw.get("quantity"), f"items[{index}].quantity"),
            price_cents=None if price is None else require_cents(price, f"items[{index}].price_cents"),
            discount_cents=require_cents(raw.get("discount_cents", 0), f"items[{index}].discount_cents"),
        ))

    payment_method = payload.get("payment_method") or "cash"
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    branch = payload.get("branch")
    return InvoiceDraft(
        customer=customer,
        items=items,
        tax_cents=require_cents(payload.get("tax_cents", 0), "tax_cents"),
        discount_cents=require_cents(payload.get("discount_cents", 0), "discount_cents"),
        payment_method=payment_method,
        notes=_clean_str(payload.get("notes"), "notes", 2000),
        branch=str(branch) if branch not in (None, "") else None,
    )


def compute_line_total(quantity: int, unit_price_cents: int, discount_cents: int = 0) -> int:
    gross = quantity * unit_price_cents
    if discount_cents > gross:
        raise ValidationError("Item discount cannot exceed the line amount")
    return gross - discount_cents


def compute_totals(lines: list[tuple[int, int, int]], tax_cents: int = 0, discount_cents: int = 0) -> InvoiceTotals:
    """
    Totals for (quantity, unit_price_cents, discount_cents) lines.

    total = subtotal + tax - discount, and may not go below zero.
    """
    line_totals = [compute_line_total(q, price, disc) for q, price, disc in lines]
    subtotal = sum(line_totals)
    total = subtotal + tax_cents - discount_cents
    if total < 0:
        raise ValidationError("Invoice discount cannot exceed subtotal plus tax")
    if total > MAX_PRICE_CENTS:
        raise ValidationError("Invoice total is too large")
    return InvoiceTotals(
        subtotal_cents=subtotal,
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_cents=total,
        line_totals=line_totals,
    )


def _price_lines(draft: InvoiceDraft, branch_id: str) -> list[PricedLine]:
    lines = []
    for item in draft.items:
        product = db.session.get(Product, item.product_id, populate_existing=True)
        if product is None or not product.is_active:
            raise ValidationError(f"Product {item.product_id} not found or inactive")
        if product.branch_id != branch_id:
            raise ValidationError(f"Product {item.product_id} is not available in this branch")
        unit_price = item.price_cents if item.price_cents is not None else product.price_cents
        lines.append(PricedLine(
            product=product,
            quantity=item.quantity,
            unit_price_cents=unit_price,
            discount_cents=item.discount_cents,
            line_total_cents=compute_line_total(item.quantity, unit_price, item.discount_cents),
        ))
    return lines


def create_invoice(subject, draft: InvoiceDraft | dict) -> dict:
    """
    Create an invoice and take its items out of stock, all or nothing.

    Raises:
        AuthorizationError: caller lacks billing.create (or has no branch)
        ValidationError: malformed draft, foreign/inactive product, bad totals
        InsufficientStockError: an item cannot be covered by current stock
        InternalError: the store failed; nothing was committed
    """
    authz = as_authorization(subject)
    authz.require("billing.create")

    if isinstance(draft, dict):
        draft = parse_draft(draft)
    branch_id = resolve_write_branch(authz, draft.branch)

    def _op() -> Invoice:
        lines = _price_lines(draft, branch_id)
        totals = compute_totals(
            [(l.quantity, l.unit_price_cents, l.discount_cents) for l in lines],
            draft.tax_cents,
            draft.discount_cents,
        )

        # Phase 1: validate every item before any write
        require_availability((l.product.id, l.quantity) for l in lines)

        invoice_number = next_invoice_number()
        invoice = Invoice(
            invoice_number=invoice_number,
            branch_id=branch_id,
            customer_name=draft.customer.name,
            customer_email=draft.customer.email,
            customer_phone=draft.customer.phone,
            customer_address=draft.customer.address,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            discount_cents=totals.discount_cents,
            total_cents=totals.total_cents,
            payment_method=draft.payment_method,
            payment_status="pending",
            notes=draft.notes,
            created_by=authz.user_id,
        )
        for position, line in enumerate(lines, start=1):
            invoice.items.append(InvoiceItem(
                position=position,
                product_id=line.product.id,
                product_name=line.product.name,
                sku=line.product.sku,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                line_total_cents=line.line_total_cents,
            ))
        db.session.add(invoice)
        db.session.flush()

        # Phase 2: conditional decrements; a lost race raises and the
        # enclosing rollback compensates the decrements already applied
        for line in lines:
            decrement_stock(
                line.product.id,
                line.quantity,
                reason=f"Sale - Invoice {invoice_number}",
                reference=invoice_number,
                actor=authz.user_id,
                branch_id=branch_id,
            )

        db.session.commit()
        return invoice

    try:
        ensure_sequence(INVOICE_DOCUMENT_TYPE)
        invoice = run_with_retry(_op)
    except InsufficientStockError as exc:
        db.session.rollback()
        logger.info("Invoice rejected for insufficient stock: %s", exc.details)
        raise
    except AppError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Invoice persistence failed; transaction rolled back")
        raise InternalError("Failed to create invoice") from exc

    return invoice.to_dict(include_items=True)


def get_invoice(subject, invoice_id: int) -> dict:
    authz = as_authorization(subject)
    invoice = ensure_record_visible(authz, db.session.get(Invoice, invoice_id), "Invoice")
    data = invoice.to_dict(include_items=True)
    data["payments"] = [p.to_dict() for p in invoice.payments]
    data["balance"] = get_payment_summary(invoice)
    return data


def list_invoices(
    subject,
    *,
    search: str | None = None,
    status: str | None = None,
    branch: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Branch-scoped invoice listing, newest first.

    search matches invoice number, customer name or customer email
    (case-insensitive substring).
    """
    authz = as_authorization(subject)
    scope = resolve_branch_scope(authz, branch)
    query = scope.apply(db.session.query(Invoice), Invoice.branch_id)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Invoice.invoice_number.ilike(pattern),
            Invoice.customer_name.ilike(pattern),
            Invoice.customer_email.ilike(pattern),
        ))
    if status:
        if status not in PAYMENT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PAYMENT_STATUSES)}")
        query = query.filter(Invoice.payment_status == status)

    try:
        start = parse_date_bound(start_date)
        end = parse_date_bound(end_date, end_of_day=True)
    except ValueError:
        raise ValidationError("start_date/end_date must be ISO-8601 dates")
    if start:
        query = query.filter(Invoice.created_at >= start)
    if end:
        query = query.filter(Invoice.created_at <= end)

    query = query.order_by(Invoice.created_at.desc(), Invoice.id.desc())
    return paginate(query, page, per_page)

