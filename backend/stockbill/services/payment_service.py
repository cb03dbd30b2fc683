# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Reconciliation Engine

Payments are append-only. An invoice's payment_status is never edited
directly: after every linked payment, reconcile() recomputes it from the
full sum of credit payments for that invoice.

    remaining = total - paid
    remaining <= 0      -> paid
    0 < paid < total    -> partial
    paid == 0           -> pending

Recomputing from the aggregate (rather than adding the new amount to a
running balance) makes reconciliation idempotent and safe to replay.
Debit payments are recorded but never count toward the paid amount.
Payments without an invoice_id never change any invoice.
"""

from __future__ import annotations

import logging

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import AppError, AuthorizationError, InternalError, NotFoundError, ValidationError
from ..models import Invoice, Payment, PAYMENT_METHODS, PAYMENT_TYPES
from ..permissions import as_authorization
from ..time_utils import parse_date_bound
from ..validation import require_positive_int
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate
from .tenant_service import ensure_record_visible, resolve_branch_scope, resolve_write_branch

logger = logging.getLogger(__name__)


def derive_payment_status(total_cents: int, paid_cents: int) -> str:
    remaining = total_cents - paid_cents
    if remaining <= 0:
        return "paid"
    if paid_cents > 0:
        return "partial"
    return "pending"


def paid_amount_cents(invoice_id: int) -> int:
    return (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.invoice_id == invoice_id, Payment.payment_type == "credit")
        .scalar()
    )


def reconcile(invoice_id: int) -> str:
    """
    Recompute and store an invoice's payment_status. Does not commit.

    The invoice row is locked first so two payments landing together
    serialize here; the later one sums both.
    """
    invoice = (
        lock_for_update(db.session.query(Invoice).filter(Invoice.id == invoice_id))
        .populate_existing()
        .first()
    )
    if invoice is None:
        raise NotFoundError("Invoice not found")

    paid = paid_amount_cents(invoice_id)
    status = derive_payment_status(invoice.total_cents, paid)
    if invoice.payment_status != status:
        logger.info("Invoice %s payment status %s -> %s", invoice.invoice_number, invoice.payment_status, status)
        invoice.payment_status = status
    return status


def get_payment_summary(invoice: Invoice) -> dict:
    paid = paid_amount_cents(invoice.id)
    return {
        "total_cents": invoice.total_cents,
        "paid_cents": paid,
        "remaining_cents": max(invoice.total_cents - paid, 0),
        "payment_status": derive_payment_status(invoice.total_cents, paid),
    }


def _parse_payment(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    amount = require_positive_int(payload.get("amount_cents"), "amount_cents")

    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    payment_type = payload.get("payment_type")
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}")

    description = payload.get("description")
    if not isinstance(description, str) or not description.strip():
        raise ValidationError("description is required")

    invoice_id = payload.get("invoice_id")
    if invoice_id is not None:
        invoice_id = require_positive_int(invoice_id, "invoice_id")

    def _opt(key: str, max_length: int):
        value = payload.get(key)
        if value is None:
            return None
        value = str(value).strip()
        if len(value) > max_length:
            raise ValidationError(f"{key} exceeds max length {max_length}")
        return value or None

    branch = payload.get("branch")
    return {
        "amount_cents": amount,
        "payment_method": payment_method,
        "payment_type": payment_type,
        "description": description.strip()[:255],
        "invoice_id": invoice_id,
        "reference": _opt("reference", 128),
        "customer": _opt("customer", 255),
        "notes": _opt("notes", 2000),
        "branch": str(branch) if branch not in (None, "") else None,
    }


def record_payment(subject, payload: dict) -> dict:
    """
    Append a payment and, if it is linked to an invoice, reconcile it.

    Raises:
        AuthorizationError: caller lacks payments.create, or the invoice
            belongs to another branch
        NotFoundError: invoice_id does not exist
        ValidationError: malformed payment
    """
    authz = as_authorization(subject)
    authz.require("payments.create")
    data = _parse_payment(payload)

    def _op() -> Payment:
        invoice = None
        if data["invoice_id"] is not None:
            invoice = db.session.get(Invoice, data["invoice_id"])
            if invoice is None:
                raise NotFoundError("Invoice not found")
            if not authz.can_access_branch(invoice.branch_id):
                raise AuthorizationError("Invoice belongs to another branch")

        if invoice is not None:
            # A linked payment always lives in its invoice's branch
            if authz.can_admin() and data["branch"] and data["branch"] != invoice.branch_id:
                raise ValidationError("Payment branch must match the invoice branch")
            branch_id = resolve_write_branch(authz, invoice.branch_id)
        else:
            branch_id = resolve_write_branch(authz, data["branch"])

        payment = Payment(
            invoice_id=invoice.id if invoice is not None else None,
            branch_id=branch_id,
            amount_cents=data["amount_cents"],
            payment_method=data["payment_method"],
            payment_type=data["payment_type"],
            description=data["description"],
            reference=data["reference"],
            customer=data["customer"],
            notes=data["notes"],
            created_by=authz.user_id,
        )
        db.session.add(payment)
        db.session.flush()

        if invoice is not None:
            reconcile(invoice.id)

        db.session.commit()
        return payment

    try:
        payment = run_with_retry(_op)
    except AppError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Payment persistence failed; transaction rolled back")
        raise InternalError("Failed to record payment") from exc

    result = payment.to_dict()
    if payment.invoice is not None:
        result["invoice_payment_status"] = payment.invoice.payment_status
    return result


def reconcile_invoice(subject, invoice_id: int) -> dict:
    """Re-run reconciliation for one invoice (idempotent)."""
    authz = as_authorization(subject)
    authz.require("payments.create")

    def _op() -> dict:
        invoice = ensure_record_visible(authz, db.session.get(Invoice, invoice_id), "Invoice")
        reconcile(invoice.id)
        db.session.commit()
        return get_payment_summary(invoice)

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def list_payments(
    subject,
    *,
    invoice_id: int | None = None,
    payment_type: str | None = None,
    payment_method: str | None = None,
    branch: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Branch-scoped payment listing plus credit/debit totals over all matching rows."""
    authz = as_authorization(subject)
    scope = resolve_branch_scope(authz, branch)
    query = scope.apply(db.session.query(Payment), Payment.branch_id)

    if invoice_id is not None:
        query = query.filter(Payment.invoice_id == invoice_id)
    if payment_type:
        if payment_type not in PAYMENT_TYPES:
            raise ValidationError(f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}")
        query = query.filter(Payment.payment_type == payment_type)
    if payment_method:
        query = query.filter(Payment.payment_method == payment_method)

    try:
        start = parse_date_bound(start_date)
        end = parse_date_bound(end_date, end_of_day=True)
    except ValueError:
        raise ValidationError("start_date/end_date must be ISO-8601 dates")
    if start:
        query = query.filter(Payment.created_at >= start)
    if end:
        query = query.filter(Payment.created_at <= end)

    credit, debit, count = query.with_entities(
        func.coalesce(func.sum(case((Payment.payment_type == "credit", Payment.amount_cents), else_=0)), 0),
        func.coalesce(func.sum(case((Payment.payment_type == "debit", Payment.amount_cents), else_=0)), 0),
        func.count(Payment.id),
    ).one()

    result = paginate(query.order_by(Payment.created_at.desc(), Payment.id.desc()), page, per_page)
    result["summary"] = {
        "total_credit_cents": int(credit),
        "total_debit_cents": int(debit),
        "net_cents": int(credit) - int(debit),
        "count": int(count),
    }
    return result
