from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


PAYMENT_METHODS = ("cash", "card", "upi", "bank_transfer")
PAYMENT_STATUSES = ("pending", "partial", "paid", "refunded")
PAYMENT_TYPES = ("credit", "debit")


class Invoice(db.Model):
    """
    Customer invoice.

    TOTALS: subtotal_cents == sum(items.line_total_cents) and
    total_cents == subtotal_cents + tax_cents - discount_cents. Both are
    computed by invoice_service, never accepted from clients.

    payment_status is derived from linked credit payments by
    payment_service.reconcile(); do not set it anywhere else.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.CheckConstraint("total_cents >= 0", name="total_non_negative"),
        db.Index("ix_invoices_branch_created", "branch_id", "created_at"),
        db.Index("ix_invoices_branch_status", "branch_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # INV-000001, allocated from document_sequences
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    branch_id = db.Column(db.String(64), db.ForeignKey("branches.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_address = db.Column(db.String(512), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        lazy=True,
        order_by="InvoiceItem.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} total={self.total_cents} status={self.payment_status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "branch_id": self.branch_id,
            "customer": {
                "name": self.customer_name,
                "email": self.customer_email,
                "phone": self.customer_phone,
                "address": self.customer_address,
            },
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.UniqueConstraint("invoice_id", "position", name="uq_invoice_items_invoice_position"),
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("line_total_cents >= 0", name="line_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    # Snapshot at sale time; product renames do not rewrite invoices
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """
    Money movement, optionally linked to an invoice.

    Only credit payments linked to an invoice count toward its paid amount.
    Debits (refunds, expenses) are recorded but never reduce it.

    IMMUTABLE: append-only.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="amount_positive"),
        db.Index("ix_payments_invoice_type", "invoice_id", "payment_type"),
        db.Index("ix_payments_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    branch_id = db.Column(db.String(64), db.ForeignKey("branches.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    payment_type = db.Column(db.String(8), nullable=False)  # credit, debit

    description = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    customer = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "branch_id": self.branch_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_type": self.payment_type,
            "description": self.description,
            "reference": self.reference,
            "customer": self.customer,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
