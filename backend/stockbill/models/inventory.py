from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


MOVEMENT_TYPES = ("in", "out", "transfer")


class Product(db.Model):
    """
    Product master data.

    SKU is unique across all branches (inactive products still hold theirs).

    STOCK: `stock` is written only by inventory_service through conditional
    UPDATEs; it is not a client-writable field. The CHECK constraint is the
    last line of defense against a negative count.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="stock_non_negative"),
        db.CheckConstraint("price_cents >= 0", name="price_non_negative"),
        db.Index("ix_products_branch_name", "branch_id", "name"),
        db.Index("ix_products_branch_active", "branch_id", "is_active"),
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    branch_id = db.Column(db.String(64), db.ForeignKey("branches.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=False)
    brand = db.Column(db.String(128), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=False, default=1000)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock} branch_id={self.branch_id!r}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "brand": self.brand,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Immutable stock ledger entry.

    Every change to Product.stock has exactly one movement in the same
    transaction. `quantity` is always positive; direction comes from `type`.

    IMMUTABLE: Never update or delete.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.String(64), db.ForeignKey("branches.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # in, out, transfer
    quantity = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=False)
    # Invoice number for sales, free text for manual adjustments
    reference = db.Column(db.String(64), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} product_id={self.product_id} {self.type} {self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "reference": self.reference,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
