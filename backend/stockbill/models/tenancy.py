from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


def _branch_id() -> str:
    return uuid.uuid4().hex[:12]


class Branch(db.Model):
    """
    Tenant scope. Every product, invoice, payment and movement belongs to
    exactly one branch; non-admin users are confined to theirs.

    Branch ids are opaque strings and are compared by exact equality
    everywhere (tokens carry them verbatim).
    """
    __tablename__ = "branches"

    id = db.Column(db.String(64), primary_key=True, default=_branch_id)
    name = db.Column(db.String(255), nullable=False, unique=True)
    address = db.Column(db.String(512), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    manager = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Branch id={self.id!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "manager": self.manager,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
