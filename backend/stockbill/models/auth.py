from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class User(db.Model):
    """
    User accounts; the source of the identity claim issued at login.

    Permissions are stored as a flat list of codes on the user (seeded from
    the role defaults). The role string drives the admin bypass.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_branch_active", "branch_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Stored lower-cased; login lower-cases before lookup
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(32), nullable=False, default="user")
    permissions = db.Column(db.JSON, nullable=False, default=list)

    # Null for users not confined to a branch (admins)
    branch_id = db.Column(db.String(64), db.ForeignKey("branches.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    branch = db.relationship("Branch", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "permissions": list(self.permissions or []),
            "branch_id": self.branch_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }
