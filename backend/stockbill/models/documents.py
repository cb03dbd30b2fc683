from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Atomic counter per document type.

    next_number is the number the NEXT allocation will receive. Allocation
    increments it with a single UPDATE so concurrent creators serialize on
    this row; numbers are never derived from a count of existing documents.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.CheckConstraint("next_number >= 1", name="next_number_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<DocumentSequence {self.document_type} next={self.next_number}>"
