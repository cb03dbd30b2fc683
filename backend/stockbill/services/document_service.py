# Overview: Atomic document numbering backed by the document_sequences table.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


INVOICE_DOCUMENT_TYPE = "invoice"
INVOICE_PREFIX = "INV"
INVOICE_PAD = 6


class DocumentSequenceError(Exception):
    """Raised for invalid document sequence requests."""


def format_document_number(prefix: str, number: int, pad: int) -> str:
    # pad is a minimum width; numbers past 10**pad simply grow
    return f"{prefix}-{number:0{pad}d}"


def _read_allocated(document_type: str) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def ensure_sequence(document_type: str) -> None:
    """
    Create the sequence row for a document type if it is missing.

    Commits (or rolls back a lost insert race), so call it before a unit of
    work starts, never in the middle of one.
    """
    exists = (
        db.session.query(DocumentSequence.id)
        .filter_by(document_type=document_type)
        .first()
    )
    if exists:
        return
    db.session.add(DocumentSequence(document_type=document_type, next_number=1))
    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent creator inserted it first
        db.session.rollback()


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Allocate the next number for a document type inside the caller's transaction.

    The UPDATE takes the write lock on the sequence row, so a concurrent
    allocator blocks until this transaction ends and then reads the
    incremented value. If the caller rolls back, the number is released
    together with everything else it wrote.

    Does not commit and does not retry; callers wrap their whole unit of
    work in run_with_retry.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        raise DocumentSequenceError(f"No sequence row for {document_type}; call ensure_sequence first")
    return format_document_number(prefix, _read_allocated(document_type), pad)


def next_invoice_number() -> str:
    """INV-000001, INV-000002, ..."""
    return next_document_number(
        document_type=INVOICE_DOCUMENT_TYPE,
        prefix=INVOICE_PREFIX,
        pad=INVOICE_PAD,
    )
