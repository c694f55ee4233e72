# FILE: petcare/services/numbering.py
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from petcare.models.accounting import JournalEntry
from petcare.models.clinic import ClinicAppointment
from petcare.models.expense import Expense
from petcare.models.hotel import HotelBooking
from petcare.models.purchasing import PurchaseOrder
from petcare.models.sales import Sale
from petcare.services.errors import DuplicateEntryError, ValidationError
from petcare.utils.timezone import today_local

# kind -> (prefix, numbering column)
NUMBER_SERIES = {
    "sale": ("INV", Sale.sale_number),
    "purchase_order": ("PO", PurchaseOrder.po_number),
    "appointment": ("APT", ClinicAppointment.appointment_number),
    "booking": ("HTL", HotelBooking.booking_number),
    "expense": ("EXP", Expense.expense_number),
    "journal": ("JE", JournalEntry.journal_number),
}


def _series(kind: str):
    try:
        return NUMBER_SERIES[kind]
    except KeyError:
        raise ValidationError(f"Unknown number series: {kind}")


def _sequence_of(number: str) -> int:
    # PREFIX-YYYYMMDD-NNN
    parts = (number or "").split("-")
    if len(parts) < 3:
        return 0
    try:
        return int(parts[2])
    except ValueError:
        return 0


def generate_number(db: Session, kind: str, doc_date: Optional[date] = None, pad: int = 3) -> str:
    """
    Next number of the day for the series.

    Example: INV-20250115-001

    Existing numbers with today's prefix are scanned and max+1 is returned.
    Rows are read FOR UPDATE so concurrent writers on row-locking engines
    serialize on the same day's series.
    """
    prefix_code, column = _series(kind)
    d = doc_date or today_local()
    prefix = f"{prefix_code}-{d.strftime('%Y%m%d')}-"

    rows = (
        db.query(column)
        .filter(column.like(f"{prefix}%"))
        .with_for_update()
        .all()
    )
    seq = max((_sequence_of(r[0]) for r in rows), default=0) + 1
    return f"{prefix}{seq:0{pad}d}"


def number_exists(db: Session, kind: str, number: str) -> bool:
    _, column = _series(kind)
    return db.query(column).filter(column == number).first() is not None


def get_or_generate_number(
    db: Session,
    kind: str,
    custom: Optional[str] = None,
    doc_date: Optional[date] = None,
) -> str:
    """Blank custom -> generated number; taken custom -> DUPLICATE_ENTRY."""
    custom = (custom or "").strip()
    if not custom:
        return generate_number(db, kind, doc_date)

    if number_exists(db, kind, custom):
        raise DuplicateEntryError(f"Transaction number {custom} already exists")
    return custom
