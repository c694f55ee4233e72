# FILE: petcare/services/errors.py
from __future__ import annotations

from typing import Any, Optional

USER_MESSAGES = {
    "SKU_EXISTS": "SKU sudah digunakan",
    "INVALID_QUANTITY": "Jumlah tidak valid",
    "NOT_FOUND": "Data tidak ditemukan",
    "CONFLICT_STATE": "Status tidak dapat diubah",
    "VALIDATION": "Input tidak valid",
    "STATUS_CONFLICT": "Status tidak dapat diubah",
    "NO_ITEMS": "Tidak ada item dalam transaksi",
    "PAYMENT_EXCEEDS_TOTAL": "Total pembayaran melebihi total transaksi",
    "INSUFFICIENT_STOCK": "Stok tidak mencukupi",
    "DUPLICATE_ENTRY": "Data sudah ada",
}


class PetcareError(RuntimeError):
    """
    Base for every business-rule failure raised by the services.
    Routes turn these into err(msg, status_code, code=..., details=...).
    """
    code = "VALIDATION"
    status_code = 400

    def __init__(self, message: str = "", *, details: Any = None):
        self.message = message or USER_MESSAGES.get(self.code, "Request failed")
        self.details = details
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.code, self.message)

    def with_context(self, prefix: str) -> "PetcareError":
        """Same error class, message prefixed with e.g. the product name."""
        return type(self)(f"{prefix}: {self.message}", details=self.details)


class SkuExistsError(PetcareError):
    code = "SKU_EXISTS"
    status_code = 409


class InvalidQuantityError(PetcareError):
    code = "INVALID_QUANTITY"
    status_code = 400


class NotFoundError(PetcareError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictStateError(PetcareError):
    code = "CONFLICT_STATE"
    status_code = 409


class ValidationError(PetcareError):
    code = "VALIDATION"
    status_code = 400


class StatusConflictError(PetcareError):
    code = "STATUS_CONFLICT"
    status_code = 409


class NoItemsError(PetcareError):
    code = "NO_ITEMS"
    status_code = 400


class PaymentExceedsTotalError(PetcareError):
    code = "PAYMENT_EXCEEDS_TOTAL"
    status_code = 400


class InsufficientStockError(PetcareError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409


class DuplicateEntryError(PetcareError):
    code = "DUPLICATE_ENTRY"
    status_code = 409


class UnbalancedJournalError(DuplicateEntryError):
    """Journal imbalance shares the DUPLICATE_ENTRY code."""

    def __init__(self, total_debit=None, total_credit=None, *, message: Optional[str] = None, details: Any = None):
        if message is None:
            message = f"Journal is not balanced. Debit: {total_debit}, Credit: {total_credit}"
        super().__init__(message, details=details)
        self.total_debit = total_debit
        self.total_credit = total_credit

    def with_context(self, prefix: str) -> "PetcareError":
        return UnbalancedJournalError(
            self.total_debit,
            self.total_credit,
            message=f"{prefix}: {self.message}",
            details=self.details,
        )
