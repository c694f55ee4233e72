# FILE: petcare/services/journal_posting.py
"""
Domain event -> balanced journal entry.

Every function takes already-resolved amounts (no ORM traversal) and returns
the posted JournalEntry, or None when the event carries no value. The one
lookup is the bank account that claims a non-cash payment method.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from petcare.models.accounting import JournalEntry, SourceType
from petcare.models.bank import BankAccount
from petcare.services.account_codes import (
    ACCOUNTS,
    cogs_account_for,
    inventory_account_for,
    payment_account_for,
    revenue_account_for,
    service_revenue_account_for,
)
from petcare.services.journal_engine import JournalLine, create_system_entry, credit, debit
from petcare.services.line_calc import money2

ZERO = Decimal("0.00")


@dataclass
class RevenueItem:
    """Sale item / clinic service as seen by the posting rules."""
    category: str
    subtotal: Decimal
    cogs: Decimal = ZERO
    name: str = ""


@dataclass
class InventoryItem:
    """Purchase line or stock adjustment line."""
    category: str
    amount: Decimal
    name: str = ""


def _accumulate(pairs: Iterable[Tuple[object, Decimal]]) -> "OrderedDict[object, Decimal]":
    out: "OrderedDict[object, Decimal]" = OrderedDict()
    for key, amount in pairs:
        out[key] = out.get(key, ZERO) + money2(amount)
    return out


def payment_account_code(db: Session, method: Optional[str]) -> str:
    """
    Account that receives (or pays out) a payment method. An active bank
    account claiming the method wins over the default mapping.
    """
    method = (method or "CASH").upper()
    if method != "CASH":
        claimed = (
            db.query(BankAccount)
            .filter(BankAccount.deleted_at.is_(None), BankAccount.is_active.is_(True))
            .filter(BankAccount.payment_methods.isnot(None))
            .order_by(BankAccount.id.asc())
            .all()
        )
        for ba in claimed:
            if method in ba.method_list:
                return ba.account.code
    return payment_account_for(method)


def _settlement_lines(number: str, paid, outstanding, branch_id) -> List[JournalLine]:
    return [
        debit(ACCOUNTS.CASH_ACCOUNT, paid, f"Penerimaan kas dari {number}", branch_id),
        debit(ACCOUNTS.AR_ACCOUNT, outstanding, f"Piutang dari {number}", branch_id),
    ]


def _cost_lines(pairs: Dict[Tuple[str, str], Decimal], number: str, branch_id) -> List[JournalLine]:
    lines: List[JournalLine] = []
    for (cogs_code, inv_code), amount in pairs.items():
        lines.append(debit(cogs_code, amount, f"HPP {number}", branch_id))
        lines.append(credit(inv_code, amount, f"Pengurangan persediaan {number}", branch_id))
    return lines


# -------------------------
# Sale
# -------------------------
def post_sale_journal(
    db: Session,
    *,
    sale_id: int,
    sale_number: str,
    sale_date: Optional[date],
    branch_id: Optional[int],
    paid_amount,
    outstanding_amount,
    items: List[RevenueItem],
    discount_amount,
    tax_amount,
) -> Optional[JournalEntry]:
    """
    DR Cash (paid) / AR (outstanding)
      CR Revenue per category account
    DR Discount (header discount)
    DR COGS / CR Inventory per category pair
      CR Tax payable
    """
    lines = _settlement_lines(sale_number, paid_amount, outstanding_amount, branch_id)

    revenue = _accumulate((revenue_account_for(it.category), it.subtotal) for it in items)
    for code, amount in revenue.items():
        lines.append(credit(code, amount, f"Penjualan {sale_number}", branch_id))

    lines.append(debit(ACCOUNTS.SALES_DISCOUNT_ACCOUNT, discount_amount, f"Diskon {sale_number}", branch_id))

    costs = _accumulate(
        ((cogs_account_for(it.category), inventory_account_for(it.category)), it.cogs) for it in items
    )
    lines.extend(_cost_lines(costs, sale_number, branch_id))

    lines.append(credit(ACCOUNTS.TAX_PAYABLE_ACCOUNT, tax_amount, f"PPN {sale_number}", branch_id))

    return create_system_entry(
        db,
        source_type=SourceType.SALE,
        source_id=sale_id,
        description=f"Penjualan {sale_number}",
        lines=lines,
        journal_date=sale_date,
    )


# -------------------------
# Purchase
# -------------------------
def post_purchase_journal(
    db: Session,
    *,
    purchase_order_id: int,
    po_number: str,
    order_date: Optional[date],
    branch_id: Optional[int],
    total_amount,
    items: List[InventoryItem],
    tax_amount,
    paid: bool,
) -> Optional[JournalEntry]:
    """
    DR Inventory per category (line net before tax)
    DR VAT input
      CR Cash (paid) or AP
    """
    lines: List[JournalLine] = []
    inventory = _accumulate((inventory_account_for(it.category), it.amount) for it in items)
    for code, amount in inventory.items():
        lines.append(debit(code, amount, f"Pembelian persediaan {po_number}", branch_id))

    lines.append(debit(ACCOUNTS.VAT_INPUT_ACCOUNT, tax_amount, f"PPN Masukan {po_number}", branch_id))

    if paid:
        lines.append(credit(ACCOUNTS.CASH_ACCOUNT, total_amount, f"Pembayaran {po_number}", branch_id))
    else:
        lines.append(credit(ACCOUNTS.AP_ACCOUNT, total_amount, f"Hutang pembelian {po_number}", branch_id))

    return create_system_entry(
        db,
        source_type=SourceType.PURCHASE,
        source_id=purchase_order_id,
        description=f"Pembelian {po_number}",
        lines=lines,
        journal_date=order_date,
    )


# -------------------------
# Clinic
# -------------------------
def post_clinic_journal(
    db: Session,
    *,
    appointment_id: int,
    appointment_number: str,
    appointment_date: Optional[date],
    branch_id: Optional[int],
    paid_amount,
    outstanding_amount,
    services: List[RevenueItem],
    discount_amount,
    tax_amount,
) -> Optional[JournalEntry]:
    lines = _settlement_lines(appointment_number, paid_amount, outstanding_amount, branch_id)

    revenue = _accumulate((service_revenue_account_for(s.category), s.subtotal) for s in services)
    for code, amount in revenue.items():
        lines.append(credit(code, amount, f"Pendapatan jasa {appointment_number}", branch_id))

    lines.append(debit(ACCOUNTS.SALES_DISCOUNT_ACCOUNT, discount_amount, f"Diskon {appointment_number}", branch_id))

    total_cogs = sum((money2(s.cogs) for s in services), ZERO)
    lines.extend(_cost_lines(
        {(ACCOUNTS.CLINIC_COGS_ACCOUNT, ACCOUNTS.CLINIC_INVENTORY_ACCOUNT): total_cogs},
        appointment_number,
        branch_id,
    ))

    lines.append(credit(ACCOUNTS.TAX_PAYABLE_ACCOUNT, tax_amount, f"PPN {appointment_number}", branch_id))

    return create_system_entry(
        db,
        source_type=SourceType.CLINIC,
        source_id=appointment_id,
        description=f"Layanan klinik {appointment_number}",
        lines=lines,
        journal_date=appointment_date,
    )


# -------------------------
# Hotel
# -------------------------
def post_hotel_journal(
    db: Session,
    *,
    booking_id: int,
    booking_number: str,
    checkout_date: Optional[date],
    branch_id: Optional[int],
    total_amount,
    room_total,
    services_total,
    consumables_total,
    consumables_cost,
    discount_amount,
    tax_amount,
) -> Optional[JournalEntry]:
    """
    Checkout invoice: AR carries the full total, payments credit AR separately.
    """
    lines = [
        debit(ACCOUNTS.AR_ACCOUNT, total_amount, f"Tagihan hotel {booking_number}", branch_id),
        credit(ACCOUNTS.HOTEL_REVENUE_ACCOUNT, room_total, f"Pendapatan kamar {booking_number}", branch_id),
        credit(ACCOUNTS.HOTEL_REVENUE_ACCOUNT, services_total, f"Pendapatan jasa hotel {booking_number}", branch_id),
        credit(
            ACCOUNTS.HOTEL_CONSUMABLE_REVENUE_ACCOUNT, consumables_total,
            f"Pendapatan consumables {booking_number}", branch_id,
        ),
    ]
    lines.extend(_cost_lines(
        {(ACCOUNTS.HOTEL_CONSUMABLE_COGS_ACCOUNT, ACCOUNTS.HOTEL_CONSUMABLE_INVENTORY_ACCOUNT): money2(consumables_cost)},
        booking_number,
        branch_id,
    ))
    lines.append(credit(ACCOUNTS.TAX_PAYABLE_ACCOUNT, tax_amount, f"PPN {booking_number}", branch_id))
    lines.append(debit(ACCOUNTS.SALES_DISCOUNT_ACCOUNT, discount_amount, f"Diskon {booking_number}", branch_id))

    return create_system_entry(
        db,
        source_type=SourceType.HOTEL,
        source_id=booking_id,
        description=f"Hotel Checkout Invoice {booking_number}",
        lines=lines,
        journal_date=checkout_date,
    )


# -------------------------
# Payment received
# -------------------------
def post_payment_journal(
    db: Session,
    *,
    payment_id: int,
    amount,
    payment_method: str,
    payment_date: Optional[date] = None,
    branch_id: Optional[int] = None,
    reference: str = "",
) -> Optional[JournalEntry]:
    """DR Cash/Bank (by method) / CR AR."""
    ref = (reference or "").strip()
    lines = [
        debit(payment_account_code(db, payment_method), amount, f"Penerimaan pembayaran {ref}".strip(), branch_id),
        credit(ACCOUNTS.AR_ACCOUNT, amount, "Pelunasan piutang", branch_id),
    ]
    return create_system_entry(
        db,
        source_type=SourceType.PAYMENT,
        source_id=payment_id,
        description=f"Penerimaan pembayaran piutang {ref}".strip(),
        lines=lines,
        journal_date=payment_date,
    )


def post_refund_journal(
    db: Session,
    *,
    payment_id: int,
    amount,
    payment_method: str,
    refund_date: Optional[date] = None,
    branch_id: Optional[int] = None,
    reference: str = "",
) -> Optional[JournalEntry]:
    """DR AR / CR Cash/Bank (by method). Hands back a deposit that was never earned."""
    ref = (reference or "").strip()
    lines = [
        debit(ACCOUNTS.AR_ACCOUNT, amount, f"Pengembalian uang muka {ref}".strip(), branch_id),
        credit(payment_account_code(db, payment_method), amount, f"Refund {payment_method}", branch_id),
    ]
    return create_system_entry(
        db,
        source_type=SourceType.PAYMENT,
        source_id=payment_id,
        description=f"Pengembalian uang muka {ref}".strip(),
        lines=lines,
        journal_date=refund_date,
    )


# -------------------------
# Stock effects
# -------------------------
def post_adjustment_journal(
    db: Session,
    *,
    adjustment_id: Optional[int],
    branch_id: Optional[int],
    description: str,
    items: List[Tuple[InventoryItem, Decimal]],
    adjustment_date: Optional[date] = None,
) -> Optional[JournalEntry]:
    """
    items: (item, signed quantity). Positive = found stock
    (DR Inventory / CR COGS), negative = shrinkage (DR COGS / CR Inventory).
    """
    lines: List[JournalLine] = []
    for it, qty in items:
        inv_code = inventory_account_for(it.category)
        cogs_code = cogs_account_for(it.category)
        if qty > 0:
            lines.append(debit(inv_code, it.amount, f"Penyesuaian stok masuk: {it.name}", branch_id))
            lines.append(credit(cogs_code, it.amount, f"Koreksi stok masuk: {it.name}", branch_id))
        else:
            lines.append(debit(cogs_code, it.amount, f"Penyesuaian stok keluar: {it.name}", branch_id))
            lines.append(credit(inv_code, it.amount, f"Koreksi stok keluar: {it.name}", branch_id))

    return create_system_entry(
        db,
        source_type=SourceType.ADJUSTMENT,
        source_id=adjustment_id,
        description=description,
        lines=lines,
        journal_date=adjustment_date,
    )


def post_dispense_journal(
    db: Session,
    *,
    appointment_id: int,
    appointment_number: str,
    branch_id: Optional[int],
    cogs,
    dispense_date: Optional[date] = None,
) -> Optional[JournalEntry]:
    lines = _cost_lines(
        {(ACCOUNTS.CLINIC_COGS_ACCOUNT, ACCOUNTS.CLINIC_INVENTORY_ACCOUNT): money2(cogs)},
        appointment_number,
        branch_id,
    )
    return create_system_entry(
        db,
        source_type=SourceType.CLINIC,
        source_id=appointment_id,
        description=f"Pengambilan resep {appointment_number}",
        lines=lines,
        journal_date=dispense_date,
    )


def post_initial_stock_journal(
    db: Session,
    *,
    stock_id: int,
    branch_id: Optional[int],
    item: InventoryItem,
    entry_date: Optional[date] = None,
) -> Optional[JournalEntry]:
    lines = [
        debit(inventory_account_for(item.category), item.amount, f"Stok awal: {item.name}", branch_id),
        credit(ACCOUNTS.OPENING_EQUITY_ACCOUNT, item.amount, f"Modal stok awal: {item.name}", branch_id),
    ]
    return create_system_entry(
        db,
        source_type=SourceType.INITIAL_STOCK,
        source_id=stock_id,
        description=f"Stok awal {item.name}",
        lines=lines,
        journal_date=entry_date,
    )


def post_expense_journal(
    db: Session,
    *,
    expense_id: int,
    expense_number: str,
    expense_account_id: int,
    amount,
    payment_method: str,
    branch_id: Optional[int],
    description: str,
    payment_date: Optional[date] = None,
) -> Optional[JournalEntry]:
    """DR Expense account / CR Cash or Bank."""
    amount = money2(amount)
    lines = [
        JournalLine(account_id=expense_account_id, debit=amount, description=description, branch_id=branch_id),
        credit(payment_account_code(db, payment_method), amount, f"Pembayaran {payment_method}", branch_id),
    ]
    return create_system_entry(
        db,
        source_type=SourceType.EXPENSE,
        source_id=expense_id,
        description=f"Pembayaran {expense_number} - {description}",
        lines=lines,
        journal_date=payment_date,
    )


# -------------------------
# Bank
# -------------------------
BANK_LINE_LABELS = {
    "DEPOSIT": "Setoran ke bank",
    "WITHDRAWAL": "Penarikan dari bank",
    "TRANSFER_IN": "Transfer masuk",
    "TRANSFER_OUT": "Transfer keluar",
    "FEE": "Biaya administrasi bank",
    "INTEREST": "Bunga bank",
}


def post_bank_transaction_journal(
    db: Session,
    *,
    transaction_id: int,
    transaction_type: str,
    inflow: bool,
    bank_account_id: int,
    counter_account_id: int,
    amount,
    description: str,
    reference: str = "",
    transaction_date: Optional[date] = None,
) -> Optional[JournalEntry]:
    """
    Inflow:  DR Bank / CR counter account
    Outflow: DR counter account / CR Bank
    """
    amount = money2(amount)
    label = f"{BANK_LINE_LABELS.get(transaction_type, 'Transaksi bank')} - {description}"
    bank = JournalLine(account_id=bank_account_id, description=label)
    other = JournalLine(account_id=counter_account_id, description=label)
    if inflow:
        bank.debit, other.credit = amount, amount
    else:
        other.debit, bank.credit = amount, amount

    ref = f"({reference}) " if reference else ""
    return create_system_entry(
        db,
        source_type=SourceType.BANK,
        source_id=transaction_id,
        description=f"Transaksi bank {ref}- {description}",
        lines=[bank, other],
        journal_date=transaction_date,
    )


def post_bank_opening_journal(
    db: Session,
    *,
    bank_account_id: int,
    linked_account_id: int,
    amount,
    label: str,
    opening_date: Optional[date] = None,
) -> Optional[JournalEntry]:
    """DR Bank / CR Opening equity."""
    amount = money2(amount)
    lines = [
        JournalLine(account_id=linked_account_id, debit=amount, description=f"Saldo awal {label}"),
        credit(ACCOUNTS.OPENING_EQUITY_ACCOUNT, amount, f"Saldo awal {label}"),
    ]
    return create_system_entry(
        db,
        source_type=SourceType.OPENING_BALANCE,
        source_id=bank_account_id,
        description=f"Saldo awal rekening {label}",
        lines=lines,
        journal_date=opening_date,
    )


def post_supplier_payment_journal(
    db: Session,
    *,
    purchase_order_id: int,
    po_number: str,
    amount,
    payment_date: Optional[date] = None,
    branch_id: Optional[int] = None,
) -> Optional[JournalEntry]:
    """DR AP / CR Cash. Bank-paid invoices go through a bank withdrawal instead."""
    lines = [
        debit(ACCOUNTS.AP_ACCOUNT, amount, f"Pelunasan hutang {po_number}", branch_id),
        credit(ACCOUNTS.CASH_ACCOUNT, amount, f"Pembayaran {po_number}", branch_id),
    ]
    return create_system_entry(
        db,
        source_type=SourceType.SUPPLIER_PAYMENT,
        source_id=purchase_order_id,
        description=f"Pembayaran hutang {po_number}",
        lines=lines,
        journal_date=payment_date,
    )
