# FILE: petcare/services/account_codes.py
"""
Account codes used by the posting rules, plus the category -> account lookup
tables. Category matching is by substring, first rule wins.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from petcare.models.accounting import AccountType, NormalBalance

CategoryRules = Tuple[Tuple[Tuple[str, ...], str], ...]


@dataclass(frozen=True)
class AccountingConfig:
    CASH_ACCOUNT: str = "1-101"
    BANK_ACCOUNT: str = "1-111"
    AR_ACCOUNT: str = "1-120"

    AP_ACCOUNT: str = "2-101"
    TAX_PAYABLE_ACCOUNT: str = "2-111"

    OPENING_EQUITY_ACCOUNT: str = "3-100"
    RETAINED_EARNINGS_ACCOUNT: str = "3-200"

    HOTEL_REVENUE_ACCOUNT: str = "4-140"
    # Consumables sold during a stay are booked as pet food
    HOTEL_CONSUMABLE_REVENUE_ACCOUNT: str = "4-111"
    HOTEL_CONSUMABLE_COGS_ACCOUNT: str = "5-101"
    HOTEL_CONSUMABLE_INVENTORY_ACCOUNT: str = "1-131"

    # Goods used at the clinic and dispensed prescriptions
    CLINIC_COGS_ACCOUNT: str = "5-103"
    CLINIC_INVENTORY_ACCOUNT: str = "1-133"

    SALES_DISCOUNT_ACCOUNT: str = "5-212"
    VAT_INPUT_ACCOUNT: str = "5-301"

    BANK_FEE_ACCOUNT: str = "5-211"
    INTEREST_INCOME_ACCOUNT: str = "4-201"

    PAYMENT_ACCOUNT_MAPPING: Dict[str, str] = field(default_factory=lambda: {
        "CASH": "1-101",
        "BANK_TRANSFER": "1-111",
        "QRIS": "1-111",
        "DEBIT_CARD": "1-111",
        "CREDIT_CARD": "1-111",
    })


ACCOUNTS = AccountingConfig()

# Default counter account per bank transaction type
BANK_CONTRA_ACCOUNTS: Dict[str, str] = {
    "DEPOSIT": ACCOUNTS.CASH_ACCOUNT,
    "WITHDRAWAL": ACCOUNTS.CASH_ACCOUNT,
    "TRANSFER_IN": ACCOUNTS.AR_ACCOUNT,
    "TRANSFER_OUT": ACCOUNTS.AP_ACCOUNT,
    "FEE": ACCOUNTS.BANK_FEE_ACCOUNT,
    "INTEREST": ACCOUNTS.INTEREST_INCOME_ACCOUNT,
}


# -------------------------
# Category lookup tables
# -------------------------
SALES_REVENUE_RULES: CategoryRules = (
    (("Pet Food", "Food"), "4-111"),
    (("Medicine", "Vitamin"), "4-113"),
    (("Accessories",), "4-112"),
)
SALES_REVENUE_DEFAULT = "4-111"

COGS_RULES: CategoryRules = (
    (("Pet Food", "Food"), "5-101"),
    (("Medicine", "Vitamin"), "5-103"),
    (("Vaccine",), "5-104"),
    (("Accessories",), "5-102"),
)
COGS_DEFAULT = "5-101"

INVENTORY_RULES: CategoryRules = (
    (("Pet Food", "Food"), "1-131"),
    (("Medicine", "Vitamin"), "1-133"),
    (("Vaccine",), "1-134"),
    (("Accessories",), "1-132"),
    (("Grooming",), "1-135"),
)
INVENTORY_DEFAULT = "1-131"

SERVICE_REVENUE_RULES: CategoryRules = (
    (("Medical", "Examination", "Pemeriksaan"), "4-121"),
    (("Vaccination", "Vaksinasi"), "4-122"),
    (("Sterilization", "Sterilisasi"), "4-123"),
    (("Grooming",), "4-131"),
)
SERVICE_REVENUE_DEFAULT = "4-121"


def match_category(category: Optional[str], rules: CategoryRules, default: str) -> str:
    name = category or ""
    for needles, code in rules:
        if any(n in name for n in needles):
            return code
    return default


def revenue_account_for(category: Optional[str]) -> str:
    return match_category(category, SALES_REVENUE_RULES, SALES_REVENUE_DEFAULT)


def cogs_account_for(category: Optional[str]) -> str:
    return match_category(category, COGS_RULES, COGS_DEFAULT)


def inventory_account_for(category: Optional[str]) -> str:
    return match_category(category, INVENTORY_RULES, INVENTORY_DEFAULT)


def service_revenue_account_for(category: Optional[str]) -> str:
    return match_category(category, SERVICE_REVENUE_RULES, SERVICE_REVENUE_DEFAULT)


def payment_account_for(method: Optional[str]) -> str:
    return ACCOUNTS.PAYMENT_ACCOUNT_MAPPING.get((method or "CASH").upper(), ACCOUNTS.CASH_ACCOUNT)


# -------------------------
# Default chart
# -------------------------
# (code, name, type, parent_code, is_header)
DEFAULT_CHART: Sequence[Tuple[str, str, AccountType, Optional[str], bool]] = (
    ("1-000", "Aset", AccountType.ASSET, None, True),
    ("1-100", "Aset Lancar", AccountType.ASSET, "1-000", True),
    ("1-101", "Kas Besar", AccountType.ASSET, "1-100", False),
    ("1-111", "Bank BCA", AccountType.ASSET, "1-100", False),
    ("1-112", "Bank Mandiri", AccountType.ASSET, "1-100", False),
    ("1-113", "Bank BRI", AccountType.ASSET, "1-100", False),
    ("1-120", "Piutang Usaha", AccountType.ASSET, "1-100", False),
    ("1-130", "Persediaan", AccountType.ASSET, "1-100", True),
    ("1-131", "Persediaan Makanan Hewan", AccountType.ASSET, "1-130", False),
    ("1-132", "Persediaan Aksesoris", AccountType.ASSET, "1-130", False),
    ("1-133", "Persediaan Obat & Vitamin", AccountType.ASSET, "1-130", False),
    ("1-134", "Persediaan Vaksin", AccountType.ASSET, "1-130", False),
    ("1-135", "Persediaan Perlengkapan Grooming", AccountType.ASSET, "1-130", False),

    ("2-000", "Kewajiban", AccountType.LIABILITY, None, True),
    ("2-100", "Kewajiban Lancar", AccountType.LIABILITY, "2-000", True),
    ("2-101", "Hutang Usaha", AccountType.LIABILITY, "2-100", False),
    ("2-111", "PPN Keluaran", AccountType.LIABILITY, "2-100", False),

    ("3-000", "Ekuitas", AccountType.EQUITY, None, True),
    ("3-100", "Modal Saldo Awal", AccountType.EQUITY, "3-000", False),
    ("3-200", "Laba Ditahan", AccountType.EQUITY, "3-000", False),

    ("4-000", "Pendapatan", AccountType.REVENUE, None, True),
    ("4-110", "Penjualan Produk", AccountType.REVENUE, "4-000", True),
    ("4-111", "Penjualan Makanan Hewan", AccountType.REVENUE, "4-110", False),
    ("4-112", "Penjualan Aksesoris", AccountType.REVENUE, "4-110", False),
    ("4-113", "Penjualan Obat & Vitamin", AccountType.REVENUE, "4-110", False),
    ("4-120", "Pendapatan Klinik", AccountType.REVENUE, "4-000", True),
    ("4-121", "Jasa Pemeriksaan", AccountType.REVENUE, "4-120", False),
    ("4-122", "Jasa Vaksinasi", AccountType.REVENUE, "4-120", False),
    ("4-123", "Jasa Sterilisasi", AccountType.REVENUE, "4-120", False),
    ("4-130", "Pendapatan Grooming", AccountType.REVENUE, "4-000", True),
    ("4-131", "Grooming Basic", AccountType.REVENUE, "4-130", False),
    ("4-140", "Pendapatan Hotel Hewan", AccountType.REVENUE, "4-000", False),
    ("4-200", "Pendapatan Lain-lain", AccountType.REVENUE, "4-000", True),
    ("4-201", "Pendapatan Bunga", AccountType.REVENUE, "4-200", False),

    ("5-000", "Beban", AccountType.EXPENSE, None, True),
    ("5-100", "Harga Pokok Penjualan", AccountType.EXPENSE, "5-000", True),
    ("5-101", "HPP Makanan Hewan", AccountType.EXPENSE, "5-100", False),
    ("5-102", "HPP Aksesoris", AccountType.EXPENSE, "5-100", False),
    ("5-103", "HPP Obat & Vitamin", AccountType.EXPENSE, "5-100", False),
    ("5-104", "HPP Vaksin", AccountType.EXPENSE, "5-100", False),
    ("5-200", "Beban Operasional", AccountType.EXPENSE, "5-000", True),
    ("5-211", "Beban Administrasi Bank", AccountType.EXPENSE, "5-200", False),
    ("5-212", "Beban Lain-lain", AccountType.EXPENSE, "5-200", False),
    ("5-300", "Pajak", AccountType.EXPENSE, "5-000", True),
    ("5-301", "PPN Masukan", AccountType.EXPENSE, "5-300", False),
)


def normal_balance_for(account_type: AccountType) -> NormalBalance:
    if account_type in (AccountType.ASSET, AccountType.EXPENSE):
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


def referenced_codes() -> List[str]:
    """Every posting code the rules above can produce."""
    codes = {
        v for k, v in vars(ACCOUNTS).items()
        if k.endswith("_ACCOUNT") and isinstance(v, str)
    }
    codes.update(ACCOUNTS.PAYMENT_ACCOUNT_MAPPING.values())
    codes.update(BANK_CONTRA_ACCOUNTS.values())
    for rules, default in (
        (SALES_REVENUE_RULES, SALES_REVENUE_DEFAULT),
        (COGS_RULES, COGS_DEFAULT),
        (INVENTORY_RULES, INVENTORY_DEFAULT),
        (SERVICE_REVENUE_RULES, SERVICE_REVENUE_DEFAULT),
    ):
        codes.add(default)
        codes.update(code for _, code in rules)
    return sorted(codes)
