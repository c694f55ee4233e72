# FILE: petcare/services/transactions.py
"""
Helpers shared by the sale / clinic / hotel orchestrators:
payment settlement, line normalisation and contextual stock errors.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable, List, Optional, Tuple

from petcare.models.master import Product, ProductVariant
from petcare.models.sales import DiscountType, PaymentMethod
from petcare.services.errors import (
    InvalidQuantityError,
    PaymentExceedsTotalError,
    ValidationError,
)
from petcare.services.line_calc import D, calculate_line, line_discount_input, money2

ZERO = Decimal("0.00")


@dataclass
class PaymentInput:
    amount: Decimal
    payment_method: str = PaymentMethod.CASH.value
    reference_number: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class Settlement:
    total: Decimal
    tendered: Decimal = ZERO
    paid: Decimal = ZERO
    change: Decimal = ZERO
    outstanding: Decimal = ZERO
    # (payment, amount actually recorded)
    recorded: List[Tuple[PaymentInput, Decimal]] = field(default_factory=list)


def payment_method_of(value) -> str:
    raw = getattr(value, "value", value)
    try:
        return PaymentMethod(str(raw or PaymentMethod.CASH.value).strip().upper()).value
    except ValueError:
        raise ValidationError(f"Unknown payment method: {raw}")


def normalize_payments(payments: Optional[Iterable]) -> List[PaymentInput]:
    """Dicts, pydantic models or PaymentInput; non-positive amounts are skipped."""
    out: List[PaymentInput] = []
    for p in payments or []:
        if isinstance(p, PaymentInput):
            data = {
                "amount": p.amount,
                "payment_method": p.payment_method,
                "reference_number": p.reference_number,
                "notes": p.notes,
            }
        elif isinstance(p, dict):
            data = p
        else:
            data = p.model_dump()
        amount = money2(data.get("amount"))
        if amount <= 0:
            continue
        out.append(PaymentInput(
            amount=amount,
            payment_method=payment_method_of(data.get("payment_method")),
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
        ))
    return out


def settle_payments(total, payments: Optional[Iterable]) -> Settlement:
    """
    Payment rule for terminal events.

    - overpayment is only accepted when at least one payment is CASH
    - non-cash money alone can never exceed the total
    - CASH is capped at what is left after the non-cash payments; the
      difference is returned as change
    """
    total = money2(total)
    items = normalize_payments(payments)
    tendered = sum((p.amount for p in items), ZERO)
    has_cash = any(p.payment_method == PaymentMethod.CASH.value for p in items)
    non_cash = sum((p.amount for p in items if p.payment_method != PaymentMethod.CASH.value), ZERO)

    if tendered > total and not has_cash:
        raise PaymentExceedsTotalError(
            f"Total payment ({tendered}) exceeds transaction total ({total})",
            details={"total": total, "payments": tendered},
        )
    if non_cash > total:
        raise PaymentExceedsTotalError(
            f"Non-cash payment ({non_cash}) exceeds transaction total ({total})",
            details={"total": total, "non_cash": non_cash},
        )

    remaining_for_cash = total - non_cash
    recorded: List[Tuple[PaymentInput, Decimal]] = []
    for p in items:
        if p.payment_method == PaymentMethod.CASH.value:
            amount = min(p.amount, max(ZERO, remaining_for_cash))
            remaining_for_cash -= amount
        else:
            amount = p.amount
        if amount > 0:
            recorded.append((p, amount))

    paid = sum((a for _, a in recorded), ZERO)
    change = tendered - total if tendered > total else ZERO
    outstanding = total - paid if total > paid else ZERO
    return Settlement(
        total=total,
        tendered=tendered,
        paid=paid,
        change=money2(change),
        outstanding=money2(outstanding),
        recorded=recorded,
    )


# -------------------------
# Lines
# -------------------------
def whole_quantity(quantity) -> Decimal:
    """Quantities are truncated; anything below 1 after truncation is rejected."""
    qty = D(quantity).to_integral_value(rounding=ROUND_FLOOR)
    if qty < 1:
        raise InvalidQuantityError("Quantity must be at least 1")
    return qty


def discount_type_of(value) -> str:
    raw = getattr(value, "value", value)
    try:
        return DiscountType(str(raw or DiscountType.NOMINAL.value).strip().lower()).value
    except ValueError:
        raise ValidationError(f"Unknown discount type: {raw}")


def line_subtotal(quantity, unit_price, discount_amount, discount_type) -> Decimal:
    if D(discount_amount) < 0:
        raise ValidationError("Discount cannot be negative")
    return calculate_line(
        quantity=quantity,
        unit_price=unit_price,
        **line_discount_input(discount_amount, discount_type),
    ).net


def check_header_discount(discount_amount, discount_type, tax_rate) -> None:
    if D(discount_amount) < 0:
        raise ValidationError("Discount cannot be negative")
    if discount_type == DiscountType.PERCENT.value and D(discount_amount) > 100:
        raise ValidationError("Discount percent cannot exceed 100")
    if D(tax_rate) < 0 or D(tax_rate) > 100:
        raise ValidationError("Tax rate must be between 0 and 100")


def item_label(product: Optional[Product], variant: Optional[ProductVariant] = None) -> str:
    name = product.name if product else "Item"
    if variant is not None and variant.variant_value:
        return f"{name} ({variant.variant_value})"
    return name


def selling_price_of(product: Product, variant: Optional[ProductVariant] = None) -> Decimal:
    if variant is not None and variant.selling_price is not None:
        return money2(variant.selling_price)
    return money2(product.selling_price)
