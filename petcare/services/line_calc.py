# FILE: petcare/services/line_calc.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from typing import Dict, Iterable, List, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def D(x) -> Decimal:
    try:
        v = Decimal(str(x or 0))
    except Exception:
        return Decimal("0")
    # NaN / Infinity behave like missing input
    if not v.is_finite():
        return Decimal("0")
    return v


def money2(x) -> Decimal:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _pct(x) -> Decimal:
    p = D(x)
    if p < 0:
        return ZERO
    if p > HUNDRED:
        return HUNDRED
    return p


@dataclass(frozen=True)
class LineInput:
    quantity: object = 0
    unit_price: object = 0
    discount_amount: object = 0
    discount_percent: object = 0
    tax_percent: object = 0


@dataclass(frozen=True)
class NormalizedLine:
    quantity: Decimal
    unit_price: Decimal
    gross: Decimal
    abs_discount: Decimal
    percent_discount_amount: Decimal
    discount_amount: Decimal
    net_before_tax: Decimal
    tax_amount: Decimal
    net: Decimal


@dataclass(frozen=True)
class TotalsResult:
    gross: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    net: Decimal
    lines: List[NormalizedLine] = field(default_factory=list)


def calculate_line(
    quantity=0,
    unit_price=0,
    discount_amount=0,
    discount_percent=0,
    tax_percent=0,
) -> NormalizedLine:
    """
    Order is fixed:
      absolute discount first, percent on (gross - absolute), tax on the net.
    Quantities are truncated, never rounded.
    """
    qty = D(quantity).to_integral_value(rounding=ROUND_FLOOR)
    if qty < 0:
        qty = ZERO

    price = money2(unit_price)
    gross = money2(qty * price)

    abs_discount = money2(discount_amount)
    if abs_discount < 0:
        abs_discount = ZERO

    pct = _pct(discount_percent)
    percent_discount_amount = money2((gross - abs_discount) * pct / HUNDRED)
    total_discount = money2(abs_discount + percent_discount_amount)

    net_before_tax = money2(gross - total_discount)
    if net_before_tax < 0:
        net_before_tax = Decimal("0.00")

    tax_amount = money2(net_before_tax * _pct(tax_percent) / HUNDRED)
    net = money2(net_before_tax + tax_amount)

    return NormalizedLine(
        quantity=qty,
        unit_price=price,
        gross=gross,
        abs_discount=abs_discount,
        percent_discount_amount=percent_discount_amount,
        discount_amount=total_discount,
        net_before_tax=net_before_tax,
        tax_amount=tax_amount,
        net=net,
    )


def calculate_totals(lines: Iterable) -> TotalsResult:
    """
    Sum of already-rounded per-line values (not the rounded sum).
    Accepts LineInput instances or dicts with the same keys.
    """
    normalized: List[NormalizedLine] = []
    for ln in lines or []:
        if isinstance(ln, dict):
            normalized.append(calculate_line(**ln))
        else:
            normalized.append(calculate_line(
                ln.quantity, ln.unit_price, ln.discount_amount, ln.discount_percent, ln.tax_percent
            ))

    gross = sum((x.gross for x in normalized), Decimal("0.00"))
    discount = sum((x.discount_amount for x in normalized), Decimal("0.00"))
    tax = sum((x.tax_amount for x in normalized), Decimal("0.00"))
    net = sum((x.net for x in normalized), Decimal("0.00"))

    return TotalsResult(gross=gross, discount_amount=discount, tax_amount=tax, net=net, lines=normalized)


def line_discount_input(discount_amount, discount_type: Optional[str]) -> Dict[str, Decimal]:
    """Stored nominal/percent discount -> calculator kwargs."""
    if (discount_type or "nominal") == "percent":
        return {"discount_amount": ZERO, "discount_percent": D(discount_amount)}
    return {"discount_amount": D(discount_amount), "discount_percent": ZERO}


def transaction_totals(
    subtotal,
    discount_amount,
    discount_type: Optional[str],
    tax_rate,
    paid_amount=0,
) -> Dict[str, Decimal]:
    """
    Header discount and tax applied to the subtotal as a single qty-1 line.
    """
    line = calculate_line(
        quantity=1,
        unit_price=subtotal,
        tax_percent=tax_rate,
        **line_discount_input(discount_amount, discount_type),
    )
    paid = money2(paid_amount)
    outstanding = money2(line.net - paid)
    if outstanding < 0:
        outstanding = Decimal("0.00")
    return {
        "subtotal": line.gross,
        # Capped at the subtotal so the header never discounts below zero
        "discount": money2(line.gross - line.net_before_tax),
        "tax": line.tax_amount,
        "total": line.net,
        "paid": paid,
        "outstanding": outstanding,
    }
