# FILE: petcare/services/sales_service.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from petcare.models.master import Branch, Customer, Product, ProductVariant
from petcare.models.sales import DiscountType, Sale, SaleItem, SalePayment, SaleStatus
from petcare.models.stock import MovementType
from petcare.services.errors import (
    ConflictStateError,
    NoItemsError,
    NotFoundError,
    PetcareError,
    StatusConflictError,
    ValidationError,
)
from petcare.services.inventory_ledger import decrease_stock, is_tracked
from petcare.services.journal_posting import RevenueItem, post_payment_journal, post_sale_journal
from petcare.services.line_calc import D, money2, transaction_totals
from petcare.services.numbering import get_or_generate_number
from petcare.services.transactions import (
    check_header_discount,
    discount_type_of,
    item_label,
    line_subtotal,
    selling_price_of,
    settle_payments,
    whole_quantity,
)
from petcare.utils.timezone import now_local, today_local

logger = logging.getLogger(__name__)


# -------------------------
# Loading / guards
# -------------------------
def _sale_q(db: Session):
    return db.query(Sale).options(
        selectinload(Sale.items).selectinload(SaleItem.product).selectinload(Product.category),
        selectinload(Sale.items).selectinload(SaleItem.variant),
        selectinload(Sale.payments),
    )


def get_sale(db: Session, sale_id: int, for_update: bool = False) -> Sale:
    q = _sale_q(db).filter(Sale.id == sale_id, Sale.deleted_at.is_(None))
    if for_update:
        q = q.with_for_update()
    sale = q.first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def list_sales(
    db: Session,
    *,
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Sale]:
    q = _sale_q(db).filter(Sale.deleted_at.is_(None))
    if branch_id:
        q = q.filter(Sale.branch_id == branch_id)
    if status:
        q = q.filter(Sale.status == SaleStatus(status))
    if date_from:
        q = q.filter(Sale.sale_date >= date_from)
    if date_to:
        q = q.filter(Sale.sale_date <= date_to)
    return q.order_by(Sale.sale_date.desc(), Sale.id.desc()).offset(max(0, offset)).limit(min(max(1, limit), 500)).all()


def _require_draft(sale: Sale) -> None:
    if sale.status != SaleStatus.DRAFT:
        raise StatusConflictError(f"Sale {sale.sale_number} is {sale.status.value}, only DRAFT sales can be changed")


def _load_product(db: Session, product_id: int, variant_id: Optional[int]):
    product = db.get(Product, product_id)
    if not product or product.deleted_at is not None or not product.is_active:
        raise NotFoundError("Product not found")
    variant = None
    if variant_id:
        variant = db.get(ProductVariant, variant_id)
        if not variant or variant.product_id != product.id:
            raise NotFoundError("Product variant not found")
    return product, variant


def _compute_item(item: SaleItem) -> None:
    item.subtotal = line_subtotal(item.quantity, item.unit_price, item.discount_amount, item.discount_type)


def _recalc(sale: Sale) -> dict:
    """Whole-aggregate recompute after every change."""
    subtotal = sum((money2(it.subtotal) for it in sale.items), Decimal("0.00"))
    totals = transaction_totals(subtotal, sale.discount_amount, sale.discount_type, sale.tax_rate, sale.paid_amount)
    sale.subtotal = totals["subtotal"]
    sale.tax_amount = totals["tax"]
    sale.total_amount = totals["total"]
    sale.outstanding_amount = totals["outstanding"]
    return totals


# -------------------------
# Draft editing
# -------------------------
def create_sale(
    db: Session,
    *,
    branch_id: int,
    customer_id: Optional[int] = None,
    sale_date: Optional[date] = None,
    sale_number: Optional[str] = None,
    discount_amount=0,
    discount_type: str = DiscountType.NOMINAL.value,
    tax_rate=0,
    notes: Optional[str] = None,
    items: Optional[Iterable] = None,
) -> Sale:
    if not db.get(Branch, branch_id):
        raise NotFoundError("Branch not found")
    if customer_id:
        c = db.get(Customer, customer_id)
        if not c or c.deleted_at is not None:
            raise NotFoundError("Customer not found")

    dtype = discount_type_of(discount_type)
    check_header_discount(discount_amount, dtype, tax_rate)

    d = sale_date or today_local()
    sale = Sale(
        sale_number=get_or_generate_number(db, "sale", sale_number, d),
        branch_id=branch_id,
        customer_id=customer_id,
        sale_date=d,
        status=SaleStatus.DRAFT,
        discount_amount=money2(discount_amount),
        discount_type=dtype,
        tax_rate=D(tax_rate),
        notes=notes,
    )
    db.add(sale)
    db.flush()

    for it in items or []:
        data = it if isinstance(it, dict) else it.model_dump()
        add_item(db, sale.id, **data)

    _recalc(sale)
    db.flush()
    return sale


def add_item(
    db: Session,
    sale_id: int,
    *,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity=1,
    unit_price=None,
    discount_amount=0,
    discount_type: str = DiscountType.NOMINAL.value,
    notes: Optional[str] = None,
) -> SaleItem:
    sale = get_sale(db, sale_id, for_update=True)
    _require_draft(sale)
    product, variant = _load_product(db, product_id, variant_id)

    item = SaleItem(
        product_id=product.id,
        variant_id=variant.id if variant else None,
        quantity=whole_quantity(quantity),
        unit_price=money2(unit_price) if unit_price is not None else selling_price_of(product, variant),
        discount_amount=money2(discount_amount),
        discount_type=discount_type_of(discount_type),
        notes=notes,
    )
    item.product = product
    item.variant = variant
    _compute_item(item)
    sale.items.append(item)
    _recalc(sale)
    db.flush()
    return item


def _get_item(sale: Sale, item_id: int) -> SaleItem:
    for it in sale.items:
        if it.id == item_id:
            return it
    raise NotFoundError("Sale item not found")


def update_item(
    db: Session,
    sale_id: int,
    item_id: int,
    *,
    quantity=None,
    unit_price=None,
    discount_amount=None,
    discount_type: Optional[str] = None,
    notes: Optional[str] = None,
) -> SaleItem:
    sale = get_sale(db, sale_id, for_update=True)
    _require_draft(sale)
    item = _get_item(sale, item_id)

    if quantity is not None:
        item.quantity = whole_quantity(quantity)
    if unit_price is not None:
        item.unit_price = money2(unit_price)
    if discount_amount is not None:
        item.discount_amount = money2(discount_amount)
    if discount_type is not None:
        item.discount_type = discount_type_of(discount_type)
    if notes is not None:
        item.notes = notes

    _compute_item(item)
    _recalc(sale)
    db.flush()
    return item


def remove_item(db: Session, sale_id: int, item_id: int) -> Sale:
    sale = get_sale(db, sale_id, for_update=True)
    _require_draft(sale)
    item = _get_item(sale, item_id)
    sale.items.remove(item)
    _recalc(sale)
    db.flush()
    return sale


def update_discount_and_tax(
    db: Session,
    sale_id: int,
    *,
    discount_amount=0,
    discount_type: str = DiscountType.NOMINAL.value,
    tax_rate=0,
) -> Sale:
    sale = get_sale(db, sale_id, for_update=True)
    _require_draft(sale)
    dtype = discount_type_of(discount_type)
    check_header_discount(discount_amount, dtype, tax_rate)

    sale.discount_amount = money2(discount_amount)
    sale.discount_type = dtype
    sale.tax_rate = D(tax_rate)
    _recalc(sale)
    db.flush()
    return sale


# -------------------------
# Terminal event
# -------------------------
def submit_sale(db: Session, sale_id: int, payments: Optional[Iterable] = None) -> dict:
    """
    DRAFT -> COMPLETED in one unit of work:
    stock out per tracked item (COGS captured), payments recorded,
    sale journal posted.
    """
    sale = get_sale(db, sale_id, for_update=True)
    _require_draft(sale)
    if not sale.items:
        raise NoItemsError("Sale has no items")

    sale.paid_amount = Decimal("0.00")
    totals = _recalc(sale)
    settlement = settle_payments(totals["total"], payments)

    revenue: List[RevenueItem] = []
    for item in sale.items:
        product = item.product
        item.cogs = Decimal("0.00")
        if is_tracked(product):
            try:
                res = decrease_stock(
                    db,
                    branch_id=sale.branch_id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    reference_type="SALE",
                    reference_id=sale.id,
                    movement_type=MovementType.SALE_OUT,
                    notes=sale.sale_number,
                )
            except PetcareError as e:
                raise e.with_context(item_label(product, item.variant)) from e
            item.cogs = res.cogs
        revenue.append(RevenueItem(
            category=product.category_name,
            subtotal=money2(item.subtotal),
            cogs=money2(item.cogs),
            name=product.name,
        ))

    now = now_local()
    for p, amount in settlement.recorded:
        sale.payments.append(SalePayment(
            amount=amount,
            payment_method=p.payment_method,
            reference_number=p.reference_number,
            payment_date=now,
            notes=p.notes,
        ))

    sale.paid_amount = settlement.paid
    sale.outstanding_amount = settlement.outstanding
    sale.status = SaleStatus.COMPLETED
    db.flush()

    entry = post_sale_journal(
        db,
        sale_id=sale.id,
        sale_number=sale.sale_number,
        sale_date=sale.sale_date,
        branch_id=sale.branch_id,
        paid_amount=settlement.paid,
        outstanding_amount=settlement.outstanding,
        items=revenue,
        discount_amount=totals["discount"],
        tax_amount=totals["tax"],
    )
    logger.info(
        "Sale %s completed total=%s paid=%s outstanding=%s",
        sale.sale_number, sale.total_amount, sale.paid_amount, sale.outstanding_amount,
    )
    return {
        "sale": sale,
        "total": settlement.total,
        "paid": settlement.paid,
        "change": settlement.change,
        "outstanding": settlement.outstanding,
        "journal_entry": entry,
    }


def add_payment(
    db: Session,
    sale_id: int,
    *,
    amount,
    payment_method: str = "CASH",
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> dict:
    """Receivable collection on a completed sale."""
    sale = get_sale(db, sale_id, for_update=True)
    if sale.status != SaleStatus.COMPLETED:
        raise StatusConflictError("Payments can only be added to completed sales")
    if money2(amount) <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    outstanding = money2(sale.outstanding_amount)
    if outstanding <= 0:
        raise ConflictStateError(f"Sale {sale.sale_number} is already fully paid")

    settlement = settle_payments(outstanding, [{
        "amount": amount,
        "payment_method": payment_method,
        "reference_number": reference_number,
        "notes": notes,
    }])
    p, recorded = settlement.recorded[0]
    payment = SalePayment(
        amount=recorded,
        payment_method=p.payment_method,
        reference_number=reference_number,
        payment_date=now_local(),
        notes=notes,
    )
    sale.payments.append(payment)
    sale.paid_amount = money2(D(sale.paid_amount) + recorded)
    sale.outstanding_amount = money2(outstanding - recorded)
    db.flush()

    entry = post_payment_journal(
        db,
        payment_id=payment.id,
        amount=recorded,
        payment_method=p.payment_method,
        branch_id=sale.branch_id,
        reference=sale.sale_number,
    )
    return {
        "sale": sale,
        "payment": payment,
        "change": settlement.change,
        "journal_entry": entry,
    }


def cancel_sale(db: Session, sale_id: int, reason: Optional[str] = None) -> Sale:
    sale = get_sale(db, sale_id, for_update=True)
    if sale.status == SaleStatus.COMPLETED:
        raise StatusConflictError("Completed sales cannot be cancelled")
    if sale.status == SaleStatus.CANCELLED:
        raise StatusConflictError("Sale is already cancelled")
    sale.status = SaleStatus.CANCELLED
    if reason:
        sale.notes = f"{sale.notes}\n{reason}".strip() if sale.notes else reason
    db.flush()
    logger.info("Sale %s cancelled", sale.sale_number)
    return sale


def delete_sale(db: Session, sale_id: int) -> Sale:
    sale = get_sale(db, sale_id, for_update=True)
    if sale.status not in (SaleStatus.DRAFT, SaleStatus.CANCELLED):
        raise StatusConflictError("Only DRAFT or CANCELLED sales can be deleted")
    sale.deleted_at = now_local()
    db.flush()
    return sale
