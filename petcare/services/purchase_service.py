# FILE: petcare/services/purchase_service.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from petcare.models.master import Branch, Product, ProductVariant, Supplier
from petcare.models.purchasing import POStatus, PurchaseOrder, PurchaseOrderItem
from petcare.models.stock import MovementType
from petcare.services.account_codes import ACCOUNTS
from petcare.services.bank_service import record_transaction
from petcare.services.errors import (
    ConflictStateError,
    InvalidQuantityError,
    NoItemsError,
    NotFoundError,
    PaymentExceedsTotalError,
    PetcareError,
    StatusConflictError,
    ValidationError,
)
from petcare.services.inventory_ledger import BatchInfo, cost4, increase_stock
from petcare.services.journal_posting import InventoryItem, post_purchase_journal, post_supplier_payment_journal
from petcare.services.line_calc import D, calculate_line, money2
from petcare.services.numbering import get_or_generate_number
from petcare.services.transactions import item_label, whole_quantity
from petcare.utils.timezone import now_local, today_local

logger = logging.getLogger(__name__)

EDITABLE = (POStatus.DRAFT,)
RECEIVABLE = (POStatus.SUBMITTED, POStatus.PARTIALLY_RECEIVED)
CANCELLABLE = (POStatus.DRAFT, POStatus.SUBMITTED)


def _po_q(db: Session):
    return db.query(PurchaseOrder).options(
        selectinload(PurchaseOrder.items).selectinload(PurchaseOrderItem.product).selectinload(Product.category),
        selectinload(PurchaseOrder.items).selectinload(PurchaseOrderItem.variant),
        selectinload(PurchaseOrder.supplier),
    )


def get_purchase_order(db: Session, po_id: int, for_update: bool = False) -> PurchaseOrder:
    q = _po_q(db).filter(PurchaseOrder.id == po_id)
    if for_update:
        q = q.with_for_update()
    po = q.first()
    if not po:
        raise NotFoundError("Purchase order not found")
    return po


def list_purchase_orders(
    db: Session,
    *,
    branch_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[PurchaseOrder]:
    q = _po_q(db)
    if branch_id:
        q = q.filter(PurchaseOrder.branch_id == branch_id)
    if supplier_id:
        q = q.filter(PurchaseOrder.supplier_id == supplier_id)
    if status:
        q = q.filter(PurchaseOrder.status == POStatus(status))
    return q.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()).offset(max(0, offset)).limit(min(max(1, limit), 500)).all()


def _require(po: PurchaseOrder, allowed, action: str) -> None:
    if po.status not in allowed:
        raise StatusConflictError(f"Cannot {action} purchase order in {po.status.value} status")


def _compute_line(li: PurchaseOrderItem) -> Decimal:
    """Returns the net before tax; subtotal = net + flat line tax."""
    net = calculate_line(quantity=li.quantity, unit_price=li.unit_price, discount_amount=li.discount).net
    li.subtotal = money2(net + D(li.tax))
    return net


def _compute_totals(po: PurchaseOrder) -> None:
    for li in po.items:
        _compute_line(li)
    po.total_amount = sum((money2(li.subtotal) for li in po.items), Decimal("0.00"))


def _landed_unit_cost(li: PurchaseOrderItem) -> Decimal:
    """Unit cost after the line discount, the same net the purchase journal books."""
    qty = D(li.quantity)
    if qty <= 0:
        return cost4(li.unit_price)
    return cost4(_compute_line(li) / qty)


def _validate_amounts(unit_price, discount, tax) -> None:
    if D(unit_price) < 0:
        raise ValidationError("Unit price cannot be negative")
    if D(discount) < 0 or D(tax) < 0:
        raise ValidationError("Discount and tax cannot be negative")


# -------------------------
# Draft editing
# -------------------------
def create_purchase_order(
    db: Session,
    *,
    supplier_id: int,
    branch_id: int,
    order_date: Optional[date] = None,
    expected_delivery_date: Optional[date] = None,
    po_number: Optional[str] = None,
    notes: str = "",
    items: Optional[Iterable] = None,
) -> PurchaseOrder:
    sup = db.get(Supplier, supplier_id)
    if not sup or not sup.is_active:
        raise NotFoundError("Supplier not found")
    if not db.get(Branch, branch_id):
        raise NotFoundError("Branch not found")

    d = order_date or today_local()
    if expected_delivery_date and expected_delivery_date < d:
        raise ValidationError("Expected delivery date cannot be before the order date")

    po = PurchaseOrder(
        po_number=get_or_generate_number(db, "purchase_order", po_number, d),
        supplier_id=supplier_id,
        branch_id=branch_id,
        order_date=d,
        expected_delivery_date=expected_delivery_date,
        status=POStatus.DRAFT,
        notes=notes or "",
    )
    db.add(po)
    db.flush()

    for it in items or []:
        data = it if isinstance(it, dict) else it.model_dump()
        add_item(db, po.id, **data)

    _compute_totals(po)
    db.flush()
    return po


def update_purchase_order(
    db: Session,
    po_id: int,
    *,
    expected_delivery_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> PurchaseOrder:
    po = get_purchase_order(db, po_id, for_update=True)
    _require(po, EDITABLE, "edit")
    if expected_delivery_date is not None:
        if expected_delivery_date < po.order_date:
            raise ValidationError("Expected delivery date cannot be before the order date")
        po.expected_delivery_date = expected_delivery_date
    if notes is not None:
        po.notes = notes
    db.flush()
    return po


def add_item(
    db: Session,
    po_id: int,
    *,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity,
    unit_price=None,
    discount=0,
    tax=0,
    notes: str = "",
) -> PurchaseOrderItem:
    po = get_purchase_order(db, po_id, for_update=True)
    _require(po, EDITABLE, "edit")

    product = db.get(Product, product_id)
    if not product or product.deleted_at is not None:
        raise NotFoundError("Product not found")
    variant = None
    if variant_id:
        variant = db.get(ProductVariant, variant_id)
        if not variant or variant.product_id != product.id:
            raise NotFoundError("Product variant not found")

    if unit_price is None:
        unit_price = variant.purchase_price if variant is not None and variant.purchase_price is not None else product.purchase_price
    _validate_amounts(unit_price, discount, tax)

    li = PurchaseOrderItem(
        product_id=product.id,
        variant_id=variant.id if variant else None,
        quantity=whole_quantity(quantity),
        unit_price=D(unit_price),
        discount=money2(discount),
        tax=money2(tax),
        notes=notes or "",
    )
    li.product = product
    li.variant = variant
    po.items.append(li)
    _compute_totals(po)
    db.flush()
    return li


def _get_item(po: PurchaseOrder, item_id: int) -> PurchaseOrderItem:
    for li in po.items:
        if li.id == item_id:
            return li
    raise NotFoundError("Purchase order item not found")


def update_item(
    db: Session,
    po_id: int,
    item_id: int,
    *,
    quantity=None,
    unit_price=None,
    discount=None,
    tax=None,
    notes: Optional[str] = None,
) -> PurchaseOrderItem:
    po = get_purchase_order(db, po_id, for_update=True)
    _require(po, EDITABLE, "edit")
    li = _get_item(po, item_id)

    if quantity is not None:
        li.quantity = whole_quantity(quantity)
    if unit_price is not None:
        li.unit_price = D(unit_price)
    if discount is not None:
        li.discount = money2(discount)
    if tax is not None:
        li.tax = money2(tax)
    if notes is not None:
        li.notes = notes
    _validate_amounts(li.unit_price, li.discount, li.tax)

    _compute_totals(po)
    db.flush()
    return li


def remove_item(db: Session, po_id: int, item_id: int) -> PurchaseOrder:
    po = get_purchase_order(db, po_id, for_update=True)
    _require(po, EDITABLE, "edit")
    po.items.remove(_get_item(po, item_id))
    _compute_totals(po)
    db.flush()
    return po


# -------------------------
# Lifecycle
# -------------------------
def submit_purchase_order(db: Session, po_id: int) -> PurchaseOrder:
    po = get_purchase_order(db, po_id, for_update=True)
    _require(po, EDITABLE, "submit")
    if not po.items:
        raise NoItemsError("Purchase order has no items")
    _compute_totals(po)
    po.status = POStatus.SUBMITTED
    db.flush()
    logger.info("PO %s submitted total=%s", po.po_number, po.total_amount)
    return po


def _receipt_batch(data: dict) -> Optional[BatchInfo]:
    number = (data.get("batch_number") or "").strip()
    expiry = data.get("expiry_date")
    if not number and not expiry:
        return None
    return BatchInfo(batch_number=number, expiry_date=expiry)


def receive_purchase_order(
    db: Session,
    po_id: int,
    receipts: Iterable,
    *,
    paid: bool = False,
) -> dict:
    """
    receipts: [{item_id, quantity, batch_number?, expiry_date?}]
    Each receipt increases stock at the line's discounted unit cost. The purchase
    journal is posted once, when the last item is fully received.
    """
    po = get_purchase_order(db, po_id, for_update=True)
    _require(po, RECEIVABLE, "receive")

    rows = [r if isinstance(r, dict) else r.model_dump() for r in (receipts or [])]
    if not rows:
        raise NoItemsError("No items to receive")

    for data in rows:
        li = _get_item(po, data.get("item_id"))
        qty = D(data.get("quantity"))
        label = item_label(li.product, li.variant)
        if qty <= 0:
            raise InvalidQuantityError(f"{label}: Received quantity must be greater than 0")
        if D(li.received_quantity) + qty > D(li.quantity):
            raise InvalidQuantityError(
                f"{label}: Received quantity exceeds ordered quantity "
                f"(ordered {D(li.quantity)}, received {D(li.received_quantity)}, receiving {qty})"
            )

        batch = _receipt_batch(data)
        if batch is not None:
            batch.purchase_order_id = po.id
        try:
            increase_stock(
                db,
                branch_id=po.branch_id,
                product_id=li.product_id,
                variant_id=li.variant_id,
                quantity=qty,
                unit_cost=_landed_unit_cost(li),
                movement_type=MovementType.PURCHASE_IN,
                reference_type="PURCHASE_ORDER",
                reference_id=po.id,
                batch=batch,
                notes=po.po_number,
            )
        except PetcareError as e:
            raise e.with_context(label) from e
        li.received_quantity = D(li.received_quantity) + qty

    entry = None
    fully = all(D(li.received_quantity) >= D(li.quantity) for li in po.items)
    if fully:
        po.status = POStatus.RECEIVED
        po.received_at = now_local()
        po.paid = bool(paid)
        _compute_totals(po)
        if po.paid:
            po.paid_amount = money2(po.total_amount)

        inventory: List[InventoryItem] = []
        tax_total = Decimal("0.00")
        for li in po.items:
            inventory.append(InventoryItem(
                category=li.product.category_name,
                amount=_compute_line(li),
                name=li.product.name,
            ))
            tax_total += money2(li.tax)

        db.flush()
        entry = post_purchase_journal(
            db,
            purchase_order_id=po.id,
            po_number=po.po_number,
            order_date=po.order_date,
            branch_id=po.branch_id,
            total_amount=po.total_amount,
            items=inventory,
            tax_amount=tax_total,
            paid=po.paid,
        )
        logger.info("PO %s fully received (paid=%s)", po.po_number, po.paid)
    else:
        po.status = POStatus.PARTIALLY_RECEIVED
        db.flush()

    return {"purchase_order": po, "journal_entry": entry}


def cancel_purchase_order(db: Session, po_id: int, reason: str = "") -> PurchaseOrder:
    po = get_purchase_order(db, po_id, for_update=True)
    if po.status in (POStatus.RECEIVED, POStatus.PARTIALLY_RECEIVED):
        raise StatusConflictError("Cannot cancel a purchase order that has received items")
    _require(po, CANCELLABLE, "cancel")
    po.status = POStatus.CANCELLED
    po.cancelled_at = now_local()
    po.cancel_reason = (reason or "").strip()
    db.flush()
    logger.info("PO %s cancelled", po.po_number)
    return po


# -------------------------
# Accounts payable
# -------------------------
def outstanding_of(po: PurchaseOrder) -> Decimal:
    if po.status != POStatus.RECEIVED:
        return Decimal("0.00")
    left = money2(D(po.total_amount) - D(po.paid_amount))
    return left if left > 0 else Decimal("0.00")


def list_payables(db: Session, supplier_id: Optional[int] = None) -> List[dict]:
    """Received purchase orders still owed to the supplier, oldest first."""
    q = _po_q(db).filter(PurchaseOrder.status == POStatus.RECEIVED, PurchaseOrder.paid.is_(False))
    if supplier_id:
        q = q.filter(PurchaseOrder.supplier_id == supplier_id)
    out = []
    for po in q.order_by(PurchaseOrder.order_date.asc(), PurchaseOrder.id.asc()).all():
        left = outstanding_of(po)
        if left > 0:
            out.append({"purchase_order": po, "outstanding": left})
    return out


def pay_purchase_order(
    db: Session,
    po_id: int,
    *,
    amount=None,
    bank_account_id: Optional[int] = None,
    payment_date: Optional[date] = None,
    reference_number: Optional[str] = None,
) -> dict:
    """
    Settles supplier payables. With a bank account the payment is a bank
    withdrawal against Accounts Payable (and lands on the bank register);
    without one it is paid from the cash drawer.
    """
    po = get_purchase_order(db, po_id, for_update=True)
    if po.status != POStatus.RECEIVED:
        raise StatusConflictError("Only fully received purchase orders can be paid")
    outstanding = outstanding_of(po)
    if outstanding <= 0:
        raise ConflictStateError(f"Purchase order {po.po_number} is already fully paid")

    amount = outstanding if amount is None else money2(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    if amount > outstanding:
        raise PaymentExceedsTotalError(
            f"Payment ({amount}) exceeds outstanding payable ({outstanding})",
            details={"outstanding": outstanding, "amount": amount},
        )

    bank_tx = None
    if bank_account_id:
        bank_tx = record_transaction(
            db,
            bank_account_id=bank_account_id,
            transaction_type="WITHDRAWAL",
            amount=amount,
            description=f"Pembayaran {po.po_number} - {po.supplier.name}",
            transaction_date=payment_date,
            reference_number=reference_number or po.po_number,
            counter_account_code=ACCOUNTS.AP_ACCOUNT,
            purchase_order_id=po.id,
        )
        entry = bank_tx.journal_entry
    else:
        entry = post_supplier_payment_journal(
            db,
            purchase_order_id=po.id,
            po_number=po.po_number,
            amount=amount,
            payment_date=payment_date,
            branch_id=po.branch_id,
        )

    po.paid_amount = money2(D(po.paid_amount) + amount)
    po.paid = po.paid_amount >= money2(po.total_amount)
    db.flush()
    logger.info("PO %s paid %s (outstanding %s)", po.po_number, amount, outstanding_of(po))
    return {
        "purchase_order": po,
        "amount": amount,
        "outstanding": outstanding_of(po),
        "journal_entry": entry,
        "bank_transaction": bank_tx,
    }
