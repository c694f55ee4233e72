# FILE: petcare/services/inventory_ledger.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.orm import Session, selectinload

from petcare.models.master import Product, ProductVariant
from petcare.models.stock import (
    MovementType,
    ProductStock,
    ProductStockBatch,
    StockMovement,
    variant_key_of,
)
from petcare.services.errors import (
    ConflictStateError,
    InsufficientStockError,
    InvalidQuantityError,
    NotFoundError,
    ValidationError,
)
from petcare.services.journal_posting import (
    InventoryItem,
    post_adjustment_journal,
    post_initial_stock_journal,
)
from petcare.services.line_calc import D, money2
from petcare.utils.timezone import now_local, today_local

logger = logging.getLogger(__name__)

# Empty type counts as a stocked product
TRACKED_TYPES = {"", "product", "medicine"}

ZERO = Decimal("0")


def cost4(x) -> Decimal:
    return D(x).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def fmt_qty(x) -> str:
    v = D(x).normalize()
    return format(v, "f")


@dataclass
class BatchInfo:
    batch_number: str
    expiry_date: Optional[date] = None
    received_date: Optional[date] = None
    purchase_order_id: Optional[int] = None


@dataclass
class StockResult:
    cogs: Decimal = Decimal("0.00")
    average_cost: Decimal = ZERO
    quantity: Decimal = ZERO
    stock_id: Optional[int] = None
    movement_id: Optional[int] = None


def is_tracked(product: Product) -> bool:
    return (product.product_type or "").strip().lower() in TRACKED_TYPES


def get_product(db: Session, product_id: int) -> Product:
    p = db.get(Product, product_id)
    if not p or p.deleted_at is not None:
        raise NotFoundError("Product not found")
    return p


def _check_variant(db: Session, product: Product, variant_id: Optional[int]) -> Optional[ProductVariant]:
    if not variant_id:
        return None
    v = db.get(ProductVariant, variant_id)
    if not v or v.product_id != product.id:
        raise NotFoundError("Product variant not found")
    return v


def lock_stock(db: Session, branch_id: int, product_id: int, variant_id: Optional[int]) -> Optional[ProductStock]:
    return (
        db.query(ProductStock)
        .filter(
            ProductStock.branch_id == branch_id,
            ProductStock.product_id == product_id,
            ProductStock.variant_key == variant_key_of(variant_id),
        )
        .with_for_update()
        .first()
    )


def _movement(
    db: Session,
    *,
    branch_id: int,
    product_id: int,
    variant_id: Optional[int],
    movement_type: MovementType,
    quantity: Decimal,
    unit_cost: Decimal,
    reference_type: str,
    reference_id,
    notes: str = "",
) -> StockMovement:
    """Central creator for StockMovement so the audit trail stays consistent."""
    mv = StockMovement(
        branch_id=branch_id,
        product_id=product_id,
        variant_id=variant_id or None,
        movement_type=MovementType(movement_type).value,
        quantity=quantity,
        unit_cost=cost4(unit_cost),
        reference_type=reference_type or "",
        reference_id=str(reference_id) if reference_id is not None else None,
        movement_date=now_local(),
        notes=notes or "",
    )
    db.add(mv)
    return mv


def _add_batch(
    db: Session,
    *,
    branch_id: int,
    product_id: int,
    variant_id: Optional[int],
    quantity: Decimal,
    batch: BatchInfo,
) -> ProductStockBatch:
    b = ProductStockBatch(
        branch_id=branch_id,
        product_id=product_id,
        variant_id=variant_id or None,
        variant_key=variant_key_of(variant_id),
        batch_number=batch.batch_number.strip(),
        expiry_date=batch.expiry_date,
        quantity=quantity,
        initial_quantity=quantity,
        received_date=batch.received_date or today_local(),
        purchase_order_id=batch.purchase_order_id,
    )
    db.add(b)
    return b


def _fefo_query(db: Session, branch_id: int, product_id: int, variant_id: Optional[int]):
    # NULL expiry sorts last on every backend
    nulls_last = case((ProductStockBatch.expiry_date.is_(None), 1), else_=0)
    return (
        db.query(ProductStockBatch)
        .filter(
            ProductStockBatch.branch_id == branch_id,
            ProductStockBatch.product_id == product_id,
            ProductStockBatch.variant_key == variant_key_of(variant_id),
            ProductStockBatch.quantity > 0,
        )
        .order_by(
            nulls_last.asc(),
            ProductStockBatch.expiry_date.asc(),
            ProductStockBatch.id.asc(),
        )
    )


def deplete_batches_fefo(
    db: Session,
    branch_id: int,
    product_id: int,
    variant_id: Optional[int],
    quantity: Decimal,
) -> List[Tuple[ProductStockBatch, Decimal]]:
    """
    First-expiry-first-out depletion. Each deduction is clamped to the
    batch's remaining quantity. Returns [(batch, qty_taken)].
    """
    remaining = D(quantity)
    taken: List[Tuple[ProductStockBatch, Decimal]] = []

    for batch in _fefo_query(db, branch_id, product_id, variant_id).with_for_update().all():
        if remaining <= 0:
            break
        available = D(batch.quantity)
        use = available if available <= remaining else remaining
        if use <= 0:
            continue
        batch.quantity = available - use
        taken.append((batch, use))
        remaining -= use

    if remaining > 0:
        # Stock row is authoritative; batches should always cover it
        logger.warning(
            "FEFO batches short by %s for branch=%s product=%s variant=%s",
            remaining, branch_id, product_id, variant_id,
        )
    return taken


# -------------------------
# Increase
# -------------------------
def increase_stock(
    db: Session,
    *,
    branch_id: int,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity,
    unit_cost=None,
    movement_type: MovementType = MovementType.PURCHASE_IN,
    reference_type: str = "",
    reference_id=None,
    batch: Optional[BatchInfo] = None,
    notes: str = "",
) -> StockResult:
    """
    Weighted average on every inbound movement:
        new_avg = (q0 * c0 + dq * c) / (q0 + dq)
    A missing unit cost keeps the current average (or uses the
    product's purchase price when the row is new).
    Expiry-tracked products must arrive with a batch number and expiry
    date so FEFO depletion always has lots to draw from.
    """
    product = get_product(db, product_id)
    if not is_tracked(product):
        return StockResult()
    _check_variant(db, product, variant_id)

    qty = D(quantity)
    if qty <= 0:
        raise InvalidQuantityError("Quantity must be greater than 0")

    if product.has_expiry:
        has_batch = batch is not None and (batch.batch_number or "").strip() and batch.expiry_date
        if not has_batch:
            raise ValidationError("Batch number and expiry date are required for products with expiry")

    row = lock_stock(db, branch_id, product_id, variant_id)
    if row is None:
        cost = cost4(unit_cost if unit_cost is not None else product.purchase_price)
        row = ProductStock(
            branch_id=branch_id,
            product_id=product_id,
            variant_id=variant_id or None,
            variant_key=variant_key_of(variant_id),
            quantity=qty,
            average_cost=cost,
            last_updated=now_local(),
        )
        db.add(row)
    else:
        q0 = D(row.quantity)
        c0 = D(row.average_cost)
        cost = cost4(unit_cost) if unit_cost is not None else c0
        new_qty = q0 + qty
        row.average_cost = cost4((q0 * c0 + qty * cost) / new_qty)
        row.quantity = new_qty
        row.last_updated = now_local()

    if product.has_expiry:
        _add_batch(db, branch_id=branch_id, product_id=product_id, variant_id=variant_id, quantity=qty, batch=batch)

    mv = _movement(
        db,
        branch_id=branch_id,
        product_id=product_id,
        variant_id=variant_id,
        movement_type=movement_type,
        quantity=qty,
        unit_cost=cost,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )
    db.flush()

    return StockResult(
        cogs=money2(qty * cost),
        average_cost=D(row.average_cost),
        quantity=D(row.quantity),
        stock_id=row.id,
        movement_id=mv.id,
    )


# -------------------------
# Decrease
# -------------------------
def decrease_stock(
    db: Session,
    *,
    branch_id: int,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity,
    reference_type: str = "",
    reference_id=None,
    movement_type: MovementType = MovementType.SALE_OUT,
    notes: str = "",
) -> StockResult:
    """
    COGS uses the pre-decrease average; the average itself never moves on
    an outbound movement. Rejected decreases leave the row untouched.
    """
    product = get_product(db, product_id)
    if not is_tracked(product):
        return StockResult()

    qty = D(quantity)
    if qty <= 0:
        raise InvalidQuantityError("Quantity must be greater than 0")

    row = lock_stock(db, branch_id, product_id, variant_id)
    if row is None:
        raise NotFoundError("Stock not found for this product in this branch")

    available = D(row.quantity)
    if qty > available:
        raise InsufficientStockError(
            f"Insufficient stock. Available: {fmt_qty(available)}, Required: {fmt_qty(qty)}",
            details={"available": available, "required": qty},
        )

    avg = D(row.average_cost)
    cogs = money2(avg * qty)

    row.quantity = available - qty
    row.last_updated = now_local()

    if product.has_expiry:
        deplete_batches_fefo(db, branch_id, product_id, variant_id, qty)

    mv = _movement(
        db,
        branch_id=branch_id,
        product_id=product_id,
        variant_id=variant_id,
        movement_type=movement_type,
        quantity=-qty,
        unit_cost=avg,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )
    db.flush()

    return StockResult(
        cogs=cogs,
        average_cost=avg,
        quantity=D(row.quantity),
        stock_id=row.id,
        movement_id=mv.id,
    )


# -------------------------
# Transfer
# -------------------------
def transfer_stock(
    db: Session,
    *,
    from_branch_id: int,
    to_branch_id: int,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity,
    notes: str = "",
) -> dict:
    product = get_product(db, product_id)
    qty = D(quantity)
    if qty <= 0:
        raise InvalidQuantityError("Quantity must be greater than 0")
    if from_branch_id == to_branch_id:
        raise ValidationError("Source and destination branch must differ")
    if not is_tracked(product):
        return {"reference": None, "quantity": ZERO, "average_cost": ZERO}
    _check_variant(db, product, variant_id)

    src = lock_stock(db, from_branch_id, product_id, variant_id)
    if src is None:
        raise NotFoundError("Source stock not found")
    if qty > D(src.quantity):
        raise InsufficientStockError(
            f"Insufficient stock. Available: {fmt_qty(src.quantity)}, Required: {fmt_qty(qty)}"
        )

    reference = f"TRANSFER-{int(now_local().timestamp() * 1000)}"
    src_avg = D(src.average_cost)

    src.quantity = D(src.quantity) - qty
    src.last_updated = now_local()
    moved_batches = []
    if product.has_expiry:
        moved_batches = deplete_batches_fefo(db, from_branch_id, product_id, variant_id, qty)

    dest = lock_stock(db, to_branch_id, product_id, variant_id)
    if dest is None:
        dest = ProductStock(
            branch_id=to_branch_id,
            product_id=product_id,
            variant_id=variant_id or None,
            variant_key=variant_key_of(variant_id),
            quantity=qty,
            average_cost=cost4(src_avg),
            last_updated=now_local(),
        )
        db.add(dest)
    else:
        q0 = D(dest.quantity)
        c0 = D(dest.average_cost)
        dest.average_cost = cost4((q0 * c0 + qty * src_avg) / (q0 + qty))
        dest.quantity = q0 + qty
        dest.last_updated = now_local()

    for batch, used in moved_batches:
        _add_batch(
            db,
            branch_id=to_branch_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=used,
            batch=BatchInfo(batch_number=batch.batch_number, expiry_date=batch.expiry_date),
        )

    note = notes or f"Transfer {from_branch_id} -> {to_branch_id}"
    _movement(
        db, branch_id=from_branch_id, product_id=product_id, variant_id=variant_id,
        movement_type=MovementType.TRANSFER_OUT, quantity=-qty, unit_cost=src_avg,
        reference_type="TRANSFER", reference_id=reference, notes=note,
    )
    _movement(
        db, branch_id=to_branch_id, product_id=product_id, variant_id=variant_id,
        movement_type=MovementType.TRANSFER_IN, quantity=qty, unit_cost=src_avg,
        reference_type="TRANSFER", reference_id=reference, notes=note,
    )
    db.flush()
    logger.info(
        "Transferred %s of product=%s from branch %s to %s (%s)",
        fmt_qty(qty), product_id, from_branch_id, to_branch_id, reference,
    )
    return {
        "reference": reference,
        "quantity": qty,
        "average_cost": src_avg,
        "source_quantity": D(src.quantity),
        "destination_quantity": D(dest.quantity),
        "destination_average_cost": D(dest.average_cost),
    }


# -------------------------
# Adjustment / initial stock
# -------------------------
def adjust_stock(
    db: Session,
    *,
    branch_id: int,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity,
    reason: str,
    batch: Optional[BatchInfo] = None,
) -> dict:
    """
    Signed quantity: positive = found stock, negative = shrinkage.
    Cost = |qty| x average cost; an adjustment journal is posted.
    """
    product = get_product(db, product_id)
    if not is_tracked(product):
        raise ValidationError("Services and procedures do not carry stock")
    _check_variant(db, product, variant_id)

    qty = D(quantity)
    if qty == 0:
        raise InvalidQuantityError("Adjustment quantity cannot be zero")
    if not (reason or "").strip():
        raise ValidationError("Adjustment reason is required")

    reference = f"ADJ-{int(now_local().timestamp() * 1000)}"
    row = lock_stock(db, branch_id, product_id, variant_id)

    if qty > 0:
        unit_cost = D(row.average_cost) if row is not None else D(product.purchase_price)
        res = increase_stock(
            db,
            branch_id=branch_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=qty,
            unit_cost=unit_cost,
            movement_type=MovementType.ADJUSTMENT_IN,
            reference_type="ADJUSTMENT",
            reference_id=reference,
            batch=batch,
            notes=reason,
        )
        cost = money2(qty * unit_cost)
    else:
        if row is None:
            raise InvalidQuantityError("Cannot reduce stock that does not exist")
        res = decrease_stock(
            db,
            branch_id=branch_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=-qty,
            reference_type="ADJUSTMENT",
            reference_id=reference,
            movement_type=MovementType.ADJUSTMENT_OUT,
            notes=reason,
        )
        cost = res.cogs

    entry = post_adjustment_journal(
        db,
        adjustment_id=res.movement_id,
        branch_id=branch_id,
        description=f"Penyesuaian stok {product.name}: {reason.strip()}",
        items=[(InventoryItem(category=product.category_name, amount=cost, name=product.name), qty)],
    )
    logger.info("Stock adjusted product=%s branch=%s qty=%s cost=%s", product_id, branch_id, fmt_qty(qty), cost)
    return {
        "reference": reference,
        "quantity": res.quantity,
        "average_cost": res.average_cost,
        "cost": cost,
        "journal_entry_id": entry.id if entry else None,
    }


def set_initial_stock(
    db: Session,
    *,
    branch_id: int,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity,
    unit_cost=None,
    batch: Optional[BatchInfo] = None,
) -> dict:
    """Opening position; only allowed while no stock row exists yet."""
    product = get_product(db, product_id)
    if not is_tracked(product):
        raise ValidationError("Services and procedures do not carry stock")
    _check_variant(db, product, variant_id)

    if lock_stock(db, branch_id, product_id, variant_id) is not None:
        raise ConflictStateError("Initial stock already recorded for this product in this branch")

    if unit_cost is not None and D(unit_cost) < 0:
        raise ValidationError("Unit cost cannot be negative")

    res = increase_stock(
        db,
        branch_id=branch_id,
        product_id=product_id,
        variant_id=variant_id,
        quantity=quantity,
        unit_cost=unit_cost,
        movement_type=MovementType.INITIAL_STOCK,
        reference_type="INITIAL_STOCK",
        reference_id=None,
        batch=batch,
        notes="Stok awal",
    )
    value = money2(D(res.quantity) * D(res.average_cost))
    entry = post_initial_stock_journal(
        db,
        stock_id=res.stock_id,
        branch_id=branch_id,
        item=InventoryItem(category=product.category_name, amount=value, name=product.name),
    )
    return {
        "stock_id": res.stock_id,
        "quantity": res.quantity,
        "average_cost": res.average_cost,
        "value": value,
        "journal_entry_id": entry.id if entry else None,
    }


# -------------------------
# Queries
# -------------------------
def get_stock(db: Session, branch_id: int, product_id: int, variant_id: Optional[int] = None) -> Optional[ProductStock]:
    return (
        db.query(ProductStock)
        .filter(
            ProductStock.branch_id == branch_id,
            ProductStock.product_id == product_id,
            ProductStock.variant_key == variant_key_of(variant_id),
        )
        .first()
    )


def list_stock(db: Session, branch_id: Optional[int] = None, product_id: Optional[int] = None) -> List[ProductStock]:
    q = db.query(ProductStock).options(selectinload(ProductStock.product), selectinload(ProductStock.variant))
    if branch_id:
        q = q.filter(ProductStock.branch_id == branch_id)
    if product_id:
        q = q.filter(ProductStock.product_id == product_id)
    return q.order_by(ProductStock.branch_id.asc(), ProductStock.product_id.asc(), ProductStock.variant_key.asc()).all()


def list_movements(
    db: Session,
    *,
    branch_id: Optional[int] = None,
    product_id: Optional[int] = None,
    movement_type: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    limit: int = 200,
) -> List[StockMovement]:
    q = db.query(StockMovement)
    if branch_id:
        q = q.filter(StockMovement.branch_id == branch_id)
    if product_id:
        q = q.filter(StockMovement.product_id == product_id)
    if movement_type:
        q = q.filter(StockMovement.movement_type == MovementType(movement_type).value)
    if reference_type:
        q = q.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == str(reference_id))
    return q.order_by(StockMovement.movement_date.desc(), StockMovement.id.desc()).limit(min(max(1, limit), 1000)).all()


def list_batches(
    db: Session,
    branch_id: int,
    product_id: int,
    variant_id: Optional[int] = None,
    include_empty: bool = False,
) -> List[ProductStockBatch]:
    """FEFO order."""
    if not include_empty:
        return _fefo_query(db, branch_id, product_id, variant_id).all()
    nulls_last = case((ProductStockBatch.expiry_date.is_(None), 1), else_=0)
    return (
        db.query(ProductStockBatch)
        .filter(
            ProductStockBatch.branch_id == branch_id,
            ProductStockBatch.product_id == product_id,
            ProductStockBatch.variant_key == variant_key_of(variant_id),
        )
        .order_by(nulls_last.asc(), ProductStockBatch.expiry_date.asc(), ProductStockBatch.id.asc())
        .all()
    )


def get_stock_value(db: Session, branch_id: Optional[int] = None) -> dict:
    q = db.query(
        func.count(ProductStock.id),
        func.coalesce(func.sum(ProductStock.quantity * ProductStock.average_cost), 0),
    )
    if branch_id:
        q = q.filter(ProductStock.branch_id == branch_id)
    count, value = q.one()
    return {"branch_id": branch_id, "positions": int(count or 0), "total_value": money2(value)}
