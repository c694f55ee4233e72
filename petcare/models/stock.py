# FILE: petcare/models/stock.py
from __future__ import annotations

import enum
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, ForeignKey,
    CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from petcare.db.base import Base

Qty = Numeric(14, 4)
UnitCost = Numeric(14, 4)


class MovementType(str, enum.Enum):
    PURCHASE_IN = "PURCHASE_IN"
    SALE_OUT = "SALE_OUT"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    HOTEL_CONSUMPTION = "HOTEL_CONSUMPTION"
    INITIAL_STOCK = "INITIAL_STOCK"


def variant_key_of(variant_id) -> int:
    return int(variant_id) if variant_id else 0


class ProductStock(Base):
    """
    Running position per (branch, product, variant).
    variant_key is 0 when there is no variant so the UNIQUE constraint holds.
    """
    __tablename__ = "product_stock"
    __table_args__ = (
        UniqueConstraint("branch_id", "product_id", "variant_key", name="uq_product_stock_position"),
        CheckConstraint("quantity >= 0", name="ck_product_stock_non_negative"),
        Index("ix_product_stock_branch_product", "branch_id", "product_id"),
    )

    id = Column(Integer, primary_key=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    variant_key = Column(Integer, nullable=False, default=0)

    quantity = Column(Qty, nullable=False, default=Decimal("0"))
    average_cost = Column(UnitCost, nullable=False, default=Decimal("0"))

    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product")
    variant = relationship("ProductVariant")
    branch = relationship("Branch")


class ProductStockBatch(Base):
    """FEFO lot for products flagged has_expiry."""
    __tablename__ = "product_stock_batches"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_stock_batch_non_negative"),
        CheckConstraint("quantity <= initial_quantity", name="ck_stock_batch_within_initial"),
        Index("ix_stock_batch_position", "branch_id", "product_id", "variant_key"),
        Index("ix_stock_batch_expiry", "branch_id", "expiry_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    variant_key = Column(Integer, nullable=False, default=0)

    batch_number = Column(String(100), nullable=False)
    expiry_date = Column(Date, nullable=True)

    quantity = Column(Qty, nullable=False, default=Decimal("0"))
    initial_quantity = Column(Qty, nullable=False, default=Decimal("0"))

    received_date = Column(Date, nullable=False, default=date.today)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product")


class StockMovement(Base):
    """Append-only audit row. Quantity is signed: +IN / -OUT."""
    __tablename__ = "stock_movements"
    __table_args__ = (
        Index("ix_stock_movements_branch_time", "branch_id", "movement_date"),
        Index("ix_stock_movements_product_time", "product_id", "movement_date"),
        Index("ix_stock_movements_reference", "reference_type", "reference_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    movement_type = Column(String(30), nullable=False)
    quantity = Column(Qty, nullable=False)
    unit_cost = Column(UnitCost, nullable=False, default=Decimal("0"))

    reference_type = Column(String(50), nullable=False, default="")
    reference_id = Column(String(100), nullable=True)

    movement_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    notes = Column(String(1000), default="")

    product = relationship("Product")
