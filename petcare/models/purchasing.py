# FILE: petcare/models/purchasing.py
from __future__ import annotations

import enum
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric, ForeignKey,
    Text, Enum, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from petcare.db.base import Base

Money = Numeric(14, 2)
Qty = Numeric(14, 4)


class POStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    __table_args__ = (
        UniqueConstraint("po_number", name="uq_purchase_orders_po_number"),
        Index("ix_po_supplier_date", "supplier_id", "order_date"),
        Index("ix_po_branch_date", "branch_id", "order_date"),
        Index("ix_po_status_date", "status", "order_date"),
    )

    id = Column(Integer, primary_key=True)
    po_number = Column(String(50), nullable=False, index=True)

    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)

    order_date = Column(Date, nullable=False, default=date.today)
    expected_delivery_date = Column(Date, nullable=True)

    status = Column(Enum(POStatus, name="po_status"), nullable=False, default=POStatus.DRAFT)
    total_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    # True once the supplier is fully paid (cash on receipt or later payments)
    paid = Column(Boolean, nullable=False, default=False)
    paid_amount = Column(Money, nullable=False, default=Decimal("0.00"))

    received_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String(255), nullable=False, default="")
    notes = Column(Text, nullable=False, default="")

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = relationship("Supplier")
    items = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        Index("ix_po_items_po", "purchase_order_id"),
    )

    id = Column(Integer, primary_key=True)
    purchase_order_id = Column(
        Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    quantity = Column(Qty, nullable=False, default=Decimal("0"))
    received_quantity = Column(Qty, nullable=False, default=Decimal("0"))

    unit_price = Column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    discount = Column(Money, nullable=False, default=Decimal("0.00"))
    # Flat tax amount for the line, added on top of the discounted net
    tax = Column(Money, nullable=False, default=Decimal("0.00"))
    subtotal = Column(Money, nullable=False, default=Decimal("0.00"))

    notes = Column(String(255), nullable=False, default="")

    purchase_order = relationship("PurchaseOrder", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")
