# FILE: petcare/models/sales.py
from __future__ import annotations

import enum
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, ForeignKey, Text, Enum,
    Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from petcare.db.base import Base

Money = Numeric(14, 2)
Qty = Numeric(14, 4)


class SaleStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class DiscountType(str, enum.Enum):
    NOMINAL = "nominal"
    PERCENT = "percent"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    QRIS = "QRIS"
    DEBIT_CARD = "DEBIT_CARD"
    CREDIT_CARD = "CREDIT_CARD"


class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        UniqueConstraint("sale_number", name="uq_sales_sale_number"),
        Index("ix_sales_branch_date", "branch_id", "sale_date"),
        Index("ix_sales_customer", "customer_id"),
    )

    id = Column(Integer, primary_key=True)
    sale_number = Column(String(50), nullable=False, index=True)

    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    sale_date = Column(Date, nullable=False, default=date.today)

    status = Column(Enum(SaleStatus, name="sale_status"), nullable=False, default=SaleStatus.DRAFT)

    subtotal = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_type = Column(String(10), nullable=False, default=DiscountType.NOMINAL.value)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    total_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    paid_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    outstanding_amount = Column(Money, nullable=False, default=Decimal("0.00"))

    notes = Column(Text, nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("SaleItem", back_populates="sale", cascade="all, delete-orphan", order_by="SaleItem.id")
    payments = relationship("SalePayment", back_populates="sale", cascade="all, delete-orphan", order_by="SalePayment.id")
    customer = relationship("Customer")


class SaleItem(Base):
    __tablename__ = "sale_items"

    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    quantity = Column(Qty, nullable=False, default=Decimal("0"))
    unit_price = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_type = Column(String(10), nullable=False, default=DiscountType.NOMINAL.value)
    subtotal = Column(Money, nullable=False, default=Decimal("0.00"))
    # Set when the sale is submitted (pre-decrease average cost x qty)
    cogs = Column(Money, nullable=False, default=Decimal("0.00"))

    notes = Column(String(500), nullable=True)

    sale = relationship("Sale", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")


class SalePayment(Base):
    __tablename__ = "sale_payments"

    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    payment_method = Column(String(30), nullable=False, default=PaymentMethod.CASH.value)
    reference_number = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    notes = Column(String(500), nullable=True)

    sale = relationship("Sale", back_populates="payments")
