# FILE: petcare/models/master.py
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, Text,
    Enum, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from petcare.db.base import Base

Money = Numeric(14, 2)


class ProductType(str, enum.Enum):
    PRODUCT = "product"
    MEDICINE = "medicine"
    SERVICE = "service"
    PROCEDURE = "procedure"


class RoomStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    OCCUPIED = "OCCUPIED"
    MAINTENANCE = "MAINTENANCE"


# -------------------------
# Organisation
# -------------------------
class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    address = Column(String(500), default="")
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# -------------------------
# Catalogue
# -------------------------
class ProductCategory(Base):
    """
    Category names drive account selection ("Pet Food", "Medicine",
    "Accessories", "Vaccine", "Grooming", "Medical" ...).
    """
    __tablename__ = "product_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_category", "category_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # Empty, "product" or "medicine" are stock-tracked; "service" / "procedure" are not
    product_type = Column(String(30), nullable=False, default=ProductType.PRODUCT.value)
    category_id = Column(Integer, ForeignKey("product_categories.id"), nullable=True)

    has_expiry = Column(Boolean, default=False, nullable=False)
    purchase_price = Column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    selling_price = Column(Money, nullable=False, default=Decimal("0.00"))

    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    category = relationship("ProductCategory", back_populates="products")
    variants = relationship("ProductVariant", back_populates="product")

    @property
    def category_name(self) -> str:
        return self.category.name if self.category else ""


class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (
        UniqueConstraint("product_id", "variant_value", name="uq_product_variant_value"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_name = Column(String(100), nullable=False, default="")
    variant_value = Column(String(100), nullable=False)
    sku = Column(String(100), nullable=True, unique=True)
    purchase_price = Column(Numeric(14, 4), nullable=True)
    selling_price = Column(Money, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    product = relationship("Product", back_populates="variants")


# -------------------------
# Parties
# -------------------------
class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), default="")
    address = Column(String(1000), default="")
    deleted_at = Column(DateTime, nullable=True)

    pets = relationship("CustomerPet", back_populates="customer")


class CustomerPet(Base):
    __tablename__ = "customer_pets"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    species = Column(String(100), default="")
    breed = Column(String(100), default="")
    deleted_at = Column(DateTime, nullable=True)

    customer = relationship("Customer", back_populates="pets")


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), default="")
    payment_terms = Column(String(255), default="")
    is_active = Column(Boolean, default=True, nullable=False)


class ClinicStaff(Base):
    __tablename__ = "clinic_staff"

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    name = Column(String(200), nullable=False)
    role = Column(String(50), nullable=False, default="Veterinarian")
    is_active = Column(Boolean, default=True, nullable=False)


class HotelRoom(Base):
    __tablename__ = "hotel_rooms"

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    room_type = Column(String(50), nullable=False, default="Standard")
    daily_rate = Column(Money, nullable=False, default=Decimal("0.00"))
    status = Column(Enum(RoomStatus, name="hotel_room_status"), nullable=False, default=RoomStatus.AVAILABLE)
    is_active = Column(Boolean, default=True, nullable=False)
    notes = Column(Text, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
