# FILE: petcare/models/hotel.py
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, Text,
    Enum, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from petcare.db.base import Base

Money = Numeric(14, 2)
Qty = Numeric(14, 4)


class BookingStatus(str, enum.Enum):
    RESERVED = "RESERVED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"


class HotelPaymentType(str, enum.Enum):
    DEPOSIT = "Deposit"
    PARTIAL = "PartialPayment"
    FULL = "FullPayment"
    # Written by cancellation only
    REFUND = "Refund"


class HotelBooking(Base):
    __tablename__ = "hotel_bookings"
    __table_args__ = (
        UniqueConstraint("booking_number", name="uq_hotel_bookings_number"),
        Index("ix_hotel_bookings_room_dates", "room_id", "check_in_date", "check_out_date"),
        Index("ix_hotel_bookings_branch", "branch_id"),
    )

    id = Column(Integer, primary_key=True)
    booking_number = Column(String(50), nullable=False, index=True)

    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    pet_id = Column(Integer, ForeignKey("customer_pets.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("hotel_rooms.id"), nullable=False)

    check_in_date = Column(DateTime, nullable=False)
    check_out_date = Column(DateTime, nullable=False)
    actual_check_in_date = Column(DateTime, nullable=True)
    actual_check_out_date = Column(DateTime, nullable=True)

    status = Column(Enum(BookingStatus, name="hotel_booking_status"), nullable=False, default=BookingStatus.RESERVED)

    # Locked in at booking time
    number_of_days = Column(Integer, nullable=False, default=1)
    daily_rate = Column(Money, nullable=False, default=Decimal("0.00"))
    room_total = Column(Money, nullable=False, default=Decimal("0.00"))

    services_total = Column(Money, nullable=False, default=Decimal("0.00"))
    consumables_total = Column(Money, nullable=False, default=Decimal("0.00"))
    consumables_cost = Column(Money, nullable=False, default=Decimal("0.00"))
    subtotal = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_type = Column(String(10), nullable=False, default="nominal")
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    total_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    paid_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    outstanding_amount = Column(Money, nullable=False, default=Decimal("0.00"))

    own_food = Column(Boolean, nullable=False, default=False)
    special_requests = Column(Text, nullable=True)
    emergency_contact = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    room = relationship("HotelRoom")
    customer = relationship("Customer")
    pet = relationship("CustomerPet")
    services = relationship(
        "HotelBookingService",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="HotelBookingService.id",
    )
    consumables = relationship(
        "HotelConsumable",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="HotelConsumable.id",
    )
    payments = relationship(
        "HotelPayment",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="HotelPayment.id",
    )


class HotelBookingService(Base):
    __tablename__ = "hotel_booking_services"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("hotel_bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    service_date = Column(DateTime, nullable=False, default=datetime.utcnow)

    quantity = Column(Qty, nullable=False, default=Decimal("1"))
    unit_price = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_type = Column(String(10), nullable=False, default="nominal")
    subtotal = Column(Money, nullable=False, default=Decimal("0.00"))

    notes = Column(String(500), nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    booking = relationship("HotelBooking", back_populates="services")
    service = relationship("Product")


class HotelConsumable(Base):
    __tablename__ = "hotel_consumables"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("hotel_bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    consumption_date = Column(DateTime, nullable=False, default=datetime.utcnow)

    quantity = Column(Qty, nullable=False)
    # Average cost at the moment of consumption
    unit_price = Column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    subtotal = Column(Money, nullable=False, default=Decimal("0.00"))
    cost = Column(Money, nullable=False, default=Decimal("0.00"))

    notes = Column(String(500), nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    booking = relationship("HotelBooking", back_populates="consumables")
    product = relationship("Product")


class HotelPayment(Base):
    __tablename__ = "hotel_payments"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("hotel_bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_type = Column(String(30), nullable=False, default=HotelPaymentType.FULL.value)
    amount = Column(Money, nullable=False)
    payment_method = Column(String(30), nullable=False, default="CASH")
    reference_number = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    notes = Column(String(500), nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    booking = relationship("HotelBooking", back_populates="payments")
