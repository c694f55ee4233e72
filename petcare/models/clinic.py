# FILE: petcare/models/clinic.py
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


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ClinicAppointment(Base):
    __tablename__ = "clinic_appointments"
    __table_args__ = (
        UniqueConstraint("appointment_number", name="uq_clinic_appointments_number"),
        Index("ix_clinic_appt_staff_slot", "staff_id", "appointment_date", "appointment_time"),
        Index("ix_clinic_appt_branch_date", "branch_id", "appointment_date"),
    )

    id = Column(Integer, primary_key=True)
    appointment_number = Column(String(50), nullable=False, index=True)

    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    pet_id = Column(Integer, ForeignKey("customer_pets.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    staff_id = Column(Integer, ForeignKey("clinic_staff.id"), nullable=False)

    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(String(5), nullable=False)  # "HH:MM"

    status = Column(Enum(AppointmentStatus, name="clinic_appointment_status"), nullable=False,
                    default=AppointmentStatus.SCHEDULED)

    subtotal = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_type = Column(String(10), nullable=False, default="nominal")
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    total_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    paid_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    outstanding_amount = Column(Money, nullable=False, default=Decimal("0.00"))

    # Examination
    chief_complaint = Column(Text, nullable=True)
    temperature = Column(Numeric(5, 2), nullable=True)
    weight = Column(Numeric(8, 3), nullable=True)
    heart_rate = Column(Integer, nullable=True)
    respiratory_rate = Column(Integer, nullable=True)
    physical_examination = Column(Text, nullable=True)
    diagnosis = Column(Text, nullable=True)
    treatment_plan = Column(Text, nullable=True)

    notes = Column(Text, nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    services = relationship(
        "ClinicAppointmentService",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="ClinicAppointmentService.id",
    )
    payments = relationship(
        "ClinicPayment",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="ClinicPayment.id",
    )
    staff = relationship("ClinicStaff")
    branch = relationship("Branch")

    @property
    def active_services(self):
        return [s for s in (self.services or []) if s.deleted_at is None]


class ClinicAppointmentService(Base):
    __tablename__ = "clinic_appointment_services"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(
        Integer, ForeignKey("clinic_appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Billable service (a product with product_type service/procedure)
    service_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    # Goods used or prescribed during the visit
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    quantity = Column(Qty, nullable=False, default=Decimal("1"))
    unit_price = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_type = Column(String(10), nullable=False, default="nominal")
    subtotal = Column(Money, nullable=False, default=Decimal("0.00"))
    cogs = Column(Money, nullable=False, default=Decimal("0.00"))

    is_prescription = Column(Boolean, nullable=False, default=False)
    prescription_dosage = Column(String(255), nullable=True)
    prescription_picked_up = Column(Boolean, nullable=True)
    prescription_pickup_date = Column(DateTime, nullable=True)

    notes = Column(String(500), nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    appointment = relationship("ClinicAppointment", back_populates="services")
    service = relationship("Product", foreign_keys=[service_id])
    product = relationship("Product", foreign_keys=[product_id])
    variant = relationship("ProductVariant")


class ClinicPayment(Base):
    __tablename__ = "clinic_payments"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(
        Integer, ForeignKey("clinic_appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Money, nullable=False)
    payment_method = Column(String(30), nullable=False, default="CASH")
    reference_number = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    notes = Column(String(500), nullable=True)

    appointment = relationship("ClinicAppointment", back_populates="payments")


class PetMedicalRecord(Base):
    __tablename__ = "pet_medical_records"

    id = Column(Integer, primary_key=True)
    pet_id = Column(Integer, ForeignKey("customer_pets.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("clinic_appointments.id"), nullable=True)
    record_date = Column(Date, nullable=False, default=date.today)
    diagnosis = Column(Text, nullable=True)
    treatment = Column(Text, nullable=True)
    prescription = Column(Text, nullable=True)
    veterinarian = Column(String(200), nullable=True)
    clinic = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
