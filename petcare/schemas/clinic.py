# FILE: petcare/schemas/clinic.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from petcare.models.clinic import AppointmentStatus
from petcare.models.sales import DiscountType, PaymentMethod
from petcare.schemas.common import PaymentIn, PaymentOut


class AppointmentCreate(BaseModel):
    branch_id: int
    pet_id: int
    customer_id: int
    staff_id: int
    appointment_date: date
    appointment_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    appointment_number: Optional[str] = None
    chief_complaint: Optional[str] = None
    notes: Optional[str] = None


class RescheduleIn(BaseModel):
    appointment_date: date
    appointment_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    staff_id: Optional[int] = None


class StartExaminationIn(BaseModel):
    chief_complaint: Optional[str] = None


class ExaminationIn(BaseModel):
    chief_complaint: Optional[str] = None
    temperature: Optional[Decimal] = None
    weight: Optional[Decimal] = None
    heart_rate: Optional[int] = None
    respiratory_rate: Optional[int] = None
    physical_examination: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    notes: Optional[str] = None


class ServiceLineIn(BaseModel):
    service_id: int
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    quantity: Decimal = Field(Decimal("1"), ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_type: DiscountType = DiscountType.NOMINAL
    is_prescription: bool = False
    prescription_dosage: Optional[str] = None
    notes: Optional[str] = None


class ServiceLineUpdate(BaseModel):
    quantity: Optional[Decimal] = Field(None, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_type: Optional[DiscountType] = None
    is_prescription: Optional[bool] = None
    prescription_dosage: Optional[str] = None
    notes: Optional[str] = None


class AppointmentSubmitIn(BaseModel):
    payments: List[PaymentIn] = []


class DispenseIn(BaseModel):
    service_ids: Optional[List[int]] = None


class ClinicPaymentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class ServiceLineOut(BaseModel):
    id: int
    service_id: int
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    quantity: Decimal
    unit_price: Decimal
    discount_amount: Decimal
    discount_type: str
    subtotal: Decimal
    cogs: Decimal
    is_prescription: bool
    prescription_dosage: Optional[str] = None
    prescription_picked_up: Optional[bool] = None
    prescription_pickup_date: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AppointmentOut(BaseModel):
    id: int
    appointment_number: str
    branch_id: int
    pet_id: int
    customer_id: int
    staff_id: int
    appointment_date: date
    appointment_time: str
    status: AppointmentStatus
    subtotal: Decimal
    discount_amount: Decimal
    discount_type: str
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    chief_complaint: Optional[str] = None
    temperature: Optional[Decimal] = None
    weight: Optional[Decimal] = None
    heart_rate: Optional[int] = None
    respiratory_rate: Optional[int] = None
    physical_examination: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    notes: Optional[str] = None
    active_services: List[ServiceLineOut] = []
    payments: List[PaymentOut] = []

    model_config = ConfigDict(from_attributes=True)
