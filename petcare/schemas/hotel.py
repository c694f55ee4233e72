# FILE: petcare/schemas/hotel.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from petcare.models.hotel import BookingStatus, HotelPaymentType
from petcare.models.sales import DiscountType, PaymentMethod
from petcare.schemas.common import PaymentIn


class BookingCreate(BaseModel):
    branch_id: int
    customer_id: int
    pet_id: int
    room_id: int
    check_in_date: datetime
    check_out_date: datetime
    own_food: bool = False
    booking_number: Optional[str] = None
    special_requests: Optional[str] = None
    emergency_contact: Optional[str] = None
    notes: Optional[str] = None


class HotelServiceIn(BaseModel):
    service_id: int
    quantity: Decimal = Field(Decimal("1"), ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_type: DiscountType = DiscountType.NOMINAL
    service_date: Optional[datetime] = None
    notes: Optional[str] = None


class HotelServiceUpdate(BaseModel):
    quantity: Optional[Decimal] = Field(None, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_type: Optional[DiscountType] = None
    notes: Optional[str] = None


class ConsumableIn(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal = Field(..., gt=0)
    consumption_date: Optional[datetime] = None
    notes: Optional[str] = None


class HotelPaymentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_type: HotelPaymentType = HotelPaymentType.DEPOSIT
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class CheckInIn(BaseModel):
    actual_check_in_date: Optional[datetime] = None


class CheckOutIn(BaseModel):
    payments: List[PaymentIn] = []
    actual_check_out_date: Optional[datetime] = None


class HotelServiceOut(BaseModel):
    id: int
    service_id: int
    service_date: datetime
    quantity: Decimal
    unit_price: Decimal
    discount_amount: Decimal
    discount_type: str
    subtotal: Decimal
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ConsumableOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    consumption_date: datetime
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal
    cost: Decimal
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class HotelPaymentOut(BaseModel):
    id: int
    payment_type: str
    amount: Decimal
    payment_method: str
    reference_number: Optional[str] = None
    payment_date: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingOut(BaseModel):
    id: int
    booking_number: str
    branch_id: int
    customer_id: int
    pet_id: int
    room_id: int
    check_in_date: datetime
    check_out_date: datetime
    actual_check_in_date: Optional[datetime] = None
    actual_check_out_date: Optional[datetime] = None
    status: BookingStatus
    number_of_days: int
    daily_rate: Decimal
    room_total: Decimal
    services_total: Decimal
    consumables_total: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    discount_type: str
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    own_food: bool
    special_requests: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
