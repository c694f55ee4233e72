# FILE: petcare/schemas/sales.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from petcare.models.sales import DiscountType, PaymentMethod, SaleStatus
from petcare.schemas.common import PaymentIn, PaymentOut


class SaleItemIn(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal = Field(Decimal("1"), ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_type: DiscountType = DiscountType.NOMINAL
    notes: Optional[str] = None


class SaleItemUpdate(BaseModel):
    quantity: Optional[Decimal] = Field(None, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_type: Optional[DiscountType] = None
    notes: Optional[str] = None


class SaleCreate(BaseModel):
    branch_id: int
    customer_id: Optional[int] = None
    sale_date: Optional[date] = None
    sale_number: Optional[str] = None
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_type: DiscountType = DiscountType.NOMINAL
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    notes: Optional[str] = None
    items: List[SaleItemIn] = []


class SaleSubmitIn(BaseModel):
    payments: List[PaymentIn] = []


class SalePaymentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class SaleItemOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal
    unit_price: Decimal
    discount_amount: Decimal
    discount_type: str
    subtotal: Decimal
    cogs: Decimal
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SaleOut(BaseModel):
    id: int
    sale_number: str
    branch_id: int
    customer_id: Optional[int] = None
    sale_date: date
    status: SaleStatus
    subtotal: Decimal
    discount_amount: Decimal
    discount_type: str
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    notes: Optional[str] = None
    created_at: datetime
    items: List[SaleItemOut] = []
    payments: List[PaymentOut] = []

    model_config = ConfigDict(from_attributes=True)
