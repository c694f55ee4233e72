# FILE: petcare/schemas/common.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from petcare.models.sales import DiscountType, PaymentMethod


class PaymentIn(BaseModel):
    amount: Decimal = Field(..., description="Non-positive amounts are ignored")
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class DiscountTaxIn(BaseModel):
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_type: DiscountType = DiscountType.NOMINAL
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)


class ReasonIn(BaseModel):
    reason: Optional[str] = None


class PaymentOut(BaseModel):
    id: int
    amount: Decimal
    payment_method: str
    reference_number: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
