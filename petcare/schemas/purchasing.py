# FILE: petcare/schemas/purchasing.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from petcare.models.purchasing import POStatus


class POItemIn(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal = Field(..., ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    notes: str = ""


class POItemUpdate(BaseModel):
    quantity: Optional[Decimal] = Field(None, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount: Optional[Decimal] = Field(None, ge=0)
    tax: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class POCreate(BaseModel):
    supplier_id: int
    branch_id: int
    order_date: Optional[date] = None
    expected_delivery_date: Optional[date] = None
    po_number: Optional[str] = None
    notes: str = ""
    items: List[POItemIn] = []


class POUpdate(BaseModel):
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = None


class ReceiptLineIn(BaseModel):
    item_id: int
    quantity: Decimal = Field(..., gt=0)
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None


class ReceiveIn(BaseModel):
    items: List[ReceiptLineIn] = Field(..., min_length=1)
    paid: bool = False


class CancelPOIn(BaseModel):
    reason: str = ""


class POItemOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal
    received_quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    tax: Decimal
    subtotal: Decimal
    notes: str

    model_config = ConfigDict(from_attributes=True)


class POOut(BaseModel):
    id: int
    po_number: str
    supplier_id: int
    branch_id: int
    order_date: date
    expected_delivery_date: Optional[date] = None
    status: POStatus
    total_amount: Decimal
    paid: bool
    paid_amount: Decimal = Decimal("0.00")
    received_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: str
    notes: str
    items: List[POItemOut] = []

    model_config = ConfigDict(from_attributes=True)
