# FILE: petcare/schemas/inventory.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BatchIn(BaseModel):
    batch_number: str = Field(..., min_length=1, max_length=100)
    expiry_date: Optional[date] = None


class InitialStockIn(BaseModel):
    branch_id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal = Field(..., gt=0)
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    batch: Optional[BatchIn] = None


class AdjustmentIn(BaseModel):
    branch_id: int
    product_id: int
    variant_id: Optional[int] = None
    # signed: + found stock, - shrinkage
    quantity: Decimal
    reason: str = Field(..., min_length=1)
    batch: Optional[BatchIn] = None


class TransferIn(BaseModel):
    from_branch_id: int
    to_branch_id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal = Field(..., gt=0)
    notes: str = ""


class StockOut(BaseModel):
    id: int
    branch_id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity: Decimal
    average_cost: Decimal
    last_updated: datetime

    model_config = ConfigDict(from_attributes=True)


class BatchOut(BaseModel):
    id: int
    branch_id: int
    product_id: int
    variant_id: Optional[int] = None
    batch_number: str
    expiry_date: Optional[date] = None
    quantity: Decimal
    initial_quantity: Decimal
    received_date: date
    purchase_order_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class MovementOut(BaseModel):
    id: int
    branch_id: int
    product_id: int
    variant_id: Optional[int] = None
    movement_type: str
    quantity: Decimal
    unit_cost: Decimal
    reference_type: str
    reference_id: Optional[str] = None
    movement_date: datetime
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
