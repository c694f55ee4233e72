# FILE: petcare/api/routes_inventory.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.inventory import (
    AdjustmentIn,
    BatchOut,
    InitialStockIn,
    MovementOut,
    StockOut,
    TransferIn,
)
from petcare.services.errors import PetcareError, ValidationError
from petcare.services.inventory_ledger import (
    BatchInfo,
    adjust_stock,
    get_stock_value,
    list_batches,
    list_movements,
    list_stock,
    set_initial_stock,
    transfer_stock,
)

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _batch(payload) -> Optional[BatchInfo]:
    if payload.batch is None:
        return None
    return BatchInfo(batch_number=payload.batch.batch_number, expiry_date=payload.batch.expiry_date)


@router.get("/stock")
def get_stock_positions(
    branch_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        rows = list_stock(db, branch_id=branch_id, product_id=product_id)
        return ok([StockOut.model_validate(r).model_dump() for r in rows])
    except Exception as e:
        return safe_err(e)


@router.get("/stock/value")
def get_value(branch_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    try:
        return ok(get_stock_value(db, branch_id))
    except Exception as e:
        return safe_err(e)


@router.get("/batches")
def get_batches(
    branch_id: int = Query(...),
    product_id: int = Query(...),
    variant_id: Optional[int] = Query(None),
    include_empty: bool = Query(False),
    db: Session = Depends(get_db),
):
    try:
        rows = list_batches(db, branch_id, product_id, variant_id, include_empty=include_empty)
        return ok([BatchOut.model_validate(r).model_dump() for r in rows])
    except Exception as e:
        return safe_err(e)


@router.get("/movements")
def get_movements(
    branch_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    movement_type: Optional[str] = Query(None),
    reference_type: Optional[str] = Query(None),
    reference_id: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    try:
        rows = list_movements(
            db, branch_id=branch_id, product_id=product_id, movement_type=movement_type,
            reference_type=reference_type, reference_id=reference_id, limit=limit,
        )
        return ok([MovementOut.model_validate(r).model_dump() for r in rows])
    except ValueError:
        return fail(ValidationError(f"Unknown movement type: {movement_type}"))
    except Exception as e:
        return safe_err(e)


@router.post("/initial-stock")
def initial_stock(payload: InitialStockIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = set_initial_stock(
                db,
                branch_id=payload.branch_id,
                product_id=payload.product_id,
                variant_id=payload.variant_id,
                quantity=payload.quantity,
                unit_cost=payload.unit_cost,
                batch=_batch(payload),
            )
        return ok(res, status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/adjustments")
def adjustment(payload: AdjustmentIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = adjust_stock(
                db,
                branch_id=payload.branch_id,
                product_id=payload.product_id,
                variant_id=payload.variant_id,
                quantity=payload.quantity,
                reason=payload.reason,
                batch=_batch(payload),
            )
        return ok(res)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/transfers")
def transfer(payload: TransferIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = transfer_stock(db, **payload.model_dump())
        return ok(res)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)
