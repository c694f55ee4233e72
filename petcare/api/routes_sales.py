# FILE: petcare/api/routes_sales.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.common import DiscountTaxIn, ReasonIn
from petcare.schemas.sales import (
    SaleCreate,
    SaleItemIn,
    SaleItemUpdate,
    SaleOut,
    SalePaymentIn,
    SaleSubmitIn,
)
from petcare.services import sales_service as svc
from petcare.services.errors import PetcareError

router = APIRouter(prefix="/sales", tags=["sales"])


def _out(sale):
    return SaleOut.model_validate(sale).model_dump()


@router.get("")
def list_sales(
    branch_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    try:
        rows = svc.list_sales(
            db, branch_id=branch_id, status=status, date_from=date_from,
            date_to=date_to, limit=limit, offset=offset,
        )
        return ok([_out(s) for s in rows])
    except Exception as e:
        return safe_err(e)


@router.get("/{sale_id:int}")
def get_sale(sale_id: int, db: Session = Depends(get_db)):
    try:
        return ok(_out(svc.get_sale(db, sale_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("")
def create_sale(payload: SaleCreate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            sale = svc.create_sale(db, **payload.model_dump())
        return ok(_out(sale), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{sale_id:int}/items")
def add_item(sale_id: int, payload: SaleItemIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            svc.add_item(db, sale_id, **payload.model_dump())
        return ok(_out(svc.get_sale(db, sale_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/{sale_id:int}/items/{item_id:int}")
def update_item(sale_id: int, item_id: int, payload: SaleItemUpdate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            svc.update_item(db, sale_id, item_id, **payload.model_dump(exclude_unset=True))
        return ok(_out(svc.get_sale(db, sale_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/{sale_id:int}/items/{item_id:int}")
def remove_item(sale_id: int, item_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            sale = svc.remove_item(db, sale_id, item_id)
        return ok(_out(sale))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/{sale_id:int}/discount-tax")
def update_discount_tax(sale_id: int, payload: DiscountTaxIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            sale = svc.update_discount_and_tax(db, sale_id, **payload.model_dump())
        return ok(_out(sale))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{sale_id:int}/submit")
def submit(sale_id: int, payload: SaleSubmitIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.submit_sale(db, sale_id, payload.payments)
        entry = res["journal_entry"]
        return ok({
            "sale": _out(res["sale"]),
            "total": res["total"],
            "paid": res["paid"],
            "change": res["change"],
            "outstanding": res["outstanding"],
            "journal_entry_id": entry.id if entry else None,
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{sale_id:int}/payments")
def add_payment(sale_id: int, payload: SalePaymentIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.add_payment(db, sale_id, **payload.model_dump())
        entry = res["journal_entry"]
        return ok({
            "sale": _out(res["sale"]),
            "change": res["change"],
            "journal_entry_id": entry.id if entry else None,
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{sale_id:int}/cancel")
def cancel(sale_id: int, payload: ReasonIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            sale = svc.cancel_sale(db, sale_id, payload.reason)
        return ok(_out(sale))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/{sale_id:int}")
def delete(sale_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            sale = svc.delete_sale(db, sale_id)
        return ok({"id": sale.id, "deleted": True})
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)
