# FILE: petcare/api/routes_hotel.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.common import DiscountTaxIn, ReasonIn
from petcare.schemas.hotel import (
    BookingCreate,
    BookingOut,
    CheckInIn,
    CheckOutIn,
    ConsumableIn,
    ConsumableOut,
    HotelPaymentIn,
    HotelPaymentOut,
    HotelServiceIn,
    HotelServiceOut,
    HotelServiceUpdate,
)
from petcare.services import hotel_service as svc
from petcare.services.errors import PetcareError

router = APIRouter(prefix="/hotel", tags=["hotel"])


def _out(booking):
    data = BookingOut.model_validate(booking).model_dump()
    data["services"] = [HotelServiceOut.model_validate(s).model_dump() for s in booking.services if s.deleted_at is None]
    data["consumables"] = [ConsumableOut.model_validate(c).model_dump() for c in booking.consumables if c.deleted_at is None]
    data["payments"] = [HotelPaymentOut.model_validate(p).model_dump() for p in booking.payments]
    return data


@router.get("/bookings")
def list_bookings(
    branch_id: Optional[int] = Query(None),
    room_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    try:
        rows = svc.list_bookings(db, branch_id=branch_id, room_id=room_id, status=status, limit=limit, offset=offset)
        return ok([_out(b) for b in rows])
    except Exception as e:
        return safe_err(e)


@router.get("/bookings/{booking_id:int}")
def get_booking(booking_id: int, db: Session = Depends(get_db)):
    try:
        return ok(_out(svc.get_booking(db, booking_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.get("/bookings/{booking_id:int}/invoice")
def invoice(booking_id: int, db: Session = Depends(get_db)):
    try:
        return ok(svc.generate_invoice(db, booking_id))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bookings")
def create_booking(payload: BookingCreate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            booking = svc.create_booking(db, **payload.model_dump())
        return ok(_out(booking), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bookings/{booking_id:int}/check-in")
def check_in(booking_id: int, payload: CheckInIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            booking = svc.check_in(db, booking_id, payload.actual_check_in_date)
        return ok(_out(booking))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bookings/{booking_id:int}/services")
def add_service(booking_id: int, payload: HotelServiceIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            svc.add_service(db, booking_id, **payload.model_dump())
        return ok(_out(svc.get_booking(db, booking_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/bookings/{booking_id:int}/services/{row_id:int}")
def update_service(booking_id: int, row_id: int, payload: HotelServiceUpdate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            svc.update_service(db, booking_id, row_id, **payload.model_dump(exclude_unset=True))
        return ok(_out(svc.get_booking(db, booking_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/bookings/{booking_id:int}/services/{row_id:int}")
def remove_service(booking_id: int, row_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            booking = svc.remove_service(db, booking_id, row_id)
        return ok(_out(booking))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bookings/{booking_id:int}/consumables")
def add_consumable(booking_id: int, payload: ConsumableIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            svc.add_consumable(db, booking_id, **payload.model_dump())
        return ok(_out(svc.get_booking(db, booking_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/bookings/{booking_id:int}/consumables/{row_id:int}")
def remove_consumable(booking_id: int, row_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            booking = svc.remove_consumable(db, booking_id, row_id)
        return ok(_out(booking))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/bookings/{booking_id:int}/discount-tax")
def update_discount_tax(booking_id: int, payload: DiscountTaxIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            booking = svc.update_discount_and_tax(db, booking_id, **payload.model_dump())
        return ok(_out(booking))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bookings/{booking_id:int}/payments")
def add_payment(booking_id: int, payload: HotelPaymentIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.add_payment(db, booking_id, **payload.model_dump())
        entry = res["journal_entry"]
        return ok({
            "booking": _out(res["booking"]),
            "change": res["change"],
            "journal_entry_id": entry.id if entry else None,
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bookings/{booking_id:int}/check-out")
def check_out(booking_id: int, payload: CheckOutIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.check_out(db, booking_id, payload.payments, payload.actual_check_out_date)
        entry = res["journal_entry"]
        return ok({
            "booking": _out(res["booking"]),
            "total": res["total"],
            "paid": res["paid"],
            "change": res["change"],
            "outstanding": res["outstanding"],
            "journal_entry_id": entry.id if entry else None,
            "payment_entry_ids": [p.id for p in res["payment_entries"]],
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bookings/{booking_id:int}/cancel")
def cancel(booking_id: int, payload: ReasonIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            booking = svc.cancel_booking(db, booking_id, payload.reason)
        return ok(_out(booking))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/bookings/{booking_id:int}")
def delete(booking_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            booking = svc.delete_booking(db, booking_id)
        return ok({"id": booking.id, "deleted": True})
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)
