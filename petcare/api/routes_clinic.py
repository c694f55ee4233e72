# FILE: petcare/api/routes_clinic.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.clinic import (
    AppointmentCreate,
    AppointmentOut,
    AppointmentSubmitIn,
    ClinicPaymentIn,
    DispenseIn,
    ExaminationIn,
    RescheduleIn,
    ServiceLineIn,
    ServiceLineUpdate,
    StartExaminationIn,
)
from petcare.schemas.common import DiscountTaxIn, ReasonIn
from petcare.services import clinic_service as svc
from petcare.services.errors import PetcareError

router = APIRouter(prefix="/clinic", tags=["clinic"])


def _out(appt):
    return AppointmentOut.model_validate(appt).model_dump()


@router.get("/appointments")
def list_appointments(
    branch_id: Optional[int] = Query(None),
    staff_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    appointment_date: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    try:
        rows = svc.list_appointments(
            db, branch_id=branch_id, staff_id=staff_id, status=status,
            appointment_date=appointment_date, limit=limit, offset=offset,
        )
        return ok([_out(a) for a in rows])
    except Exception as e:
        return safe_err(e)


@router.get("/appointments/{appointment_id:int}")
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    try:
        return ok(_out(svc.get_appointment(db, appointment_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/appointments")
def create_appointment(payload: AppointmentCreate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            appt = svc.create_appointment(db, **payload.model_dump())
        return ok(_out(appt), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/appointments/{appointment_id:int}/reschedule")
def reschedule(appointment_id: int, payload: RescheduleIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            appt = svc.reschedule(db, appointment_id, **payload.model_dump())
        return ok(_out(appt))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/appointments/{appointment_id:int}/start")
def start(appointment_id: int, payload: StartExaminationIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            appt = svc.start_examination(db, appointment_id, chief_complaint=payload.chief_complaint)
        return ok(_out(appt))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/appointments/{appointment_id:int}/examination")
def record_examination(appointment_id: int, payload: ExaminationIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            appt = svc.record_examination(db, appointment_id, **payload.model_dump(exclude_unset=True))
        return ok(_out(appt))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/appointments/{appointment_id:int}/services")
def add_service(appointment_id: int, payload: ServiceLineIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            svc.add_service(db, appointment_id, **payload.model_dump())
        return ok(_out(svc.get_appointment(db, appointment_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/appointments/{appointment_id:int}/services/{line_id:int}")
def update_service(appointment_id: int, line_id: int, payload: ServiceLineUpdate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            svc.update_service(db, appointment_id, line_id, **payload.model_dump(exclude_unset=True))
        return ok(_out(svc.get_appointment(db, appointment_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/appointments/{appointment_id:int}/services/{line_id:int}")
def remove_service(appointment_id: int, line_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            appt = svc.remove_service(db, appointment_id, line_id)
        return ok(_out(appt))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/appointments/{appointment_id:int}/discount-tax")
def update_discount_tax(appointment_id: int, payload: DiscountTaxIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            appt = svc.update_discount_and_tax(db, appointment_id, **payload.model_dump())
        return ok(_out(appt))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/appointments/{appointment_id:int}/submit")
def submit(appointment_id: int, payload: AppointmentSubmitIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.submit_appointment(db, appointment_id, payload.payments)
        entry = res["journal_entry"]
        return ok({
            "appointment": _out(res["appointment"]),
            "total": res["total"],
            "paid": res["paid"],
            "change": res["change"],
            "outstanding": res["outstanding"],
            "medical_record_id": res["medical_record"].id,
            "journal_entry_id": entry.id if entry else None,
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/appointments/{appointment_id:int}/dispense")
def dispense(appointment_id: int, payload: DispenseIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.dispense_prescriptions(db, appointment_id, payload.service_ids)
        entry = res["journal_entry"]
        return ok({
            "dispensed": [s.id for s in res["dispensed"]],
            "cogs": res["cogs"],
            "journal_entry_id": entry.id if entry else None,
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/prescriptions/{line_id:int}/pickup")
def pickup(line_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.pickup_prescription(db, line_id)
        entry = res["journal_entry"]
        return ok({"cogs": res["cogs"], "journal_entry_id": entry.id if entry else None})
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/appointments/{appointment_id:int}/payments")
def add_payment(appointment_id: int, payload: ClinicPaymentIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.add_payment(db, appointment_id, **payload.model_dump())
        entry = res["journal_entry"]
        return ok({
            "appointment": _out(res["appointment"]),
            "change": res["change"],
            "journal_entry_id": entry.id if entry else None,
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/appointments/{appointment_id:int}/cancel")
def cancel(appointment_id: int, payload: ReasonIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            appt = svc.cancel_appointment(db, appointment_id, payload.reason)
        return ok(_out(appt))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/appointments/{appointment_id:int}")
def delete(appointment_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            appt = svc.delete_appointment(db, appointment_id)
        return ok({"id": appt.id, "deleted": True})
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)
