# FILE: petcare/services/clinic_service.py
from __future__ import annotations

import logging
import re
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from petcare.models.clinic import (
    AppointmentStatus,
    ClinicAppointment,
    ClinicAppointmentService,
    ClinicPayment,
    PetMedicalRecord,
)
from petcare.models.master import Branch, ClinicStaff, Customer, CustomerPet, Product, ProductVariant
from petcare.models.sales import DiscountType
from petcare.models.stock import MovementType
from petcare.services.errors import (
    ConflictStateError,
    NoItemsError,
    NotFoundError,
    PetcareError,
    StatusConflictError,
    ValidationError,
)
from petcare.services.inventory_ledger import decrease_stock, is_tracked
from petcare.services.journal_posting import (
    RevenueItem,
    post_clinic_journal,
    post_dispense_journal,
    post_payment_journal,
)
from petcare.services.line_calc import D, money2, transaction_totals
from petcare.services.numbering import get_or_generate_number
from petcare.services.transactions import (
    check_header_discount,
    discount_type_of,
    item_label,
    line_subtotal,
    selling_price_of,
    settle_payments,
    whole_quantity,
)
from petcare.utils.timezone import now_local

logger = logging.getLogger(__name__)

TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
CLOSED = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


def _appt_q(db: Session):
    return db.query(ClinicAppointment).options(
        selectinload(ClinicAppointment.services).selectinload(ClinicAppointmentService.service).selectinload(Product.category),
        selectinload(ClinicAppointment.services).selectinload(ClinicAppointmentService.product),
        selectinload(ClinicAppointment.services).selectinload(ClinicAppointmentService.variant),
        selectinload(ClinicAppointment.payments),
        selectinload(ClinicAppointment.staff),
        selectinload(ClinicAppointment.branch),
    )


def get_appointment(db: Session, appointment_id: int, for_update: bool = False) -> ClinicAppointment:
    q = _appt_q(db).filter(ClinicAppointment.id == appointment_id, ClinicAppointment.deleted_at.is_(None))
    if for_update:
        q = q.with_for_update()
    appt = q.first()
    if not appt:
        raise NotFoundError("Appointment not found")
    return appt


def list_appointments(
    db: Session,
    *,
    branch_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    status: Optional[str] = None,
    appointment_date: Optional[date] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[ClinicAppointment]:
    q = _appt_q(db).filter(ClinicAppointment.deleted_at.is_(None))
    if branch_id:
        q = q.filter(ClinicAppointment.branch_id == branch_id)
    if staff_id:
        q = q.filter(ClinicAppointment.staff_id == staff_id)
    if status:
        q = q.filter(ClinicAppointment.status == AppointmentStatus(status))
    if appointment_date:
        q = q.filter(ClinicAppointment.appointment_date == appointment_date)
    return (
        q.order_by(ClinicAppointment.appointment_date.desc(), ClinicAppointment.appointment_time.asc())
        .offset(max(0, offset))
        .limit(min(max(1, limit), 500))
        .all()
    )


def _require_open(appt: ClinicAppointment) -> None:
    if appt.status in CLOSED:
        raise StatusConflictError(f"Appointment is {appt.status.value}")


def _check_time(value: str) -> str:
    t = (value or "").strip()
    if not TIME_RE.match(t):
        raise ValidationError("Appointment time must use HH:MM format")
    return t


def _check_slot(db: Session, staff_id: int, d: date, t: str, exclude_id: Optional[int] = None) -> None:
    q = db.query(ClinicAppointment.id).filter(
        ClinicAppointment.staff_id == staff_id,
        ClinicAppointment.appointment_date == d,
        ClinicAppointment.appointment_time == t,
        ClinicAppointment.status == AppointmentStatus.SCHEDULED,
        ClinicAppointment.deleted_at.is_(None),
    )
    if exclude_id:
        q = q.filter(ClinicAppointment.id != exclude_id)
    if q.first():
        raise ConflictStateError(f"Staff already has an appointment on {d.isoformat()} at {t}")


def _active_staff(db: Session, staff_id: int) -> ClinicStaff:
    staff = db.get(ClinicStaff, staff_id)
    if not staff or not staff.is_active:
        raise NotFoundError("Clinic staff not found")
    return staff


def _recalc(appt: ClinicAppointment) -> dict:
    subtotal = sum((money2(s.subtotal) for s in appt.active_services), Decimal("0.00"))
    totals = transaction_totals(subtotal, appt.discount_amount, appt.discount_type, appt.tax_rate, appt.paid_amount)
    appt.subtotal = totals["subtotal"]
    appt.tax_amount = totals["tax"]
    appt.total_amount = totals["total"]
    appt.outstanding_amount = totals["outstanding"]
    return totals


def _stock_target(svc: ClinicAppointmentService) -> Tuple[Optional[Product], Optional[ProductVariant]]:
    """Goods moved by a service line: the attached product, else the billable item itself."""
    if svc.product_id:
        return svc.product, svc.variant
    return svc.service, None


# -------------------------
# Scheduling
# -------------------------
def create_appointment(
    db: Session,
    *,
    branch_id: int,
    pet_id: int,
    customer_id: int,
    staff_id: int,
    appointment_date: date,
    appointment_time: str,
    appointment_number: Optional[str] = None,
    chief_complaint: Optional[str] = None,
    notes: Optional[str] = None,
) -> ClinicAppointment:
    if not db.get(Branch, branch_id):
        raise NotFoundError("Branch not found")
    customer = db.get(Customer, customer_id)
    if not customer or customer.deleted_at is not None:
        raise NotFoundError("Customer not found")
    pet = db.get(CustomerPet, pet_id)
    if not pet or pet.deleted_at is not None:
        raise NotFoundError("Pet not found")
    if pet.customer_id != customer_id:
        raise ValidationError("Pet does not belong to this customer")
    _active_staff(db, staff_id)

    t = _check_time(appointment_time)
    _check_slot(db, staff_id, appointment_date, t)

    appt = ClinicAppointment(
        appointment_number=get_or_generate_number(db, "appointment", appointment_number, appointment_date),
        branch_id=branch_id,
        pet_id=pet_id,
        customer_id=customer_id,
        staff_id=staff_id,
        appointment_date=appointment_date,
        appointment_time=t,
        status=AppointmentStatus.SCHEDULED,
        chief_complaint=chief_complaint,
        notes=notes,
    )
    db.add(appt)
    db.flush()
    return appt


def reschedule(
    db: Session,
    appointment_id: int,
    *,
    appointment_date: date,
    appointment_time: str,
    staff_id: Optional[int] = None,
) -> ClinicAppointment:
    appt = get_appointment(db, appointment_id, for_update=True)
    if appt.status != AppointmentStatus.SCHEDULED:
        raise StatusConflictError("Only scheduled appointments can be rescheduled")
    new_staff = staff_id or appt.staff_id
    if staff_id:
        _active_staff(db, staff_id)
    t = _check_time(appointment_time)
    _check_slot(db, new_staff, appointment_date, t, exclude_id=appt.id)

    appt.staff_id = new_staff
    appt.appointment_date = appointment_date
    appt.appointment_time = t
    db.flush()
    return appt


def start_examination(db: Session, appointment_id: int, *, chief_complaint: Optional[str] = None) -> ClinicAppointment:
    appt = get_appointment(db, appointment_id, for_update=True)
    if appt.status != AppointmentStatus.SCHEDULED:
        raise StatusConflictError("Only scheduled appointments can be started")
    appt.status = AppointmentStatus.IN_PROGRESS
    if chief_complaint is not None:
        appt.chief_complaint = chief_complaint
    db.flush()
    return appt


EXAM_FIELDS = (
    "chief_complaint",
    "temperature",
    "weight",
    "heart_rate",
    "respiratory_rate",
    "physical_examination",
    "diagnosis",
    "treatment_plan",
    "notes",
)


def record_examination(db: Session, appointment_id: int, **fields) -> ClinicAppointment:
    appt = get_appointment(db, appointment_id, for_update=True)
    _require_open(appt)
    unknown = set(fields) - set(EXAM_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown examination fields: {', '.join(sorted(unknown))}")
    for k, v in fields.items():
        if v is not None:
            setattr(appt, k, v)
    db.flush()
    return appt


# -------------------------
# Service lines
# -------------------------
def add_service(
    db: Session,
    appointment_id: int,
    *,
    service_id: int,
    product_id: Optional[int] = None,
    variant_id: Optional[int] = None,
    quantity=1,
    unit_price=None,
    discount_amount=0,
    discount_type: str = DiscountType.NOMINAL.value,
    is_prescription: bool = False,
    prescription_dosage: Optional[str] = None,
    notes: Optional[str] = None,
) -> ClinicAppointmentService:
    appt = get_appointment(db, appointment_id, for_update=True)
    _require_open(appt)

    service = db.get(Product, service_id)
    if not service or service.deleted_at is not None:
        raise NotFoundError("Service not found")
    product = variant = None
    if product_id:
        product = db.get(Product, product_id)
        if not product or product.deleted_at is not None:
            raise NotFoundError("Product not found")
    if variant_id:
        owner = product or service
        variant = db.get(ProductVariant, variant_id)
        if not variant or variant.product_id != owner.id:
            raise NotFoundError("Product variant not found")
        if product is None:
            product = service

    svc = ClinicAppointmentService(
        service_id=service.id,
        product_id=product.id if product else None,
        variant_id=variant.id if variant else None,
        quantity=whole_quantity(quantity),
        unit_price=money2(unit_price) if unit_price is not None else selling_price_of(service),
        discount_amount=money2(discount_amount),
        discount_type=discount_type_of(discount_type),
        is_prescription=bool(is_prescription),
        prescription_dosage=prescription_dosage,
        prescription_picked_up=False if is_prescription else None,
        notes=notes,
    )
    svc.service = service
    svc.product = product
    svc.variant = variant
    svc.subtotal = line_subtotal(svc.quantity, svc.unit_price, svc.discount_amount, svc.discount_type)
    appt.services.append(svc)
    _recalc(appt)
    db.flush()
    return svc


def _get_service(appt: ClinicAppointment, service_line_id: int) -> ClinicAppointmentService:
    for s in appt.active_services:
        if s.id == service_line_id:
            return s
    raise NotFoundError("Appointment service not found")


def update_service(
    db: Session,
    appointment_id: int,
    service_line_id: int,
    *,
    quantity=None,
    unit_price=None,
    discount_amount=None,
    discount_type: Optional[str] = None,
    is_prescription: Optional[bool] = None,
    prescription_dosage: Optional[str] = None,
    notes: Optional[str] = None,
) -> ClinicAppointmentService:
    appt = get_appointment(db, appointment_id, for_update=True)
    _require_open(appt)
    svc = _get_service(appt, service_line_id)

    if quantity is not None:
        svc.quantity = whole_quantity(quantity)
    if unit_price is not None:
        svc.unit_price = money2(unit_price)
    if discount_amount is not None:
        svc.discount_amount = money2(discount_amount)
    if discount_type is not None:
        svc.discount_type = discount_type_of(discount_type)
    if is_prescription is not None:
        svc.is_prescription = bool(is_prescription)
        svc.prescription_picked_up = False if is_prescription else None
    if prescription_dosage is not None:
        svc.prescription_dosage = prescription_dosage
    if notes is not None:
        svc.notes = notes

    svc.subtotal = line_subtotal(svc.quantity, svc.unit_price, svc.discount_amount, svc.discount_type)
    _recalc(appt)
    db.flush()
    return svc


def remove_service(db: Session, appointment_id: int, service_line_id: int) -> ClinicAppointment:
    appt = get_appointment(db, appointment_id, for_update=True)
    _require_open(appt)
    svc = _get_service(appt, service_line_id)
    svc.deleted_at = now_local()
    _recalc(appt)
    db.flush()
    return appt


def update_discount_and_tax(
    db: Session,
    appointment_id: int,
    *,
    discount_amount=0,
    discount_type: str = DiscountType.NOMINAL.value,
    tax_rate=0,
) -> ClinicAppointment:
    appt = get_appointment(db, appointment_id, for_update=True)
    _require_open(appt)
    dtype = discount_type_of(discount_type)
    check_header_discount(discount_amount, dtype, tax_rate)
    appt.discount_amount = money2(discount_amount)
    appt.discount_type = dtype
    appt.tax_rate = D(tax_rate)
    _recalc(appt)
    db.flush()
    return appt


# -------------------------
# Terminal event
# -------------------------
def _reduce_for(db: Session, appt: ClinicAppointment, svc: ClinicAppointmentService) -> Decimal:
    product, variant = _stock_target(svc)
    if product is None or not is_tracked(product):
        return Decimal("0.00")
    try:
        res = decrease_stock(
            db,
            branch_id=appt.branch_id,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            quantity=svc.quantity,
            reference_type="CLINIC",
            reference_id=appt.id,
            movement_type=MovementType.SALE_OUT,
            notes=appt.appointment_number,
        )
    except PetcareError as e:
        raise e.with_context(item_label(product, variant)) from e
    return res.cogs


def _medical_record(db: Session, appt: ClinicAppointment) -> PetMedicalRecord:
    prescriptions = [
        f"{item_label(*_stock_target(s))}" + (f" - {s.prescription_dosage}" if s.prescription_dosage else "")
        for s in appt.active_services
        if s.is_prescription
    ]
    rec = PetMedicalRecord(
        pet_id=appt.pet_id,
        appointment_id=appt.id,
        record_date=appt.appointment_date,
        diagnosis=appt.diagnosis,
        treatment=appt.treatment_plan,
        prescription="\n".join(prescriptions) or None,
        veterinarian=appt.staff.name if appt.staff else None,
        clinic=appt.branch.name if appt.branch else None,
        notes=appt.notes,
    )
    db.add(rec)
    return rec


def submit_appointment(db: Session, appointment_id: int, payments: Optional[Iterable] = None) -> dict:
    """
    Completes the visit. Non-prescription goods leave stock now;
    prescriptions wait for pickup.
    """
    appt = get_appointment(db, appointment_id, for_update=True)
    _require_open(appt)
    services = appt.active_services
    if not services:
        raise NoItemsError("Appointment has no services")

    appt.paid_amount = Decimal("0.00")
    totals = _recalc(appt)
    settlement = settle_payments(totals["total"], payments)

    revenue: List[RevenueItem] = []
    for svc in services:
        svc.cogs = Decimal("0.00")
        if not svc.is_prescription:
            svc.cogs = _reduce_for(db, appt, svc)
        revenue.append(RevenueItem(
            category=svc.service.category_name if svc.service else "",
            subtotal=money2(svc.subtotal),
            cogs=money2(svc.cogs),
            name=svc.service.name if svc.service else "",
        ))

    now = now_local()
    for p, amount in settlement.recorded:
        appt.payments.append(ClinicPayment(
            amount=amount,
            payment_method=p.payment_method,
            reference_number=p.reference_number,
            payment_date=now,
            notes=p.notes,
        ))

    appt.paid_amount = settlement.paid
    appt.outstanding_amount = settlement.outstanding
    appt.status = AppointmentStatus.COMPLETED
    record = _medical_record(db, appt)
    db.flush()

    entry = post_clinic_journal(
        db,
        appointment_id=appt.id,
        appointment_number=appt.appointment_number,
        appointment_date=appt.appointment_date,
        branch_id=appt.branch_id,
        paid_amount=settlement.paid,
        outstanding_amount=settlement.outstanding,
        services=revenue,
        discount_amount=totals["discount"],
        tax_amount=totals["tax"],
    )
    logger.info(
        "Appointment %s completed total=%s paid=%s",
        appt.appointment_number, appt.total_amount, appt.paid_amount,
    )
    return {
        "appointment": appt,
        "total": settlement.total,
        "paid": settlement.paid,
        "change": settlement.change,
        "outstanding": settlement.outstanding,
        "medical_record": record,
        "journal_entry": entry,
    }


# -------------------------
# Prescriptions
# -------------------------
def _pending_prescriptions(appt: ClinicAppointment, service_ids: Optional[Iterable[int]] = None):
    wanted = set(service_ids) if service_ids else None
    return [
        s for s in appt.active_services
        if s.is_prescription and not s.prescription_picked_up and (wanted is None or s.id in wanted)
    ]


def dispense_prescriptions(
    db: Session,
    appointment_id: int,
    service_ids: Optional[Iterable[int]] = None,
) -> dict:
    appt = get_appointment(db, appointment_id, for_update=True)
    if appt.status != AppointmentStatus.COMPLETED:
        raise StatusConflictError("Prescriptions can only be dispensed for completed appointments")
    pending = _pending_prescriptions(appt, service_ids)
    if not pending:
        raise ValidationError("No prescriptions waiting for pickup")

    now = now_local()
    total_cogs = Decimal("0.00")
    for svc in pending:
        svc.cogs = _reduce_for(db, appt, svc)
        svc.prescription_picked_up = True
        svc.prescription_pickup_date = now
        total_cogs += money2(svc.cogs)
    db.flush()

    entry = post_dispense_journal(
        db,
        appointment_id=appt.id,
        appointment_number=appt.appointment_number,
        branch_id=appt.branch_id,
        cogs=total_cogs,
        dispense_date=now.date(),
    )
    logger.info("Dispensed %s prescription(s) for %s cogs=%s", len(pending), appt.appointment_number, total_cogs)
    return {"appointment": appt, "dispensed": pending, "cogs": total_cogs, "journal_entry": entry}


def pickup_prescription(db: Session, service_line_id: int) -> dict:
    svc = db.get(ClinicAppointmentService, service_line_id)
    if not svc or svc.deleted_at is not None:
        raise NotFoundError("Appointment service not found")
    if not svc.is_prescription:
        raise ValidationError("Item is not a prescription")
    if svc.prescription_picked_up:
        raise ConflictStateError("Prescription already picked up")
    return dispense_prescriptions(db, svc.appointment_id, [svc.id])


# -------------------------
# Follow-ups
# -------------------------
def add_payment(
    db: Session,
    appointment_id: int,
    *,
    amount,
    payment_method: str = "CASH",
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> dict:
    appt = get_appointment(db, appointment_id, for_update=True)
    if appt.status != AppointmentStatus.COMPLETED:
        raise StatusConflictError("Payments can only be added to completed appointments")
    if money2(amount) <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    outstanding = money2(appt.outstanding_amount)
    if outstanding <= 0:
        raise ConflictStateError(f"Appointment {appt.appointment_number} is already fully paid")

    settlement = settle_payments(outstanding, [{
        "amount": amount,
        "payment_method": payment_method,
        "reference_number": reference_number,
        "notes": notes,
    }])
    p, recorded = settlement.recorded[0]
    payment = ClinicPayment(
        amount=recorded,
        payment_method=p.payment_method,
        reference_number=reference_number,
        payment_date=now_local(),
        notes=notes,
    )
    appt.payments.append(payment)
    appt.paid_amount = money2(D(appt.paid_amount) + recorded)
    appt.outstanding_amount = money2(outstanding - recorded)
    db.flush()

    entry = post_payment_journal(
        db,
        payment_id=payment.id,
        amount=recorded,
        payment_method=p.payment_method,
        branch_id=appt.branch_id,
        reference=appt.appointment_number,
    )
    return {"appointment": appt, "payment": payment, "change": settlement.change, "journal_entry": entry}


def cancel_appointment(db: Session, appointment_id: int, reason: Optional[str] = None) -> ClinicAppointment:
    appt = get_appointment(db, appointment_id, for_update=True)
    if appt.status == AppointmentStatus.COMPLETED:
        raise StatusConflictError("Completed appointments cannot be cancelled")
    if appt.status == AppointmentStatus.CANCELLED:
        raise StatusConflictError("Appointment is already cancelled")
    appt.status = AppointmentStatus.CANCELLED
    if reason:
        appt.notes = f"{appt.notes}\n{reason}".strip() if appt.notes else reason
    db.flush()
    logger.info("Appointment %s cancelled", appt.appointment_number)
    return appt


def delete_appointment(db: Session, appointment_id: int) -> ClinicAppointment:
    appt = get_appointment(db, appointment_id, for_update=True)
    if appt.status == AppointmentStatus.COMPLETED:
        raise StatusConflictError("Completed appointments cannot be deleted")
    appt.deleted_at = now_local()
    db.flush()
    return appt
