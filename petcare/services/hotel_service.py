# FILE: petcare/services/hotel_service.py
from __future__ import annotations

import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from petcare.models.hotel import (
    BookingStatus,
    HotelBooking,
    HotelBookingService,
    HotelConsumable,
    HotelPayment,
    HotelPaymentType,
)
from petcare.models.master import Branch, Customer, CustomerPet, HotelRoom, Product, ProductType, RoomStatus
from petcare.models.sales import DiscountType
from petcare.models.stock import MovementType
from petcare.services.errors import (
    ConflictStateError,
    InvalidQuantityError,
    NotFoundError,
    PetcareError,
    StatusConflictError,
    ValidationError,
)
from petcare.services.inventory_ledger import decrease_stock, is_tracked
from petcare.services.journal_posting import post_hotel_journal, post_payment_journal, post_refund_journal
from petcare.services.line_calc import D, money2, transaction_totals
from petcare.services.numbering import get_or_generate_number
from petcare.services.transactions import (
    check_header_discount,
    discount_type_of,
    item_label,
    line_subtotal,
    payment_method_of,
    selling_price_of,
    settle_payments,
    whole_quantity,
)
from petcare.utils.timezone import now_local

logger = logging.getLogger(__name__)

FINISHED = (BookingStatus.CHECKED_OUT, BookingStatus.CANCELLED)
SERVICE_TYPES = (ProductType.SERVICE.value, ProductType.PROCEDURE.value)


def _booking_q(db: Session):
    return db.query(HotelBooking).options(
        selectinload(HotelBooking.services).selectinload(HotelBookingService.service),
        selectinload(HotelBooking.consumables).selectinload(HotelConsumable.product),
        selectinload(HotelBooking.payments),
        selectinload(HotelBooking.room),
        selectinload(HotelBooking.customer),
        selectinload(HotelBooking.pet),
    )


def get_booking(db: Session, booking_id: int, for_update: bool = False) -> HotelBooking:
    q = _booking_q(db).filter(HotelBooking.id == booking_id, HotelBooking.deleted_at.is_(None))
    if for_update:
        q = q.with_for_update()
    booking = q.first()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def list_bookings(
    db: Session,
    *,
    branch_id: Optional[int] = None,
    room_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[HotelBooking]:
    q = _booking_q(db).filter(HotelBooking.deleted_at.is_(None))
    if branch_id:
        q = q.filter(HotelBooking.branch_id == branch_id)
    if room_id:
        q = q.filter(HotelBooking.room_id == room_id)
    if status:
        q = q.filter(HotelBooking.status == BookingStatus(status))
    return q.order_by(HotelBooking.check_in_date.desc(), HotelBooking.id.desc()).offset(max(0, offset)).limit(min(max(1, limit), 500)).all()


def nights_between(check_in: datetime, check_out: datetime) -> int:
    """Partial days count as a full night; minimum one night."""
    days = (check_out - check_in).total_seconds() / 86400
    return max(1, math.ceil(days))


def _active(rows):
    return [r for r in (rows or []) if r.deleted_at is None]


def _require_editable(booking: HotelBooking) -> None:
    if booking.status in FINISHED:
        raise StatusConflictError(f"Booking is {booking.status.value}")


def _recalc(booking: HotelBooking) -> dict:
    services_total = sum((money2(s.subtotal) for s in _active(booking.services)), Decimal("0.00"))
    consumables = _active(booking.consumables)
    consumables_total = sum((money2(c.subtotal) for c in consumables), Decimal("0.00"))
    consumables_cost = sum((money2(c.cost) for c in consumables), Decimal("0.00"))

    booking.services_total = services_total
    booking.consumables_total = consumables_total
    booking.consumables_cost = consumables_cost

    subtotal = money2(booking.room_total) + services_total + consumables_total
    totals = transaction_totals(subtotal, booking.discount_amount, booking.discount_type, booking.tax_rate, booking.paid_amount)
    booking.subtotal = totals["subtotal"]
    booking.tax_amount = totals["tax"]
    booking.total_amount = totals["total"]
    booking.outstanding_amount = totals["outstanding"]
    return totals


def _recalc_covering_paid(booking: HotelBooking) -> dict:
    """Recalc for edits that can lower the bill; deposits must stay covered."""
    totals = _recalc(booking)
    if money2(booking.paid_amount) > totals["total"]:
        raise ConflictStateError(
            f"Booking total ({totals['total']}) cannot drop below the amount already paid ({money2(booking.paid_amount)})"
        )
    return totals


def _lock_room(db: Session, room_id: int) -> HotelRoom:
    room = db.query(HotelRoom).filter(HotelRoom.id == room_id).with_for_update().first()
    if not room or room.deleted_at is not None or not room.is_active:
        raise NotFoundError("Room not found or inactive")
    return room


def _check_overlap(db: Session, room_id: int, check_in: datetime, check_out: datetime, exclude_id: Optional[int] = None) -> None:
    q = db.query(HotelBooking.booking_number).filter(
        HotelBooking.room_id == room_id,
        HotelBooking.deleted_at.is_(None),
        HotelBooking.status.notin_([BookingStatus.CANCELLED, BookingStatus.CHECKED_OUT]),
        HotelBooking.check_in_date < check_out,
        HotelBooking.check_out_date > check_in,
    )
    if exclude_id:
        q = q.filter(HotelBooking.id != exclude_id)
    clash = q.first()
    if clash:
        raise ConflictStateError(f"Room is already booked for these dates ({clash[0]})")


# -------------------------
# Booking
# -------------------------
def create_booking(
    db: Session,
    *,
    branch_id: int,
    customer_id: int,
    pet_id: int,
    room_id: int,
    check_in_date: datetime,
    check_out_date: datetime,
    own_food: bool = False,
    booking_number: Optional[str] = None,
    special_requests: Optional[str] = None,
    emergency_contact: Optional[str] = None,
    notes: Optional[str] = None,
) -> HotelBooking:
    if check_out_date <= check_in_date:
        raise ValidationError("Check-out date must be after check-in date")
    if not db.get(Branch, branch_id):
        raise NotFoundError("Branch not found")

    room = _lock_room(db, room_id)
    if room.branch_id != branch_id:
        raise ValidationError("Room does not belong to this branch")

    customer = db.get(Customer, customer_id)
    if not customer or customer.deleted_at is not None:
        raise NotFoundError("Customer not found")
    pet = db.get(CustomerPet, pet_id)
    if not pet or pet.deleted_at is not None:
        raise NotFoundError("Pet not found")
    if pet.customer_id != customer_id:
        raise ValidationError("Pet does not belong to this customer")

    _check_overlap(db, room_id, check_in_date, check_out_date)

    nights = nights_between(check_in_date, check_out_date)
    rate = money2(room.daily_rate)
    booking = HotelBooking(
        booking_number=get_or_generate_number(db, "booking", booking_number, check_in_date.date()),
        branch_id=branch_id,
        customer_id=customer_id,
        pet_id=pet_id,
        room_id=room_id,
        check_in_date=check_in_date,
        check_out_date=check_out_date,
        status=BookingStatus.RESERVED,
        number_of_days=nights,
        daily_rate=rate,
        # Rate is locked at booking time
        room_total=money2(rate * nights),
        own_food=bool(own_food),
        special_requests=special_requests,
        emergency_contact=emergency_contact,
        notes=notes,
    )
    db.add(booking)
    room.status = RoomStatus.RESERVED
    db.flush()
    _recalc(booking)
    db.flush()
    return booking


def check_in(db: Session, booking_id: int, actual_check_in_date: Optional[datetime] = None) -> HotelBooking:
    booking = get_booking(db, booking_id, for_update=True)
    if booking.status != BookingStatus.RESERVED:
        raise StatusConflictError("Only reserved bookings can be checked in")
    room = _lock_room(db, booking.room_id)
    booking.status = BookingStatus.CHECKED_IN
    booking.actual_check_in_date = actual_check_in_date or now_local()
    room.status = RoomStatus.OCCUPIED
    db.flush()
    logger.info("Booking %s checked in (room %s)", booking.booking_number, room.code)
    return booking


# -------------------------
# Services
# -------------------------
def add_service(
    db: Session,
    booking_id: int,
    *,
    service_id: int,
    quantity=1,
    unit_price=None,
    discount_amount=0,
    discount_type: str = DiscountType.NOMINAL.value,
    service_date: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> HotelBookingService:
    booking = get_booking(db, booking_id, for_update=True)
    _require_editable(booking)

    service = db.get(Product, service_id)
    if not service or service.deleted_at is not None:
        raise NotFoundError("Service not found")
    if (service.product_type or "").lower() not in SERVICE_TYPES:
        raise ValidationError(f"{service.name} is not a service")

    row = HotelBookingService(
        service_id=service.id,
        service_date=service_date or now_local(),
        quantity=whole_quantity(quantity),
        unit_price=money2(unit_price) if unit_price is not None else selling_price_of(service),
        discount_amount=money2(discount_amount),
        discount_type=discount_type_of(discount_type),
        notes=notes,
    )
    row.service = service
    row.subtotal = line_subtotal(row.quantity, row.unit_price, row.discount_amount, row.discount_type)
    booking.services.append(row)
    _recalc(booking)
    db.flush()
    return row


def _get_service(booking: HotelBooking, row_id: int) -> HotelBookingService:
    for s in _active(booking.services):
        if s.id == row_id:
            return s
    raise NotFoundError("Booking service not found")


def update_service(
    db: Session,
    booking_id: int,
    row_id: int,
    *,
    quantity=None,
    unit_price=None,
    discount_amount=None,
    discount_type: Optional[str] = None,
    notes: Optional[str] = None,
) -> HotelBookingService:
    booking = get_booking(db, booking_id, for_update=True)
    _require_editable(booking)
    row = _get_service(booking, row_id)
    if quantity is not None:
        row.quantity = whole_quantity(quantity)
    if unit_price is not None:
        row.unit_price = money2(unit_price)
    if discount_amount is not None:
        row.discount_amount = money2(discount_amount)
    if discount_type is not None:
        row.discount_type = discount_type_of(discount_type)
    if notes is not None:
        row.notes = notes
    row.subtotal = line_subtotal(row.quantity, row.unit_price, row.discount_amount, row.discount_type)
    _recalc_covering_paid(booking)
    db.flush()
    return row


def remove_service(db: Session, booking_id: int, row_id: int) -> HotelBooking:
    booking = get_booking(db, booking_id, for_update=True)
    _require_editable(booking)
    _get_service(booking, row_id).deleted_at = now_local()
    _recalc_covering_paid(booking)
    db.flush()
    return booking


# -------------------------
# Consumables
# -------------------------
def add_consumable(
    db: Session,
    booking_id: int,
    *,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity,
    consumption_date: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> HotelConsumable:
    """Stock leaves immediately; charged at the average cost of the moment."""
    booking = get_booking(db, booking_id, for_update=True)
    if booking.status != BookingStatus.CHECKED_IN:
        raise StatusConflictError("Consumables can only be added to checked-in bookings")
    if booking.own_food:
        raise ValidationError("Booking uses the owner's food; consumables are not allowed")

    product = db.get(Product, product_id)
    if not product or product.deleted_at is not None:
        raise NotFoundError("Product not found")
    if not is_tracked(product):
        raise ValidationError(f"{product.name} is a service and cannot be consumed")

    qty = D(quantity)
    if qty <= 0:
        raise InvalidQuantityError("Quantity must be greater than 0")

    try:
        res = decrease_stock(
            db,
            branch_id=booking.branch_id,
            product_id=product.id,
            variant_id=variant_id,
            quantity=qty,
            reference_type="HOTEL",
            reference_id=booking.id,
            movement_type=MovementType.HOTEL_CONSUMPTION,
            notes=booking.booking_number,
        )
    except PetcareError as e:
        variant = next((v for v in product.variants if v.id == variant_id), None) if variant_id else None
        raise e.with_context(item_label(product, variant)) from e

    row = HotelConsumable(
        product_id=product.id,
        variant_id=variant_id or None,
        consumption_date=consumption_date or now_local(),
        quantity=qty,
        unit_price=res.average_cost,
        subtotal=money2(qty * res.average_cost),
        cost=res.cogs,
        notes=notes,
    )
    row.product = product
    booking.consumables.append(row)
    _recalc(booking)
    db.flush()
    return row


def remove_consumable(db: Session, booking_id: int, row_id: int) -> HotelBooking:
    """Removes the charge only; consumed stock is not returned."""
    booking = get_booking(db, booking_id, for_update=True)
    _require_editable(booking)
    for c in _active(booking.consumables):
        if c.id == row_id:
            c.deleted_at = now_local()
            break
    else:
        raise NotFoundError("Consumable not found")
    _recalc_covering_paid(booking)
    db.flush()
    return booking


def update_discount_and_tax(
    db: Session,
    booking_id: int,
    *,
    discount_amount=0,
    discount_type: str = DiscountType.NOMINAL.value,
    tax_rate=0,
) -> HotelBooking:
    booking = get_booking(db, booking_id, for_update=True)
    _require_editable(booking)
    dtype = discount_type_of(discount_type)
    check_header_discount(discount_amount, dtype, tax_rate)
    booking.discount_amount = money2(discount_amount)
    booking.discount_type = dtype
    booking.tax_rate = D(tax_rate)
    _recalc_covering_paid(booking)
    db.flush()
    return booking


# -------------------------
# Payments / checkout
# -------------------------
def _record_payment(
    db: Session,
    booking: HotelBooking,
    *,
    amount: Decimal,
    payment_method: str,
    payment_type: str,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
):
    payment = HotelPayment(
        payment_type=payment_type,
        amount=amount,
        payment_method=payment_method,
        reference_number=reference_number,
        payment_date=now_local(),
        notes=notes,
    )
    booking.payments.append(payment)
    booking.paid_amount = money2(D(booking.paid_amount) + amount)
    db.flush()
    entry = post_payment_journal(
        db,
        payment_id=payment.id,
        amount=amount,
        payment_method=payment_method,
        branch_id=booking.branch_id,
        reference=booking.booking_number,
    )
    return payment, entry


def _payment_type_of(value) -> str:
    raw = getattr(value, "value", value) or HotelPaymentType.DEPOSIT.value
    try:
        kind = HotelPaymentType(raw)
    except ValueError:
        raise ValidationError(f"Unknown payment type: {raw}")
    if kind == HotelPaymentType.REFUND:
        raise ValidationError("Refunds are issued by cancelling the booking")
    return kind.value


def add_payment(
    db: Session,
    booking_id: int,
    *,
    amount,
    payment_method: str = "CASH",
    payment_type: str = HotelPaymentType.DEPOSIT.value,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> dict:
    """
    Deposits / partial payments. Each one credits AR through its own
    payment journal; the checkout journal later debits AR for the full total.
    Every payment is settled against what is still outstanding on the
    current bill: non-cash cannot exceed it, cash is capped with change.
    """
    booking = get_booking(db, booking_id, for_update=True)
    if booking.status == BookingStatus.CANCELLED:
        raise StatusConflictError("Cannot add payment to a cancelled booking")
    amount = money2(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    method = payment_method_of(payment_method)
    kind = _payment_type_of(payment_type)

    outstanding = _recalc(booking)["outstanding"]
    if outstanding <= 0:
        raise ConflictStateError(f"Booking {booking.booking_number} is already fully paid")
    settlement = settle_payments(outstanding, [{"amount": amount, "payment_method": method}])
    amount = settlement.recorded[0][1]
    change = settlement.change

    payment, entry = _record_payment(
        db,
        booking,
        amount=amount,
        payment_method=method,
        payment_type=kind,
        reference_number=reference_number,
        notes=notes,
    )
    _recalc(booking)
    db.flush()
    return {"booking": booking, "payment": payment, "change": change, "journal_entry": entry}


def check_out(
    db: Session,
    booking_id: int,
    payments: Optional[Iterable] = None,
    actual_check_out_date: Optional[datetime] = None,
) -> dict:
    booking = get_booking(db, booking_id, for_update=True)
    if booking.status != BookingStatus.CHECKED_IN:
        raise StatusConflictError("Only checked-in bookings can be checked out")

    totals = _recalc(booking)
    settlement = settle_payments(totals["outstanding"], payments)

    out_at = actual_check_out_date or now_local()
    invoice = post_hotel_journal(
        db,
        booking_id=booking.id,
        booking_number=booking.booking_number,
        checkout_date=out_at.date(),
        branch_id=booking.branch_id,
        total_amount=totals["total"],
        room_total=booking.room_total,
        services_total=booking.services_total,
        consumables_total=booking.consumables_total,
        consumables_cost=booking.consumables_cost,
        discount_amount=totals["discount"],
        tax_amount=totals["tax"],
    )

    payment_entries = []
    for p, amount in settlement.recorded:
        settles = money2(D(booking.paid_amount) + amount) >= totals["total"]
        _, entry = _record_payment(
            db,
            booking,
            amount=amount,
            payment_method=p.payment_method,
            payment_type=HotelPaymentType.FULL.value if settles else HotelPaymentType.PARTIAL.value,
            reference_number=p.reference_number,
            notes=p.notes,
        )
        if entry is not None:
            payment_entries.append(entry)

    booking.status = BookingStatus.CHECKED_OUT
    booking.actual_check_out_date = out_at
    _recalc(booking)
    room = _lock_room(db, booking.room_id)
    room.status = RoomStatus.AVAILABLE
    db.flush()
    logger.info(
        "Booking %s checked out total=%s paid=%s outstanding=%s",
        booking.booking_number, booking.total_amount, booking.paid_amount, booking.outstanding_amount,
    )
    return {
        "booking": booking,
        "total": totals["total"],
        "paid": booking.paid_amount,
        "change": settlement.change,
        "outstanding": booking.outstanding_amount,
        "journal_entry": invoice,
        "payment_entries": payment_entries,
    }


def _refund_payments(db: Session, booking: HotelBooking) -> List[HotelPayment]:
    """One refund per received payment, back through the method it came in on."""
    refunds: List[HotelPayment] = []
    received = [p for p in _active(booking.payments) if p.payment_type != HotelPaymentType.REFUND.value]
    for p in received:
        refund = HotelPayment(
            payment_type=HotelPaymentType.REFUND.value,
            amount=money2(p.amount),
            payment_method=p.payment_method,
            reference_number=p.reference_number,
            payment_date=now_local(),
            notes=f"Refund of payment #{p.id}",
        )
        booking.payments.append(refund)
        db.flush()
        post_refund_journal(
            db,
            payment_id=refund.id,
            amount=refund.amount,
            payment_method=refund.payment_method,
            branch_id=booking.branch_id,
            reference=booking.booking_number,
        )
        refunds.append(refund)
    booking.paid_amount = Decimal("0.00")
    return refunds


def cancel_booking(db: Session, booking_id: int, reason: Optional[str] = None) -> HotelBooking:
    """Deposits already taken are refunded so Accounts Receivable nets to zero."""
    booking = get_booking(db, booking_id, for_update=True)
    if booking.status == BookingStatus.CHECKED_OUT:
        raise StatusConflictError("Checked-out bookings cannot be cancelled")
    if booking.status == BookingStatus.CANCELLED:
        raise StatusConflictError("Booking is already cancelled")
    refunded = money2(booking.paid_amount)
    if refunded > 0:
        _refund_payments(db, booking)
    booking.status = BookingStatus.CANCELLED
    if reason:
        booking.notes = f"{booking.notes}\n{reason}".strip() if booking.notes else reason
    _recalc(booking)
    room = db.get(HotelRoom, booking.room_id)
    if room is not None:
        room.status = RoomStatus.AVAILABLE
    db.flush()
    logger.info("Booking %s cancelled (refunded %s)", booking.booking_number, refunded)
    return booking


def delete_booking(db: Session, booking_id: int) -> HotelBooking:
    booking = get_booking(db, booking_id, for_update=True)
    if booking.status == BookingStatus.CHECKED_IN:
        raise StatusConflictError("Checked-in bookings cannot be deleted")
    if money2(booking.paid_amount) > 0:
        raise StatusConflictError("Booking has payments; cancel it to refund them first")
    if booking.status == BookingStatus.RESERVED:
        room = db.get(HotelRoom, booking.room_id)
        if room is not None and room.status == RoomStatus.RESERVED:
            room.status = RoomStatus.AVAILABLE
    booking.deleted_at = now_local()
    db.flush()
    return booking


# -------------------------
# Invoice
# -------------------------
def generate_invoice(db: Session, booking_id: int) -> dict:
    booking = get_booking(db, booking_id)
    room = booking.room
    lines = [{
        "type": "room",
        "description": f"{room.name if room else 'Room'} x {booking.number_of_days} night(s)",
        "quantity": booking.number_of_days,
        "unit_price": money2(booking.daily_rate),
        "subtotal": money2(booking.room_total),
    }]
    for s in _active(booking.services):
        lines.append({
            "type": "service",
            "description": s.service.name if s.service else "",
            "quantity": s.quantity,
            "unit_price": money2(s.unit_price),
            "discount": money2(s.discount_amount),
            "discount_type": s.discount_type,
            "subtotal": money2(s.subtotal),
        })
    for c in _active(booking.consumables):
        lines.append({
            "type": "consumable",
            "description": c.product.name if c.product else "",
            "quantity": c.quantity,
            "unit_price": money2(c.unit_price),
            "subtotal": money2(c.subtotal),
        })

    totals = transaction_totals(booking.subtotal, booking.discount_amount, booking.discount_type, booking.tax_rate, booking.paid_amount)
    return {
        "booking_number": booking.booking_number,
        "status": booking.status.value,
        "customer": booking.customer.name if booking.customer else None,
        "pet": booking.pet.name if booking.pet else None,
        "room": {"code": room.code, "name": room.name, "room_type": room.room_type} if room else None,
        "check_in_date": booking.check_in_date,
        "check_out_date": booking.check_out_date,
        "actual_check_in_date": booking.actual_check_in_date,
        "actual_check_out_date": booking.actual_check_out_date,
        "number_of_days": booking.number_of_days,
        "lines": lines,
        "totals": {
            "room_total": money2(booking.room_total),
            "services_total": money2(booking.services_total),
            "consumables_total": money2(booking.consumables_total),
            "subtotal": totals["subtotal"],
            "discount": totals["discount"],
            "tax": totals["tax"],
            "total": totals["total"],
            "paid": totals["paid"],
            "outstanding": totals["outstanding"],
        },
        "payments": [
            {
                "payment_type": p.payment_type,
                "amount": money2(p.amount),
                "payment_method": p.payment_method,
                "reference_number": p.reference_number,
                "payment_date": p.payment_date,
            }
            for p in _active(booking.payments)
        ],
    }
