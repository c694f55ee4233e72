from datetime import date
from decimal import Decimal

import pytest

from petcare.models import AppointmentStatus, Customer, SourceType
from petcare.services import clinic_service as clinic
from petcare.services import inventory_ledger as ledger
from petcare.services.errors import (
    ConflictStateError,
    NoItemsError,
    NotFoundError,
    StatusConflictError,
    ValidationError,
)
from petcare.services.inventory_ledger import BatchInfo
from petcare.services.journal_engine import get_by_source

VISIT = date(2025, 1, 15)


def _appt(db, m, time="09:00", **kw):
    return clinic.create_appointment(
        db,
        branch_id=m.branch.id,
        pet_id=m.pet.id,
        customer_id=m.customer.id,
        staff_id=m.staff.id,
        appointment_date=kw.pop("appointment_date", VISIT),
        appointment_time=time,
        **kw,
    )


def _vitamins(db, m, qty=10):
    ledger.set_initial_stock(
        db, branch_id=m.branch.id, product_id=m.vitamin.id, quantity=qty, unit_cost=20000,
        batch=BatchInfo("VB-0", date(2026, 6, 1)),
    )


def _stock_qty(db, m):
    return Decimal(ledger.get_stock(db, m.branch.id, m.vitamin.id).quantity)


class TestScheduling:
    def test_create(self, db, masters):
        appt = _appt(db, masters, chief_complaint="Limping")
        assert appt.appointment_number == "APT-20250115-001"
        assert appt.status == AppointmentStatus.SCHEDULED
        assert appt.appointment_time == "09:00"

    def test_staff_slot_is_exclusive(self, db, masters):
        _appt(db, masters)
        with pytest.raises(ConflictStateError):
            _appt(db, masters)
        assert _appt(db, masters, time="09:30").appointment_number == "APT-20250115-002"

    def test_cancelled_slot_can_be_reused(self, db, masters):
        first = _appt(db, masters)
        clinic.cancel_appointment(db, first.id, reason="Owner called")
        assert first.notes == "Owner called"
        assert _appt(db, masters).status == AppointmentStatus.SCHEDULED

    @pytest.mark.parametrize("value", ["9:00", "24:00", "09:60", ""])
    def test_time_format(self, db, masters, value):
        with pytest.raises(ValidationError):
            _appt(db, masters, time=value)

    def test_pet_must_belong_to_customer(self, db, masters):
        stranger = Customer(name="Ani")
        db.add(stranger)
        db.flush()
        with pytest.raises(ValidationError):
            clinic.create_appointment(
                db, branch_id=masters.branch.id, pet_id=masters.pet.id, customer_id=stranger.id,
                staff_id=masters.staff.id, appointment_date=VISIT, appointment_time="10:00",
            )

    def test_reschedule(self, db, masters):
        _appt(db, masters)
        later = _appt(db, masters, time="11:00")
        with pytest.raises(ConflictStateError):
            clinic.reschedule(db, later.id, appointment_date=VISIT, appointment_time="09:00")
        clinic.reschedule(db, later.id, appointment_date=VISIT, appointment_time="11:00")
        clinic.reschedule(db, later.id, appointment_date=date(2025, 1, 16), appointment_time="09:00")
        assert later.appointment_date == date(2025, 1, 16)

    def test_start_and_examination(self, db, masters):
        appt = _appt(db, masters)
        clinic.start_examination(db, appt.id, chief_complaint="Itching")
        assert appt.status == AppointmentStatus.IN_PROGRESS
        with pytest.raises(StatusConflictError):
            clinic.start_examination(db, appt.id)
        with pytest.raises(StatusConflictError):
            clinic.reschedule(db, appt.id, appointment_date=VISIT, appointment_time="15:00")

        clinic.record_examination(db, appt.id, temperature=Decimal("38.5"), diagnosis="Dermatitis")
        assert appt.diagnosis == "Dermatitis"
        assert appt.chief_complaint == "Itching"
        with pytest.raises(ValidationError):
            clinic.record_examination(db, appt.id, blood_type="A")


class TestServiceLines:
    def test_lines_and_totals(self, db, masters):
        appt = _appt(db, masters)
        clinic.add_service(db, appt.id, service_id=masters.exam.id)
        line = clinic.add_service(
            db, appt.id, service_id=masters.exam.id, product_id=masters.vitamin.id,
            quantity=2, unit_price=35000, discount_amount=10, discount_type="percent",
        )
        assert line.subtotal == Decimal("63000.00")
        assert appt.total_amount == Decimal("213000.00")

        clinic.update_service(db, appt.id, line.id, discount_amount=0)
        clinic.update_discount_and_tax(db, appt.id, discount_amount=20000, tax_rate=10)
        assert appt.subtotal == Decimal("220000.00")
        assert appt.tax_amount == Decimal("20000.00")
        assert appt.total_amount == Decimal("220000.00")

        clinic.remove_service(db, appt.id, line.id)
        assert line.id not in [s.id for s in appt.active_services]
        assert appt.subtotal == Decimal("150000.00")

    def test_variant_must_belong_to_product(self, db, masters):
        appt = _appt(db, masters)
        with pytest.raises(NotFoundError):
            clinic.add_service(
                db, appt.id, service_id=masters.exam.id,
                product_id=masters.vitamin.id, variant_id=masters.food_5kg.id,
            )


class TestSubmit:
    def test_journal_and_stock(self, db, masters):
        _vitamins(db, masters)
        appt = _appt(db, masters)
        clinic.record_examination(db, appt.id, diagnosis="Skin allergy")
        clinic.add_service(db, appt.id, service_id=masters.exam.id)
        clinic.add_service(
            db, appt.id, service_id=masters.exam.id, product_id=masters.vitamin.id, quantity=2, unit_price=35000,
        )

        res = clinic.submit_appointment(db, appt.id, [{"amount": 220000, "payment_method": "CASH"}])

        assert appt.status == AppointmentStatus.COMPLETED
        assert res["outstanding"] == Decimal("0.00")
        assert _stock_qty(db, masters) == 8

        entry = res["journal_entry"]
        assert entry.source_type == SourceType.CLINIC
        assert entry.journal_date == VISIT
        by_code = {ln.account.code: (ln.debit_amount, ln.credit_amount) for ln in entry.lines}
        assert by_code["1-101"][0] == Decimal("220000.00")
        assert by_code["4-121"][1] == Decimal("220000.00")
        assert by_code["5-103"][0] == Decimal("40000.00")
        assert by_code["1-133"][1] == Decimal("40000.00")

        record = res["medical_record"]
        assert record.diagnosis == "Skin allergy"
        assert record.veterinarian == "drh. Sari"

    def test_credit_visit_then_payment(self, db, masters, balance):
        appt = _appt(db, masters)
        clinic.add_service(db, appt.id, service_id=masters.exam.id)
        res = clinic.submit_appointment(db, appt.id, [{"amount": 100000}])
        assert res["outstanding"] == Decimal("50000.00")
        assert balance("1-120") == Decimal("50000.00")

        paid = clinic.add_payment(db, appt.id, amount=50000, payment_method="QRIS")
        assert paid["journal_entry"].source_type == SourceType.PAYMENT
        assert appt.outstanding_amount == Decimal("0.00")
        assert balance("1-111") == Decimal("50000.00")
        assert balance("1-120") == Decimal("0.00")
        with pytest.raises(ConflictStateError):
            clinic.add_payment(db, appt.id, amount=1000)

    def test_rules(self, db, masters):
        appt = _appt(db, masters)
        with pytest.raises(NoItemsError):
            clinic.submit_appointment(db, appt.id, [])
        with pytest.raises(StatusConflictError):
            clinic.add_payment(db, appt.id, amount=1000)

        clinic.add_service(db, appt.id, service_id=masters.exam.id)
        clinic.submit_appointment(db, appt.id, [])
        with pytest.raises(StatusConflictError):
            clinic.submit_appointment(db, appt.id, [])
        with pytest.raises(StatusConflictError):
            clinic.add_service(db, appt.id, service_id=masters.exam.id)
        with pytest.raises(StatusConflictError):
            clinic.cancel_appointment(db, appt.id)
        with pytest.raises(StatusConflictError):
            clinic.delete_appointment(db, appt.id)

    def test_delete_scheduled(self, db, masters):
        appt = _appt(db, masters)
        clinic.delete_appointment(db, appt.id)
        assert clinic.list_appointments(db, branch_id=masters.branch.id) == []


class TestPrescriptions:
    def _visit_with_prescription(self, db, m):
        _vitamins(db, m)
        appt = _appt(db, m)
        clinic.add_service(db, appt.id, service_id=m.exam.id)
        rx = clinic.add_service(
            db, appt.id, service_id=m.exam.id, product_id=m.vitamin.id, quantity=3, unit_price=35000,
            is_prescription=True, prescription_dosage="1x daily",
        )
        res = clinic.submit_appointment(db, appt.id, [{"amount": 255000}])
        return appt, rx, res

    def test_prescription_waits_for_pickup(self, db, masters):
        appt, rx, res = self._visit_with_prescription(db, masters)
        assert rx.prescription_picked_up is False
        assert _stock_qty(db, masters) == 10
        codes = {ln.account.code for ln in res["journal_entry"].lines}
        assert "5-103" not in codes
        assert res["medical_record"].prescription == "Pet Vitamin - 1x daily"

    def test_pickup_moves_stock_and_posts_cost(self, db, masters, balance):
        appt, rx, _ = self._visit_with_prescription(db, masters)

        out = clinic.pickup_prescription(db, rx.id)

        assert out["cogs"] == Decimal("60000.00")
        assert rx.prescription_picked_up is True
        assert rx.prescription_pickup_date is not None
        assert _stock_qty(db, masters) == 7
        assert balance("5-103") == Decimal("60000.00")
        assert len(get_by_source(db, SourceType.CLINIC, appt.id)) == 2

        with pytest.raises(ConflictStateError):
            clinic.pickup_prescription(db, rx.id)
        with pytest.raises(ValidationError):
            clinic.dispense_prescriptions(db, appt.id)

    def test_dispense_requires_completed_visit(self, db, masters):
        appt = _appt(db, masters)
        clinic.add_service(
            db, appt.id, service_id=masters.exam.id, product_id=masters.vitamin.id, is_prescription=True,
        )
        with pytest.raises(StatusConflictError):
            clinic.dispense_prescriptions(db, appt.id)
