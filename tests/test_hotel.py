from datetime import datetime
from decimal import Decimal

import pytest

from petcare.models import BookingStatus, HotelPaymentType, RoomStatus, SourceType
from petcare.services import hotel_service as hotel
from petcare.services import inventory_ledger as ledger
from petcare.services.errors import (
    ConflictStateError,
    PaymentExceedsTotalError,
    StatusConflictError,
    ValidationError,
)
from petcare.services.journal_engine import get_by_source

CHECK_IN = datetime(2025, 1, 10, 14, 0)
CHECK_OUT = datetime(2025, 1, 13, 12, 0)


def _book(db, m, check_in=CHECK_IN, check_out=CHECK_OUT, **kw):
    return hotel.create_booking(
        db,
        branch_id=m.branch.id,
        customer_id=m.customer.id,
        pet_id=m.pet.id,
        room_id=m.room.id,
        check_in_date=check_in,
        check_out_date=check_out,
        **kw,
    )


def _checked_in(db, m, **kw):
    booking = _book(db, m, **kw)
    hotel.check_in(db, booking.id, actual_check_in_date=CHECK_IN)
    return booking


class TestNights:
    @pytest.mark.parametrize(
        "check_out, nights",
        [
            (datetime(2025, 1, 10, 18, 0), 1),
            (datetime(2025, 1, 12, 14, 0), 2),
            (datetime(2025, 1, 12, 15, 0), 3),
            (CHECK_OUT, 3),
        ],
    )
    def test_partial_days_round_up(self, check_out, nights):
        assert hotel.nights_between(CHECK_IN, check_out) == nights


class TestBooking:
    def test_create_locks_rate_and_reserves_room(self, db, masters):
        booking = _book(db, masters)
        assert booking.booking_number == "HTL-20250110-001"
        assert booking.status == BookingStatus.RESERVED
        assert booking.number_of_days == 3
        assert booking.room_total == Decimal("600000.00")
        assert booking.total_amount == Decimal("600000.00")
        assert masters.room.status == RoomStatus.RESERVED

        masters.room.daily_rate = Decimal("250000")
        assert booking.daily_rate == Decimal("200000.00")

    def test_dates_must_be_ordered(self, db, masters):
        with pytest.raises(ValidationError):
            _book(db, masters, check_out=CHECK_IN)

    def test_overlap_is_rejected(self, db, masters):
        _book(db, masters)
        with pytest.raises(ConflictStateError):
            _book(db, masters, check_in=datetime(2025, 1, 12, 10, 0), check_out=datetime(2025, 1, 14, 10, 0))
        back_to_back = _book(db, masters, check_in=CHECK_OUT, check_out=datetime(2025, 1, 14, 12, 0))
        assert back_to_back.number_of_days == 1

    def test_cancelled_booking_frees_the_room(self, db, masters):
        first = _book(db, masters)
        hotel.cancel_booking(db, first.id, reason="Trip postponed")
        assert masters.room.status == RoomStatus.AVAILABLE
        assert _book(db, masters).status == BookingStatus.RESERVED
        with pytest.raises(StatusConflictError):
            hotel.cancel_booking(db, first.id)

    def test_check_in(self, db, masters):
        booking = _checked_in(db, masters)
        assert booking.status == BookingStatus.CHECKED_IN
        assert booking.actual_check_in_date == CHECK_IN
        assert masters.room.status == RoomStatus.OCCUPIED
        with pytest.raises(StatusConflictError):
            hotel.check_in(db, booking.id)
        with pytest.raises(StatusConflictError):
            hotel.delete_booking(db, booking.id)


class TestCharges:
    def test_services(self, db, masters):
        booking = _book(db, masters)
        row = hotel.add_service(db, booking.id, service_id=masters.grooming.id)
        assert booking.services_total == Decimal("80000.00")
        hotel.update_service(db, booking.id, row.id, quantity=2, discount_amount=10000)
        assert booking.total_amount == Decimal("750000.00")
        hotel.remove_service(db, booking.id, row.id)
        assert booking.total_amount == Decimal("600000.00")

        with pytest.raises(ValidationError):
            hotel.add_service(db, booking.id, service_id=masters.dog_food.id)

    def test_consumables_are_charged_at_average_cost(self, db, masters):
        ledger.set_initial_stock(db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=10, unit_cost=60000)
        booking = _checked_in(db, masters)

        row = hotel.add_consumable(db, booking.id, product_id=masters.dog_food.id, quantity=2)

        assert row.unit_price == Decimal("60000.0000")
        assert row.subtotal == Decimal("120000.00")
        assert row.cost == Decimal("120000.00")
        assert booking.consumables_total == Decimal("120000.00")
        assert Decimal(ledger.get_stock(db, masters.branch.id, masters.dog_food.id).quantity) == 8

        hotel.remove_consumable(db, booking.id, row.id)
        assert booking.consumables_total == Decimal("0.00")
        assert Decimal(ledger.get_stock(db, masters.branch.id, masters.dog_food.id).quantity) == 8

    def test_consumable_rules(self, db, masters):
        reserved = _book(db, masters)
        with pytest.raises(StatusConflictError):
            hotel.add_consumable(db, reserved.id, product_id=masters.dog_food.id, quantity=1)
        hotel.cancel_booking(db, reserved.id)

        own_food = _checked_in(db, masters, own_food=True)
        with pytest.raises(ValidationError):
            hotel.add_consumable(db, own_food.id, product_id=masters.dog_food.id, quantity=1)

    def test_discount_and_tax(self, db, masters):
        booking = _book(db, masters)
        hotel.update_discount_and_tax(db, booking.id, discount_amount=10, discount_type="percent", tax_rate=11)
        assert booking.tax_amount == Decimal("59400.00")
        assert booking.total_amount == Decimal("599400.00")


class TestCheckout:
    def _full_stay(self, db, m):
        ledger.set_initial_stock(db, branch_id=m.branch.id, product_id=m.dog_food.id, quantity=10, unit_cost=60000)
        booking = _book(db, m)
        deposit = hotel.add_payment(db, booking.id, amount=200000)
        hotel.check_in(db, booking.id, actual_check_in_date=CHECK_IN)
        hotel.add_service(db, booking.id, service_id=m.grooming.id)
        hotel.add_consumable(db, booking.id, product_id=m.dog_food.id, quantity=2)
        return booking, deposit

    def test_deposit_credits_receivable(self, db, masters, balance):
        booking, deposit = self._full_stay(db, masters)
        assert deposit["payment"].payment_type == HotelPaymentType.DEPOSIT.value
        assert deposit["journal_entry"].source_type == SourceType.PAYMENT
        assert balance("1-120") == Decimal("-200000.00")
        assert booking.outstanding_amount == Decimal("600000.00")

    def test_check_out_posts_invoice_and_payments(self, db, masters, balance):
        booking, _ = self._full_stay(db, masters)

        res = hotel.check_out(
            db, booking.id, [{"amount": 700000, "payment_method": "CASH"}], actual_check_out_date=CHECK_OUT,
        )

        assert res["total"] == Decimal("800000.00")
        assert res["paid"] == Decimal("800000.00")
        assert res["change"] == Decimal("100000.00")
        assert res["outstanding"] == Decimal("0.00")
        assert booking.status == BookingStatus.CHECKED_OUT
        assert masters.room.status == RoomStatus.AVAILABLE

        invoice = res["journal_entry"]
        assert invoice.source_type == SourceType.HOTEL
        assert invoice.total_debit == Decimal("920000.00")
        assert len(res["payment_entries"]) == 1
        assert booking.payments[-1].payment_type == HotelPaymentType.FULL.value

        assert balance("1-120") == Decimal("0.00")
        assert balance("1-101") == Decimal("800000.00")
        assert balance("4-140") == Decimal("680000.00")
        assert balance("4-111") == Decimal("120000.00")
        assert balance("5-101") == Decimal("120000.00")
        assert balance("1-131") == Decimal("480000.00")

    def test_check_out_on_credit_then_settle(self, db, masters, balance):
        booking, _ = self._full_stay(db, masters)
        res = hotel.check_out(db, booking.id, [], actual_check_out_date=CHECK_OUT)
        assert res["outstanding"] == Decimal("600000.00")
        assert balance("1-120") == Decimal("600000.00")

        late = hotel.add_payment(db, booking.id, amount=650000, payment_type="FullPayment")
        assert late["payment"].amount == Decimal("600000.00")
        assert late["change"] == Decimal("50000.00")
        assert booking.outstanding_amount == Decimal("0.00")
        with pytest.raises(ConflictStateError):
            hotel.add_payment(db, booking.id, amount=1000)

    def test_check_out_requires_check_in(self, db, masters):
        booking = _book(db, masters)
        with pytest.raises(StatusConflictError):
            hotel.check_out(db, booking.id, [])
        hotel.cancel_booking(db, booking.id)
        with pytest.raises(StatusConflictError):
            hotel.add_payment(db, booking.id, amount=1000)

    def test_unknown_payment_type(self, db, masters):
        booking = _book(db, masters)
        with pytest.raises(ValidationError):
            hotel.add_payment(db, booking.id, amount=1000, payment_type="Tip")

    def test_invoice(self, db, masters):
        booking, _ = self._full_stay(db, masters)
        invoice = hotel.generate_invoice(db, booking.id)
        assert [ln["type"] for ln in invoice["lines"]] == ["room", "service", "consumable"]
        assert invoice["lines"][0]["description"] == "Standard 1 x 3 night(s)"
        assert invoice["totals"]["total"] == Decimal("800000.00")
        assert invoice["totals"]["paid"] == Decimal("200000.00")
        assert invoice["totals"]["outstanding"] == Decimal("600000.00")
        assert invoice["pet"] == "Milo"


class TestDeposits:
    def test_non_cash_deposit_cannot_exceed_the_bill(self, db, masters, balance):
        booking = _book(db, masters)
        with pytest.raises(PaymentExceedsTotalError):
            hotel.add_payment(db, booking.id, amount=1000000, payment_method="QRIS")
        assert booking.paid_amount == Decimal("0.00")
        assert balance("1-120") == Decimal("0.00")

    def test_cash_deposit_is_capped_with_change(self, db, masters, balance):
        booking = _book(db, masters)
        res = hotel.add_payment(db, booking.id, amount=650000)
        assert res["payment"].amount == Decimal("600000.00")
        assert res["change"] == Decimal("50000.00")
        assert booking.outstanding_amount == Decimal("0.00")
        assert balance("1-101") == Decimal("600000.00")
        with pytest.raises(ConflictStateError):
            hotel.add_payment(db, booking.id, amount=1000, payment_method="QRIS")

    def test_deposits_settle_against_what_is_left(self, db, masters):
        booking = _book(db, masters)
        hotel.add_payment(db, booking.id, amount=400000, payment_method="QRIS")
        with pytest.raises(PaymentExceedsTotalError):
            hotel.add_payment(db, booking.id, amount=250000, payment_method="DEBIT_CARD")
        hotel.add_payment(db, booking.id, amount=200000, payment_method="DEBIT_CARD")
        assert booking.outstanding_amount == Decimal("0.00")

    def test_bill_cannot_drop_below_deposits(self, db, masters):
        booking = _book(db, masters)
        row = hotel.add_service(db, booking.id, service_id=masters.grooming.id)
        hotel.add_payment(db, booking.id, amount=680000, payment_method="QRIS")
        with pytest.raises(ConflictStateError):
            hotel.remove_service(db, booking.id, row.id)
        with pytest.raises(ConflictStateError):
            hotel.update_discount_and_tax(db, booking.id, discount_amount=100000)

    def test_refund_type_is_not_accepted(self, db, masters):
        booking = _book(db, masters)
        with pytest.raises(ValidationError):
            hotel.add_payment(db, booking.id, amount=1000, payment_type="Refund")


class TestCancelWithDeposits:
    def test_cancel_refunds_each_deposit(self, db, masters, balance):
        booking = _book(db, masters)
        hotel.add_payment(db, booking.id, amount=100000)
        hotel.add_payment(db, booking.id, amount=150000, payment_method="QRIS")
        assert balance("1-120") == Decimal("-250000.00")

        hotel.cancel_booking(db, booking.id, reason="Owner sick")

        assert booking.status == BookingStatus.CANCELLED
        assert booking.paid_amount == Decimal("0.00")
        refunds = [p for p in booking.payments if p.payment_type == HotelPaymentType.REFUND.value]
        assert [(p.payment_method, p.amount) for p in refunds] == [
            ("CASH", Decimal("100000.00")),
            ("QRIS", Decimal("150000.00")),
        ]
        assert balance("1-120") == Decimal("0.00")
        assert balance("1-101") == Decimal("0.00")
        assert balance("1-111") == Decimal("0.00")
        assert len(get_by_source(db, SourceType.PAYMENT, refunds[0].id)) == 1

    def test_paid_booking_cannot_be_deleted(self, db, masters):
        booking = _book(db, masters)
        hotel.add_payment(db, booking.id, amount=100000)
        with pytest.raises(StatusConflictError):
            hotel.delete_booking(db, booking.id)
        hotel.cancel_booking(db, booking.id)
        assert hotel.delete_booking(db, booking.id).deleted_at is not None
