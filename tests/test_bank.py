from datetime import date, datetime
from decimal import Decimal

import pytest

from petcare.models import BankTransactionType, JournalStatus, ReconciliationStatus, SourceType
from petcare.services import bank_service as bank
from petcare.services import hotel_service as hotel
from petcare.services.errors import (
    ConflictStateError,
    DuplicateEntryError,
    NotFoundError,
    StatusConflictError,
    ValidationError,
)
from petcare.services.journal_engine import get_by_source


def _bca(db, **kw):
    kw.setdefault("initial_balance", 5000000)
    return bank.create_bank_account(
        db,
        account_name="Operasional",
        bank_name="BCA",
        account_number="123-456",
        account_code="1-111",
        opening_date=date(2025, 1, 1),
        **kw,
    )


def _tx(db, ba, kind, amount, day, **kw):
    return bank.record_transaction(
        db,
        bank_account_id=ba.id,
        transaction_type=kind,
        amount=amount,
        description=kw.pop("description", f"{kind} {amount}"),
        transaction_date=date(2025, 1, day),
        **kw,
    )


class TestBankAccounts:
    def test_opening_balance_is_journaled(self, db, masters, balance):
        ba = _bca(db)
        assert ba.current_balance == Decimal("5000000.00")
        assert ba.account.code == "1-111"
        assert balance("1-111") == Decimal("5000000.00")
        assert balance("3-100") == Decimal("5000000.00")
        assert len(get_by_source(db, SourceType.OPENING_BALANCE, ba.id)) == 1

    def test_zero_opening_posts_nothing(self, db, masters):
        ba = _bca(db, initial_balance=0)
        assert get_by_source(db, SourceType.OPENING_BALANCE, ba.id) == []

    def test_duplicate_number(self, db, masters):
        _bca(db)
        with pytest.raises(DuplicateEntryError):
            _bca(db)

    @pytest.mark.parametrize("code", ["2-101", "1-100", "4-201"])
    def test_linked_account_must_be_postable_asset(self, db, masters, code):
        with pytest.raises(ValidationError):
            bank.create_bank_account(
                db, account_name="X", bank_name="BCA", account_number="9", account_code=code,
            )

    def test_negative_opening_rejected(self, db, masters):
        with pytest.raises(ValidationError):
            _bca(db, initial_balance=-1)

    def test_list_skips_inactive(self, db, masters):
        ba = _bca(db)
        bank.create_bank_account(db, account_name="Gaji", bank_name="Mandiri", account_number="77", account_code="1-112")
        bank.update_bank_account(db, ba.id, is_active=False)
        assert [b.bank_name for b in bank.list_bank_accounts(db)] == ["Mandiri"]
        assert [b.bank_name for b in bank.list_bank_accounts(db, include_inactive=True)] == ["BCA", "Mandiri"]

    def test_remove_blocked_by_unreconciled(self, db, masters):
        ba = _bca(db)
        tx = _tx(db, ba, "DEPOSIT", 100000, 5)
        with pytest.raises(ConflictStateError):
            bank.remove_bank_account(db, ba.id)
        bank.reconcile(db, tx.id)
        bank.remove_bank_account(db, ba.id)
        with pytest.raises(NotFoundError):
            bank.get_bank_account(db, ba.id)

    def test_balance_summary(self, db, masters):
        _bca(db)
        bank.create_bank_account(
            db, account_name="Gaji", bank_name="BCA", account_number="88", account_code="1-113",
            initial_balance=1000000,
        )
        summary = bank.balance_summary(db)
        assert summary["total_balance"] == Decimal("6000000.00")
        assert summary["by_bank"] == [{"bank_name": "BCA", "account_count": 2, "total_balance": Decimal("6000000.00")}]


class TestTransactions:
    def test_default_counter_accounts(self, db, masters, balance):
        ba = _bca(db)
        _tx(db, ba, "DEPOSIT", 1000000, 3)
        _tx(db, ba, "FEE", 15000, 31)
        _tx(db, ba, "INTEREST", 5000, 31)

        assert ba.current_balance == Decimal("5990000.00")
        assert balance("1-111") == Decimal("5990000.00")
        assert balance("1-101") == Decimal("-1000000.00")
        assert balance("5-211") == Decimal("15000.00")
        assert balance("4-201") == Decimal("5000.00")

    def test_transfer_out_with_explicit_counter(self, db, masters, balance):
        ba = _bca(db)
        tx = _tx(db, ba, "TRANSFER_OUT", 200000, 4, counter_account_code="1-112")
        assert tx.transaction_type == BankTransactionType.TRANSFER_OUT
        assert tx.journal_entry.source_type == SourceType.BANK
        assert balance("1-112") == Decimal("200000.00")
        assert balance("1-111") == Decimal("4800000.00")

    def test_without_journal(self, db, masters, balance):
        ba = _bca(db)
        tx = _tx(db, ba, "DEPOSIT", 1000, 3, auto_journal=False)
        assert tx.journal_entry_id is None
        assert ba.current_balance == Decimal("5001000.00")
        assert balance("1-111") == Decimal("5000000.00")

    def test_rejections(self, db, masters):
        ba = _bca(db)
        with pytest.raises(ValidationError):
            _tx(db, ba, "DEPOSIT", 0, 3)
        with pytest.raises(ValidationError):
            _tx(db, ba, "CHEQUE", 1000, 3)
        with pytest.raises(ValidationError):
            _tx(db, ba, "DEPOSIT", 1000, 3, description="  ")
        with pytest.raises(ValidationError):
            _tx(db, ba, "DEPOSIT", 1000, 3, counter_account_code="1-111")
        with pytest.raises(ValidationError):
            _tx(db, ba, "DEPOSIT", 1000, 3, counter_account_code="1-100")
        bank.update_bank_account(db, ba.id, is_active=False)
        with pytest.raises(StatusConflictError):
            _tx(db, ba, "DEPOSIT", 1000, 3)

    def test_statement_running_balance(self, db, masters):
        ba = _bca(db, initial_balance=1000000)
        _tx(db, ba, "DEPOSIT", 500000, 2)
        _tx(db, ba, "WITHDRAWAL", 200000, 10)
        dropped = _tx(db, ba, "WITHDRAWAL", 50000, 12)
        _tx(db, ba, "FEE", 10000, 20)
        bank.void_transaction(db, dropped.id, "Entered twice")

        st = bank.get_statement(db, ba.id, date_from=date(2025, 1, 5))
        assert st["opening_balance"] == Decimal("1500000.00")
        assert [row["balance"] for row in st["transactions"]] == [
            Decimal("1300000.00"),
            Decimal("1300000.00"),
            Decimal("1290000.00"),
        ]
        assert st["closing_balance"] == Decimal("1290000.00")
        assert st["total_withdrawals"] == Decimal("210000.00")
        assert st["total_deposits"] == Decimal("0.00")

        assert bank.balance_at(db, ba.id, date(2024, 12, 31)) == Decimal("1000000.00")
        assert bank.balance_at(db, ba.id, date(2025, 1, 12)) == Decimal("1300000.00")
        assert bank.balance_at(db, ba.id, date(2025, 2, 1)) == ba.current_balance

    def test_list_filters(self, db, masters):
        ba = _bca(db)
        _tx(db, ba, "DEPOSIT", 1000, 2)
        _tx(db, ba, "FEE", 100, 9)
        rows = bank.list_transactions(db, bank_account_id=ba.id, transaction_type="fee")
        assert [t.amount for t in rows] == [Decimal("100.00")]
        rows = bank.list_transactions(db, date_from=date(2025, 1, 1), date_to=date(2025, 1, 5))
        assert [t.transaction_type for t in rows] == [BankTransactionType.DEPOSIT]


class TestReconciliation:
    def test_reconcile_and_undo(self, db, masters):
        ba = _bca(db)
        tx = _tx(db, ba, "DEPOSIT", 1000, 2)
        bank.reconcile(db, tx.id, date(2025, 1, 31))
        assert tx.reconciliation_status == ReconciliationStatus.RECONCILED
        assert tx.bank_statement_date == date(2025, 1, 31)
        with pytest.raises(ConflictStateError):
            bank.reconcile(db, tx.id)
        bank.unreconcile(db, tx.id)
        assert tx.reconciled_at is None
        with pytest.raises(StatusConflictError):
            bank.unreconcile(db, tx.id)
        assert bank.reconciliation_summary(db, ba.id) == {
            "total_transactions": 1, "reconciled": 0, "unreconciled": 1, "voided": 0,
        }

    def test_bulk_reports_failures(self, db, masters):
        ba = _bca(db)
        a = _tx(db, ba, "DEPOSIT", 1000, 2)
        b = _tx(db, ba, "DEPOSIT", 2000, 3)
        c = _tx(db, ba, "DEPOSIT", 3000, 4)
        bank.reconcile(db, b.id)
        bank.void_transaction(db, c.id, "Wrong account")

        res = bank.bulk_reconcile(db, [a.id, b.id, c.id, 9999], date(2025, 1, 31))
        assert res == {"success_count": 1, "failed_ids": [b.id, c.id, 9999]}
        assert a.reconciliation_status == ReconciliationStatus.RECONCILED


class TestVoid:
    def test_void_reverses_register_and_journal(self, db, masters, balance):
        ba = _bca(db)
        tx = _tx(db, ba, "WITHDRAWAL", 300000, 6)
        bank.void_transaction(db, tx.id, "Bounced")
        assert tx.reconciliation_status == ReconciliationStatus.VOID
        assert tx.void_reason == "Bounced"
        assert tx.journal_entry.status == JournalStatus.VOIDED
        assert ba.current_balance == Decimal("5000000.00")
        assert balance("1-111") == Decimal("5000000.00")
        with pytest.raises(StatusConflictError):
            bank.void_transaction(db, tx.id)
        with pytest.raises(StatusConflictError):
            bank.reconcile(db, tx.id)

    def test_reconciled_cannot_be_voided(self, db, masters):
        ba = _bca(db)
        tx = _tx(db, ba, "DEPOSIT", 1000, 2)
        bank.reconcile(db, tx.id)
        with pytest.raises(StatusConflictError):
            bank.void_transaction(db, tx.id)


class TestPaymentRouting:
    def _booking(self, db, m):
        return hotel.create_booking(
            db, branch_id=m.branch.id, customer_id=m.customer.id, pet_id=m.pet.id, room_id=m.room.id,
            check_in_date=datetime(2025, 1, 10, 14, 0), check_out_date=datetime(2025, 1, 13, 12, 0),
        )

    def test_claimed_method_lands_in_that_bank(self, db, masters, balance):
        bank.create_bank_account(
            db, account_name="QRIS", bank_name="Mandiri", account_number="77",
            account_code="1-112", payment_methods=["QRIS"],
        )
        booking = self._booking(db, masters)
        hotel.add_payment(db, booking.id, amount=150000, payment_method="QRIS")
        hotel.add_payment(db, booking.id, amount=50000, payment_method="DEBIT_CARD")
        assert balance("1-112") == Decimal("150000.00")
        assert balance("1-111") == Decimal("50000.00")

    def test_inactive_account_releases_its_methods(self, db, masters, balance):
        ba = bank.create_bank_account(
            db, account_name="QRIS", bank_name="Mandiri", account_number="77",
            account_code="1-112", payment_methods="QRIS",
        )
        bank.update_bank_account(db, ba.id, is_active=False)
        booking = self._booking(db, masters)
        hotel.add_payment(db, booking.id, amount=150000, payment_method="QRIS")
        assert balance("1-111") == Decimal("150000.00")

    def test_method_claimed_once(self, db, masters):
        bank.create_bank_account(
            db, account_name="QRIS", bank_name="Mandiri", account_number="77",
            account_code="1-112", payment_methods=["QRIS"],
        )
        with pytest.raises(ConflictStateError):
            _bca(db, payment_methods=["DEBIT_CARD", "QRIS"])
        with pytest.raises(ValidationError):
            _bca(db, payment_methods=["CASH"])
