from datetime import date
from decimal import Decimal

import pytest

from petcare.models import Account, JournalStatus, PeriodStatus
from petcare.services import journal_engine as je
from petcare.services import periods
from petcare.services.errors import (
    ConflictStateError,
    DuplicateEntryError,
    NotFoundError,
    ValidationError,
)


def _posted(db, d, dr_code, cr_code, amount, branch_id=None):
    entry = je.create_manual_entry(db, journal_date=d, description=f"{dr_code}/{cr_code}", lines=[
        {"account_code": dr_code, "debit": amount, "branch_id": branch_id},
        {"account_code": cr_code, "credit": amount, "branch_id": branch_id},
    ])
    return je.post_entry(db, entry.id)


def _balance_row(db, period, code, branch_id=None):
    acc = db.query(Account).filter(Account.code == code).one()
    for row in periods.get_period_balances(db, period.id, branch_id):
        if row.account_id == acc.id:
            return row
    return None


class TestPeriodLifecycle:
    def test_create(self, db):
        p = periods.create_period(db, 2025, 2)
        assert p.period_name == "Februari 2025"
        assert p.start_date == date(2025, 2, 1)
        assert p.end_date == date(2025, 2, 28)
        assert p.status == PeriodStatus.OPEN

    def test_create_rejections(self, db):
        periods.create_period(db, 2025, 1)
        with pytest.raises(DuplicateEntryError):
            periods.create_period(db, 2025, 1)
        with pytest.raises(ValidationError):
            periods.create_period(db, 2025, 13)

    def test_drafts_block_close(self, db):
        p = periods.create_period(db, 2025, 1)
        je.create_manual_entry(db, journal_date=date(2025, 1, 5), description="draft", lines=[
            {"account_code": "1-101", "debit": 1},
            {"account_code": "3-100", "credit": 1},
        ])
        with pytest.raises(ConflictStateError):
            periods.close_period(db, p.id)

    def test_closed_period_rejects_posting_but_allows_void(self, db):
        p = periods.create_period(db, 2025, 1)
        posted = _posted(db, date(2025, 1, 5), "1-101", "3-100", 1000)
        periods.close_period(db, p.id)

        draft = je.create_manual_entry(db, journal_date=date(2025, 1, 20), description="after close", lines=[
            {"account_code": "1-101", "debit": 1},
            {"account_code": "3-100", "credit": 1},
        ])
        with pytest.raises(ConflictStateError):
            je.post_entry(db, draft.id)

        je.void_entry(db, posted.id, "mistake")
        assert posted.status == JournalStatus.VOIDED

    def test_locked_period_rejects_void(self, db):
        p = periods.create_period(db, 2025, 1)
        posted = _posted(db, date(2025, 1, 5), "1-101", "3-100", 1000)
        with pytest.raises(ConflictStateError):
            periods.lock_period(db, p.id)
        periods.close_period(db, p.id)
        periods.lock_period(db, p.id)
        with pytest.raises(ConflictStateError):
            je.void_entry(db, posted.id, "too late")
        with pytest.raises(ConflictStateError):
            periods.close_period(db, p.id)

    def test_reopen_in_reverse_order(self, db):
        jan = periods.create_period(db, 2025, 1)
        feb = periods.create_period(db, 2025, 2)
        periods.close_period(db, jan.id)
        periods.close_period(db, feb.id)
        with pytest.raises(ConflictStateError):
            periods.reopen_period(db, jan.id)
        periods.reopen_period(db, feb.id)
        periods.reopen_period(db, jan.id)
        assert jan.status == PeriodStatus.OPEN
        assert periods.get_period_balances(db, jan.id) == []
        with pytest.raises(ConflictStateError):
            periods.reopen_period(db, jan.id)


class TestSnapshots:
    def test_opening_carries_forward(self, db, masters):
        branch_id = masters.branch.id
        jan = periods.create_period(db, 2025, 1)
        feb = periods.create_period(db, 2025, 2)
        _posted(db, date(2025, 1, 10), "1-101", "3-100", 500000, branch_id)
        _posted(db, date(2025, 2, 5), "1-101", "4-111", 100000, branch_id)
        _posted(db, date(2025, 2, 6), "5-212", "1-101", 30000, branch_id)

        periods.close_period(db, jan.id)
        periods.close_period(db, feb.id)

        cash_jan = _balance_row(db, jan, "1-101")
        assert cash_jan.closing_balance == Decimal("500000.00")

        cash_feb = _balance_row(db, feb, "1-101")
        assert cash_feb.opening_balance == Decimal("500000.00")
        assert cash_feb.debit_total == Decimal("100000.00")
        assert cash_feb.credit_total == Decimal("30000.00")
        assert cash_feb.closing_balance == Decimal("570000.00")

        revenue_feb = _balance_row(db, feb, "4-111")
        assert revenue_feb.closing_balance == Decimal("100000.00")

        branch_row = _balance_row(db, feb, "1-101", branch_id)
        assert branch_row.closing_balance == Decimal("570000.00")

    def test_every_postable_account_gets_a_row(self, db):
        p = periods.create_period(db, 2025, 3)
        periods.close_period(db, p.id)
        rows = periods.get_period_balances(db, p.id)
        postable = db.query(Account).filter(Account.is_header.is_(False)).count()
        assert len(rows) == postable
        assert all(r.closing_balance == 0 for r in rows)


class TestYearEndClose:
    def test_net_income_to_retained_earnings(self, db, balance):
        _posted(db, date(2024, 3, 1), "1-101", "4-111", 1000000)
        _posted(db, date(2024, 7, 1), "5-212", "1-101", 300000)
        dec = periods.create_period(db, 2024, 12)

        with pytest.raises(ConflictStateError):
            periods.year_end_close(db, 2024)
        periods.close_period(db, dec.id)

        res = periods.year_end_close(db, 2024)
        assert res["net_income"] == Decimal("700000.00")
        entry = res["journal_entry"]
        assert entry.journal_number == "YEC-2024"
        assert entry.journal_date == date(2024, 12, 31)
        assert balance("4-111") == Decimal("0.00")
        assert balance("5-212") == Decimal("0.00")
        assert balance("3-200") == Decimal("700000.00")

        with pytest.raises(DuplicateEntryError):
            periods.year_end_close(db, 2024)

    def test_net_loss(self, db, balance):
        _posted(db, date(2024, 3, 1), "1-101", "4-111", 100000)
        _posted(db, date(2024, 4, 1), "5-212", "1-101", 250000)
        dec = periods.create_period(db, 2024, 12)
        periods.close_period(db, dec.id)
        res = periods.year_end_close(db, 2024)
        assert res["net_income"] == Decimal("-150000.00")
        assert balance("3-200") == Decimal("-150000.00")

    def test_needs_december(self, db):
        with pytest.raises(NotFoundError):
            periods.year_end_close(db, 2023)
