from datetime import date
from decimal import Decimal

import pytest

from petcare.models import JournalStatus, SourceType
from petcare.services import journal_engine as je
from petcare.services.errors import (
    DuplicateEntryError,
    NotFoundError,
    StatusConflictError,
    UnbalancedJournalError,
    ValidationError,
)
from petcare.services.journal_engine import credit, debit

D1 = date(2025, 1, 10)


def _manual(db, amount=500000, number=None):
    return je.create_manual_entry(
        db,
        journal_date=D1,
        description="Owner capital",
        journal_number=number,
        lines=[
            {"account_code": "1-101", "debit": amount},
            {"account_code": "3-100", "credit": amount},
        ],
    )


class TestValidation:
    def test_unbalanced_uses_duplicate_entry_code(self, db):
        with pytest.raises(UnbalancedJournalError) as exc:
            je.create_manual_entry(db, journal_date=D1, description="x", lines=[
                {"account_code": "1-101", "debit": 100},
                {"account_code": "3-100", "credit": 90},
            ])
        assert exc.value.code == "DUPLICATE_ENTRY"
        assert "Debit: 100.00, Credit: 90.00" in exc.value.message

    def test_tolerance_allows_one_cent(self, db):
        entry = je.create_manual_entry(db, journal_date=D1, description="x", lines=[
            {"account_code": "1-101", "debit": "100.01"},
            {"account_code": "3-100", "credit": "100.00"},
        ])
        assert entry.total_debit == Decimal("100.01")

    @pytest.mark.parametrize("lines", [
        [{"account_code": "1-101", "debit": 100}],
        [{"account_code": "1-101", "debit": 100, "credit": 100}, {"account_code": "3-100", "credit": 0}],
        [{"account_code": "1-101", "debit": -100}, {"account_code": "3-100", "credit": -100}],
        [{"account_code": "1-000", "debit": 100}, {"account_code": "3-100", "credit": 100}],
    ])
    def test_rejected_lines(self, db, lines):
        with pytest.raises(ValidationError):
            je.create_manual_entry(db, journal_date=D1, description="x", lines=lines)

    def test_unknown_account(self, db):
        with pytest.raises(NotFoundError):
            je.create_manual_entry(db, journal_date=D1, description="x", lines=[
                {"account_code": "9-999", "debit": 1},
                {"account_code": "3-100", "credit": 1},
            ])

    def test_description_required(self, db):
        with pytest.raises(ValidationError):
            je.create_manual_entry(db, journal_date=D1, description="  ", lines=[])


class TestManualLifecycle:
    def test_draft_post_void(self, db, balance):
        entry = _manual(db)
        assert entry.status == JournalStatus.DRAFT
        assert entry.source_type == SourceType.MANUAL
        assert entry.journal_number.startswith("JE-")
        # Drafts do not count
        assert balance("1-101") == Decimal("0.00")

        je.post_entry(db, entry.id)
        assert entry.status == JournalStatus.POSTED
        assert entry.posted_at is not None
        assert balance("1-101") == Decimal("500000.00")

        with pytest.raises(ValidationError):
            je.void_entry(db, entry.id, " ")
        je.void_entry(db, entry.id, "Wrong amount")
        assert entry.status == JournalStatus.VOIDED
        assert entry.void_reason == "Wrong amount"
        assert balance("1-101") == Decimal("0.00")

    def test_one_directional_transitions(self, db):
        entry = _manual(db)
        with pytest.raises(StatusConflictError):
            je.void_entry(db, entry.id, "draft")
        je.post_entry(db, entry.id)
        with pytest.raises(StatusConflictError):
            je.post_entry(db, entry.id)
        with pytest.raises(StatusConflictError):
            je.update_manual_entry(db, entry.id, description="changed")
        with pytest.raises(StatusConflictError):
            je.delete_entry(db, entry.id)

    def test_update_replaces_lines(self, db):
        entry = _manual(db)
        je.update_manual_entry(db, entry.id, description="Capital top-up", lines=[
            {"account_code": "1-111", "debit": 250000},
            {"account_code": "3-100", "credit": 250000},
        ])
        fresh = je.get_entry(db, entry.id)
        assert fresh.description == "Capital top-up"
        assert fresh.total_debit == Decimal("250000.00")
        assert sorted(ln.account.code for ln in fresh.lines) == ["1-111", "3-100"]

    def test_custom_number_must_be_unique(self, db):
        _manual(db, number="JE-MANUAL-1")
        with pytest.raises(DuplicateEntryError):
            _manual(db, number="JE-MANUAL-1")

    def test_delete_draft_hides_it(self, db):
        entry = _manual(db)
        je.delete_entry(db, entry.id)
        with pytest.raises(NotFoundError):
            je.get_entry(db, entry.id)


class TestSystemEntries:
    def test_zero_lines_dropped(self, db):
        entry = je.create_system_entry(
            db,
            source_type=SourceType.SALE,
            source_id=7,
            description="Sale",
            lines=[
                debit("1-101", 1000),
                debit("1-120", 0),
                credit("4-111", 1000),
                credit("2-111", 0),
            ],
        )
        assert entry.status == JournalStatus.POSTED
        assert len(entry.lines) == 2
        assert je.get_by_source(db, "SALE", 7)[0].id == entry.id

    def test_nothing_left_means_no_entry(self, db):
        assert je.create_system_entry(
            db, source_type=SourceType.SALE, source_id=1, description="empty",
            lines=[debit("1-101", 0), credit("4-111", 0)],
        ) is None

    def test_trial_balance(self, db):
        je.create_system_entry(
            db, source_type=SourceType.SALE, source_id=1, description="s",
            lines=[debit("1-101", 110000), credit("4-111", 100000), credit("2-111", 10000)],
        )
        tb = je.trial_balance(db)
        assert tb["is_balanced"]
        assert tb["total_debit"] == tb["total_credit"] == Decimal("110000.00")
        assert {r["code"] for r in tb["rows"]} == {"1-101", "4-111", "2-111"}

    def test_list_filters(self, db):
        _manual(db)
        je.create_system_entry(
            db, source_type=SourceType.SALE, source_id=1, description="s",
            lines=[debit("1-101", 1), credit("4-111", 1)],
        )
        assert len(je.list_entries(db, status="DRAFT")) == 1
        assert len(je.list_entries(db, source_type="SALE")) == 1
        assert len(je.list_entries(db, q="Owner")) == 1
