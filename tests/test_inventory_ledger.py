from datetime import date
from decimal import Decimal

import pytest

from petcare.models import MovementType, SourceType
from petcare.services import inventory_ledger as ledger
from petcare.services.errors import (
    ConflictStateError,
    InsufficientStockError,
    InvalidQuantityError,
    NotFoundError,
    ValidationError,
)
from petcare.services.inventory_ledger import BatchInfo
from petcare.services.journal_engine import get_by_source


def _receive(db, m, product, qty, cost, batch=None, variant_id=None, branch=None):
    return ledger.increase_stock(
        db,
        branch_id=(branch or m.branch).id,
        product_id=product.id,
        variant_id=variant_id,
        quantity=qty,
        unit_cost=cost,
        reference_type="TEST",
        reference_id=1,
        batch=batch,
    )


class TestIncreaseStock:
    def test_new_row_takes_unit_cost(self, db, masters):
        res = _receive(db, masters, masters.dog_food, 10, 60000)
        assert res.quantity == Decimal("10")
        assert res.average_cost == Decimal("60000.0000")
        assert res.cogs == Decimal("600000.00")

    def test_weighted_average(self, db, masters):
        _receive(db, masters, masters.dog_food, 10, 60000)
        res = _receive(db, masters, masters.dog_food, 5, 66000)
        # (10*60000 + 5*66000) / 15 = 62000
        assert res.quantity == Decimal("15")
        assert res.average_cost == Decimal("62000.0000")

    def test_missing_cost_uses_purchase_price_then_current_average(self, db, masters):
        first = _receive(db, masters, masters.dog_food, 2, None)
        assert first.average_cost == Decimal("60000.0000")
        _receive(db, masters, masters.dog_food, 2, 70000)
        third = _receive(db, masters, masters.dog_food, 4, None)
        assert third.average_cost == Decimal("65000.0000")

    def test_variants_are_separate_positions(self, db, masters):
        _receive(db, masters, masters.dog_food, 3, 60000)
        _receive(db, masters, masters.dog_food, 2, 250000, variant_id=masters.food_5kg.id)
        base = ledger.get_stock(db, masters.branch.id, masters.dog_food.id)
        big = ledger.get_stock(db, masters.branch.id, masters.dog_food.id, masters.food_5kg.id)
        assert Decimal(base.quantity) == 3
        assert Decimal(big.quantity) == 2
        assert Decimal(big.average_cost) == Decimal("250000")

    def test_expiry_product_requires_batch(self, db, masters):
        with pytest.raises(ValidationError):
            _receive(db, masters, masters.vitamin, 5, 20000)
        with pytest.raises(ValidationError):
            _receive(db, masters, masters.vitamin, 5, 20000, batch=BatchInfo(batch_number="B1"))

    def test_services_are_ignored(self, db, masters):
        res = _receive(db, masters, masters.exam, 5, 1000)
        assert res.stock_id is None
        assert ledger.get_stock(db, masters.branch.id, masters.exam.id) is None

    def test_non_positive_quantity(self, db, masters):
        with pytest.raises(InvalidQuantityError):
            _receive(db, masters, masters.dog_food, 0, 100)

    def test_movement_recorded(self, db, masters):
        _receive(db, masters, masters.dog_food, 4, 60000)
        moves = ledger.list_movements(db, product_id=masters.dog_food.id)
        assert len(moves) == 1
        assert moves[0].movement_type == MovementType.PURCHASE_IN.value
        assert Decimal(moves[0].quantity) == 4
        assert moves[0].reference_id == "1"


class TestDecreaseStock:
    def test_cogs_uses_average_and_average_is_unchanged(self, db, masters):
        _receive(db, masters, masters.dog_food, 10, 60000)
        _receive(db, masters, masters.dog_food, 10, 70000)
        res = ledger.decrease_stock(
            db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=3,
            reference_type="SALE", reference_id=9,
        )
        assert res.cogs == Decimal("195000.00")
        assert res.average_cost == Decimal("65000.0000")
        assert res.quantity == Decimal("17")

    def test_insufficient_stock_leaves_row_untouched(self, db, masters):
        _receive(db, masters, masters.dog_food, 2, 60000)
        with pytest.raises(InsufficientStockError) as exc:
            ledger.decrease_stock(db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=5)
        assert str(exc.value) == "Insufficient stock. Available: 2, Required: 5"
        assert Decimal(ledger.get_stock(db, masters.branch.id, masters.dog_food.id).quantity) == 2

    def test_missing_row(self, db, masters):
        with pytest.raises(NotFoundError):
            ledger.decrease_stock(db, branch_id=masters.branch.id, product_id=masters.leash.id, quantity=1)

    def test_outbound_movement_is_negative(self, db, masters):
        _receive(db, masters, masters.dog_food, 5, 60000)
        ledger.decrease_stock(db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=2)
        out = ledger.list_movements(db, movement_type="SALE_OUT")
        assert Decimal(out[0].quantity) == -2


class TestFefo:
    def _three_batches(self, db, m):
        _receive(db, m, m.vitamin, 5, 20000, BatchInfo("LATE", date(2027, 1, 1)))
        _receive(db, m, m.vitamin, 5, 20000, BatchInfo("EARLY", date(2026, 6, 1)))
        _receive(db, m, m.vitamin, 5, 20000, BatchInfo("MID", date(2026, 9, 1)))

    def test_earliest_expiry_first(self, db, masters):
        self._three_batches(db, masters)
        ledger.decrease_stock(db, branch_id=masters.branch.id, product_id=masters.vitamin.id, quantity=7)
        remaining = {b.batch_number: Decimal(b.quantity) for b in ledger.list_batches(
            db, masters.branch.id, masters.vitamin.id, include_empty=True)}
        assert remaining == {"EARLY": 0, "MID": 3, "LATE": 5}

    def test_batches_listed_in_fefo_order(self, db, masters):
        self._three_batches(db, masters)
        names = [b.batch_number for b in ledger.list_batches(db, masters.branch.id, masters.vitamin.id)]
        assert names == ["EARLY", "MID", "LATE"]

    def test_batches_cover_every_unit(self, db, masters):
        ledger.set_initial_stock(
            db, branch_id=masters.branch.id, product_id=masters.vitamin.id, quantity=10, unit_cost=20000,
            batch=BatchInfo("OPEN", date(2026, 3, 1)),
        )
        ledger.adjust_stock(
            db, branch_id=masters.branch.id, product_id=masters.vitamin.id, quantity=2, reason="Recount",
            batch=BatchInfo("FOUND", date(2026, 8, 1)),
        )
        ledger.decrease_stock(db, branch_id=masters.branch.id, product_id=masters.vitamin.id, quantity=11)
        remaining = {b.batch_number: Decimal(b.quantity) for b in ledger.list_batches(
            db, masters.branch.id, masters.vitamin.id, include_empty=True)}
        assert remaining == {"OPEN": 0, "FOUND": 1}


class TestTransfer:
    def test_moves_quantity_and_cost(self, db, masters):
        _receive(db, masters, masters.dog_food, 10, 60000)
        _receive(db, masters, masters.dog_food, 10, 80000, branch=masters.south)
        res = ledger.transfer_stock(
            db, from_branch_id=masters.branch.id, to_branch_id=masters.south.id,
            product_id=masters.dog_food.id, quantity=10,
        )
        assert res["reference"].startswith("TRANSFER-")
        assert res["source_quantity"] == Decimal("0")
        assert res["destination_quantity"] == Decimal("20")
        assert res["destination_average_cost"] == Decimal("70000.0000")
        types = {m.movement_type for m in ledger.list_movements(db, reference_type="TRANSFER")}
        assert types == {"TRANSFER_IN", "TRANSFER_OUT"}

    def test_batches_follow_the_goods(self, db, masters):
        _receive(db, masters, masters.vitamin, 4, 20000, BatchInfo("B1", date(2026, 6, 1)))
        ledger.transfer_stock(
            db, from_branch_id=masters.branch.id, to_branch_id=masters.south.id,
            product_id=masters.vitamin.id, quantity=3,
        )
        dest = ledger.list_batches(db, masters.south.id, masters.vitamin.id)
        assert [(b.batch_number, Decimal(b.quantity)) for b in dest] == [("B1", 3)]

    def test_same_branch_rejected(self, db, masters):
        with pytest.raises(ValidationError):
            ledger.transfer_stock(
                db, from_branch_id=masters.branch.id, to_branch_id=masters.branch.id,
                product_id=masters.dog_food.id, quantity=1,
            )

    def test_insufficient(self, db, masters):
        _receive(db, masters, masters.dog_food, 1, 60000)
        with pytest.raises(InsufficientStockError):
            ledger.transfer_stock(
                db, from_branch_id=masters.branch.id, to_branch_id=masters.south.id,
                product_id=masters.dog_food.id, quantity=2,
            )


class TestAdjustAndInitial:
    def test_initial_stock_posts_opening_equity(self, db, masters, balance):
        res = ledger.set_initial_stock(
            db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=10, unit_cost=60000,
        )
        assert res["value"] == Decimal("600000.00")
        assert balance("1-131") == Decimal("600000.00")
        assert balance("3-100") == Decimal("600000.00")
        assert get_by_source(db, SourceType.INITIAL_STOCK, res["stock_id"])

    def test_initial_stock_only_once(self, db, masters):
        ledger.set_initial_stock(db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=1)
        with pytest.raises(ConflictStateError):
            ledger.set_initial_stock(db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=1)

    def test_shrinkage(self, db, masters, balance):
        ledger.set_initial_stock(
            db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=10, unit_cost=60000,
        )
        res = ledger.adjust_stock(
            db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=-2, reason="Damaged",
        )
        assert res["cost"] == Decimal("120000.00")
        assert res["quantity"] == Decimal("8")
        assert res["reference"].startswith("ADJ-")
        assert balance("5-101") == Decimal("120000.00")
        assert balance("1-131") == Decimal("480000.00")

    def test_found_stock_at_average(self, db, masters, balance):
        ledger.set_initial_stock(
            db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=10, unit_cost=60000,
        )
        res = ledger.adjust_stock(
            db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=1, reason="Recount",
        )
        assert res["cost"] == Decimal("60000.00")
        assert res["average_cost"] == Decimal("60000.0000")
        assert balance("1-131") == Decimal("660000.00")

    def test_adjust_rejections(self, db, masters):
        with pytest.raises(InvalidQuantityError):
            ledger.adjust_stock(db, branch_id=masters.branch.id, product_id=masters.dog_food.id, quantity=0, reason="x")
        with pytest.raises(ValidationError):
            ledger.adjust_stock(db, branch_id=masters.branch.id, product_id=masters.exam.id, quantity=1, reason="x")
        with pytest.raises(InvalidQuantityError):
            ledger.adjust_stock(db, branch_id=masters.branch.id, product_id=masters.leash.id, quantity=-1, reason="x")

    @pytest.mark.parametrize("batch", [None, BatchInfo("B1"), BatchInfo("  ", date(2026, 6, 1))])
    def test_initial_expiry_stock_needs_batch(self, db, masters, batch):
        with pytest.raises(ValidationError):
            ledger.set_initial_stock(
                db, branch_id=masters.branch.id, product_id=masters.vitamin.id, quantity=10, unit_cost=20000,
                batch=batch,
            )
        assert ledger.get_stock(db, masters.branch.id, masters.vitamin.id) is None

    def test_found_expiry_stock_needs_batch(self, db, masters):
        ledger.set_initial_stock(
            db, branch_id=masters.branch.id, product_id=masters.vitamin.id, quantity=5, unit_cost=20000,
            batch=BatchInfo("B1", date(2026, 6, 1)),
        )
        with pytest.raises(ValidationError):
            ledger.adjust_stock(db, branch_id=masters.branch.id, product_id=masters.vitamin.id, quantity=3, reason="Recount")
        assert Decimal(ledger.get_stock(db, masters.branch.id, masters.vitamin.id).quantity) == 5

        res = ledger.adjust_stock(
            db, branch_id=masters.branch.id, product_id=masters.vitamin.id, quantity=3, reason="Recount",
            batch=BatchInfo("B2", date(2026, 9, 1)),
        )
        assert res["quantity"] == Decimal("8")
        assert [b.batch_number for b in ledger.list_batches(db, masters.branch.id, masters.vitamin.id)] == ["B1", "B2"]


class TestStockValue:
    def test_value_per_branch(self, db, masters):
        _receive(db, masters, masters.dog_food, 10, 60000)
        _receive(db, masters, masters.leash, 4, 15000)
        _receive(db, masters, masters.leash, 1, 15000, branch=masters.south)
        value = ledger.get_stock_value(db, masters.branch.id)
        assert value["positions"] == 2
        assert value["total_value"] == Decimal("660000.00")
