from decimal import Decimal

import pytest

from petcare.models import JournalStatus, SaleStatus, SourceType
from petcare.services import inventory_ledger as ledger
from petcare.services import sales_service as sales
from petcare.services.errors import (
    ConflictStateError,
    InsufficientStockError,
    NoItemsError,
    PaymentExceedsTotalError,
    StatusConflictError,
)
from petcare.services.journal_engine import get_by_source


def _stock(db, m, product, qty=10, cost=60000, variant_id=None):
    ledger.set_initial_stock(
        db, branch_id=m.branch.id, product_id=product.id, variant_id=variant_id, quantity=qty, unit_cost=cost,
    )


def _one_food_sale(db, m, tax_rate=0):
    return sales.create_sale(
        db,
        branch_id=m.branch.id,
        customer_id=m.customer.id,
        tax_rate=tax_rate,
        items=[{"product_id": m.dog_food.id, "quantity": 1}],
    )


class TestDraftEditing:
    def test_create_uses_selling_price_and_number(self, db, masters):
        sale = _one_food_sale(db, masters)
        assert sale.sale_number.startswith("INV-")
        assert sale.status == SaleStatus.DRAFT
        assert sale.items[0].unit_price == Decimal("100000.00")
        assert sale.total_amount == Decimal("100000.00")

    def test_variant_price(self, db, masters):
        sale = sales.create_sale(db, branch_id=masters.branch.id, items=[
            {"product_id": masters.dog_food.id, "variant_id": masters.food_5kg.id, "quantity": 1},
        ])
        assert sale.subtotal == Decimal("400000.00")

    def test_line_and_header_discounts_with_tax(self, db, masters):
        sale = sales.create_sale(db, branch_id=masters.branch.id, discount_amount=10000, tax_rate=11, items=[
            {"product_id": masters.dog_food.id, "quantity": 2, "unit_price": 50000,
             "discount_amount": 10, "discount_type": "percent"},
        ])
        assert sale.items[0].subtotal == Decimal("90000.00")
        assert sale.subtotal == Decimal("90000.00")
        assert sale.tax_amount == Decimal("8800.00")
        assert sale.total_amount == Decimal("88800.00")

    def test_update_and_remove_items_recompute(self, db, masters):
        sale = _one_food_sale(db, masters)
        item = sale.items[0]
        sales.update_item(db, sale.id, item.id, quantity=3, discount_amount=5000)
        assert sale.total_amount == Decimal("295000.00")

        extra = sales.add_item(db, sale.id, product_id=masters.leash.id, quantity="2.9")
        assert extra.quantity == Decimal("2")
        assert sale.total_amount == Decimal("345000.00")

        sales.remove_item(db, sale.id, item.id)
        assert sale.total_amount == Decimal("50000.00")

    def test_header_discount_and_tax_update(self, db, masters):
        sale = _one_food_sale(db, masters)
        sales.update_discount_and_tax(db, sale.id, discount_amount=20, discount_type="percent", tax_rate=10)
        assert sale.total_amount == Decimal("88000.00")

    def test_cancel_and_delete(self, db, masters):
        sale = _one_food_sale(db, masters)
        sales.cancel_sale(db, sale.id, "customer left")
        assert sale.status == SaleStatus.CANCELLED
        with pytest.raises(StatusConflictError):
            sales.add_item(db, sale.id, product_id=masters.leash.id)
        sales.delete_sale(db, sale.id)
        assert sales.list_sales(db, branch_id=masters.branch.id) == []


class TestSubmit:
    def test_cash_sale_journal(self, db, masters):
        _stock(db, masters, masters.dog_food)
        sale = _one_food_sale(db, masters, tax_rate=10)

        res = sales.submit_sale(db, sale.id, [{"amount": 110000, "payment_method": "CASH"}])

        assert sale.status == SaleStatus.COMPLETED
        assert res["paid"] == Decimal("110000.00")
        assert res["outstanding"] == Decimal("0.00")
        assert sale.items[0].cogs == Decimal("60000.00")

        entry = res["journal_entry"]
        assert entry.status == JournalStatus.POSTED
        assert entry.source_type == SourceType.SALE
        assert entry.total_debit == entry.total_credit == Decimal("170000.00")
        by_code = {ln.account.code: (ln.debit_amount, ln.credit_amount) for ln in entry.lines}
        assert by_code["1-101"] == (Decimal("110000.00"), Decimal("0.00"))
        assert by_code["5-101"][0] == Decimal("60000.00")
        assert by_code["4-111"][1] == Decimal("100000.00")
        assert by_code["1-131"][1] == Decimal("60000.00")
        assert by_code["2-111"][1] == Decimal("10000.00")
        assert "1-120" not in by_code

        assert Decimal(ledger.get_stock(db, masters.branch.id, masters.dog_food.id).quantity) == 9

    def test_credit_sale_journal(self, db, masters, balance):
        _stock(db, masters, masters.dog_food)
        sale = _one_food_sale(db, masters)
        res = sales.submit_sale(db, sale.id, [])
        assert res["outstanding"] == Decimal("100000.00")
        assert res["journal_entry"].total_debit == Decimal("160000.00")
        assert balance("1-120") == Decimal("100000.00")

    def test_change_is_returned(self, db, masters):
        _stock(db, masters, masters.dog_food)
        sale = _one_food_sale(db, masters)
        res = sales.submit_sale(db, sale.id, [{"amount": 150000, "payment_method": "CASH"}])
        assert res["change"] == Decimal("50000.00")
        assert [p.amount for p in sale.payments] == [Decimal("100000.00")]

    def test_header_discount_is_debited(self, db, masters, balance):
        _stock(db, masters, masters.dog_food)
        sale = sales.create_sale(db, branch_id=masters.branch.id, discount_amount=10000, items=[
            {"product_id": masters.dog_food.id, "quantity": 1},
        ])
        sales.submit_sale(db, sale.id, [{"amount": 90000}])
        assert balance("5-212") == Decimal("10000.00")
        assert balance("4-111") == Decimal("100000.00")

    def test_services_skip_stock(self, db, masters):
        sale = sales.create_sale(db, branch_id=masters.branch.id, items=[
            {"product_id": masters.grooming.id, "quantity": 1},
        ])
        res = sales.submit_sale(db, sale.id, [{"amount": 80000}])
        assert sale.items[0].cogs == Decimal("0.00")
        assert res["journal_entry"].total_debit == Decimal("80000.00")

    def test_second_submit_rejected(self, db, masters):
        _stock(db, masters, masters.dog_food)
        sale = _one_food_sale(db, masters)
        sales.submit_sale(db, sale.id, [])
        with pytest.raises(StatusConflictError) as exc:
            sales.submit_sale(db, sale.id, [])
        assert exc.value.code == "STATUS_CONFLICT"

    def test_no_items(self, db, masters):
        sale = sales.create_sale(db, branch_id=masters.branch.id)
        with pytest.raises(NoItemsError):
            sales.submit_sale(db, sale.id, [])

    def test_insufficient_stock_names_the_item_and_rolls_back(self, db, masters):
        _stock(db, masters, masters.dog_food, qty=1, cost=250000, variant_id=masters.food_5kg.id)
        sale = sales.create_sale(db, branch_id=masters.branch.id, items=[
            {"product_id": masters.dog_food.id, "variant_id": masters.food_5kg.id, "quantity": 2},
        ])
        db.commit()

        with pytest.raises(InsufficientStockError) as exc:
            sales.submit_sale(db, sale.id, [{"amount": 800000}])
        assert str(exc.value) == "Dog Food 1kg (5kg): Insufficient stock. Available: 1, Required: 2"
        db.rollback()

        assert sales.get_sale(db, sale.id).status == SaleStatus.DRAFT
        stock = ledger.get_stock(db, masters.branch.id, masters.dog_food.id, masters.food_5kg.id)
        assert Decimal(stock.quantity) == 1
        assert get_by_source(db, "SALE", sale.id) == []

    def test_non_cash_overpayment(self, db, masters):
        _stock(db, masters, masters.dog_food)
        sale = _one_food_sale(db, masters)
        with pytest.raises(PaymentExceedsTotalError):
            sales.submit_sale(db, sale.id, [{"amount": 120000, "payment_method": "QRIS"}])


class TestReceivables:
    def test_collect_outstanding(self, db, masters, balance):
        _stock(db, masters, masters.dog_food)
        sale = _one_food_sale(db, masters)
        sales.submit_sale(db, sale.id, [])

        first = sales.add_payment(db, sale.id, amount=40000, payment_method="QRIS")
        assert sale.outstanding_amount == Decimal("60000.00")
        assert first["journal_entry"].source_type == SourceType.PAYMENT
        assert first["journal_entry"].source_id == first["payment"].id
        assert balance("1-111") == Decimal("40000.00")

        last = sales.add_payment(db, sale.id, amount=100000)
        assert last["payment"].amount == Decimal("60000.00")
        assert last["change"] == Decimal("40000.00")
        assert sale.outstanding_amount == Decimal("0.00")
        assert sale.paid_amount == Decimal("100000.00")
        assert balance("1-120") == Decimal("0.00")

        with pytest.raises(ConflictStateError):
            sales.add_payment(db, sale.id, amount=1)

    def test_payment_on_draft_rejected(self, db, masters):
        sale = _one_food_sale(db, masters)
        with pytest.raises(StatusConflictError):
            sales.add_payment(db, sale.id, amount=1000)

    def test_completed_sale_cannot_be_cancelled(self, db, masters):
        _stock(db, masters, masters.dog_food)
        sale = _one_food_sale(db, masters)
        sales.submit_sale(db, sale.id, [{"amount": 100000}])
        with pytest.raises(StatusConflictError):
            sales.cancel_sale(db, sale.id)
        with pytest.raises(StatusConflictError):
            sales.delete_sale(db, sale.id)
