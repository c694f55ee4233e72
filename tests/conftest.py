"""
Shared fixtures: an in-memory SQLite database with the default chart of
accounts and a small catalogue (food, expiring vitamin, services, room).
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from petcare.db.base import Base
from petcare.models import (
    Account,
    Branch,
    ClinicStaff,
    Customer,
    CustomerPet,
    HotelRoom,
    Product,
    ProductCategory,
    ProductType,
    ProductVariant,
    Supplier,
)
from petcare.services.accounts import get_account_balance, seed_default_chart


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def db(engine):
    session = Session(engine, autoflush=False)
    seed_default_chart(session)
    session.commit()
    yield session
    session.rollback()
    session.close()


@pytest.fixture()
def masters(db):
    main = Branch(code="MAIN", name="Main Store")
    south = Branch(code="SOUTH", name="South Store")

    food_cat = ProductCategory(name="Pet Food")
    med_cat = ProductCategory(name="Medicine")
    acc_cat = ProductCategory(name="Accessories")
    exam_cat = ProductCategory(name="Medical")
    groom_cat = ProductCategory(name="Grooming")

    dog_food = Product(
        sku="DF-1KG", name="Dog Food 1kg", product_type=ProductType.PRODUCT.value,
        category=food_cat, purchase_price=Decimal("60000"), selling_price=Decimal("100000"),
    )
    vitamin = Product(
        sku="VIT-01", name="Pet Vitamin", product_type=ProductType.MEDICINE.value,
        category=med_cat, has_expiry=True, purchase_price=Decimal("20000"), selling_price=Decimal("35000"),
    )
    leash = Product(
        sku="LSH-01", name="Leash", product_type="",
        category=acc_cat, purchase_price=Decimal("15000"), selling_price=Decimal("25000"),
    )
    exam = Product(
        sku="SVC-EXAM", name="General Examination", product_type=ProductType.SERVICE.value,
        category=exam_cat, selling_price=Decimal("150000"),
    )
    grooming = Product(
        sku="SVC-GROOM", name="Grooming Basic", product_type=ProductType.SERVICE.value,
        category=groom_cat, selling_price=Decimal("80000"),
    )
    db.add_all([main, south, food_cat, med_cat, acc_cat, exam_cat, groom_cat, dog_food, vitamin, leash, exam, grooming])
    db.flush()

    food_5kg = ProductVariant(
        product_id=dog_food.id, variant_name="Size", variant_value="5kg",
        purchase_price=Decimal("250000"), selling_price=Decimal("400000"),
    )
    customer = Customer(name="Budi", phone="0812")
    supplier = Supplier(name="PT Pakan Sehat")
    db.add_all([food_5kg, customer, supplier])
    db.flush()

    pet = CustomerPet(customer_id=customer.id, name="Milo", species="Dog")
    staff = ClinicStaff(branch_id=main.id, name="drh. Sari")
    room = HotelRoom(branch_id=main.id, code="R-01", name="Standard 1", daily_rate=Decimal("200000"))
    db.add_all([pet, staff, room])
    db.commit()

    return SimpleNamespace(
        branch=main,
        south=south,
        dog_food=dog_food,
        food_5kg=food_5kg,
        vitamin=vitamin,
        leash=leash,
        exam=exam,
        grooming=grooming,
        customer=customer,
        pet=pet,
        supplier=supplier,
        staff=staff,
        room=room,
    )


@pytest.fixture()
def balance(db):
    """balance("1-101") -> signed posted balance of the account."""

    def _balance(code: str) -> Decimal:
        acc = db.query(Account).filter(Account.code == code).one()
        return get_account_balance(db, acc.id)["balance"]

    return _balance
