# petcare/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Every table (masters, ledger, journal, transactions) inherits from this."""
    pass


# Import all models so metadata is complete for create_all()
from petcare.models import (  # noqa: F401,E402
    master,
    accounting,
    stock,
    sales,
    purchasing,
    clinic,
    hotel,
    expense,
)
