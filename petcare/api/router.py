# FILE: petcare/api/router.py
from fastapi import APIRouter

from petcare.api import (
    # Accounting
    routes_accounts,
    routes_journal,
    routes_periods,

    # Stock
    routes_inventory,
    routes_purchase_orders,

    # Bank
    routes_bank,

    # Transactions
    routes_sales,
    routes_clinic,
    routes_hotel,
    routes_expenses,
)

api_router = APIRouter()

# ---- Accounting
api_router.include_router(routes_accounts.router)
api_router.include_router(routes_journal.router)
api_router.include_router(routes_periods.router)

# ---- Stock
api_router.include_router(routes_inventory.router)
api_router.include_router(routes_purchase_orders.router)

# ---- Bank
api_router.include_router(routes_bank.router)

# ---- Sales / Clinic / Hotel / Expenses
api_router.include_router(routes_sales.router)
api_router.include_router(routes_clinic.router)
api_router.include_router(routes_hotel.router)
api_router.include_router(routes_expenses.router)
