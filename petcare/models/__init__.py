# petcare/models/__init__.py
from .master import (
    Branch, ProductCategory, Product, ProductVariant, ProductType,
    Customer, CustomerPet, Supplier, ClinicStaff, HotelRoom, RoomStatus,
)
from .accounting import (
    Account, AccountType, NormalBalance, JournalEntry, JournalEntryLine,
    JournalStatus, SourceType, AccountingPeriod, PeriodStatus, PeriodBalance,
)
from .stock import ProductStock, ProductStockBatch, StockMovement, MovementType
from .sales import Sale, SaleItem, SalePayment, SaleStatus, DiscountType, PaymentMethod
from .purchasing import PurchaseOrder, PurchaseOrderItem, POStatus
from .clinic import (
    ClinicAppointment, ClinicAppointmentService, ClinicPayment, PetMedicalRecord, AppointmentStatus,
)
from .hotel import HotelBooking, HotelBookingService, HotelConsumable, HotelPayment, BookingStatus, HotelPaymentType
from .expense import Expense, ExpenseStatus
from .bank import BankAccount, BankTransaction, BankTransactionType, ReconciliationStatus

__all__ = [
    "Branch",
    "ProductCategory",
    "Product",
    "ProductVariant",
    "ProductType",
    "Customer",
    "CustomerPet",
    "Supplier",
    "ClinicStaff",
    "HotelRoom",
    "RoomStatus",
    "Account",
    "AccountType",
    "NormalBalance",
    "JournalEntry",
    "JournalEntryLine",
    "JournalStatus",
    "SourceType",
    "AccountingPeriod",
    "PeriodStatus",
    "PeriodBalance",
    "ProductStock",
    "ProductStockBatch",
    "StockMovement",
    "MovementType",
    "Sale",
    "SaleItem",
    "SalePayment",
    "SaleStatus",
    "DiscountType",
    "PaymentMethod",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "POStatus",
    "ClinicAppointment",
    "ClinicAppointmentService",
    "ClinicPayment",
    "PetMedicalRecord",
    "AppointmentStatus",
    "HotelBooking",
    "HotelBookingService",
    "HotelConsumable",
    "HotelPayment",
    "BookingStatus",
    "HotelPaymentType",
    "Expense",
    "ExpenseStatus",
    "BankAccount",
    "BankTransaction",
    "BankTransactionType",
    "ReconciliationStatus",
]
