# Import all models so SQLAlchemy metadata is populated for Alembic autogenerate
from src.models.customer import Customer
from src.models.customer_credit import CustomerCredit
from src.models.duplicate_case import DuplicateCase
from src.models.event_outbox import EventOutbox
from src.models.invoice_order import InvoiceOrder
from src.models.payment import Payment

__all__ = [
    "Customer",
    "CustomerCredit",
    "DuplicateCase",
    "EventOutbox",
    "InvoiceOrder",
    "Payment",
]
