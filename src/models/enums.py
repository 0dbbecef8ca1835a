import enum


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# ── Payments ────────────────────────────────────────────────────────────


class PaymentProvider(str, enum.Enum):
    MERCADOPAGO = "mercadopago"
    DLOCAL = "dlocal"
    STRIPE = "stripe"
    TRANSFER = "transfer"
    MANUAL = "manual"
    EXCEL_IMPORT = "excel_import"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    TRANSFER = "transfer"
    CASH = "cash"
    UNKNOWN = "unknown"


class DuplicateStatus(str, enum.Enum):
    NONE = "none"
    SUSPECTED = "suspected"
    CONFIRMED = "confirmed"
    IGNORED = "ignored"


# ── Duplicate cases ─────────────────────────────────────────────────────


class DuplicateCaseStatus(str, enum.Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ResolutionType(str, enum.Enum):
    INVOICE_ONE_CREDIT_REST = "invoice_one_credit_rest"
    INVOICE_ALL = "invoice_all"
    REFUND_ONE = "refund_one"
    IGNORE_DUPLICATES = "ignore_duplicates"


# ── Invoice orders ──────────────────────────────────────────────────────


class InvoiceOrderStatus(str, enum.Enum):
    PENDING = "pending"
    ISSUING = "issuing"
    ISSUED = "issued"
    PDF_READY = "pdf_ready"
    EMAIL_SENT = "email_sent"
    FAILED = "failed"
