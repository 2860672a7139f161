import enum


class MembershipRole(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class ProjectStatus(str, enum.Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    SAVED = "saved"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    VOID = "void"


class InvoiceNumberSource(str, enum.Enum):
    LOCAL = "local"
    QBO = "qbo"


class ReservationStatus(str, enum.Enum):
    RESERVED = "reserved"
    RELEASED = "released"
    USED = "used"
    EXPIRED = "expired"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    ACH = "ach"
    CHECK = "check"
    CASH = "cash"
    OTHER = "other"


class DocumentStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"
    VOIDED = "voided"


class SigningRequestStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    VOIDED = "voided"
    EXPIRED = "expired"


class ProposalStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"


class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class OutboxJobType(str, enum.Enum):
    DELIVER_NOTIFICATION = "deliver_notification"


class NotificationType(str, enum.Enum):
    PAYMENT_RECEIVED = "payment_received"
    DOCUMENT_SIGNED = "document_signed"
    INVOICE_SENT = "invoice_sent"
    SYSTEM = "system"
