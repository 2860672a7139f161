from arcline.db.models.audit import AuditLog
from arcline.db.models.contact import Contact
from arcline.db.models.document import Document, DocumentSignature, SigningRequest
from arcline.db.models.invoice import Invoice, InvoiceLine, InvoiceNumberReservation
from arcline.db.models.notification import Notification
from arcline.db.models.organization import Membership, Organization
from arcline.db.models.outbox import OutboxJob
from arcline.db.models.payment import Payment
from arcline.db.models.project import Project
from arcline.db.models.proposal import Proposal
from arcline.db.models.user import User

__all__ = [
    "AuditLog",
    "Contact",
    "Document",
    "DocumentSignature",
    "Invoice",
    "InvoiceLine",
    "InvoiceNumberReservation",
    "Membership",
    "Notification",
    "Organization",
    "OutboxJob",
    "Payment",
    "Project",
    "Proposal",
    "SigningRequest",
    "User",
]
