import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field


class SignerInput(BaseModel):
    email: EmailStr | None = None
    name: str | None = Field(default=None, max_length=255)
    role: str = "client"
    sequence: int = Field(default=1, ge=1)
    required: bool = True


class SignatureSubmission(BaseModel):
    signer_name: str = Field(min_length=1, max_length=255)
    signer_email: EmailStr | None = None
    consent: bool = False
    consent_text: str = "I agree to sign this document electronically."
    values: dict[str, Any] = Field(default_factory=dict)


class SigningRequestView(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    document_title: str
    document_url: str
    signer_name: str | None
    sent_to_email: str | None
    status: str
    sequence: int
    expires_at: datetime | None


class SignatureResult(BaseModel):
    signing_request_id: uuid.UUID
    document_id: uuid.UUID
    document_status: str
    document_complete: bool
