"""
Schémas et constantes de la feature 'registrations'.
"""
import re
from datetime import datetime, timezone
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

STATUS_PENDING = "Pending"
STATUS_CONFIRMED = "Confirmed"
STATUS_CANCELLED = "Cancelled"
STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED)

PAYMENT_PENDING = "Pending"
PAYMENT_COMPLETED = "Completed"
PAYMENT_FAILED = "Failed"
PAYMENT_REFUNDED = "Refunded"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_FAILED, PAYMENT_REFUNDED)

NOTIFICATION_PENDING = "Pending"
NOTIFICATION_SENT = "Sent"
NOTIFICATION_FAILED = "Failed"

EXPIRED_REASON = "expired"

PHONE_RE = re.compile(r"^\d{10}$")

def now_ms() -> int:
    return int(time.time() * 1000)

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def check_status_pair(status: Optional[str], payment_status: Optional[str]) -> None:
    """
    Un paiement Completed implique une inscription Confirmed.
    Lève ValueError sinon (les appelants convertissent en ValidationError).
    """
    if payment_status == PAYMENT_COMPLETED and status != STATUS_CONFIRMED:
        raise ValueError("paymentStatus Completed requires status Confirmed")


class RegistrationCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    userName: str = Field(min_length=1)
    email: EmailStr
    phone: str
    workshopId: str = Field(min_length=1)
    workshopTitle: str = Field(min_length=1)
    organization: str = ""
    amount: float = Field(default=0, ge=0)
    notes: str = ""

    @field_validator("phone")
    @classmethod
    def _phone_digits(cls, v: str) -> str:
        v = (v or "").strip()
        if not PHONE_RE.match(v):
            raise ValueError("Please provide a valid 10-digit phone number")
        return v


class RegistrationUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    userName: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    organization: Optional[str] = None
    status: Optional[str] = None
    paymentStatus: Optional[str] = None
    notes: Optional[str] = None
    cancellationReason: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def _phone_digits(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not PHONE_RE.match(v.strip()):
            raise ValueError("Please provide a valid 10-digit phone number")
        return v

    @field_validator("status")
    @classmethod
    def _status_known(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in STATUSES:
            raise ValueError(f"status must be one of {', '.join(STATUSES)}")
        return v

    @field_validator("paymentStatus")
    @classmethod
    def _payment_status_known(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in PAYMENT_STATUSES:
            raise ValueError(f"paymentStatus must be one of {', '.join(PAYMENT_STATUSES)}")
        return v

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class StatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str
    reason: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status_known(cls, v: str) -> str:
        if v not in STATUSES:
            raise ValueError(f"status must be one of {', '.join(STATUSES)}")
        return v


class BulkUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    registrationIds: List[str] = Field(min_length=1)
    updates: RegistrationUpdate
