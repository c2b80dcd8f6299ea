# models.py

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


# On-chain verification

class VerificationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    payment_id: str
    transaction_hash: str
    payer_address: str
    amount: Decimal


class VerificationState(str, Enum):
    UNCONFIGURED = "UNCONFIGURED"
    BUILDING = "BUILDING"
    SUBMITTING = "SUBMITTING"
    POLLING = "POLLING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class VerificationReason(str, Enum):
    VERIFIED = "verified"
    NOT_CONFIGURED = "not_configured"
    BUILD_FAILED = "build_failed"
    SUBMIT_FAILED = "submit_failed"
    CHAIN_EXECUTION_FAILED = "chain_execution_failed"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    CANCELLED = "cancelled"


class VerificationOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    verified: bool
    reason: VerificationReason
    transaction_hash: Optional[str] = None  # hash of the submitted verification transaction, if any

    @classmethod
    def accepted(cls, transaction_hash: str) -> "VerificationOutcome":
        return cls(verified=True, reason=VerificationReason.VERIFIED, transaction_hash=transaction_hash)

    @classmethod
    def rejected(cls, reason: VerificationReason, transaction_hash: Optional[str] = None) -> "VerificationOutcome":
        return cls(verified=False, reason=reason, transaction_hash=transaction_hash)

    @property
    def state(self) -> VerificationState:
        return VerificationState.VERIFIED if self.verified else VerificationState.REJECTED

    def as_tuple(self) -> Tuple[bool, str]:
        return self.verified, self.reason.value


class SubmissionStatus(str, Enum):
    QUEUED = "QUEUED"
    ERROR = "ERROR"


class SubmissionResult(BaseModel):
    status: SubmissionStatus
    hash: str
    error: Optional[str] = None  # raw error result xdr when the network rejected the transaction


class PollStatus(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class PollResult(BaseModel):
    status: PollStatus

    @property
    def is_terminal(self) -> bool:
        return self.status is not PollStatus.NOT_FOUND


# Payment lifecycle

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    EXPIRED = "expired"


class TimelineEvent(BaseModel):
    event: str
    timestamp: datetime
    detail: Optional[str] = None


class PaymentCreate(BaseModel):
    merchant_id: str
    order_id: Optional[str] = None
    amount: Decimal = Field(gt=0)
    currency: str
    customer_email: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Payment(BaseModel):
    id: str
    merchant_id: str
    order_id: Optional[str] = None
    amount: Decimal
    currency: str
    customer_email: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    status: PaymentStatus = PaymentStatus.PENDING
    checkout_url: str = ""
    expiration: datetime
    created_at: datetime
    transaction_hash: Optional[str] = None
    payer_address: Optional[str] = None
    timeline: List[TimelineEvent] = Field(default_factory=list)


class SortField(str, Enum):
    CREATED_AT = "created_at"
    AMOUNT = "amount"
    STATUS = "status"
    CURRENCY = "currency"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PaymentFilter(BaseModel):
    status: Optional[PaymentStatus] = None
    currency: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None
    sort_by: SortField = SortField.CREATED_AT
    order: SortOrder = SortOrder.DESC

    @field_validator("date_from", "date_to")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int


class PaymentPage(BaseModel):
    data: List[Payment]
    meta: PageMeta


class ConfirmPaymentRequest(BaseModel):
    transaction_hash: str
    payer_address: str


class ConfirmPaymentResult(BaseModel):
    payment: Payment
    outcome: VerificationOutcome
