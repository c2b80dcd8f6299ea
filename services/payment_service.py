# services/payment_service.py

import csv
import io
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from exceptions import PaymentNotFound, PaymentStateConflict
from models import (
    PageMeta,
    Payment,
    PaymentCreate,
    PaymentFilter,
    PaymentPage,
    PaymentStatus,
    SortOrder,
    TimelineEvent,
    VerificationOutcome,
    VerificationReason,
)
from services.soroban_service import SorobanService

log = logging.getLogger(__name__)

PAYMENT_TTL = timedelta(hours=1)
CSV_HEADER = ["ID", "OrderID", "Amount", "Currency", "Status", "Email", "Date"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStore:
    """In-process payment records keyed by id."""

    def __init__(self):
        self._payments: Dict[str, Payment] = {}

    def add(self, payment: Payment) -> Payment:
        self._payments[payment.id] = payment
        return payment

    def get(self, payment_id: str) -> Optional[Payment]:
        return self._payments.get(payment_id)

    def save(self, payment: Payment) -> Payment:
        self._payments[payment.id] = payment
        return payment

    def query(self, payment_filter: PaymentFilter) -> List[Payment]:
        matches = [p for p in self._payments.values() if _matches(p, payment_filter)]
        key = payment_filter.sort_by.value
        return sorted(
            matches,
            key=lambda p: getattr(p, key),
            reverse=payment_filter.order is SortOrder.DESC,
        )


def _matches(payment: Payment, f: PaymentFilter) -> bool:
    if f.status is not None and payment.status is not f.status:
        return False
    if f.currency and payment.currency != f.currency:
        return False
    if f.date_from and payment.created_at < f.date_from:
        return False
    if f.date_to and payment.created_at > f.date_to:
        return False
    if f.search:
        term = f.search.lower()
        haystack = (payment.id, payment.order_id or "", payment.customer_email)
        if not any(term in value.lower() for value in haystack):
            return False
    return True


class PaymentService:
    """
    Payment lifecycle around the on-chain check. The verifier only returns an
    outcome; this service is what writes it onto the payment record.
    """

    def __init__(self, verifier: SorobanService, store: Optional[PaymentStore] = None):
        self.verifier = verifier
        self.store = store or PaymentStore()

    def create_payment(self, details: PaymentCreate) -> Payment:
        created_at = _now()
        payment = Payment(
            id=uuid.uuid4().hex,
            created_at=created_at,
            expiration=created_at + PAYMENT_TTL,
            timeline=[TimelineEvent(event="payment_created", timestamp=created_at)],
            **details.model_dump(),
        )
        log.info("Created payment %s for merchant %s", payment.id, payment.merchant_id)
        return self.store.add(payment)

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.store.get(payment_id)
        if payment is None:
            raise PaymentNotFound(payment_id)
        return payment

    def list_payments(self, payment_filter: PaymentFilter, page: int = 1, limit: int = 10) -> PaymentPage:
        page = max(page, 1)
        limit = max(limit, 1)
        payments = self.store.query(payment_filter)
        start = (page - 1) * limit
        return PaymentPage(
            data=payments[start:start + limit],
            meta=PageMeta(total=len(payments), page=page, limit=limit),
        )

    def export_csv(self, payment_filter: PaymentFilter) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for p in self.store.query(payment_filter):
            writer.writerow([
                p.id, p.order_id or "", p.amount, p.currency,
                p.status.value, p.customer_email, p.created_at.isoformat(),
            ])
        return buffer.getvalue()

    async def confirm_payment(self, payment_id: str, transaction_hash: str,
                              payer_address: str) -> Tuple[Payment, VerificationOutcome]:
        payment = self.get_payment(payment_id)
        if payment.status is not PaymentStatus.PENDING:
            raise PaymentStateConflict(payment.id, payment.status.value)
        payment = self._transition(
            payment.model_copy(update={"transaction_hash": transaction_hash, "payer_address": payer_address}),
            PaymentStatus.PENDING_CONFIRMATION,
            "onchain_verification_started",
        )

        outcome = await self.verifier.verify_payment_on_chain(
            payment.id, transaction_hash, payer_address, payment.amount,
        )

        if outcome.verified:
            status = PaymentStatus.CONFIRMED
        elif outcome.reason is VerificationReason.CHAIN_EXECUTION_FAILED:
            status = PaymentStatus.FAILED
        else:
            # Not a definitive "no" from the contract; leave it open for another attempt.
            status = PaymentStatus.PENDING

        payment = self._transition(
            payment, status, f"onchain_verification_{outcome.reason.value}", detail=outcome.transaction_hash,
        )
        return payment, outcome

    def _transition(self, payment: Payment, status: PaymentStatus, event: str,
                    detail: Optional[str] = None) -> Payment:
        timeline = payment.timeline + [TimelineEvent(event=event, timestamp=_now(), detail=detail)]
        updated = payment.model_copy(update={"status": status, "timeline": timeline})
        log.info("Payment %s moved to %s (%s)", payment.id, status.value, event)
        return self.store.save(updated)
