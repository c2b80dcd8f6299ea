"""Tests for the payment lifecycle around on-chain verification."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from exceptions import PaymentNotFound, PaymentStateConflict
from models import (
    PaymentCreate,
    PaymentFilter,
    PaymentStatus,
    SortField,
    SortOrder,
    VerificationOutcome,
    VerificationReason,
)
from services.payment_service import PaymentService
from services.soroban_service import SorobanService


def _details(**overrides):
    values = dict(
        merchant_id="merchant_1",
        order_id="order_1",
        amount=Decimal("25.00"),
        currency="USDC",
        customer_email="buyer@example.com",
    )
    values.update(overrides)
    return PaymentCreate(**values)


@pytest.fixture
def verifier():
    return AsyncMock(spec=SorobanService)


@pytest.fixture
def service(verifier):
    return PaymentService(verifier)


def test_create_payment(service):
    payment = service.create_payment(_details(metadata={"cart": "42"}))

    assert payment.status is PaymentStatus.PENDING
    assert payment.metadata == {"cart": "42"}
    assert payment.expiration - payment.created_at == timedelta(hours=1)
    assert [event.event for event in payment.timeline] == ["payment_created"]
    assert service.get_payment(payment.id) == payment


def test_get_missing_payment(service):
    with pytest.raises(PaymentNotFound):
        service.get_payment("missing")


class TestListPayments:
    def test_filters_and_paginates(self, service):
        for i in range(5):
            service.create_payment(_details(order_id=f"order_{i}", amount=Decimal(i + 1)))
        service.create_payment(_details(order_id="euro", currency="EUR"))

        page = service.list_payments(PaymentFilter(currency="USDC"), page=2, limit=2)

        assert page.meta.total == 5
        assert page.meta.page == 2
        assert len(page.data) == 2

    def test_sorts_by_amount(self, service):
        for amount in ("3", "1", "2"):
            service.create_payment(_details(amount=Decimal(amount)))

        page = service.list_payments(PaymentFilter(sort_by=SortField.AMOUNT, order=SortOrder.ASC))

        assert [p.amount for p in page.data] == [Decimal("1"), Decimal("2"), Decimal("3")]

    def test_search_is_case_insensitive(self, service):
        service.create_payment(_details(customer_email="Alice@Example.com"))
        service.create_payment(_details(customer_email="bob@example.com", order_id="other"))

        page = service.list_payments(PaymentFilter(search="alice"))

        assert [p.customer_email for p in page.data] == ["Alice@Example.com"]

    def test_date_range_accepts_naive_datetimes(self, service):
        service.create_payment(_details())
        tomorrow = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(days=1)

        assert service.list_payments(PaymentFilter(date_from=tomorrow)).meta.total == 0
        assert service.list_payments(PaymentFilter(date_to=tomorrow)).meta.total == 1

    def test_filters_by_status(self, service):
        payment = service.create_payment(_details())
        service.store.save(payment.model_copy(update={"status": PaymentStatus.CONFIRMED}))
        service.create_payment(_details())

        page = service.list_payments(PaymentFilter(status=PaymentStatus.CONFIRMED))

        assert [p.id for p in page.data] == [payment.id]


def test_export_csv(service):
    payment = service.create_payment(_details(order_id=None))

    lines = service.export_csv(PaymentFilter()).splitlines()

    assert lines[0] == "ID,OrderID,Amount,Currency,Status,Email,Date"
    assert lines[1].startswith(f"{payment.id},,25.00,USDC,pending,buyer@example.com,")


class TestConfirmPayment:
    @pytest.mark.asyncio
    async def test_verified_payment_is_confirmed(self, service, verifier):
        verifier.verify_payment_on_chain.return_value = VerificationOutcome.accepted("abc")
        payment = service.create_payment(_details())

        updated, outcome = await service.confirm_payment(payment.id, "tx_hash", "GPAYER")

        assert outcome.verified is True
        assert updated.status is PaymentStatus.CONFIRMED
        assert updated.transaction_hash == "tx_hash"
        assert [e.event for e in updated.timeline] == [
            "payment_created",
            "onchain_verification_started",
            "onchain_verification_verified",
        ]
        verifier.verify_payment_on_chain.assert_awaited_once_with(payment.id, "tx_hash", "GPAYER", Decimal("25.00"))

    @pytest.mark.asyncio
    async def test_chain_failure_marks_failed(self, service, verifier):
        verifier.verify_payment_on_chain.return_value = VerificationOutcome.rejected(
            VerificationReason.CHAIN_EXECUTION_FAILED, "abc"
        )
        payment = service.create_payment(_details())

        updated, _ = await service.confirm_payment(payment.id, "tx_hash", "GPAYER")

        assert updated.status is PaymentStatus.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reason",
        [
            VerificationReason.NOT_CONFIGURED,
            VerificationReason.BUILD_FAILED,
            VerificationReason.SUBMIT_FAILED,
            VerificationReason.CONFIRMATION_TIMEOUT,
            VerificationReason.CANCELLED,
        ],
    )
    async def test_inconclusive_rejection_leaves_payment_pending(self, service, verifier, reason):
        verifier.verify_payment_on_chain.return_value = VerificationOutcome.rejected(reason)
        payment = service.create_payment(_details())

        updated, outcome = await service.confirm_payment(payment.id, "tx_hash", "GPAYER")

        assert outcome.reason is reason
        assert updated.status is PaymentStatus.PENDING
        assert updated.timeline[-1].event == f"onchain_verification_{reason.value}"

    @pytest.mark.asyncio
    async def test_unknown_payment(self, service, verifier):
        with pytest.raises(PaymentNotFound):
            await service.confirm_payment("missing", "tx_hash", "GPAYER")

        verifier.verify_payment_on_chain.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [PaymentStatus.CONFIRMED, PaymentStatus.FAILED, PaymentStatus.EXPIRED, PaymentStatus.PENDING_CONFIRMATION],
    )
    async def test_only_pending_payments_can_be_confirmed(self, service, verifier, status):
        payment = service.create_payment(_details())
        service.store.save(payment.model_copy(update={"status": status}))

        with pytest.raises(PaymentStateConflict):
            await service.confirm_payment(payment.id, "tx_hash", "GPAYER")

        assert service.get_payment(payment.id).status is status
        verifier.verify_payment_on_chain.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_confirmed_payment_survives_second_confirmation(self, service, verifier):
        verifier.verify_payment_on_chain.return_value = VerificationOutcome.accepted("abc")
        payment = service.create_payment(_details())
        await service.confirm_payment(payment.id, "tx_hash", "GPAYER")

        verifier.verify_payment_on_chain.return_value = VerificationOutcome.rejected(
            VerificationReason.CONFIRMATION_TIMEOUT
        )
        with pytest.raises(PaymentStateConflict):
            await service.confirm_payment(payment.id, "tx_hash", "GPAYER")

        assert service.get_payment(payment.id).status is PaymentStatus.CONFIRMED
        assert verifier.verify_payment_on_chain.await_count == 1
