# services/soroban_service.py

import asyncio
import logging
from decimal import Decimal
from typing import Optional, Union

from stellar_sdk import TransactionEnvelope

from config import Settings
from exceptions import InvalidAmount, LedgerError, SequenceConflictError, StatusQueryError, TransactionBuildError
from models import (
    PollStatus,
    SubmissionStatus,
    VerificationOutcome,
    VerificationReason,
    VerificationRequest,
    VerificationState,
)
from services.ledger_client import LedgerClient
from services.signer import Signer
from services.transaction_builder import build_verification_transaction
from utils.amount_codec import to_ledger_units
from utils.clock import Clock, Ticker

log = logging.getLogger(__name__)


class SorobanService:
    """
    Confirms a payment by calling the verification contract on Soroban.

    verify_payment_on_chain() never raises for network or contract failures:
    every path ends in a VerificationOutcome that the payment lifecycle can
    persist. Building and submitting are serialized per signer so concurrent
    verifications do not race for the same sequence number; polling is not.
    """

    def __init__(
        self,
        settings: Settings,
        ledger_client: LedgerClient,
        signer: Signer,
        clock: Optional[Clock] = None,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ):
        if not isinstance(settings, Settings):
            raise TypeError(f"settings must be a Settings instance, got {type(settings).__name__}")
        if not isinstance(settings.payment_contract_id, str):
            raise TypeError("payment_contract_id must be a string")
        if not isinstance(ledger_client, LedgerClient):
            raise TypeError(f"ledger_client must be a LedgerClient, got {type(ledger_client).__name__}")

        self.settings = settings
        self.ledger_client = ledger_client
        self.signer = signer
        self.clock = clock or Clock()
        self.log = logger or log
        self._submit_lock = asyncio.Lock()

    @property
    def contract_id(self) -> str:
        return self.settings.payment_contract_id

    async def verify(self, request: VerificationRequest,
                     cancel_event: Optional[asyncio.Event] = None) -> VerificationOutcome:
        return await self.verify_payment_on_chain(
            request.payment_id,
            request.transaction_hash,
            request.payer_address,
            request.amount,
            cancel_event=cancel_event,
        )

    async def verify_payment_on_chain(
        self,
        payment_id: str,
        transaction_hash: str,
        payer_address: str,
        amount: Union[Decimal, int, float, str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> VerificationOutcome:
        if not self.contract_id:
            self.log.warning(
                "PAYMENT_CONTRACT_ID is not configured. Skipping on-chain verification of payment %s.",
                payment_id,
                extra=self._extra(payment_id, transaction_hash, VerificationReason.NOT_CONFIGURED),
            )
            return VerificationOutcome.rejected(VerificationReason.NOT_CONFIGURED)

        try:
            async with self._submit_lock:
                result = await self._build_and_submit(payment_id, transaction_hash, payer_address, amount)
            if isinstance(result, VerificationOutcome):
                return result
            return await self._poll(payment_id, transaction_hash, result, cancel_event)
        except asyncio.CancelledError:
            return self._reject(
                payment_id, transaction_hash, VerificationReason.CANCELLED,
                "caller cancelled before the transaction was confirmed",
            )

    async def _build_and_submit(self, payment_id, transaction_hash, payer_address, amount):
        """Returns the submitted transaction hash, or a rejected outcome."""
        state = VerificationState.BUILDING
        try:
            amount_units = to_ledger_units(amount)
            source_account = await self.ledger_client.fetch_account(self.signer.public_key)
            transaction = build_verification_transaction(
                source_account=source_account,
                network_passphrase=self.settings.network_passphrase,
                contract_id=self.contract_id,
                payment_id=payment_id,
                transaction_hash=transaction_hash,
                payer_address=payer_address,
                amount_units=amount_units,
                base_fee=self.settings.base_fee,
                timeout=self.settings.tx_timeout,
            )
            prepared: TransactionEnvelope = await self.ledger_client.prepare_transaction(transaction)

            state = VerificationState.SUBMITTING
            submission = await self.ledger_client.submit_transaction(self.signer.sign(prepared))
        except SequenceConflictError as e:
            return self._reject(payment_id, transaction_hash, VerificationReason.SUBMIT_FAILED, e)
        except Exception as e:
            if not isinstance(e, (InvalidAmount, TransactionBuildError, LedgerError)):
                self.log.exception("Unexpected error verifying payment %s on Soroban in state %s",
                                   payment_id, state.value)
            reason = (VerificationReason.BUILD_FAILED if state is VerificationState.BUILDING
                      else VerificationReason.SUBMIT_FAILED)
            return self._reject(payment_id, transaction_hash, reason, e)

        if submission.status is SubmissionStatus.ERROR:
            return self._reject(
                payment_id, transaction_hash, VerificationReason.SUBMIT_FAILED,
                submission.error, ledger_hash=submission.hash,
            )

        self.log.info("Submitted verification transaction %s for payment %s", submission.hash, payment_id)
        return submission.hash

    async def _poll(self, payment_id: str, transaction_hash: str, ledger_hash: str,
                    cancel_event: Optional[asyncio.Event]) -> VerificationOutcome:
        ticker = Ticker(
            interval=self.settings.poll_interval,
            attempts=self.settings.poll_attempts,
            clock=self.clock,
            cancel_event=cancel_event,
        )
        try:
            async for attempt in ticker:
                try:
                    poll = await self.ledger_client.get_transaction_status(ledger_hash)
                except StatusQueryError as e:
                    # Submission already succeeded; the ledger decides. Counts as NOT_FOUND.
                    self.log.warning("Status check %d for %s failed: %s", attempt, ledger_hash, e)
                    continue

                if poll.status is PollStatus.SUCCESS:
                    self.log.info(
                        "Successfully verified payment %s on-chain (transaction %s).",
                        payment_id, ledger_hash,
                        extra=self._extra(payment_id, transaction_hash, VerificationReason.VERIFIED, ledger_hash),
                    )
                    return VerificationOutcome.accepted(ledger_hash)
                if poll.status is PollStatus.FAILED:
                    return self._reject(
                        payment_id, transaction_hash, VerificationReason.CHAIN_EXECUTION_FAILED,
                        "contract execution failed", ledger_hash=ledger_hash,
                    )
        except asyncio.CancelledError:
            return self._reject(
                payment_id, transaction_hash, VerificationReason.CANCELLED,
                "caller cancelled while polling", ledger_hash=ledger_hash,
            )
        except Exception:
            self.log.exception(
                "Polling for payment %s aborted by an unexpected error; transaction %s left unconfirmed.",
                payment_id, ledger_hash,
                extra=self._extra(payment_id, transaction_hash, VerificationReason.CONFIRMATION_TIMEOUT, ledger_hash),
            )
            return VerificationOutcome.rejected(VerificationReason.CONFIRMATION_TIMEOUT, transaction_hash=ledger_hash)

        if ticker.cancelled:
            return self._reject(
                payment_id, transaction_hash, VerificationReason.CANCELLED,
                "caller cancelled while polling", ledger_hash=ledger_hash,
            )
        return self._reject(
            payment_id, transaction_hash, VerificationReason.CONFIRMATION_TIMEOUT,
            f"still NOT_FOUND after {self.settings.poll_attempts} status checks", ledger_hash=ledger_hash,
        )

    def _reject(self, payment_id, transaction_hash, reason: VerificationReason, detail,
                ledger_hash: Optional[str] = None) -> VerificationOutcome:
        self.log.error(
            "Soroban verification of payment %s (transaction %s) rejected: %s (%s)",
            payment_id, ledger_hash or transaction_hash, reason.value, detail,
            extra=self._extra(payment_id, transaction_hash, reason, ledger_hash),
        )
        return VerificationOutcome.rejected(reason, transaction_hash=ledger_hash)

    @staticmethod
    def _extra(payment_id, transaction_hash, reason: VerificationReason, ledger_hash: Optional[str] = None) -> dict:
        return {
            "payment_id": payment_id,
            "transaction_hash": transaction_hash,
            "ledger_transaction_hash": ledger_hash,
            "reason": reason.value,
        }
