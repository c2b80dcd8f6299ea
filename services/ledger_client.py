# services/ledger_client.py

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Optional, TypeVar

import httpx
from stellar_sdk import Account, SorobanServerAsync, TransactionEnvelope
from stellar_sdk.exceptions import AccountNotFoundException, PrepareTransactionException, SdkError
from stellar_sdk.soroban_rpc import GetTransactionStatus, SendTransactionStatus

from exceptions import (
    AccountLookupError,
    SimulationError,
    StatusQueryError,
    SubmissionError,
)
from models import PollResult, PollStatus, SubmissionResult, SubmissionStatus
from utils.http_client import HttpxAsyncClient

log = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSPORT_ERRORS = (SdkError, httpx.HTTPError, asyncio.TimeoutError, OSError)


class LedgerClient(ABC):
    """
    Abstract interface for the ledger network RPC.
    Each call is a single network round trip; none of them retry.
    """

    @abstractmethod
    async def fetch_account(self, public_key: str) -> Account:
        """Returns the account with its current sequence number. Raises AccountLookupError."""

    @abstractmethod
    async def prepare_transaction(self, transaction: TransactionEnvelope) -> TransactionEnvelope:
        """Simulates the contract call and attaches resource fees and footprint. Raises SimulationError."""

    @abstractmethod
    async def submit_transaction(self, transaction: TransactionEnvelope) -> SubmissionResult:
        """
        Sends a signed transaction. Raises SubmissionError when the request never
        reached the network; an explicit rejection comes back as SubmissionResult(status=ERROR).
        """

    @abstractmethod
    async def get_transaction_status(self, transaction_hash: str) -> PollResult:
        """Single status query. Raises StatusQueryError on transport failure."""

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class SorobanLedgerClient(LedgerClient):
    def __init__(self, rpc_url: str, timeout: float = 10.0, server: Optional[SorobanServerAsync] = None):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._server = server or SorobanServerAsync(rpc_url, client=HttpxAsyncClient(timeout=timeout))

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def fetch_account(self, public_key: str) -> Account:
        try:
            return await self._call(self._server.load_account(public_key))
        except AccountNotFoundException as e:
            raise AccountLookupError(f"Account {public_key} does not exist on the ledger") from e
        except _TRANSPORT_ERRORS as e:
            raise AccountLookupError(f"Could not load account {public_key}: {e!r}") from e

    async def prepare_transaction(self, transaction: TransactionEnvelope) -> TransactionEnvelope:
        try:
            return await self._call(self._server.prepare_transaction(transaction))
        except PrepareTransactionException as e:
            simulation = e.simulate_transaction_response
            detail = simulation.error if simulation is not None else str(e)
            raise SimulationError(f"Contract simulation failed: {detail}") from e
        except _TRANSPORT_ERRORS as e:
            raise SimulationError(f"Could not simulate transaction: {e!r}") from e

    async def submit_transaction(self, transaction: TransactionEnvelope) -> SubmissionResult:
        try:
            response = await self._call(self._server.send_transaction(transaction))
        except _TRANSPORT_ERRORS as e:
            raise SubmissionError(f"Could not submit transaction: {e!r}") from e

        if response.status in (SendTransactionStatus.PENDING, SendTransactionStatus.DUPLICATE):
            return SubmissionResult(status=SubmissionStatus.QUEUED, hash=response.hash)

        log.debug("Network rejected transaction %s with status %s", response.hash, response.status)
        return SubmissionResult(
            status=SubmissionStatus.ERROR,
            hash=response.hash,
            error=response.error_result_xdr or str(response.status),
        )

    async def get_transaction_status(self, transaction_hash: str) -> PollResult:
        try:
            response = await self._call(self._server.get_transaction(transaction_hash))
        except _TRANSPORT_ERRORS as e:
            raise StatusQueryError(f"Could not query transaction {transaction_hash}: {e!r}") from e

        if response.status == GetTransactionStatus.SUCCESS:
            return PollResult(status=PollStatus.SUCCESS)
        if response.status == GetTransactionStatus.FAILED:
            return PollResult(status=PollStatus.FAILED)
        return PollResult(status=PollStatus.NOT_FOUND)

    async def close(self) -> None:
        await self._server.close()
