from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional

import pytest
from stellar_sdk import Account, Keypair, Network, StrKey

from config import Settings
from exceptions import StatusQueryError
from models import PollResult, PollStatus, SubmissionResult, SubmissionStatus
from services.ledger_client import LedgerClient
from services.signer import Signer
from services.soroban_service import SorobanService
from utils.clock import Clock

CONTRACT_ID = StrKey.encode_contract(b"\x07" * 32)
LEDGER_HASH = "a" * 64


class VirtualClock(Clock):
    """Records requested sleeps and advances virtual time instead of waiting."""

    def __init__(self, cancel_after: Optional[int] = None):
        self.now = 0.0
        self.sleeps: List[float] = []
        self.cancel_after = cancel_after

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds, cancel_event=None):
        self.sleeps.append(seconds)
        if self.cancel_after is not None and len(self.sleeps) >= self.cancel_after and cancel_event is not None:
            cancel_event.set()
        if cancel_event is not None and cancel_event.is_set():
            return False
        self.now += seconds
        await asyncio.sleep(0)
        return True


class FakeLedgerClient(LedgerClient):
    """Scripted ledger client. Exceptions in a script are raised, anything else returned."""

    def __init__(
        self,
        accounts: Optional[Iterable] = None,
        submissions: Optional[Iterable] = None,
        polls: Iterable = (),
        clock: Optional[VirtualClock] = None,
        prepare_error: Optional[Exception] = None,
    ):
        self.accounts = list(accounts) if accounts is not None else None
        self.submissions = list(submissions) if submissions is not None else None
        self.polls = list(polls)
        self.clock = clock
        self.prepare_error = prepare_error
        self.fetch_calls = []
        self.prepared = []
        self.submitted = []
        self.poll_calls = []
        self.poll_times = []

    @staticmethod
    def _next(script, default):
        if script is None:
            return default
        item = script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def fetch_account(self, public_key):
        self.fetch_calls.append(public_key)
        await asyncio.sleep(0)
        return self._next(self.accounts, Account(public_key, 100))

    async def prepare_transaction(self, transaction):
        self.prepared.append(transaction)
        if self.prepare_error is not None:
            raise self.prepare_error
        return transaction

    async def submit_transaction(self, transaction):
        self.submitted.append(transaction)
        await asyncio.sleep(0)
        return self._next(self.submissions, SubmissionResult(status=SubmissionStatus.QUEUED, hash=LEDGER_HASH))

    async def get_transaction_status(self, transaction_hash):
        self.poll_calls.append(transaction_hash)
        if self.clock is not None:
            self.poll_times.append(self.clock.now)
        if not self.polls:
            return PollResult(status=PollStatus.NOT_FOUND)
        item = self.polls.pop(0)
        if isinstance(item, BaseException):
            raise item
        return PollResult(status=item)


def not_found(n: int):
    return [PollStatus.NOT_FOUND] * n


def status_error(message: str = "connection reset"):
    return StatusQueryError(message)


@pytest.fixture
def settings():
    return Settings(
        rpc_url="http://rpc.invalid",
        network_passphrase=Network.TESTNET_NETWORK_PASSPHRASE,
        payment_contract_id=CONTRACT_ID,
    )


@pytest.fixture
def signer():
    return Signer(Keypair.random().secret)


@pytest.fixture
def payer_address():
    return Keypair.random().public_key


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def make_service(settings, signer, clock):
    def _make(client: LedgerClient, **overrides) -> SorobanService:
        service_settings = settings.model_copy(update=overrides) if overrides else settings
        return SorobanService(service_settings, client, signer, clock=clock)

    return _make
