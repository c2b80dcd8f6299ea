# exceptions.py


class ConfigurationError(Exception):
    """Raised when a setting or secret cannot be used as supplied."""


class TransactionBuildError(ValueError):
    pass


class InvalidAmount(ValueError):
    """Amount is negative, non-finite, unparseable or too large for an i128."""


class PaymentNotFound(LookupError):
    def __init__(self, payment_id: str):
        super().__init__(f"Payment {payment_id} not found")
        self.payment_id = payment_id


# Ledger faults. The orchestrator recovers all of these locally.

class LedgerError(Exception):
    pass


class AccountLookupError(LedgerError):
    pass


class SimulationError(LedgerError):
    pass


class SubmissionError(LedgerError):
    pass


class SequenceConflictError(AccountLookupError, SubmissionError):
    """Another submission from the same source account consumed the sequence number."""


class StatusQueryError(LedgerError):
    pass


class PaymentStateConflict(Exception):
    def __init__(self, payment_id: str, status: str):
        super().__init__(f"Payment {payment_id} is {status} and cannot be confirmed")
        self.payment_id = payment_id
        self.status = status
