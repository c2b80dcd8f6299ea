# services/signer.py

import logging
from typing import Optional

from stellar_sdk import Keypair, TransactionEnvelope
from stellar_sdk.exceptions import Ed25519SecretSeedInvalidError

from exceptions import ConfigurationError

log = logging.getLogger(__name__)


class Signer:
    """Holds the custodial keypair used to sign verification transactions."""

    def __init__(self, secret_key: Optional[str] = None):
        if secret_key:
            try:
                self._keypair = Keypair.from_secret(secret_key)
            except (Ed25519SecretSeedInvalidError, ValueError) as e:
                # Message must not echo the seed.
                raise ConfigurationError("ADMIN_SECRET_KEY is not a valid Stellar secret seed.") from e
            self.ephemeral = False
        else:
            self._keypair = Keypair.random()
            self.ephemeral = True
            log.warning(
                "ADMIN_SECRET_KEY not set. Using an ephemeral random keypair %s for on-chain "
                "verification; it cannot custody real funds and is lost on restart.",
                self._keypair.public_key,
            )

    @property
    def public_key(self) -> str:
        return self._keypair.public_key

    def sign(self, transaction: TransactionEnvelope) -> TransactionEnvelope:
        transaction.sign(self._keypair)
        return transaction

    def __repr__(self) -> str:
        return f"Signer(public_key={self.public_key!r}, ephemeral={self.ephemeral})"
