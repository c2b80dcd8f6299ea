# config.py

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from stellar_sdk import Network

from exceptions import ConfigurationError

DEFAULT_RPC_URL = "https://soroban-testnet.stellar.org"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    rpc_url: str = DEFAULT_RPC_URL
    network_passphrase: str = Network.TESTNET_NETWORK_PASSPHRASE
    payment_contract_id: str = ""
    admin_secret_key: Optional[str] = Field(default=None, repr=False)
    base_fee: int = Field(default=100_000, gt=0)
    tx_timeout: int = Field(default=30, gt=0)
    rpc_timeout: float = Field(default=10.0, gt=0)
    poll_interval: float = Field(default=2.0, ge=0)
    poll_attempts: int = Field(default=10, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        if environ is None:
            load_dotenv()
            environ = os.environ

        values = {
            "rpc_url": environ.get("SOROBAN_RPC_URL") or DEFAULT_RPC_URL,
            "network_passphrase": environ.get("SOROBAN_NETWORK_PASSPHRASE") or Network.TESTNET_NETWORK_PASSPHRASE,
            "payment_contract_id": environ.get("PAYMENT_CONTRACT_ID", "").strip(),
            "admin_secret_key": environ.get("ADMIN_SECRET_KEY") or None,
            "log_level": environ.get("LOG_LEVEL", "INFO").upper(),
        }
        optional = {
            "base_fee": "SOROBAN_BASE_FEE",
            "tx_timeout": "SOROBAN_TX_TIMEOUT",
            "rpc_timeout": "SOROBAN_RPC_TIMEOUT",
            "poll_interval": "SOROBAN_POLL_INTERVAL",
            "poll_attempts": "SOROBAN_POLL_ATTEMPTS",
        }
        for field, env_name in optional.items():
            if environ.get(env_name):
                values[field] = environ[env_name]

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid Soroban configuration: {e}") from e

    @property
    def contract_configured(self) -> bool:
        return bool(self.payment_contract_id)
