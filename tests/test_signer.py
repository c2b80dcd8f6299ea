"""Tests for the custodial signer."""

import logging

import pytest
from stellar_sdk import Account, Keypair, Network, StrKey

from exceptions import ConfigurationError
from services.signer import Signer
from services.transaction_builder import build_verification_transaction


def test_uses_configured_secret():
    keypair = Keypair.random()
    signer = Signer(keypair.secret)

    assert signer.public_key == keypair.public_key
    assert signer.ephemeral is False


def test_generates_ephemeral_keypair_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="services.signer"):
        signer = Signer(None)

    assert signer.ephemeral is True
    assert StrKey.is_valid_ed25519_public_key(signer.public_key)
    assert "ADMIN_SECRET_KEY not set" in caplog.text


def test_invalid_secret_is_a_configuration_error():
    with pytest.raises(ConfigurationError) as excinfo:
        Signer("SNOTAREALSECRET")

    assert "SNOTAREALSECRET" not in str(excinfo.value)


def test_never_exposes_secret(caplog):
    keypair = Keypair.random()
    with caplog.at_level(logging.DEBUG):
        signer = Signer(keypair.secret)

    assert keypair.secret not in repr(signer)
    assert keypair.secret not in caplog.text


def test_sign_adds_verifiable_signature():
    keypair = Keypair.random()
    signer = Signer(keypair.secret)
    envelope = build_verification_transaction(
        source_account=Account(keypair.public_key, 1),
        network_passphrase=Network.TESTNET_NETWORK_PASSPHRASE,
        contract_id=StrKey.encode_contract(b"\x02" * 32),
        payment_id="pay_1",
        transaction_hash="b" * 64,
        payer_address=Keypair.random().public_key,
        amount_units=1,
    )

    signed = signer.sign(envelope)

    assert len(signed.signatures) == 1
    keypair.verify(signed.hash(), signed.signatures[0].signature)
