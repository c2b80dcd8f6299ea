# services/transaction_builder.py

from stellar_sdk import Account, StrKey, TransactionBuilder, TransactionEnvelope, scval

from exceptions import TransactionBuildError

VERIFY_PAYMENT_FUNCTION = "verify_payment"
DEFAULT_BASE_FEE = 100_000  # stroops, enough to cover contract resource fees
DEFAULT_TX_TIMEOUT = 30  # seconds


def build_verification_transaction(
    source_account: Account,
    network_passphrase: str,
    contract_id: str,
    payment_id: str,
    transaction_hash: str,
    payer_address: str,
    amount_units: int,
    function_name: str = VERIFY_PAYMENT_FUNCTION,
    base_fee: int = DEFAULT_BASE_FEE,
    timeout: int = DEFAULT_TX_TIMEOUT,
) -> TransactionEnvelope:
    """
    Builds the unsigned transaction that calls `function_name` on the
    verification contract with (payment_id: String, transaction_hash: String,
    payer: Address, amount: i128).

    The envelope is only valid for `timeout` seconds from now and commits to
    `network_passphrase`, so its signature cannot be replayed elsewhere.
    """
    if not contract_id:
        raise TransactionBuildError("Contract id is required to build a verification transaction.")
    if not StrKey.is_valid_contract(contract_id):
        raise TransactionBuildError(f"Invalid contract id: {contract_id}")
    if not (StrKey.is_valid_ed25519_public_key(payer_address) or StrKey.is_valid_contract(payer_address)):
        raise TransactionBuildError(f"Invalid payer address: {payer_address}")

    parameters = [
        scval.to_string(payment_id),
        scval.to_string(transaction_hash),
        scval.to_address(payer_address),
        scval.to_int128(amount_units),
    ]

    return (
        TransactionBuilder(
            source_account=source_account,
            network_passphrase=network_passphrase,
            base_fee=base_fee,
        )
        .append_invoke_contract_function_op(
            contract_id=contract_id,
            function_name=function_name,
            parameters=parameters,
        )
        .set_timeout(timeout)
        .build()
    )
