"""Utility functions for the SBC paymaster."""

from decimal import Decimal
from typing import Union

from eth_utils import from_wei, keccak, to_wei

# ERC-4337 EntryPoint deployments
ENTRYPOINT_ADDRESS_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
ENTRYPOINT_ADDRESS_V08 = "0x4337084D9E255Ff0702461CF8895CE9E3b5Ff108"

# Zero address
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Absolute ceiling for the owner-configured cost cap (1 ETH)
MAX_ALLOWED_COST_CEILING = to_wei(1, "ether")

# Default paymaster gas limits used by the relay (100k / 50k + 20%)
DEFAULT_PAYMASTER_VERIFICATION_GAS_LIMIT = 120_000
DEFAULT_PAYMASTER_POST_OP_GAS_LIMIT = 60_000

MAX_UINT48 = 2**48 - 1
MAX_UINT128 = 2**128 - 1
MAX_UINT256 = 2**256 - 1

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def format_ether(amount_wei: int) -> str:
    """Format a wei amount to a human readable ether string.

    Args:
        amount_wei: Amount in wei (e.g., 10**16 = 0.01 ETH)

    Returns:
        Human readable string (e.g., "0.01")
    """
    value = from_wei(amount_wei, "ether")
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def parse_ether(amount: Union[str, int, Decimal]) -> int:
    """Parse a human readable ether amount to wei.

    Args:
        amount: Amount in ether (e.g., "0.01")

    Returns:
        Amount in wei (e.g., 10000000000000000)
    """
    return int(to_wei(Decimal(str(amount)), "ether"))


def hash_call_data(call_data: bytes) -> bytes:
    """Return the keccak-256 hash of an operation's call payload."""
    return keccak(call_data)


def required_prefund(
    *,
    call_gas_limit: int,
    verification_gas_limit: int,
    pre_verification_gas: int,
    paymaster_verification_gas_limit: int,
    paymaster_post_op_gas_limit: int,
    max_fee_per_gas: int,
) -> int:
    """Calculate the maximum cost an EntryPoint v0.7 charges the paymaster.

    This is the ``requested_cost`` a caller passes to the validator.

    Returns:
        Cost in wei
    """
    total_gas = (
        call_gas_limit
        + verification_gas_limit
        + pre_verification_gas
        + paymaster_verification_gas_limit
        + paymaster_post_op_gas_limit
    )
    return total_gas * max_fee_per_gas


def has_low_s(signature: bytes) -> bool:
    """Return True if a 65-byte ``r || s || v`` signature uses the lower half of s.

    The upper half is the malleable twin of a valid signature and is
    refused, matching OpenZeppelin's ECDSA.recover.
    """
    return int.from_bytes(signature[32:64], "big") <= SECP256K1_N // 2


def to_low_s(signature: bytes) -> bytes:
    """Return the lower-s form of a 65-byte ``r || s || v`` signature.

    Flipping s flips the recovery parity, so v moves between 27 and 28
    (or 0 and 1). Signatures already in the lower half are returned as-is.
    """
    if has_low_s(signature):
        return signature
    s = SECP256K1_N - int.from_bytes(signature[32:64], "big")
    v = signature[64]
    v = 55 - v if v in (27, 28) else v ^ 1
    return signature[:32] + s.to_bytes(32, "big") + bytes([v])
