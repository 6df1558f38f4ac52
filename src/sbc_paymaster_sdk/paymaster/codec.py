"""Binary encoding of the paymaster authorization payload.

Layout A (paymasterData)::

    validAfter (6) | validUntil (6) | signature (65)          = 77 bytes

Layout B (paymasterAndData, as attached to the UserOperation)::

    paymaster (20) | verificationGasLimit (16) | postOpGasLimit (16) | layout A

All integers are big-endian. Decoding layout B is layout A at an explicit
offset of ``PAYMASTER_DATA_OFFSET``; the decoder never guesses the layout.
"""

from typing import Union

from eth_utils import to_checksum_address

from .types import (
    SIGNATURE_LENGTH,
    AuthorizationWindow,
    Malformed,
    PaymasterAndData,
    PaymasterData,
)
from .utils import MAX_UINT128

TIMESTAMP_LENGTH = 6
PAYMASTER_DATA_LENGTH = 2 * TIMESTAMP_LENGTH + SIGNATURE_LENGTH

ADDRESS_LENGTH = 20
GAS_LIMIT_LENGTH = 16
PAYMASTER_DATA_OFFSET = ADDRESS_LENGTH + 2 * GAS_LIMIT_LENGTH
PAYMASTER_AND_DATA_LENGTH = PAYMASTER_DATA_OFFSET + PAYMASTER_DATA_LENGTH

BytesLike = Union[bytes, bytearray, memoryview, str]


def encode_paymaster_data(valid_after: int, valid_until: int, signature: bytes) -> bytes:
    """Encode ``validAfter ‖ validUntil ‖ signature``.

    Args:
        valid_after: Start of the validity window (uint48)
        valid_until: End of the validity window (uint48)
        signature: 65-byte recoverable signature

    Returns:
        77-byte paymasterData

    Raises:
        ValueError: If a timestamp is out of range, the window is empty,
            or the signature is not 65 bytes
    """
    window = AuthorizationWindow(valid_after=valid_after, valid_until=valid_until)
    signature = bytes(signature)
    if len(signature) != SIGNATURE_LENGTH:
        raise ValueError(
            f"Invalid signature length: {len(signature)}. Expected {SIGNATURE_LENGTH}"
        )
    return (
        window.valid_after.to_bytes(TIMESTAMP_LENGTH, "big")
        + window.valid_until.to_bytes(TIMESTAMP_LENGTH, "big")
        + signature
    )


def decode_paymaster_data(data: BytesLike, offset: int = 0) -> Union[PaymasterData, Malformed]:
    """Decode layout A starting at ``offset``.

    Returns ``Malformed`` instead of raising on any bad input.

    Args:
        data: Raw bytes or 0x-prefixed hex string
        offset: Where paymasterData begins (0 for layout A,
            ``PAYMASTER_DATA_OFFSET`` for layout B)

    Returns:
        PaymasterData, or Malformed with a reason
    """
    raw = _as_bytes(data)
    if raw is None:
        return Malformed(reason="paymaster data is not bytes or hex")
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        return Malformed(reason=f"invalid offset: {offset!r}")

    payload = raw[offset:]
    if len(payload) < PAYMASTER_DATA_LENGTH:
        return Malformed(
            reason=f"paymaster data too short: {len(payload)} bytes after offset {offset}"
        )

    signature = payload[2 * TIMESTAMP_LENGTH:]
    if len(signature) != SIGNATURE_LENGTH:
        return Malformed(reason=f"invalid signature length: {len(signature)}")

    return PaymasterData(
        valid_after=int.from_bytes(payload[:TIMESTAMP_LENGTH], "big"),
        valid_until=int.from_bytes(payload[TIMESTAMP_LENGTH:2 * TIMESTAMP_LENGTH], "big"),
        signature=signature,
    )


def encode_paymaster_and_data(
    paymaster: str,
    verification_gas_limit: int,
    post_op_gas_limit: int,
    paymaster_data: bytes,
) -> bytes:
    """Pack the paymaster address and gas limits in front of paymasterData.

    Raises:
        ValueError: If the address is invalid, a gas limit does not fit in
            16 bytes, or paymaster_data is not a layout A payload
    """
    address = bytes.fromhex(to_checksum_address(paymaster)[2:])
    for label, value in (
        ("verification_gas_limit", verification_gas_limit),
        ("post_op_gas_limit", post_op_gas_limit),
    ):
        if not isinstance(value, int) or value < 0 or value > MAX_UINT128:
            raise ValueError(f"Invalid {label}: {value}")
    paymaster_data = bytes(paymaster_data)
    if len(paymaster_data) != PAYMASTER_DATA_LENGTH:
        raise ValueError(
            f"Invalid paymaster data length: {len(paymaster_data)}. "
            f"Expected {PAYMASTER_DATA_LENGTH}"
        )
    return (
        address
        + verification_gas_limit.to_bytes(GAS_LIMIT_LENGTH, "big")
        + post_op_gas_limit.to_bytes(GAS_LIMIT_LENGTH, "big")
        + paymaster_data
    )


def decode_paymaster_and_data(data: BytesLike) -> Union[PaymasterAndData, Malformed]:
    """Decode layout B. Returns ``Malformed`` instead of raising."""
    raw = _as_bytes(data)
    if raw is None:
        return Malformed(reason="paymasterAndData is not bytes or hex")
    if len(raw) < PAYMASTER_DATA_OFFSET:
        return Malformed(reason=f"paymasterAndData too short: {len(raw)} bytes")

    decoded = decode_paymaster_data(raw, offset=PAYMASTER_DATA_OFFSET)
    if isinstance(decoded, Malformed):
        return decoded

    gas_start = ADDRESS_LENGTH
    return PaymasterAndData(
        paymaster=to_checksum_address(raw[:ADDRESS_LENGTH]),
        verification_gas_limit=int.from_bytes(raw[gas_start:gas_start + GAS_LIMIT_LENGTH], "big"),
        post_op_gas_limit=int.from_bytes(
            raw[gas_start + GAS_LIMIT_LENGTH:PAYMASTER_DATA_OFFSET], "big"
        ),
        paymaster_data=decoded,
    )


def _as_bytes(data: BytesLike):
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        text = data[2:] if data[:2] in ("0x", "0X") else data
        try:
            return bytes.fromhex(text)
        except ValueError:
            return None
    return None
