"""Paymaster Types.

Data model shared by the codec, digest builder, signer and validator.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Union

from eth_utils import is_address, to_checksum_address

from .utils import MAX_UINT48, MAX_UINT128, MAX_UINT256, hash_call_data

# Default EIP-712 domain of the signature-verifying paymaster
PAYMASTER_DOMAIN_NAME = "SSVPaymasterECDSASigner"
PAYMASTER_DOMAIN_VERSION = "1"

SIGNATURE_LENGTH = 65


def _checksum(value: str, label: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"Invalid {label}: {value}")
    return to_checksum_address(value)


def _require_uint(value: int, bound: int, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Invalid {label}: {value!r}. Must be an integer")
    if value < 0 or value > bound:
        raise ValueError(f"Invalid {label}: {value}. Out of range")


def _hex_bytes(value: Union[bytes, str, None]) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value[2:] if value.startswith("0x") else value
    return bytes.fromhex(text)


def _hex_int(value: Union[int, str, None]) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


@dataclass(frozen=True)
class AuthorizerDomain:
    """EIP-712 domain binding a signature to one paymaster on one chain."""

    chain_id: int
    """Numeric chain identifier."""

    verifying_contract: str
    """Address of the paymaster (the authorizer)."""

    name: str = PAYMASTER_DOMAIN_NAME
    """Protocol name."""

    version: str = PAYMASTER_DOMAIN_VERSION
    """Protocol version."""

    def __post_init__(self) -> None:
        _require_uint(self.chain_id, MAX_UINT256, "chain_id")
        object.__setattr__(
            self,
            "verifying_contract",
            _checksum(self.verifying_contract, "verifying_contract"),
        )


@dataclass(frozen=True)
class OperationDigestInput:
    """Operation fields covered by the paymaster signature."""

    sender: str
    """Smart account submitting the operation."""

    nonce: int
    """Account nonce of the operation."""

    call_data_hash: bytes
    """keccak-256 of the operation call payload."""

    domain: AuthorizerDomain
    """Domain of the paymaster the authorization is minted for."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", _checksum(self.sender, "sender"))
        _require_uint(self.nonce, MAX_UINT256, "nonce")
        if not isinstance(self.call_data_hash, (bytes, bytearray)) or len(self.call_data_hash) != 32:
            raise ValueError("Invalid call_data_hash: must be 32 bytes")
        object.__setattr__(self, "call_data_hash", bytes(self.call_data_hash))

    @classmethod
    def from_user_operation(
        cls, operation: "UserOperation", domain: AuthorizerDomain
    ) -> "OperationDigestInput":
        """Take sender, nonce and call payload from the operation as received."""
        return cls(
            sender=operation.sender,
            nonce=operation.nonce,
            call_data_hash=hash_call_data(operation.call_data),
            domain=domain,
        )


@dataclass(frozen=True)
class AuthorizationWindow:
    """Validity window fixed at signing time."""

    valid_after: int
    valid_until: int

    def __post_init__(self) -> None:
        _require_uint(self.valid_after, MAX_UINT48, "valid_after")
        _require_uint(self.valid_until, MAX_UINT48, "valid_until")
        if self.valid_after >= self.valid_until:
            raise ValueError(
                f"Invalid window: valid_after ({self.valid_after}) must be "
                f"before valid_until ({self.valid_until})"
            )


@dataclass(frozen=True)
class PaymasterData:
    """Decoded authorization payload (wire layout A)."""

    valid_after: int
    valid_until: int
    signature: bytes
    """65-byte recoverable signature (r, s, v)."""


@dataclass(frozen=True)
class PaymasterAndData:
    """Decoded paymasterAndData (wire layout B)."""

    paymaster: str
    verification_gas_limit: int
    post_op_gas_limit: int
    paymaster_data: PaymasterData


@dataclass(frozen=True)
class SignedAuthorization:
    """Authorization produced by the signer, ready to attach to an operation."""

    digest_input: OperationDigestInput
    window: AuthorizationWindow
    signature: bytes
    paymaster_data: bytes
    """Encoded ``validAfter ‖ validUntil ‖ signature`` (77 bytes)."""

    is_stub: bool = False
    """Stub authorizations are for gas estimation only, never for execution."""

    @property
    def paymaster_data_hex(self) -> str:
        return "0x" + self.paymaster_data.hex()


@dataclass
class UserOperation:
    """ERC-4337 v0.7 UserOperation as received by the paymaster.

    Values are raw integers and bytes; ``from_rpc`` / ``to_rpc_dict``
    convert from and to the hex-encoded JSON-RPC form.
    """

    sender: str
    nonce: int
    call_data: bytes = b""
    init_code: bytes = b""
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    @property
    def call_data_hash(self) -> bytes:
        return hash_call_data(self.call_data)

    @property
    def account_gas_limits(self) -> bytes:
        """verificationGasLimit ‖ callGasLimit, 16 bytes each."""
        return _pack_uint128_pair(self.verification_gas_limit, self.call_gas_limit)

    @property
    def gas_fees(self) -> bytes:
        """maxPriorityFeePerGas ‖ maxFeePerGas, 16 bytes each."""
        return _pack_uint128_pair(self.max_priority_fee_per_gas, self.max_fee_per_gas)

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "UserOperation":
        return cls(
            sender=data["sender"],
            nonce=_hex_int(data.get("nonce")),
            call_data=_hex_bytes(data.get("callData")),
            init_code=_hex_bytes(data.get("initCode")),
            call_gas_limit=_hex_int(data.get("callGasLimit")),
            verification_gas_limit=_hex_int(data.get("verificationGasLimit")),
            pre_verification_gas=_hex_int(data.get("preVerificationGas")),
            max_fee_per_gas=_hex_int(data.get("maxFeePerGas")),
            max_priority_fee_per_gas=_hex_int(data.get("maxPriorityFeePerGas")),
            paymaster_and_data=_hex_bytes(data.get("paymasterAndData")),
            signature=_hex_bytes(data.get("signature")),
        )

    def to_rpc_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "initCode": "0x" + self.init_code.hex(),
            "callData": "0x" + self.call_data.hex(),
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "paymasterAndData": "0x" + self.paymaster_and_data.hex(),
            "signature": "0x" + self.signature.hex(),
        }


def _pack_uint128_pair(high: int, low: int) -> bytes:
    _require_uint(high, MAX_UINT128, "gas value")
    _require_uint(low, MAX_UINT128, "gas value")
    return high.to_bytes(16, "big") + low.to_bytes(16, "big")


class ValidationStatus(str, Enum):
    """Fixed status strings exposed to the settlement layer / bundler."""

    ACCEPTED = "accepted"
    SIGNATURE_REJECTED = "signature_rejected"
    MALFORMED = "malformed"
    COST_EXCEEDED = "cost_exceeded"


@dataclass(frozen=True)
class Accepted:
    """Signature verified and cost within the cap."""

    valid_after: int
    valid_until: int

    status: ClassVar[ValidationStatus] = ValidationStatus.ACCEPTED
    fatal: ClassVar[bool] = False


@dataclass(frozen=True)
class SignatureRejected:
    """Recovered signer is not the verifying identity. Soft failure."""

    valid_after: int
    valid_until: int

    status: ClassVar[ValidationStatus] = ValidationStatus.SIGNATURE_REJECTED
    fatal: ClassVar[bool] = False


@dataclass(frozen=True)
class Malformed:
    """Payload or operation could not be interpreted. Hard failure."""

    reason: str

    status: ClassVar[ValidationStatus] = ValidationStatus.MALFORMED
    fatal: ClassVar[bool] = True


@dataclass(frozen=True)
class CostExceeded:
    """Requested cost is above the owner-configured cap.

    ``fatal`` is False only when the engine runs in decline mode.
    """

    requested_cost: int
    max_allowed_cost: int
    fatal: bool = field(default=True)

    status: ClassVar[ValidationStatus] = ValidationStatus.COST_EXCEEDED


ValidationResult = Union[Accepted, SignatureRejected, Malformed, CostExceeded]


# EIP-712 types for the paymaster authorization
EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

PAYMASTER_AUTHORIZATION_TYPES = {
    "PaymasterAuthorization": [
        {"name": "validUntil", "type": "uint48"},
        {"name": "validAfter", "type": "uint48"},
        {"name": "sender", "type": "address"},
        {"name": "nonce", "type": "uint256"},
        {"name": "callDataHash", "type": "bytes32"},
    ],
}

