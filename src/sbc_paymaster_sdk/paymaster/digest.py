"""Digest construction for paymaster authorizations.

Two schemes exist:

- ``DigestScheme.TYPED_DATA`` (current): EIP-712 struct over
  ``(validUntil, validAfter, sender, nonce, callDataHash)`` under a domain
  of ``(name, version, chainId, verifyingContract)``. Binds one signature to
  exactly one operation on one paymaster.
- ``DigestScheme.LEGACY``: ``keccak(abi.encode(validUntil, validAfter,
  chainId, paymaster, sender))`` behind the personal-message prefix. It does
  not cover nonce or call data, so a legacy signature is valid for every
  operation from the same sender inside the window. Kept for compatibility
  testing only.

The type strings below are part of the wire contract with the on-chain
verifier. Any change yields signatures that recover to the wrong address,
not errors.
"""

from enum import Enum
from typing import Any, Dict

from eth_abi import encode
from eth_account.messages import SignableMessage, encode_defunct
from eth_utils import keccak

from .types import (
    EIP712_DOMAIN_FIELDS,
    PAYMASTER_AUTHORIZATION_TYPES,
    AuthorizerDomain,
    OperationDigestInput,
)

EIP712_DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
PAYMASTER_AUTHORIZATION_TYPE = (
    "PaymasterAuthorization(uint48 validUntil,uint48 validAfter,"
    "address sender,uint256 nonce,bytes32 callDataHash)"
)

EIP712_DOMAIN_TYPEHASH = keccak(text=EIP712_DOMAIN_TYPE)
PAYMASTER_AUTHORIZATION_TYPEHASH = keccak(text=PAYMASTER_AUTHORIZATION_TYPE)


class DigestScheme(str, Enum):
    TYPED_DATA = "typed_data"
    LEGACY = "legacy"


def create_eip712_domain(domain: AuthorizerDomain) -> Dict[str, Any]:
    """Create the EIP-712 domain dictionary for a paymaster."""
    return {
        "name": domain.name,
        "version": domain.version,
        "chainId": domain.chain_id,
        "verifyingContract": domain.verifying_contract,
    }


def domain_separator(domain: AuthorizerDomain) -> bytes:
    """Return the EIP-712 domain separator (hashStruct of EIP712Domain)."""
    return keccak(
        encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                EIP712_DOMAIN_TYPEHASH,
                keccak(text=domain.name),
                keccak(text=domain.version),
                domain.chain_id,
                domain.verifying_contract,
            ],
        )
    )


def authorization_struct_hash(
    digest_input: OperationDigestInput, valid_after: int, valid_until: int
) -> bytes:
    """Return hashStruct(PaymasterAuthorization) for the given fields."""
    return keccak(
        encode(
            ["bytes32", "uint48", "uint48", "address", "uint256", "bytes32"],
            [
                PAYMASTER_AUTHORIZATION_TYPEHASH,
                valid_until,
                valid_after,
                digest_input.sender,
                digest_input.nonce,
                digest_input.call_data_hash,
            ],
        )
    )


def authorization_typed_data(
    digest_input: OperationDigestInput, valid_after: int, valid_until: int
) -> Dict[str, Any]:
    """Build the full EIP-712 message, for wallets that sign typed data.

    Hashing this with any conforming EIP-712 implementation yields the same
    digest as ``authorization_digest``.
    """
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_FIELDS,
            **PAYMASTER_AUTHORIZATION_TYPES,
        },
        "primaryType": "PaymasterAuthorization",
        "domain": create_eip712_domain(digest_input.domain),
        "message": {
            "validUntil": valid_until,
            "validAfter": valid_after,
            "sender": digest_input.sender,
            "nonce": digest_input.nonce,
            "callDataHash": digest_input.call_data_hash,
        },
    }


def authorization_signable_message(
    digest_input: OperationDigestInput, valid_after: int, valid_until: int
) -> SignableMessage:
    return SignableMessage(
        version=b"\x01",
        header=domain_separator(digest_input.domain),
        body=authorization_struct_hash(digest_input, valid_after, valid_until),
    )


def authorization_digest(
    digest_input: OperationDigestInput, valid_after: int, valid_until: int
) -> bytes:
    """Return ``keccak(0x1901 ‖ domainSeparator ‖ structHash)``."""
    return signable_message_digest(
        authorization_signable_message(digest_input, valid_after, valid_until)
    )


def legacy_digest(
    digest_input: OperationDigestInput, valid_after: int, valid_until: int
) -> bytes:
    """Return the legacy plain digest. Ignores nonce and call data."""
    return keccak(
        encode(
            ["uint48", "uint48", "uint256", "address", "address"],
            [
                valid_until,
                valid_after,
                digest_input.domain.chain_id,
                digest_input.domain.verifying_contract,
                digest_input.sender,
            ],
        )
    )


def legacy_signable_message(
    digest_input: OperationDigestInput, valid_after: int, valid_until: int
) -> SignableMessage:
    return encode_defunct(primitive=legacy_digest(digest_input, valid_after, valid_until))


def build_signable_message(
    scheme: DigestScheme,
    digest_input: OperationDigestInput,
    valid_after: int,
    valid_until: int,
) -> SignableMessage:
    """Dispatch to the message builder of ``scheme``."""
    if scheme == DigestScheme.TYPED_DATA:
        return authorization_signable_message(digest_input, valid_after, valid_until)
    if scheme == DigestScheme.LEGACY:
        return legacy_signable_message(digest_input, valid_after, valid_until)
    raise ValueError(f"Unsupported digest scheme: {scheme}")


def signable_message_digest(message: SignableMessage) -> bytes:
    """Hash an EIP-191 message the way ``ecrecover`` callers do."""
    return keccak(b"\x19" + message.version + message.header + message.body)
