"""Paymaster Authorization Signing.

Provides signing functions that work with various signer types:
- eth_account.Account (local trusted-signer key)
- TypedDataSigner (KMS, Privy, MetaMask, etc.)

A signer holds no per-request state. The same ``PaymasterSigner`` can
serve concurrent requests from any number of threads.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .codec import encode_paymaster_data
from .digest import DigestScheme, authorization_typed_data, build_signable_message
from .errors import SigningBackendUnavailable
from .types import (
    PAYMASTER_AUTHORIZATION_TYPES,
    PAYMASTER_DOMAIN_NAME,
    PAYMASTER_DOMAIN_VERSION,
    SIGNATURE_LENGTH,
    AuthorizationWindow,
    AuthorizerDomain,
    OperationDigestInput,
    SignedAuthorization,
    UserOperation,
)
from .utils import ZERO_ADDRESS, has_low_s, to_low_s

logger = logging.getLogger(__name__)

# Window policy
DEFAULT_VALID_AFTER_SKEW_SECONDS = 10
DEFAULT_VALIDITY_SECONDS = 3600  # 1 hour
MAX_VALID_AFTER_SKEW_SECONDS = 300
MIN_VALIDITY_SECONDS = 60  # 1 minute
MAX_VALIDITY_SECONDS = 86400  # 24 hours

# Dummy signature for gas estimation. paymasterData is fixed at 77 bytes, so
# the stub is exactly 65 bytes like a real signature; it stays oversized for
# calldata gas only through mostly non-zero bytes, never extra length. Never
# recovers to a real signer.
STUB_SIGNATURE = bytes.fromhex(
    "fffffffffffffffffffffffffffffff000000000000000000000000000000000"
    "7aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
    "1c"
)

PrivateKey = Union[str, bytes, LocalAccount]


def create_authorization_window(
    now: int,
    valid_after_skew: int = DEFAULT_VALID_AFTER_SKEW_SECONDS,
    validity_seconds: int = DEFAULT_VALIDITY_SECONDS,
) -> AuthorizationWindow:
    """Create the validity window for an authorization signed at ``now``.

    Args:
        now: Current unix timestamp in seconds
        valid_after_skew: Seconds subtracted from now to tolerate clock drift
        validity_seconds: Seconds from now until the authorization expires

    Returns:
        AuthorizationWindow

    Raises:
        ValueError: If skew or validity is out of bounds
    """
    if valid_after_skew < 0 or valid_after_skew > MAX_VALID_AFTER_SKEW_SECONDS:
        raise ValueError(
            f"Invalid valid_after_skew: {valid_after_skew}s. "
            f"Must be between 0 and {MAX_VALID_AFTER_SKEW_SECONDS}s"
        )
    if validity_seconds < MIN_VALIDITY_SECONDS:
        raise ValueError(
            f"Validity too short: {validity_seconds}s. Minimum: {MIN_VALIDITY_SECONDS}s"
        )
    if validity_seconds > MAX_VALIDITY_SECONDS:
        raise ValueError(
            f"Validity too long: {validity_seconds}s. Maximum: {MAX_VALIDITY_SECONDS}s"
        )
    return AuthorizationWindow(
        valid_after=max(0, now - valid_after_skew),
        valid_until=now + validity_seconds,
    )


def sign_authorization(
    private_key: PrivateKey,
    digest_input: OperationDigestInput,
    window: AuthorizationWindow,
    scheme: DigestScheme = DigestScheme.TYPED_DATA,
) -> SignedAuthorization:
    """Sign an authorization with a local private key.

    Use this when you have direct access to the trusted signer key.

    Args:
        private_key: Private key (hex string, bytes, or LocalAccount)
        digest_input: Operation fields and paymaster domain
        window: Validity window to sign over
        scheme: Digest scheme (TYPED_DATA unless testing legacy compatibility)

    Returns:
        SignedAuthorization with encoded paymasterData
    """
    account = _as_account(private_key)
    message = build_signable_message(
        scheme, digest_input, window.valid_after, window.valid_until
    )
    signed_message = account.sign_message(message)
    signature = bytes(signed_message.signature)
    return SignedAuthorization(
        digest_input=digest_input,
        window=window,
        signature=signature,
        paymaster_data=encode_paymaster_data(window.valid_after, window.valid_until, signature),
    )


class TypedDataSigner(Protocol):
    """Protocol for signers that can sign EIP-712 typed data."""

    async def get_address(self) -> str:
        """Get the signer's address."""
        ...

    async def sign_typed_data(self, params: Dict[str, Any]) -> str:
        """Sign EIP-712 typed data.

        Args:
            params: Dict with domain, types, primaryType, and message

        Returns:
            Signature as hex string
        """
        ...


async def sign_authorization_with_signer(
    signer: TypedDataSigner,
    digest_input: OperationDigestInput,
    window: AuthorizationWindow,
) -> SignedAuthorization:
    """Sign an authorization with any compatible typed-data signer.

    Use this when the trusted signer key lives in a KMS or a hosted wallet.

    Raises:
        SigningBackendUnavailable: If the signer fails or returns something
            that is not a 65-byte signature
    """
    typed_data = authorization_typed_data(digest_input, window.valid_after, window.valid_until)
    message = typed_data["message"]

    try:
        signature_hex = await signer.sign_typed_data(
            {
                "domain": typed_data["domain"],
                "types": PAYMASTER_AUTHORIZATION_TYPES,
                "primaryType": typed_data["primaryType"],
                "message": {
                    **message,
                    "validUntil": str(message["validUntil"]),
                    "validAfter": str(message["validAfter"]),
                    "nonce": str(message["nonce"]),
                    "callDataHash": "0x" + message["callDataHash"].hex(),
                },
            }
        )
    except Exception as exc:
        logger.warning(
            "Typed data signer failed",
            extra={"sender": digest_input.sender, "error": str(exc)},
        )
        raise SigningBackendUnavailable(f"Signing backend failed: {exc}") from exc

    try:
        signature = bytes.fromhex(
            signature_hex[2:] if signature_hex.startswith("0x") else signature_hex
        )
    except (AttributeError, ValueError) as exc:
        raise SigningBackendUnavailable("Signing backend returned a non-hex signature") from exc
    if len(signature) != SIGNATURE_LENGTH:
        raise SigningBackendUnavailable(
            f"Signing backend returned a {len(signature)}-byte signature"
        )
    # Some backends do not normalize s; the validator only accepts the lower half.
    signature = to_low_s(signature)

    return SignedAuthorization(
        digest_input=digest_input,
        window=window,
        signature=signature,
        paymaster_data=encode_paymaster_data(window.valid_after, window.valid_until, signature),
    )


def verify_authorization_signature(
    signed_auth: SignedAuthorization,
    expected_signer: str,
    scheme: DigestScheme = DigestScheme.TYPED_DATA,
) -> bool:
    """Verify a signed authorization locally.

    Args:
        signed_auth: Signed authorization
        expected_signer: Expected signer address
        scheme: Digest scheme the authorization was signed with

    Returns:
        True if signature is valid and from expected signer
    """
    message = build_signable_message(
        scheme,
        signed_auth.digest_input,
        signed_auth.window.valid_after,
        signed_auth.window.valid_until,
    )
    if not has_low_s(signed_auth.signature):
        return False
    try:
        recovered = Account.recover_message(message, signature=signed_auth.signature)
    except Exception:
        return False
    return recovered.lower() == expected_signer.lower()


class PaymasterSigner:
    """Off-chain authority that signs paymaster authorizations.

    Example:
        ```python
        signer = PaymasterSigner(os.environ["TRUSTED_SIGNER_PRIVATE_KEY"])
        signed = signer.sign_user_operation(
            user_operation,
            verifying_contract=PAYMASTER_ADDRESS,
            chain_id=8453,
        )
        user_operation.paymaster_and_data = encode_paymaster_and_data(
            PAYMASTER_ADDRESS, 120_000, 60_000, signed.paymaster_data
        )
        ```
    """

    def __init__(
        self,
        private_key: PrivateKey,
        *,
        domain_name: str = PAYMASTER_DOMAIN_NAME,
        domain_version: str = PAYMASTER_DOMAIN_VERSION,
        valid_after_skew: int = DEFAULT_VALID_AFTER_SKEW_SECONDS,
        validity_seconds: int = DEFAULT_VALIDITY_SECONDS,
        scheme: DigestScheme = DigestScheme.TYPED_DATA,
        clock: Callable[[], float] = time.time,
    ):
        self._account = _as_account(private_key)
        self._domain_name = domain_name
        self._domain_version = domain_version
        self._scheme = scheme
        self._clock = clock
        # Fail on a bad policy at construction time rather than per request.
        create_authorization_window(
            int(clock()), valid_after_skew=valid_after_skew, validity_seconds=validity_seconds
        )
        self._valid_after_skew = valid_after_skew
        self._validity_seconds = validity_seconds

    @property
    def address(self) -> str:
        """Address of the trusted signer (the ConfigStore verifying identity)."""
        return self._account.address

    def domain(self, verifying_contract: str, chain_id: int) -> AuthorizerDomain:
        return AuthorizerDomain(
            chain_id=chain_id,
            verifying_contract=verifying_contract,
            name=self._domain_name,
            version=self._domain_version,
        )

    def window(self, now: Optional[int] = None) -> AuthorizationWindow:
        """Return the validity window for a signature made at ``now``."""
        if now is None:
            now = int(self._clock())
        return create_authorization_window(
            now,
            valid_after_skew=self._valid_after_skew,
            validity_seconds=self._validity_seconds,
        )

    def sign(
        self,
        *,
        sender: str,
        nonce: int,
        call_data_hash: bytes,
        verifying_contract: str,
        chain_id: int,
        now: Optional[int] = None,
    ) -> SignedAuthorization:
        """Sign an authorization for one operation.

        Raises:
            ValueError: If any field is invalid
        """
        digest_input = OperationDigestInput(
            sender=sender,
            nonce=nonce,
            call_data_hash=call_data_hash,
            domain=self.domain(verifying_contract, chain_id),
        )
        window = self.window(now)
        signed = sign_authorization(self._account, digest_input, window, self._scheme)
        logger.info(
            "Signed paymaster authorization",
            extra={
                "sender": digest_input.sender,
                "nonce": digest_input.nonce,
                "paymaster": digest_input.domain.verifying_contract,
                "chain_id": chain_id,
                "valid_after": window.valid_after,
                "valid_until": window.valid_until,
            },
        )
        return signed

    def sign_user_operation(
        self,
        operation: UserOperation,
        *,
        verifying_contract: str,
        chain_id: int,
        now: Optional[int] = None,
    ) -> SignedAuthorization:
        """Sign an authorization over the fields of ``operation``."""
        return self.sign(
            sender=operation.sender,
            nonce=operation.nonce,
            call_data_hash=operation.call_data_hash,
            verifying_contract=verifying_contract,
            chain_id=chain_id,
            now=now,
        )

    def stub(
        self,
        *,
        verifying_contract: str,
        chain_id: int,
        now: Optional[int] = None,
    ) -> SignedAuthorization:
        """Build placeholder paymasterData for gas estimation.

        The stub has the same size as a real authorization but covers a zero
        sender, nonce and call payload with a dummy signature. It is NOT valid
        for execution; validators reject it.
        """
        digest_input = OperationDigestInput(
            sender=ZERO_ADDRESS,
            nonce=0,
            call_data_hash=bytes(32),
            domain=self.domain(verifying_contract, chain_id),
        )
        window = self.window(now)
        return SignedAuthorization(
            digest_input=digest_input,
            window=window,
            signature=STUB_SIGNATURE,
            paymaster_data=encode_paymaster_data(
                window.valid_after, window.valid_until, STUB_SIGNATURE
            ),
            is_stub=True,
        )


def _as_account(private_key: PrivateKey) -> LocalAccount:
    if isinstance(private_key, LocalAccount):
        return private_key
    return Account.from_key(private_key)
