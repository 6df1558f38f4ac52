"""SBC Paymaster Authorization Module.

This module provides the signature-verifying paymaster protocol: a trusted
signer authorizes sponsorship of one ERC-4337 user operation for a bounded
time, and a validator checks that authorization against the operation it
actually receives.

Key components:
- Paymaster data codec (validAfter ‖ validUntil ‖ signature)
- Digest construction (EIP-712, domain separated)
- Authorization signing (local key or typed-data signer)
- Validation (signature, cost cap, immutable window)
- Owner-gated config store

Example usage:
    ```python
    from sbc_paymaster_sdk.paymaster import (
        AuthorizerDomain,
        ConfigStore,
        PaymasterSigner,
        UserOperation,
        ValidationEngine,
    )
    import time

    signer = PaymasterSigner("0x...")
    store = ConfigStore()
    store.initialize(
        owner="0x...",
        verifying_identity=signer.address,
        max_allowed_cost=10**16,  # 0.01 ETH
    )

    operation = UserOperation(sender="0x...", nonce=5, call_data=b"...")
    signed = signer.sign_user_operation(
        operation, verifying_contract="0x...", chain_id=8453
    )

    engine = ValidationEngine(signer.domain("0x...", 8453))
    result = engine.validate(
        operation,
        signed.paymaster_data,
        requested_cost=10**15,
        config=store.snapshot(),
        now=int(time.time()),
    )
    ```
"""

from .types import (
    Accepted,
    AuthorizationWindow,
    AuthorizerDomain,
    CostExceeded,
    Malformed,
    OperationDigestInput,
    PaymasterAndData,
    PaymasterData,
    SignatureRejected,
    SignedAuthorization,
    UserOperation,
    ValidationResult,
    ValidationStatus,
    PAYMASTER_AUTHORIZATION_TYPES,
    PAYMASTER_DOMAIN_NAME,
    PAYMASTER_DOMAIN_VERSION,
    SIGNATURE_LENGTH,
)
from .codec import (
    decode_paymaster_and_data,
    decode_paymaster_data,
    encode_paymaster_and_data,
    encode_paymaster_data,
    PAYMASTER_DATA_LENGTH,
    PAYMASTER_DATA_OFFSET,
)
from .digest import (
    DigestScheme,
    authorization_digest,
    authorization_signable_message,
    authorization_struct_hash,
    authorization_typed_data,
    build_signable_message,
    create_eip712_domain,
    domain_separator,
    legacy_digest,
    legacy_signable_message,
    signable_message_digest,
    EIP712_DOMAIN_TYPE,
    EIP712_DOMAIN_TYPEHASH,
    PAYMASTER_AUTHORIZATION_TYPE,
    PAYMASTER_AUTHORIZATION_TYPEHASH,
)
from .config import Config, ConfigChange, ConfigState, ConfigStore
from .signing import (
    create_authorization_window,
    sign_authorization,
    sign_authorization_with_signer,
    verify_authorization_signature,
    PaymasterSigner,
    TypedDataSigner,
    STUB_SIGNATURE,
)
from .validation import (
    CostCapMode,
    ValidationEngine,
    WindowState,
    describe_outcome,
    pack_validation_data,
    raise_for_fatal,
    window_state,
)
from .errors import (
    ConfigAlreadyInitialized,
    ConfigNotInitialized,
    InvalidConfigValue,
    PaymasterError,
    SigningBackendUnavailable,
    Unauthorized,
    ValidationAborted,
)
from .utils import (
    ENTRYPOINT_ADDRESS_V07,
    ENTRYPOINT_ADDRESS_V08,
    MAX_ALLOWED_COST_CEILING,
    SECP256K1_N,
    ZERO_ADDRESS,
    format_ether,
    has_low_s,
    parse_ether,
    to_low_s,
    hash_call_data,
    required_prefund,
)

__all__ = [
    # Types
    "Accepted",
    "AuthorizationWindow",
    "AuthorizerDomain",
    "CostExceeded",
    "Malformed",
    "OperationDigestInput",
    "PaymasterAndData",
    "PaymasterData",
    "SignatureRejected",
    "SignedAuthorization",
    "UserOperation",
    "ValidationResult",
    "ValidationStatus",
    "PAYMASTER_AUTHORIZATION_TYPES",
    "PAYMASTER_DOMAIN_NAME",
    "PAYMASTER_DOMAIN_VERSION",
    "SIGNATURE_LENGTH",
    # Codec
    "decode_paymaster_and_data",
    "decode_paymaster_data",
    "encode_paymaster_and_data",
    "encode_paymaster_data",
    "PAYMASTER_DATA_LENGTH",
    "PAYMASTER_DATA_OFFSET",
    # Digest
    "DigestScheme",
    "authorization_digest",
    "authorization_signable_message",
    "authorization_struct_hash",
    "authorization_typed_data",
    "build_signable_message",
    "create_eip712_domain",
    "domain_separator",
    "legacy_digest",
    "legacy_signable_message",
    "signable_message_digest",
    "EIP712_DOMAIN_TYPE",
    "EIP712_DOMAIN_TYPEHASH",
    "PAYMASTER_AUTHORIZATION_TYPE",
    "PAYMASTER_AUTHORIZATION_TYPEHASH",
    # Config
    "Config",
    "ConfigChange",
    "ConfigState",
    "ConfigStore",
    # Signing
    "create_authorization_window",
    "sign_authorization",
    "sign_authorization_with_signer",
    "verify_authorization_signature",
    "PaymasterSigner",
    "TypedDataSigner",
    "STUB_SIGNATURE",
    # Validation
    "CostCapMode",
    "ValidationEngine",
    "WindowState",
    "describe_outcome",
    "pack_validation_data",
    "raise_for_fatal",
    "window_state",
    # Errors
    "ConfigAlreadyInitialized",
    "ConfigNotInitialized",
    "InvalidConfigValue",
    "PaymasterError",
    "SigningBackendUnavailable",
    "Unauthorized",
    "ValidationAborted",
    # Utils
    "ENTRYPOINT_ADDRESS_V07",
    "ENTRYPOINT_ADDRESS_V08",
    "MAX_ALLOWED_COST_CEILING",
    "SECP256K1_N",
    "ZERO_ADDRESS",
    "format_ether",
    "has_low_s",
    "parse_ether",
    "to_low_s",
    "hash_call_data",
    "required_prefund",
]
