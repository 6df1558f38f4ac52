"""SBC Paymaster SDK.

Sign, encode and validate time-boxed sponsorship authorizations for a
signature-verifying ERC-4337 paymaster.
"""

from .paymaster import (
    Accepted,
    AuthorizerDomain,
    Config,
    ConfigStore,
    CostCapMode,
    CostExceeded,
    Malformed,
    PaymasterSigner,
    SignatureRejected,
    UserOperation,
    ValidationEngine,
    decode_paymaster_data,
    encode_paymaster_data,
    format_ether,
    parse_ether,
)
from .sponsor import PaymasterSponsor, SponsorConfig
from .settings import (
    PaymasterSettings,
    load_settings,
    load_trusted_signer_key,
    settings_from_env,
)

__all__ = [
    "Accepted",
    "AuthorizerDomain",
    "Config",
    "ConfigStore",
    "CostCapMode",
    "CostExceeded",
    "Malformed",
    "PaymasterSigner",
    "SignatureRejected",
    "UserOperation",
    "ValidationEngine",
    "decode_paymaster_data",
    "encode_paymaster_data",
    "format_ether",
    "parse_ether",
    "PaymasterSponsor",
    "SponsorConfig",
    "PaymasterSettings",
    "load_settings",
    "load_trusted_signer_key",
    "settings_from_env",
]
