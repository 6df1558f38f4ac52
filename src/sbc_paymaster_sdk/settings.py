"""Process settings for a paymaster signer.

Settings come from a YAML file (``load_settings``) or from environment
variables, optionally through a ``.env`` file (``settings_from_env``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv
from eth_utils import is_address, to_checksum_address

from .paymaster import (
    ENTRYPOINT_ADDRESS_V08,
    PAYMASTER_DOMAIN_NAME,
    PAYMASTER_DOMAIN_VERSION,
    AuthorizerDomain,
    CostCapMode,
    PaymasterSigner,
)
from .paymaster.signing import DEFAULT_VALID_AFTER_SKEW_SECONDS, DEFAULT_VALIDITY_SECONDS
from .paymaster.utils import (
    DEFAULT_PAYMASTER_POST_OP_GAS_LIMIT,
    DEFAULT_PAYMASTER_VERIFICATION_GAS_LIMIT,
)
from .sponsor import SponsorConfig


@dataclass
class PaymasterSettings:
    """Loaded paymaster settings."""

    chain_id: int
    paymaster_address: str
    domain_name: str = PAYMASTER_DOMAIN_NAME
    domain_version: str = PAYMASTER_DOMAIN_VERSION
    entry_point: str = ENTRYPOINT_ADDRESS_V08
    valid_after_skew_seconds: int = DEFAULT_VALID_AFTER_SKEW_SECONDS
    validity_seconds: int = DEFAULT_VALIDITY_SECONDS
    paymaster_verification_gas_limit: int = DEFAULT_PAYMASTER_VERIFICATION_GAS_LIMIT
    paymaster_post_op_gas_limit: int = DEFAULT_PAYMASTER_POST_OP_GAS_LIMIT
    cost_cap_mode: CostCapMode = CostCapMode.ABORT

    def __post_init__(self) -> None:
        if not isinstance(self.chain_id, int) or self.chain_id <= 0:
            raise ValueError("chain_id must be a positive integer")
        if not isinstance(self.paymaster_address, str) or not is_address(self.paymaster_address):
            raise ValueError("paymaster_address must be a 0x-prefixed 20-byte address")
        self.paymaster_address = to_checksum_address(self.paymaster_address)
        if not self.domain_name or not self.domain_version:
            raise ValueError("domain_name and domain_version must be non-empty")
        if not isinstance(self.entry_point, str) or not self.entry_point.startswith("0x") or len(self.entry_point) != 42:
            raise ValueError("entry_point must be a 0x-prefixed 20-byte address")
        for name in ("paymaster_verification_gas_limit", "paymaster_post_op_gas_limit"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer")
        self.cost_cap_mode = CostCapMode(self.cost_cap_mode)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PaymasterSettings":
        def _resolve(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return default

        chain_id = _resolve("chain_id", "chainId")
        paymaster = _resolve("paymaster_address", "paymasterAddress", "paymaster")
        if chain_id is None or paymaster is None:
            raise ValueError("chain_id and paymaster_address are required")
        return cls(
            chain_id=int(chain_id),
            paymaster_address=str(paymaster),
            domain_name=str(_resolve("domain_name", "domainName", default=PAYMASTER_DOMAIN_NAME)),
            domain_version=str(
                _resolve("domain_version", "domainVersion", default=PAYMASTER_DOMAIN_VERSION)
            ),
            entry_point=str(_resolve("entry_point", "entryPoint", default=ENTRYPOINT_ADDRESS_V08)),
            valid_after_skew_seconds=int(
                _resolve(
                    "valid_after_skew_seconds",
                    "validAfterSkewSeconds",
                    default=DEFAULT_VALID_AFTER_SKEW_SECONDS,
                )
            ),
            validity_seconds=int(
                _resolve("validity_seconds", "validitySeconds", default=DEFAULT_VALIDITY_SECONDS)
            ),
            paymaster_verification_gas_limit=int(
                _resolve(
                    "paymaster_verification_gas_limit",
                    "paymasterVerificationGasLimit",
                    default=DEFAULT_PAYMASTER_VERIFICATION_GAS_LIMIT,
                )
            ),
            paymaster_post_op_gas_limit=int(
                _resolve(
                    "paymaster_post_op_gas_limit",
                    "paymasterPostOpGasLimit",
                    default=DEFAULT_PAYMASTER_POST_OP_GAS_LIMIT,
                )
            ),
            cost_cap_mode=CostCapMode(
                _resolve("cost_cap_mode", "costCapMode", default=CostCapMode.ABORT.value)
            ),
        )

    def domain(self) -> AuthorizerDomain:
        return AuthorizerDomain(
            chain_id=self.chain_id,
            verifying_contract=self.paymaster_address,
            name=self.domain_name,
            version=self.domain_version,
        )

    def sponsor_config(self) -> SponsorConfig:
        return {
            "paymaster_address": self.paymaster_address,
            "chain_id": self.chain_id,
            "entry_point": self.entry_point,
            "paymaster_verification_gas_limit": self.paymaster_verification_gas_limit,
            "paymaster_post_op_gas_limit": self.paymaster_post_op_gas_limit,
        }

    def create_signer(self, private_key: str) -> PaymasterSigner:
        return PaymasterSigner(
            private_key,
            domain_name=self.domain_name,
            domain_version=self.domain_version,
            valid_after_skew=self.valid_after_skew_seconds,
            validity_seconds=self.validity_seconds,
        )


def load_settings(path: str | Path) -> PaymasterSettings:
    """Load paymaster settings from a YAML file."""

    data = yaml.safe_load(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("paymaster settings must be a mapping")
    return PaymasterSettings.from_mapping(data)


_ENV_KEYS: Dict[str, str] = {
    "CHAIN_ID": "chain_id",
    "PAYMASTER_ADDRESS": "paymaster_address",
    "PAYMASTER_DOMAIN_NAME": "domain_name",
    "PAYMASTER_DOMAIN_VERSION": "domain_version",
    "ENTRYPOINT_ADDRESS": "entry_point",
    "PAYMASTER_VALID_AFTER_SKEW_SECONDS": "valid_after_skew_seconds",
    "PAYMASTER_VALIDITY_SECONDS": "validity_seconds",
    "PAYMASTER_VERIFICATION_GAS_LIMIT": "paymaster_verification_gas_limit",
    "PAYMASTER_POST_OP_GAS_LIMIT": "paymaster_post_op_gas_limit",
    "PAYMASTER_COST_CAP_MODE": "cost_cap_mode",
}


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> PaymasterSettings:
    """Build settings from environment variables.

    When ``environ`` is omitted, a ``.env`` file in the working directory is
    loaded first and ``os.environ`` is used.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ
    data = {key: environ[env] for env, key in _ENV_KEYS.items() if environ.get(env)}
    return PaymasterSettings.from_mapping(data)


def load_trusted_signer_key(environ: Optional[Mapping[str, str]] = None) -> str:
    """Return ``TRUSTED_SIGNER_PRIVATE_KEY`` with a 0x prefix."""
    if environ is None:
        load_dotenv()
        environ = os.environ
    private_key = environ.get("TRUSTED_SIGNER_PRIVATE_KEY")
    if not private_key:
        raise ValueError("TRUSTED_SIGNER_PRIVATE_KEY is not set")
    if not private_key.startswith("0x"):
        private_key = "0x" + private_key
    return private_key
