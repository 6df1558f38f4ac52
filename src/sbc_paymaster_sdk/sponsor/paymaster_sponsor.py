"""Paymaster Sponsor.

Builds the sponsorship results a paymaster relay hands back to wallets and
bundlers. Transport is left to the caller; every method here takes a
``UserOperation`` and returns plain data:

- ``get_paymaster_stub_data``: placeholder paymaster fields for gas
  estimation (not valid for execution)
- ``get_paymaster_data``: signed paymaster fields for the final operation
- ``prepare_user_operation``: a copy of the operation with gas limits and
  packed ``paymasterAndData`` filled in
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, TypedDict

from ..paymaster import (
    ENTRYPOINT_ADDRESS_V08,
    PaymasterSigner,
    SignedAuthorization,
    UserOperation,
    encode_paymaster_and_data,
)
from ..paymaster.utils import (
    DEFAULT_PAYMASTER_POST_OP_GAS_LIMIT,
    DEFAULT_PAYMASTER_VERIFICATION_GAS_LIMIT,
    required_prefund,
)

logger = logging.getLogger(__name__)

# Fallback gas values for operations that arrive without estimates
# (50k / 500k / 100k + 20%)
DEFAULT_PRE_VERIFICATION_GAS = 60_000
DEFAULT_VERIFICATION_GAS_LIMIT = 600_000
DEFAULT_CALL_GAS_LIMIT = 120_000


class SponsorConfig(TypedDict, total=False):
    """Sponsor configuration."""

    paymaster_address: str
    """Paymaster contract address (required)."""

    chain_id: int
    """Chain ID (required)."""

    entry_point: str
    """Supported EntryPoint. Default: v0.8 EntryPoint"""

    paymaster_verification_gas_limit: int
    """Gas reserved for paymaster validation. Default: 120000"""

    paymaster_post_op_gas_limit: int
    """Gas reserved for postOp. Default: 60000"""


@dataclass
class ResolvedSponsorConfig:
    """Resolved sponsor configuration with all defaults applied."""

    paymaster_address: str
    chain_id: int
    entry_point: str
    paymaster_verification_gas_limit: int
    paymaster_post_op_gas_limit: int


class PaymasterSponsor:
    """Signs and packages paymaster sponsorship for user operations.

    Example:
        ```python
        sponsor = PaymasterSponsor(
            PaymasterSigner(os.environ["TRUSTED_SIGNER_PRIVATE_KEY"]),
            {"paymaster_address": "0x...", "chain_id": 8453},
        )

        # Wallet asks for estimation data first
        stub = sponsor.get_paymaster_stub_data(user_operation, ENTRYPOINT_ADDRESS_V08)

        # ...then for the real authorization
        data = sponsor.get_paymaster_data(user_operation, ENTRYPOINT_ADDRESS_V08)
        ```
    """

    def __init__(self, signer: PaymasterSigner, config: SponsorConfig):
        """Initialize the sponsor.

        Args:
            signer: Trusted signer producing authorizations
            config: Sponsor configuration

        Raises:
            ValueError: If paymaster_address or chain_id is missing
        """
        if not config.get("paymaster_address"):
            raise ValueError("paymaster_address is required")
        if not config.get("chain_id"):
            raise ValueError("chain_id is required")

        self._signer = signer
        self._config = ResolvedSponsorConfig(
            paymaster_address=config["paymaster_address"],
            chain_id=config["chain_id"],
            entry_point=config.get("entry_point", ENTRYPOINT_ADDRESS_V08),
            paymaster_verification_gas_limit=config.get(
                "paymaster_verification_gas_limit", DEFAULT_PAYMASTER_VERIFICATION_GAS_LIMIT
            ),
            paymaster_post_op_gas_limit=config.get(
                "paymaster_post_op_gas_limit", DEFAULT_PAYMASTER_POST_OP_GAS_LIMIT
            ),
        )
        # Normalizes and validates the paymaster address up front.
        domain = signer.domain(self._config.paymaster_address, self._config.chain_id)
        self._config.paymaster_address = domain.verifying_contract

    def get_sponsor_config(self) -> ResolvedSponsorConfig:
        """Get the sponsor configuration."""
        return self._config

    def get_paymaster_stub_data(
        self, user_operation: UserOperation, entry_point: str, now: Optional[int] = None
    ) -> Dict[str, Any]:
        """Return paymaster fields for gas estimation.

        The paymasterData is a stub: right size, dummy signature. Submitting
        it for execution fails validation.
        """
        self._require_entry_point(entry_point)
        stub = self._signer.stub(
            verifying_contract=self._config.paymaster_address,
            chain_id=self._config.chain_id,
            now=now,
        )
        logger.debug(
            "Built paymaster stub data",
            extra={"sender": user_operation.sender, "paymaster": self._config.paymaster_address},
        )
        return self._paymaster_fields(stub)

    def get_paymaster_data(
        self, user_operation: UserOperation, entry_point: str, now: Optional[int] = None
    ) -> Dict[str, Any]:
        """Return signed paymaster fields for ``user_operation``."""
        self._require_entry_point(entry_point)
        signed = self._sign(user_operation, now)
        return self._paymaster_fields(signed)

    def build_paymaster_and_data(self, signed: SignedAuthorization) -> bytes:
        """Pack paymaster address, gas limits and paymasterData (layout B)."""
        return encode_paymaster_and_data(
            self._config.paymaster_address,
            self._config.paymaster_verification_gas_limit,
            self._config.paymaster_post_op_gas_limit,
            signed.paymaster_data,
        )

    def prepare_user_operation(
        self, user_operation: UserOperation, entry_point: str, now: Optional[int] = None
    ) -> UserOperation:
        """Return a copy of the operation with gas fields and paymasterAndData set.

        Missing gas values fall back to the relay defaults. The input
        operation is not modified.
        """
        self._require_entry_point(entry_point)
        signed = self._sign(user_operation, now)
        return replace(
            user_operation,
            call_gas_limit=user_operation.call_gas_limit or DEFAULT_CALL_GAS_LIMIT,
            verification_gas_limit=(
                user_operation.verification_gas_limit or DEFAULT_VERIFICATION_GAS_LIMIT
            ),
            pre_verification_gas=(
                user_operation.pre_verification_gas or DEFAULT_PRE_VERIFICATION_GAS
            ),
            paymaster_and_data=self.build_paymaster_and_data(signed),
            signature=b"",
        )

    def max_cost(self, user_operation: UserOperation) -> int:
        """Maximum cost the paymaster is charged for ``user_operation``, in wei."""
        return required_prefund(
            call_gas_limit=user_operation.call_gas_limit,
            verification_gas_limit=user_operation.verification_gas_limit,
            pre_verification_gas=user_operation.pre_verification_gas,
            paymaster_verification_gas_limit=self._config.paymaster_verification_gas_limit,
            paymaster_post_op_gas_limit=self._config.paymaster_post_op_gas_limit,
            max_fee_per_gas=user_operation.max_fee_per_gas,
        )

    def _sign(self, user_operation: UserOperation, now: Optional[int]) -> SignedAuthorization:
        return self._signer.sign_user_operation(
            user_operation,
            verifying_contract=self._config.paymaster_address,
            chain_id=self._config.chain_id,
            now=now,
        )

    def _paymaster_fields(self, signed: SignedAuthorization) -> Dict[str, Any]:
        return {
            "paymaster": self._config.paymaster_address,
            "paymasterData": signed.paymaster_data_hex,
            "paymasterVerificationGasLimit": hex(self._config.paymaster_verification_gas_limit),
            "paymasterPostOpGasLimit": hex(self._config.paymaster_post_op_gas_limit),
        }

    def _require_entry_point(self, entry_point: str) -> None:
        if not isinstance(entry_point, str) or entry_point.lower() != self._config.entry_point.lower():
            raise ValueError("EntryPoint not supported")


__all__ = [
    "PaymasterSponsor",
    "SponsorConfig",
    "ResolvedSponsorConfig",
]
