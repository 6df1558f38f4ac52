"""Paymaster authorization validation.

``ValidationEngine.validate`` mirrors the paymaster's
``validatePaymasterUserOp``:

1. decode paymasterData                       -> Malformed (hard)
2. rebuild the digest from the operation      -> Malformed (hard)
3. recover and compare the signer             -> SignatureRejected (soft)
4. compare the requested cost with the cap    -> CostExceeded (hard)
5. otherwise                                  -> Accepted

The window travels from decode to the result untouched. The engine does not
compare it with the clock; that is the caller's contract (see
``window_state``), just as the EntryPoint checks the packed validation data
after the paymaster returns.
"""

import logging
from enum import Enum
from typing import Union

from eth_account import Account

from .codec import BytesLike, decode_paymaster_data
from .config import Config
from .digest import DigestScheme, build_signable_message
from .errors import ValidationAborted
from .types import (
    Accepted,
    AuthorizerDomain,
    CostExceeded,
    Malformed,
    OperationDigestInput,
    SignatureRejected,
    UserOperation,
    ValidationResult,
)
from .utils import has_low_s

logger = logging.getLogger(__name__)


class CostCapMode(str, Enum):
    """How a cost above the cap is reported.

    ABORT is the default. DECLINE reproduces an earlier contract generation
    that returned a declinable failure instead of reverting.
    """

    ABORT = "abort"
    DECLINE = "decline"


class WindowState(str, Enum):
    ACTIVE = "active"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"


def window_state(valid_after: int, valid_until: int, now: int) -> WindowState:
    """Classify ``now`` against a window. Active iff valid_after <= now < valid_until."""
    if now < valid_after:
        return WindowState.NOT_YET_VALID
    if now >= valid_until:
        return WindowState.EXPIRED
    return WindowState.ACTIVE


def describe_outcome(result: ValidationResult, now: int) -> str:
    """Refine a result into the reason a sponsorship was declined, if any.

    Returns one of ``accepted``, ``signature_rejected``, ``expired``,
    ``not_yet_valid``, ``malformed`` or ``cost_exceeded``.
    """
    if isinstance(result, SignatureRejected):
        return result.status.value
    if isinstance(result, Accepted):
        state = window_state(result.valid_after, result.valid_until, now)
        if state != WindowState.ACTIVE:
            return state.value
    return result.status.value


def raise_for_fatal(result: ValidationResult) -> ValidationResult:
    """Raise ``ValidationAborted`` for hard failures, return the result otherwise."""
    if result.fatal:
        raise ValidationAborted(result)
    return result


def pack_validation_data(result: Union[Accepted, SignatureRejected]) -> int:
    """Pack a result into ERC-4337 validationData.

    ``sigFailed (bit 0) | validUntil << 160 | validAfter << 208``
    """
    sig_failed = 1 if isinstance(result, SignatureRejected) else 0
    return sig_failed | (result.valid_until << 160) | (result.valid_after << 208)


class ValidationEngine:
    """Validates paymaster authorizations for one paymaster domain.

    The engine is immutable and performs no I/O, so one instance can be
    shared across any number of worker threads.
    """

    def __init__(
        self,
        domain: AuthorizerDomain,
        *,
        scheme: DigestScheme = DigestScheme.TYPED_DATA,
        cost_cap_mode: CostCapMode = CostCapMode.ABORT,
    ):
        self._domain = domain
        self._scheme = DigestScheme(scheme)
        self._cost_cap_mode = CostCapMode(cost_cap_mode)

    @property
    def domain(self) -> AuthorizerDomain:
        return self._domain

    def validate(
        self,
        operation: UserOperation,
        paymaster_data: BytesLike,
        requested_cost: int,
        config: Config,
        now: int,
        *,
        offset: int = 0,
    ) -> ValidationResult:
        """Validate an authorization against the operation it is attached to.

        Args:
            operation: The operation as received (sender, nonce, call data)
            paymaster_data: Layout A bytes, or layout B with ``offset=52``
            requested_cost: Maximum cost the paymaster would be charged, in wei
            config: Config snapshot (verifying identity and cost cap)
            now: Current timestamp, used only to annotate the log

        Returns:
            Accepted, SignatureRejected, Malformed or CostExceeded
        """
        decoded = decode_paymaster_data(paymaster_data, offset=offset)
        if isinstance(decoded, Malformed):
            return self._finish(decoded, operation, now)

        if isinstance(requested_cost, bool) or not isinstance(requested_cost, int) or requested_cost < 0:
            return self._finish(
                Malformed(reason=f"invalid requested cost: {requested_cost!r}"), operation, now
            )

        # Only the window and signature come from paymasterData.
        try:
            digest_input = OperationDigestInput.from_user_operation(operation, self._domain)
            message = build_signable_message(
                self._scheme, digest_input, decoded.valid_after, decoded.valid_until
            )
        except (AttributeError, TypeError, ValueError) as exc:
            return self._finish(Malformed(reason=f"invalid operation: {exc}"), operation, now)

        recovered = None
        if has_low_s(decoded.signature):
            try:
                recovered = Account.recover_message(message, signature=decoded.signature)
            except Exception as exc:
                logger.debug(
                    "Paymaster signature recovery failed", extra={"error": str(exc)}
                )
        else:
            logger.debug("Paymaster signature has high s")

        if recovered is None or recovered.lower() != config.verifying_identity.lower():
            return self._finish(
                SignatureRejected(
                    valid_after=decoded.valid_after, valid_until=decoded.valid_until
                ),
                operation,
                now,
            )

        if requested_cost > config.max_allowed_cost:
            return self._finish(
                CostExceeded(
                    requested_cost=requested_cost,
                    max_allowed_cost=config.max_allowed_cost,
                    fatal=self._cost_cap_mode == CostCapMode.ABORT,
                ),
                operation,
                now,
            )

        return self._finish(
            Accepted(valid_after=decoded.valid_after, valid_until=decoded.valid_until),
            operation,
            now,
        )

    def _finish(
        self, result: ValidationResult, operation: UserOperation, now: int
    ) -> ValidationResult:
        extra = {
            "status": result.status.value,
            "sender": getattr(operation, "sender", None),
            "nonce": getattr(operation, "nonce", None),
            "paymaster": self._domain.verifying_contract,
        }
        if isinstance(result, (Accepted, SignatureRejected)):
            extra["valid_after"] = result.valid_after
            extra["valid_until"] = result.valid_until
            extra["window_state"] = window_state(
                result.valid_after, result.valid_until, now
            ).value
        elif isinstance(result, Malformed):
            extra["reason"] = result.reason
        if result.fatal:
            logger.warning("Paymaster validation aborted", extra=extra)
        else:
            logger.info("Paymaster validation finished", extra=extra)
        return result
