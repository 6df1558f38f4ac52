"""Exception types for the SBC paymaster.

Signature failures are not exceptions: they are returned as
``SignatureRejected`` results. The classes below cover admin-path
rejections, signing-backend failures and explicit aborts.
"""

from typing import Any, Optional


class PaymasterError(RuntimeError):
    """Base class for paymaster errors."""

    def __init__(self, message: str, *, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class Unauthorized(PaymasterError, PermissionError):
    """Raised when an admin mutation is attempted by a non-owner."""


class InvalidConfigValue(PaymasterError, ValueError):
    """Raised when a config setter receives an out-of-bounds value."""


class ConfigNotInitialized(PaymasterError):
    """Raised when the config store is read before ``initialize``."""


class ConfigAlreadyInitialized(PaymasterError):
    """Raised on a second ``initialize`` call."""


class SigningBackendUnavailable(PaymasterError):
    """Raised when an external signer fails or returns unusable output.

    Always retryable: the request itself was fine, the backend was not.
    """

    retryable = True


class ValidationAborted(PaymasterError):
    """Raised by ``raise_for_fatal`` for Malformed and CostExceeded results."""

    def __init__(self, result: Any):
        super().__init__(f"Paymaster validation aborted: {result.status}")
        self.result = result
