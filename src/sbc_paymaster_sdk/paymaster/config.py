"""Owner-gated authority state for the paymaster.

The store holds a single frozen ``Config`` record. Every successful setter
builds a new record and swaps the reference under a lock, so concurrent
validators reading ``snapshot()`` see either the old or the new record,
never a mix.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from eth_utils import is_address, to_checksum_address

from .errors import (
    ConfigAlreadyInitialized,
    ConfigNotInitialized,
    InvalidConfigValue,
    Unauthorized,
)
from .utils import MAX_ALLOWED_COST_CEILING, ZERO_ADDRESS, format_ether

logger = logging.getLogger(__name__)

CONFIG_SCHEMA_VERSION = 2


class ConfigState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"


@dataclass(frozen=True)
class Config:
    """Authority state read by the validator."""

    owner: str
    verifying_identity: str
    max_allowed_cost: int
    """Cap on the requested cost of a sponsored operation, in wei."""

    schema_version: int = CONFIG_SCHEMA_VERSION
    revision: int = 0
    """Incremented on every accepted mutation."""

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "owner": self.owner,
            "verifyingIdentity": self.verifying_identity,
            "maxAllowedCost": self.max_allowed_cost,
            "revision": self.revision,
        }

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "Config":
        """Load a persisted record, migrating older schema versions.

        Schema 1 records predate the cost cap and name the identity
        ``verifyingSigner``; they migrate with a zero cap, which rejects
        every sponsorship until ``reinitialize_max_allowed_cost`` runs.
        """

        def _resolve(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return default

        version = _require_record_int(
            _resolve("schemaVersion", "schema_version", default=1), "schema version"
        )
        if version < 1 or version > CONFIG_SCHEMA_VERSION:
            raise InvalidConfigValue(f"Unsupported config schema version: {version}")

        owner = _resolve("owner")
        if version == 1:
            identity = _resolve("verifyingSigner", "verifying_signer")
            max_cost = 0
        else:
            identity = _resolve("verifyingIdentity", "verifying_identity")
            max_cost = _resolve("maxAllowedCost", "max_allowed_cost", default=0)
            # Zero is the migrated state awaiting reinitialize_max_allowed_cost.
            if isinstance(max_cost, bool) or not isinstance(max_cost, int) or max_cost != 0:
                max_cost = _require_cost(max_cost)

        return cls(
            owner=_require_address(owner, "owner"),
            verifying_identity=_require_address(identity, "verifying identity"),
            max_allowed_cost=max_cost,
            schema_version=CONFIG_SCHEMA_VERSION,
            revision=_require_record_int(_resolve("revision", default=0), "revision"),
        )


@dataclass(frozen=True)
class ConfigChange:
    """Observable record of one admin mutation."""

    field: str
    old: Any
    new: Any
    revision: int


ConfigListener = Callable[[ConfigChange], None]


def _require_address(value: Any, label: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise InvalidConfigValue(f"Invalid {label}: {value}")
    address = to_checksum_address(value)
    if address == ZERO_ADDRESS:
        raise InvalidConfigValue(f"Invalid {label}: zero address")
    return address


def _require_cost(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigValue(f"Invalid max allowed cost: {value!r}")
    if value <= 0:
        raise InvalidConfigValue("Max allowed cost must be greater than zero")
    if value > MAX_ALLOWED_COST_CEILING:
        raise InvalidConfigValue(
            f"Max allowed cost too high: {format_ether(value)} ETH. "
            f"Maximum: {format_ether(MAX_ALLOWED_COST_CEILING)} ETH"
        )
    return value


def _require_record_int(value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidConfigValue(f"Invalid {label}: {value!r}")
    return value


def _same_address(left: str, right: str) -> bool:
    if not isinstance(left, str) or not is_address(left):
        return False
    return to_checksum_address(left) == right


class ConfigStore:
    """Holds the paymaster ``Config`` and enforces owner-only mutation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._config: Optional[Config] = None
        self._listeners: List[ConfigListener] = []

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "ConfigStore":
        """Restore an Active store from a persisted ``Config`` mapping."""
        store = cls()
        store._config = Config.from_mapping(data)
        return store

    @property
    def state(self) -> ConfigState:
        return ConfigState.UNINITIALIZED if self._config is None else ConfigState.ACTIVE

    def initialize(
        self, *, owner: str, verifying_identity: str, max_allowed_cost: int
    ) -> Config:
        """Move the store from Uninitialized to Active. Allowed once."""
        config = Config(
            owner=_require_address(owner, "owner"),
            verifying_identity=_require_address(verifying_identity, "verifying identity"),
            max_allowed_cost=_require_cost(max_allowed_cost),
        )
        with self._lock:
            if self._config is not None:
                raise ConfigAlreadyInitialized("Paymaster config is already initialized")
            self._config = config
        logger.info(
            "Paymaster config initialized",
            extra={
                "owner": config.owner,
                "verifying_identity": config.verifying_identity,
                "max_allowed_cost": config.max_allowed_cost,
            },
        )
        return config

    def snapshot(self) -> Config:
        """Return the current record. Safe to call from any thread."""
        config = self._config
        if config is None:
            raise ConfigNotInitialized("Paymaster config is not initialized")
        return config

    @property
    def owner(self) -> str:
        return self.snapshot().owner

    @property
    def verifying_identity(self) -> str:
        return self.snapshot().verifying_identity

    @property
    def max_allowed_cost(self) -> int:
        return self.snapshot().max_allowed_cost

    def status(self) -> Dict[str, Any]:
        config = self.snapshot()
        return {
            "owner": config.owner,
            "verifyingIdentity": config.verifying_identity,
            "maxAllowedCost": config.max_allowed_cost,
            "maxAllowedCostEth": format_ether(config.max_allowed_cost),
            "revision": config.revision,
            "schemaVersion": config.schema_version,
        }

    def subscribe(self, listener: ConfigListener) -> None:
        """Register a callback invoked with every ``ConfigChange``."""
        with self._lock:
            self._listeners.append(listener)

    def set_verifying_identity(self, caller: str, verifying_identity: str) -> ConfigChange:
        return self._update(
            caller,
            "verifying_identity",
            lambda _config: _require_address(verifying_identity, "verifying identity"),
        )

    def set_max_allowed_cost(self, caller: str, max_allowed_cost: int) -> ConfigChange:
        return self._update(
            caller, "max_allowed_cost", lambda _config: _require_cost(max_allowed_cost)
        )

    def reinitialize_max_allowed_cost(self, caller: str, max_allowed_cost: int) -> ConfigChange:
        """Restore the cost cap after a migration left it at zero."""

        def _resolve(config: Config) -> int:
            if config.max_allowed_cost != 0:
                raise InvalidConfigValue("Max allowed cost is already initialized")
            return _require_cost(max_allowed_cost)

        return self._update(caller, "max_allowed_cost", _resolve)

    def _update(
        self, caller: str, field_name: str, resolve: Callable[[Config], Any]
    ) -> ConfigChange:
        # Owner check runs before the value is looked at.
        with self._lock:
            current = self.snapshot()
            if not _same_address(caller, current.owner):
                logger.warning(
                    "Rejected paymaster config change from non-owner",
                    extra={"caller": caller, "field": field_name},
                )
                raise Unauthorized(f"Caller {caller} is not the owner ({current.owner})")
            value = resolve(current)
            updated = replace(current, **{field_name: value, "revision": current.revision + 1})
            self._config = updated
            listeners = list(self._listeners)

        change = ConfigChange(
            field=field_name,
            old=getattr(current, field_name),
            new=value,
            revision=updated.revision,
        )
        logger.info(
            "Paymaster config updated",
            extra={
                "field": change.field,
                "old": change.old,
                "new": change.new,
                "revision": change.revision,
            },
        )
        # The change is already applied; a failing listener must not mask that.
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception(
                    "Paymaster config listener failed",
                    extra={"field": change.field, "revision": change.revision},
                )
        return change
