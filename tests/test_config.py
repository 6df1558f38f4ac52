"""Tests for the paymaster config store."""

import threading

import pytest
from eth_account import Account

from sbc_paymaster_sdk.paymaster import (
    Config,
    ConfigAlreadyInitialized,
    ConfigChange,
    ConfigNotInitialized,
    ConfigState,
    ConfigStore,
    InvalidConfigValue,
    MAX_ALLOWED_COST_CEILING,
    PaymasterError,
    Unauthorized,
    ZERO_ADDRESS,
    parse_ether,
)

OWNER = Account.from_key("0x" + "ab" * 32).address
SIGNER = Account.from_key("0x" + "cd" * 32).address
STRANGER = "0x" + "77" * 20
MAX_COST = parse_ether("0.01")


@pytest.fixture
def store():
    store = ConfigStore()
    store.initialize(owner=OWNER, verifying_identity=SIGNER, max_allowed_cost=MAX_COST)
    return store


class TestInitialize:
    """Tests for the Uninitialized -> Active transition."""

    def test_initialize(self):
        """Test that initialize activates the store."""
        store = ConfigStore()
        assert store.state == ConfigState.UNINITIALIZED

        config = store.initialize(
            owner=OWNER.lower(), verifying_identity=SIGNER, max_allowed_cost=MAX_COST
        )

        assert store.state == ConfigState.ACTIVE
        assert config.owner == OWNER
        assert config.verifying_identity == SIGNER
        assert config.max_allowed_cost == 10**16
        assert config.revision == 0
        assert store.snapshot() is config

    def test_second_initialize_rejected(self, store):
        """Test that initialize can only run once."""
        with pytest.raises(ConfigAlreadyInitialized):
            store.initialize(owner=STRANGER, verifying_identity=STRANGER, max_allowed_cost=1)

        assert store.owner == OWNER

    def test_reads_before_initialize(self):
        """Test that reading an uninitialized store raises error."""
        store = ConfigStore()

        with pytest.raises(ConfigNotInitialized):
            store.snapshot()
        with pytest.raises(ConfigNotInitialized):
            store.verifying_identity

    @pytest.mark.parametrize("owner", [ZERO_ADDRESS, "0x1234", None])
    def test_invalid_owner(self, owner):
        """Test that initialize rejects a missing or zero owner."""
        with pytest.raises(InvalidConfigValue):
            ConfigStore().initialize(
                owner=owner, verifying_identity=SIGNER, max_allowed_cost=MAX_COST
            )

    def test_invalid_cost(self):
        """Test that initialize enforces the cost bounds."""
        with pytest.raises(InvalidConfigValue, match="greater than zero"):
            ConfigStore().initialize(owner=OWNER, verifying_identity=SIGNER, max_allowed_cost=0)


class TestOwnerGating:
    """Tests for owner-only mutation."""

    def test_non_owner_rejected(self, store):
        """Test that a stranger cannot change the identity."""
        before = store.snapshot()

        with pytest.raises(Unauthorized):
            store.set_verifying_identity(STRANGER, STRANGER)

        assert store.snapshot() is before

    def test_non_owner_checked_before_value(self, store):
        """Test that a stranger gets Unauthorized even with an invalid value."""
        with pytest.raises(Unauthorized):
            store.set_max_allowed_cost(STRANGER, 0)

    def test_unauthorized_is_permission_error(self, store):
        """Test the error hierarchy."""
        with pytest.raises(PermissionError):
            store.set_max_allowed_cost(STRANGER, 1)
        with pytest.raises(PaymasterError):
            store.set_max_allowed_cost(STRANGER, 1)

    def test_owner_updates_identity_only(self, store):
        """Test that setting the identity leaves the cap untouched."""
        new_identity = Account.create().address

        change = store.set_verifying_identity(OWNER.lower(), new_identity)

        config = store.snapshot()
        assert config.verifying_identity == new_identity
        assert config.max_allowed_cost == MAX_COST
        assert config.owner == OWNER
        assert change == ConfigChange(
            field="verifying_identity", old=SIGNER, new=new_identity, revision=1
        )

    def test_owner_updates_cap_only(self, store):
        """Test that setting the cap leaves the identity untouched."""
        change = store.set_max_allowed_cost(OWNER, parse_ether("0.05"))

        config = store.snapshot()
        assert config.max_allowed_cost == 5 * 10**16
        assert config.verifying_identity == SIGNER
        assert change.old == MAX_COST
        assert change.revision == 1

    def test_zero_identity_rejected(self, store):
        """Test that the identity can never be the zero address."""
        with pytest.raises(InvalidConfigValue, match="zero address"):
            store.set_verifying_identity(OWNER, ZERO_ADDRESS)

    @pytest.mark.parametrize(
        "cost,match",
        [
            (0, "greater than zero"),
            (-1, "greater than zero"),
            (MAX_ALLOWED_COST_CEILING + 1, "too high"),
            ("1000", "Invalid max allowed cost"),
        ],
    )
    def test_cost_bounds(self, store, cost, match):
        """Test that the cap must be positive and at most 1 ETH."""
        with pytest.raises(InvalidConfigValue, match=match):
            store.set_max_allowed_cost(OWNER, cost)

        assert store.max_allowed_cost == MAX_COST

    def test_cost_ceiling_allowed(self, store):
        """Test that the ceiling itself is a valid cap."""
        store.set_max_allowed_cost(OWNER, MAX_ALLOWED_COST_CEILING)

        assert store.max_allowed_cost == 10**18


class TestChangeRecords:
    """Tests for observable config changes."""

    def test_listeners_and_revision(self, store):
        """Test that every accepted mutation notifies listeners in order."""
        changes = []
        store.subscribe(changes.append)

        store.set_max_allowed_cost(OWNER, 2 * MAX_COST)
        with pytest.raises(Unauthorized):
            store.set_max_allowed_cost(STRANGER, 3 * MAX_COST)
        store.set_verifying_identity(OWNER, STRANGER)

        assert [(change.field, change.revision) for change in changes] == [
            ("max_allowed_cost", 1),
            ("verifying_identity", 2),
        ]
        assert store.snapshot().revision == 2

    def test_failing_listener_does_not_mask_change(self, store, caplog):
        """Test that a raising listener neither hides the change nor skips others."""
        changes = []

        def broken(_change):
            raise RuntimeError("listener down")

        store.subscribe(broken)
        store.subscribe(changes.append)

        with caplog.at_level("ERROR", logger="sbc_paymaster_sdk.paymaster.config"):
            change = store.set_max_allowed_cost(OWNER, 2 * MAX_COST)

        assert change.new == 2 * MAX_COST
        assert store.max_allowed_cost == 2 * MAX_COST
        assert changes == [change]
        assert "Paymaster config listener failed" in caplog.text

    def test_snapshot_is_immutable(self, store):
        """Test that a snapshot is not affected by later mutation."""
        before = store.snapshot()

        store.set_max_allowed_cost(OWNER, 2 * MAX_COST)

        assert before.max_allowed_cost == MAX_COST
        with pytest.raises(AttributeError):
            before.max_allowed_cost = 1

    def test_status(self, store):
        """Test the status summary."""
        status = store.status()

        assert status == {
            "owner": OWNER,
            "verifyingIdentity": SIGNER,
            "maxAllowedCost": 10**16,
            "maxAllowedCostEth": "0.01",
            "revision": 0,
            "schemaVersion": 2,
        }


class TestPersistence:
    """Tests for record round trips and schema migration."""

    def test_mapping_round_trip(self, store):
        """Test that a store restores from its own record."""
        store.set_max_allowed_cost(OWNER, 3 * MAX_COST)
        record = store.snapshot().to_mapping()

        restored = ConfigStore.from_record(record)

        assert restored.snapshot() == store.snapshot()
        assert restored.state == ConfigState.ACTIVE

    def test_schema_1_migration(self):
        """Test that a pre-cap record migrates with a zero cap."""
        restored = ConfigStore.from_record({"owner": OWNER, "verifyingSigner": SIGNER})

        assert restored.verifying_identity == SIGNER
        assert restored.max_allowed_cost == 0
        assert restored.snapshot().schema_version == 2

    def test_reinitialize_after_migration(self):
        """Test that the owner restores the cap once after migration."""
        restored = ConfigStore.from_record({"owner": OWNER, "verifyingSigner": SIGNER})

        change = restored.reinitialize_max_allowed_cost(OWNER, MAX_COST)

        assert change.old == 0
        assert restored.max_allowed_cost == MAX_COST
        with pytest.raises(InvalidConfigValue, match="already initialized"):
            restored.reinitialize_max_allowed_cost(OWNER, 2 * MAX_COST)

    def test_reinitialize_requires_owner(self):
        """Test that reinitialization is owner-gated."""
        restored = ConfigStore.from_record({"owner": OWNER, "verifyingSigner": SIGNER})

        with pytest.raises(Unauthorized):
            restored.reinitialize_max_allowed_cost(STRANGER, MAX_COST)

    def test_unsupported_schema(self):
        """Test that newer records are refused."""
        with pytest.raises(InvalidConfigValue, match="schema version"):
            Config.from_mapping(
                {
                    "schemaVersion": 3,
                    "owner": OWNER,
                    "verifyingIdentity": SIGNER,
                    "maxAllowedCost": 1,
                }
            )

    @pytest.mark.parametrize(
        "max_cost",
        [MAX_ALLOWED_COST_CEILING + 1, -1, "1000", 1.5, True],
    )
    def test_restored_cost_cap_is_bounded(self, max_cost):
        """Test that a restored cap obeys the same bounds as the setters."""
        with pytest.raises(InvalidConfigValue, match="(?i)max allowed cost"):
            Config.from_mapping(
                {
                    "schemaVersion": 2,
                    "owner": OWNER,
                    "verifyingIdentity": SIGNER,
                    "maxAllowedCost": max_cost,
                }
            )

    @pytest.mark.parametrize(
        "overrides,match",
        [
            ({"revision": "7"}, "revision"),
            ({"revision": -1}, "revision"),
            ({"schemaVersion": "two"}, "schema version"),
            ({"schemaVersion": 2.0}, "schema version"),
        ],
    )
    def test_malformed_record_fields(self, overrides, match):
        """Test that malformed revision and schema fields raise the config error."""
        data = {
            "schemaVersion": 2,
            "owner": OWNER,
            "verifyingIdentity": SIGNER,
            "maxAllowedCost": MAX_COST,
            **overrides,
        }

        with pytest.raises(InvalidConfigValue, match=match):
            ConfigStore.from_record(data)

    def test_migrated_record_restores_before_reinitialize(self):
        """Test that a saved migrated store with a zero cap still restores."""
        migrated = ConfigStore.from_record({"owner": OWNER, "verifyingSigner": SIGNER})

        restored = ConfigStore.from_record(migrated.snapshot().to_mapping())

        assert restored.max_allowed_cost == 0
        restored.reinitialize_max_allowed_cost(OWNER, MAX_COST)
        assert restored.max_allowed_cost == MAX_COST


def test_concurrent_snapshots_are_consistent(store):
    """Test that readers only ever observe whole records."""
    identities = [Account.create().address for _ in range(20)]
    expected = {0: (SIGNER, MAX_COST)}
    identity, cost = SIGNER, MAX_COST
    for index, new_identity in enumerate(identities):
        identity = new_identity
        expected[2 * index + 1] = (identity, cost)
        cost = MAX_COST + index + 1
        expected[2 * index + 2] = (identity, cost)

    stop = threading.Event()
    torn = []

    def _reader():
        while not stop.is_set():
            config = store.snapshot()
            if expected[config.revision] != (config.verifying_identity, config.max_allowed_cost):
                torn.append(config)

    readers = [threading.Thread(target=_reader) for _ in range(4)]
    for reader in readers:
        reader.start()
    try:
        for index, new_identity in enumerate(identities):
            store.set_verifying_identity(OWNER, new_identity)
            store.set_max_allowed_cost(OWNER, MAX_COST + index + 1)
    finally:
        stop.set()
        for reader in readers:
            reader.join()

    assert torn == []
    assert store.snapshot().revision == 2 * len(identities)
