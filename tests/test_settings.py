"""Tests for process settings."""

import pytest
from eth_account import Account

from sbc_paymaster_sdk import (
    PaymasterSettings,
    load_settings,
    load_trusted_signer_key,
    settings_from_env,
)
from sbc_paymaster_sdk.paymaster import (
    CostCapMode,
    ENTRYPOINT_ADDRESS_V07,
    ENTRYPOINT_ADDRESS_V08,
)
from sbc_paymaster_sdk.sponsor import PaymasterSponsor

# Test wallet (DO NOT use in production)
TEST_PRIVATE_KEY = "0x" + "ab" * 32

PAYMASTER = "0x" + "11" * 20


class TestPaymasterSettings:
    """Tests for PaymasterSettings."""

    def test_defaults(self):
        """Test that only chain and paymaster are required."""
        settings = PaymasterSettings.from_mapping({"chain_id": 8453, "paymaster_address": PAYMASTER})

        assert settings.domain_name == "SSVPaymasterECDSASigner"
        assert settings.domain_version == "1"
        assert settings.entry_point == ENTRYPOINT_ADDRESS_V08
        assert settings.valid_after_skew_seconds == 10
        assert settings.validity_seconds == 3600
        assert settings.cost_cap_mode == CostCapMode.ABORT

    def test_camel_case_keys(self):
        """Test that relay-style camelCase keys are accepted."""
        settings = PaymasterSettings.from_mapping(
            {
                "chainId": "84532",
                "paymasterAddress": PAYMASTER,
                "domainVersion": "2",
                "entryPoint": ENTRYPOINT_ADDRESS_V07,
                "validitySeconds": 600,
                "costCapMode": "decline",
            }
        )

        assert settings.chain_id == 84532
        assert settings.domain_version == "2"
        assert settings.entry_point == ENTRYPOINT_ADDRESS_V07
        assert settings.validity_seconds == 600
        assert settings.cost_cap_mode == CostCapMode.DECLINE

    def test_missing_required(self):
        """Test that chain_id and paymaster_address are required."""
        with pytest.raises(ValueError, match="required"):
            PaymasterSettings.from_mapping({"chain_id": 8453})

    @pytest.mark.parametrize(
        "overrides,match",
        [
            ({"chain_id": 0}, "chain_id"),
            ({"paymaster_address": "0x1234"}, "paymaster_address"),
            ({"domain_name": ""}, "domain_name"),
            ({"entry_point": "entrypoint"}, "entry_point"),
            ({"paymaster_post_op_gas_limit": 0}, "paymaster_post_op_gas_limit"),
        ],
    )
    def test_invalid_values(self, overrides, match):
        """Test that invalid settings raise error."""
        data = {"chain_id": 8453, "paymaster_address": PAYMASTER, **overrides}

        with pytest.raises(ValueError, match=match):
            PaymasterSettings.from_mapping(data)

    def test_invalid_cost_cap_mode(self):
        """Test that an unknown cost cap mode raises error."""
        with pytest.raises(ValueError):
            PaymasterSettings.from_mapping(
                {"chain_id": 8453, "paymaster_address": PAYMASTER, "cost_cap_mode": "ignore"}
            )

    def test_create_signer(self):
        """Test that the signer follows the configured domain and policy."""
        settings = PaymasterSettings.from_mapping(
            {
                "chain_id": 8453,
                "paymaster_address": PAYMASTER,
                "domain_version": "2",
                "validity_seconds": 600,
            }
        )

        signer = settings.create_signer(TEST_PRIVATE_KEY)

        assert signer.address == Account.from_key(TEST_PRIVATE_KEY).address
        assert signer.domain(PAYMASTER, 8453) == settings.domain()
        assert signer.window(now=1010).valid_until == 1610

    def test_sponsor_config(self):
        """Test that settings configure a sponsor."""
        settings = PaymasterSettings.from_mapping(
            {"chain_id": 8453, "paymaster_address": PAYMASTER, "paymaster_post_op_gas_limit": 70_000}
        )

        sponsor = PaymasterSponsor(settings.create_signer(TEST_PRIVATE_KEY), settings.sponsor_config())

        assert sponsor.get_sponsor_config().paymaster_post_op_gas_limit == 70_000
        assert sponsor.get_sponsor_config().chain_id == 8453


class TestLoadSettings:
    """Tests for YAML and environment loading."""

    def test_load_yaml(self, tmp_path):
        """Test loading settings from a YAML file."""
        path = tmp_path / "paymaster.yaml"
        path.write_text(
            "chainId: 8453\n"
            f"paymasterAddress: '{PAYMASTER}'\n"
            "validAfterSkewSeconds: 30\n"
            "costCapMode: decline\n"
        )

        settings = load_settings(path)

        assert settings.chain_id == 8453
        assert settings.valid_after_skew_seconds == 30
        assert settings.cost_cap_mode == CostCapMode.DECLINE

    def test_load_yaml_not_mapping(self, tmp_path):
        """Test that a YAML list is rejected."""
        path = tmp_path / "paymaster.yaml"
        path.write_text("- 8453\n")

        with pytest.raises(ValueError, match="mapping"):
            load_settings(path)

    def test_settings_from_env(self):
        """Test building settings from environment variables."""
        settings = settings_from_env(
            {
                "CHAIN_ID": "8453",
                "PAYMASTER_ADDRESS": PAYMASTER,
                "PAYMASTER_VALIDITY_SECONDS": "1800",
                "PAYMASTER_COST_CAP_MODE": "",
            }
        )

        assert settings.chain_id == 8453
        assert settings.validity_seconds == 1800
        assert settings.cost_cap_mode == CostCapMode.ABORT

    def test_settings_from_os_environ(self, monkeypatch):
        """Test that os.environ is used when no mapping is given."""
        monkeypatch.setenv("CHAIN_ID", "10")
        monkeypatch.setenv("PAYMASTER_ADDRESS", PAYMASTER)

        settings = settings_from_env()

        assert settings.chain_id == 10


class TestTrustedSignerKey:
    """Tests for loading the trusted signer key."""

    def test_adds_prefix(self):
        """Test that a bare hex key gets a 0x prefix."""
        key = load_trusted_signer_key({"TRUSTED_SIGNER_PRIVATE_KEY": "ab" * 32})

        assert key == TEST_PRIVATE_KEY

    def test_keeps_prefix(self):
        """Test that a prefixed key is returned unchanged."""
        assert load_trusted_signer_key({"TRUSTED_SIGNER_PRIVATE_KEY": TEST_PRIVATE_KEY}) == TEST_PRIVATE_KEY

    def test_missing(self):
        """Test that a missing key raises error."""
        with pytest.raises(ValueError, match="TRUSTED_SIGNER_PRIVATE_KEY is not set"):
            load_trusted_signer_key({})
