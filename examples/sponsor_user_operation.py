"""Sponsor a UserOperation and validate the result.

This example demonstrates the full paymaster flow with a local trusted
signer:
- Stub paymaster data for gas estimation
- A signed authorization packed into paymasterAndData
- Validation against the owner-controlled config, the way the paymaster
  contract checks it during validatePaymasterUserOp

Prerequisites:
1. pip install sbc-paymaster-sdk
2. Set environment variables:
   TRUSTED_SIGNER_PRIVATE_KEY, CHAIN_ID, PAYMASTER_ADDRESS

Usage:
    python sponsor_user_operation.py
"""

import logging
import os
import time

from dotenv import load_dotenv

load_dotenv()


def main():
    from sbc_paymaster_sdk import (
        ConfigStore,
        PaymasterSponsor,
        UserOperation,
        ValidationEngine,
        format_ether,
        load_trusted_signer_key,
        parse_ether,
        settings_from_env,
    )
    from sbc_paymaster_sdk.paymaster import PAYMASTER_DATA_OFFSET, describe_outcome

    logging.basicConfig(level=logging.INFO)

    required = ["TRUSTED_SIGNER_PRIVATE_KEY", "CHAIN_ID", "PAYMASTER_ADDRESS"]
    missing = [var for var in required if not os.environ.get(var)]
    if missing:
        print(f"Missing required environment variables: {', '.join(missing)}")
        return

    print("=" * 60)
    print("  SBC PAYMASTER SPONSORSHIP")
    print("=" * 60)

    settings = settings_from_env()
    signer = settings.create_signer(load_trusted_signer_key())
    sponsor = PaymasterSponsor(signer, settings.sponsor_config())

    # Owner is the signer here; in production it is the paymaster admin.
    store = ConfigStore()
    store.initialize(
        owner=signer.address,
        verifying_identity=signer.address,
        max_allowed_cost=parse_ether("0.01"),
    )
    print(f"\n[1] Trusted signer: {signer.address}")
    print(f"    Paymaster:      {settings.paymaster_address} (chain {settings.chain_id})")
    print(f"    Cost cap:       {store.status()['maxAllowedCostEth']} ETH")

    operation = UserOperation(
        sender="0x" + "aa" * 20,
        nonce=5,
        call_data=bytes.fromhex("a9059cbb"),
        max_fee_per_gas=2 * 10**9,
        max_priority_fee_per_gas=10**8,
    )

    print("\n[2] Stub data for gas estimation...")
    stub = sponsor.get_paymaster_stub_data(operation, settings.entry_point)
    print(f"    paymasterData: {stub['paymasterData'][:26]}...")

    print("\n[3] Signing authorization...")
    prepared = sponsor.prepare_user_operation(operation, settings.entry_point)
    cost = sponsor.max_cost(prepared)
    print(f"    Requested cost: {format_ether(cost)} ETH")

    print("\n[4] Validating...")
    now = int(time.time())
    engine = ValidationEngine(settings.domain(), cost_cap_mode=settings.cost_cap_mode)
    result = engine.validate(
        prepared,
        prepared.paymaster_and_data,
        cost,
        store.snapshot(),
        now,
        offset=PAYMASTER_DATA_OFFSET,
    )
    print(f"    Outcome: {describe_outcome(result, now)}")

    print("\n[5] Replaying with the next nonce...")
    prepared.nonce += 1
    replayed = engine.validate(
        prepared,
        prepared.paymaster_and_data,
        cost,
        store.snapshot(),
        now,
        offset=PAYMASTER_DATA_OFFSET,
    )
    print(f"    Outcome: {describe_outcome(replayed, now)}")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
