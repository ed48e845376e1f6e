#!/usr/bin/env python3
"""
GlucoGuard Example - Complete End-to-End Flow

This example walks through an encrypted glucose submission and risk
check on the local devnet, then shows what happens when the user's
wallet switches networks while a check is still pending.

Run with: python examples/glucose_check_example.py
"""

import asyncio

from glucoguard import (
    BusyError,
    InputValidationError,
    OperationKind,
    build_devnet_session,
    status_report,
)

SIGNER = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
SEPOLIA = 11155111


async def main():
    print("=" * 70)
    print("GlucoGuard Encrypted Glucose Check - Devnet Example")
    print("=" * 70)

    print("\n[SETUP] Connecting wallet to the local devnet...")
    session = build_devnet_session(signer_id=SIGNER, networks={31337, SEPOLIA})
    coordinator = session.coordinator
    print(f"  Status: {status_report(coordinator)['status']}")

    # =========================================================================
    # SCENARIO 1: Submit and check
    # =========================================================================
    print("\n" + "-" * 70)
    print("SCENARIO 1: Submit a reading and check risk")
    print("-" * 70)

    print("\n[STEP 1] Rejecting an out-of-range reading...")
    try:
        coordinator.start(OperationKind.SUBMIT, "2500")
    except InputValidationError as e:
        print(f"  ✗ {e}")

    print("\n[STEP 2] Submitting 152 mg/dL...")
    task = coordinator.start(OperationKind.SUBMIT, "152")
    try:
        coordinator.start(OperationKind.SUBMIT, "152")
    except BusyError as e:
        print(f"  Second click ignored: {e}")
    submitted = await task
    print(f"  Phase: {submitted.phase.value}")
    print(f"  Handle: {submitted.handle[:26]}...")

    print("\n[STEP 3] Checking risk and decrypting the result...")
    checked = await coordinator.check_risk(disclose=True)
    print(f"  Phase: {checked.phase.value}")
    print(f"  High risk: {checked.decrypted_value}")
    print(f"  Message: {coordinator.store.message}")

    # =========================================================================
    # SCENARIO 2: Network switch while a check is pending
    # =========================================================================
    print("\n" + "-" * 70)
    print("SCENARIO 2: Wallet switches network mid-check (DISCARDED)")
    print("-" * 70)

    previous_risk = coordinator.store.risk_result.encrypted_handle
    session.ledger.confirm_gate.pause()
    task = coordinator.start(OperationKind.CHECK)
    while session.ledger.confirm_gate.waiting == 0:
        await asyncio.sleep(0)

    print(f"\n[STEP 1] Check transaction pending; switching to chain {SEPOLIA}...")
    session.environment.switch_network(SEPOLIA)
    session.ledger.confirm_gate.resume()
    stale = await task

    print(f"  Phase: {stale.phase.value}")
    print(f"  Notice: {stale.notice}")
    unchanged = coordinator.store.risk_result.encrypted_handle == previous_risk
    print(f"  Stored risk result unchanged: {unchanged}")

    print("\n[STEP 2] Switching back, checking again, then decrypting...")
    session.environment.switch_network(31337)
    retried = await coordinator.check_risk()
    print(f"  Phase: {retried.phase.value}")
    print(f"  Engine bootstraps so far: {session.bootstrap.attempts}")
    decrypted = await coordinator.decrypt_risk()
    print(f"  Decrypt phase: {decrypted.phase.value}")
    print(f"  High risk: {decrypted.decrypted_value}")

    # =========================================================================
    # STATUS
    # =========================================================================
    print("\n" + "-" * 70)
    print("STATUS PANEL")
    print("-" * 70)
    for key, value in status_report(coordinator).items():
        print(f"  {key}: {value}")

    session.close()


if __name__ == "__main__":
    asyncio.run(main())
