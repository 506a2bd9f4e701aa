#!/usr/bin/env python3
"""
Quick start guide for the shielded pool.

Run this to see a complete deposit and withdrawal.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from zkpool import InMemoryLedger, Note, ShieldedPool, WitnessProof, WitnessVerifier
from zkpool.exceptions import InvalidProofError, NullifierAlreadyUsedError
from zkpool.utils.encoding import digest_to_hex

DEPTH = 8
DENOMINATION = 10**17
ALICE = "0x" + "a1" * 20
MALLORY = "0x" + "e5" * 20


def main():
    """Run a simple example of the shielded pool."""

    print("=" * 70)
    print("SHIELDED POOL QUICK START EXAMPLE")
    print("=" * 70)
    print()

    # Step 1: Initialize the pool
    print("Step 1: Initialize the pool")
    print("-" * 70)
    ledger = InMemoryLedger()
    pool = ShieldedPool(
        verifier=WitnessVerifier(DEPTH),
        denomination=DENOMINATION,
        tree_depth=DEPTH,
        ledger=ledger,
    )
    print(f"✓ Pool created with {DEPTH}-level Merkle tree (supports {2**DEPTH} deposits)")
    print(f"  Empty root: {digest_to_hex(pool.root)[:18]}...")
    print()

    # Step 2: Alice deposits
    print("Step 2: Alice deposits one denomination")
    print("-" * 70)
    alice_note = Note.generate()
    alice_index = pool.deposit(alice_note.commitment, DENOMINATION)
    print("✓ Deposit accepted")
    print(f"  Commitment: {digest_to_hex(alice_note.commitment)[:18]}...")
    print(f"  Leaf Index: {alice_index}")
    print(f"  Note (keep secret!): {alice_note.to_hex()[:18]}...")
    print()

    # Step 3: Others deposit
    print("Step 3: Three more users deposit")
    print("-" * 70)
    for _ in range(3):
        pool.deposit(Note.generate().commitment, DENOMINATION)
    print(f"✓ Pool holds {len(pool.leaves)} deposits, balance {ledger.pool_balance}")
    print()

    # Step 4: Alice builds her proof off-pool
    print("Step 4: Alice builds a withdrawal proof")
    print("-" * 70)
    merkle_proof = pool.get_commitment_proof(alice_note.commitment)
    proof = WitnessProof.from_note(alice_note, merkle_proof, ALICE).encode()
    print(f"✓ Merkle path of {len(merkle_proof.path_elements)} siblings")
    print(f"  Proof size: {len(proof)} bytes")
    print()

    # Step 5: Mallory tries to redirect the payout
    print("Step 5: Mallory replays the proof to her own address")
    print("-" * 70)
    try:
        pool.withdraw(proof, pool.root, alice_note.nullifier_hash, MALLORY)
    except InvalidProofError as e:
        print(f"✓ Rejected: {e}")
    print()

    # Step 6: Alice withdraws
    print("Step 6: Alice withdraws")
    print("-" * 70)
    event = pool.withdraw(proof, pool.root, alice_note.nullifier_hash, ALICE)
    print("✓ Withdrawal successful!")
    print(f"  Recipient: {event.recipient}")
    print(f"  Amount: {event.amount}")
    print(f"  Alice balance: {ledger.balance_of(ALICE)}")
    print()

    # Step 7: Double spend
    print("Step 7: Alice tries to withdraw again")
    print("-" * 70)
    try:
        pool.withdraw(proof, pool.root, alice_note.nullifier_hash, ALICE)
    except NullifierAlreadyUsedError as e:
        print(f"✓ Rejected: {e}")
    print()

    stats = pool.statistics()
    print("=" * 70)
    print(f"Deposits: {stats.num_deposits}  Withdrawals: {stats.num_withdrawals}  "
          f"Capacity: {stats.capacity}")
    print("=" * 70)


if __name__ == "__main__":
    main()
