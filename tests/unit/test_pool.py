"""Tests for the shielded pool state machine."""

import threading
from datetime import datetime, timedelta

import pytest

from zkpool.core.ledger import InMemoryLedger
from zkpool.core.note import Note
from zkpool.core.pool import ShieldedPool
from zkpool.crypto.verifier import WitnessProof, WitnessVerifier
from zkpool.exceptions import (
    DuplicateCommitmentError,
    InvalidAddressError,
    InvalidDigestError,
    InvalidProofError,
    MerkleTreeFullError,
    NullifierAlreadyUsedError,
    ReentrancyError,
    TransferFailedError,
    UnknownCommitmentError,
    UnknownRootError,
    WrongDenominationError,
)
from zkpool.utils.field import random_field_element

DEPTH = 8
DENOMINATION = 10**17
RECIPIENT = "0x" + "ab" * 20
OTHER_RECIPIENT = "0x" + "cd" * 20


class AcceptAllVerifier:
    """Verifier that accepts every proof and records what it was asked."""

    def __init__(self):
        self.calls = []

    def verify(self, proof, public_inputs):
        self.calls.append((proof, list(public_inputs)))
        return True


class RejectAllVerifier:
    def verify(self, proof, public_inputs):
        return False


class RefusingLedger(InMemoryLedger):
    """Recipient that bounces every payout."""

    def on_transfer(self, recipient, amount):
        return False


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def pool(hasher, ledger):
    """Pool with a real witness verifier."""
    return ShieldedPool(
        verifier=WitnessVerifier(DEPTH, hasher),
        denomination=DENOMINATION,
        tree_depth=DEPTH,
        hasher=hasher,
        ledger=ledger,
    )


def deposit_note(pool, hasher):
    note = Note.generate(hasher)
    index = pool.deposit(note.commitment, DENOMINATION)
    return note, index


def build_proof(pool, note, index, recipient=RECIPIENT):
    merkle_proof = pool.get_merkle_proof(index)
    return WitnessProof.from_note(note, merkle_proof, recipient).encode()


class TestPoolInitialization:

    def test_empty_pool(self, pool):
        assert pool.statistics().num_deposits == 0
        assert pool.leaves == []
        assert pool.is_known_root(pool.root)

    def test_invalid_denomination(self, hasher):
        with pytest.raises(ValueError):
            ShieldedPool(verifier=RejectAllVerifier(), denomination=0)
        with pytest.raises(ValueError):
            ShieldedPool(verifier=RejectAllVerifier(), denomination=-5)

    def test_invalid_depth(self):
        with pytest.raises(ValueError):
            ShieldedPool(verifier=RejectAllVerifier(), denomination=1, tree_depth=40)

    def test_repr(self, pool):
        assert "ShieldedPool" in repr(pool)


class TestDeposit:
    """Tests for deposits."""

    def test_deposit_returns_leaf_index(self, pool, hasher):
        for expected in range(3):
            _, index = deposit_note(pool, hasher)
            assert index == expected

    def test_deposit_updates_root_and_event(self, pool, hasher):
        old_root = pool.root
        note, _ = deposit_note(pool, hasher)
        assert pool.root != old_root
        assert pool.has_commitment(note.commitment)
        assert pool.deposits[-1].commitment == note.commitment
        assert pool.deposits[-1].leaf_index == 0

    def test_deposit_collects_value(self, pool, ledger, hasher):
        deposit_note(pool, hasher)
        deposit_note(pool, hasher)
        assert ledger.pool_balance == 2 * DENOMINATION

    def test_duplicate_commitment(self, pool, ledger, hasher):
        """Test that a commitment cannot be inserted twice."""
        note, _ = deposit_note(pool, hasher)
        root = pool.root

        with pytest.raises(DuplicateCommitmentError):
            pool.deposit(note.commitment, DENOMINATION)

        assert pool.tree.next_leaf_index == 1
        assert pool.root == root
        assert len(pool.deposits) == 1
        assert ledger.pool_balance == DENOMINATION

    def test_wrong_denomination(self, pool, ledger):
        for value in [0, DENOMINATION - 1, DENOMINATION + 1]:
            with pytest.raises(WrongDenominationError):
                pool.deposit(random_field_element(), value)
        assert pool.tree.next_leaf_index == 0
        assert ledger.pool_balance == 0

    def test_duplicate_checked_before_denomination(self, pool, hasher):
        note, _ = deposit_note(pool, hasher)
        with pytest.raises(DuplicateCommitmentError):
            pool.deposit(note.commitment, 1)

    def test_invalid_commitment(self, pool):
        with pytest.raises(InvalidDigestError):
            pool.deposit(-1, DENOMINATION)

    def test_pool_full(self, hasher):
        ledger = InMemoryLedger()
        small = ShieldedPool(
            verifier=RejectAllVerifier(), denomination=DENOMINATION, tree_depth=1,
            hasher=hasher, ledger=ledger,
        )
        small.deposit(1, DENOMINATION)
        small.deposit(2, DENOMINATION)
        root = small.root

        with pytest.raises(MerkleTreeFullError):
            small.deposit(3, DENOMINATION)

        assert small.root == root
        assert not small.has_commitment(3)
        assert ledger.pool_balance == 2 * DENOMINATION

    def test_failed_collect_restores_tree(self, hasher):
        class BrokenLedger(InMemoryLedger):
            def collect(self, amount):
                raise RuntimeError("ledger offline")

        pool = ShieldedPool(
            verifier=RejectAllVerifier(), denomination=DENOMINATION, tree_depth=DEPTH,
            hasher=hasher, ledger=BrokenLedger(),
        )
        root = pool.root
        with pytest.raises(RuntimeError):
            pool.deposit(5, DENOMINATION)
        assert pool.root == root
        assert pool.tree.next_leaf_index == 0
        assert not pool.has_commitment(5)

    def test_root_matches_full_rebuild(self, pool, hasher):
        for _ in range(5):
            deposit_note(pool, hasher)
        assert pool.compute_full_root() == pool.root


class TestWithdraw:
    """Tests for withdrawals."""

    def test_successful_withdrawal(self, pool, ledger, hasher):
        note, index = deposit_note(pool, hasher)
        proof = build_proof(pool, note, index)

        event = pool.withdraw(proof, pool.root, note.nullifier_hash, RECIPIENT)

        assert event.recipient == RECIPIENT
        assert event.amount == DENOMINATION
        assert event.nullifier_hash == note.nullifier_hash
        assert pool.is_spent(note.nullifier_hash)
        assert ledger.balance_of(RECIPIENT) == DENOMINATION
        assert ledger.pool_balance == 0
        assert pool.withdrawals == [event]

    def test_public_inputs_order(self, hasher):
        verifier = AcceptAllVerifier()
        pool = ShieldedPool(
            verifier=verifier, denomination=DENOMINATION, tree_depth=DEPTH, hasher=hasher,
            ledger=InMemoryLedger(pool_balance=DENOMINATION),
        )
        nullifier_hash = random_field_element()
        pool.withdraw(b"proof", pool.root, nullifier_hash, RECIPIENT)
        assert verifier.calls == [(b"proof", [pool.root, nullifier_hash, int(RECIPIENT, 16)])]

    def test_recipient_normalized(self, pool, ledger, hasher):
        note, index = deposit_note(pool, hasher)
        proof = build_proof(pool, note, index)
        event = pool.withdraw(proof, pool.root, note.nullifier_hash, RECIPIENT.upper().replace("0X", "0x"))
        assert event.recipient == RECIPIENT

    def test_against_older_root(self, pool, hasher):
        """A proof made before later deposits still withdraws."""
        note, index = deposit_note(pool, hasher)
        old_root = pool.root
        proof = build_proof(pool, note, index)
        for _ in range(5):
            deposit_note(pool, hasher)

        pool.withdraw(proof, old_root, note.nullifier_hash, RECIPIENT)
        assert pool.is_spent(note.nullifier_hash)

    def test_unknown_root(self, pool, ledger, hasher):
        note, index = deposit_note(pool, hasher)
        proof = build_proof(pool, note, index)

        with pytest.raises(UnknownRootError, match="Cannot find your merkle root"):
            pool.withdraw(proof, random_field_element(), note.nullifier_hash, RECIPIENT)
        assert not pool.is_spent(note.nullifier_hash)
        assert ledger.pool_balance == DENOMINATION

    def test_zero_root_unknown(self, pool, hasher):
        note, index = deposit_note(pool, hasher)
        with pytest.raises(UnknownRootError):
            pool.withdraw(build_proof(pool, note, index), 0, note.nullifier_hash, RECIPIENT)

    def test_root_aged_out(self, hasher):
        pool = ShieldedPool(
            verifier=WitnessVerifier(DEPTH, hasher), denomination=DENOMINATION,
            tree_depth=DEPTH, hasher=hasher, root_history_size=3,
        )
        note, index = deposit_note(pool, hasher)
        old_root = pool.root
        proof = build_proof(pool, note, index)
        for _ in range(3):
            deposit_note(pool, hasher)

        with pytest.raises(UnknownRootError):
            pool.withdraw(proof, old_root, note.nullifier_hash, RECIPIENT)

        # A fresh proof against the current root still works.
        pool.withdraw(build_proof(pool, note, index), pool.root, note.nullifier_hash, RECIPIENT)

    def test_double_spend(self, pool, ledger, hasher):
        """Test that double-spending is prevented."""
        note, index = deposit_note(pool, hasher)
        deposit_note(pool, hasher)
        proof = build_proof(pool, note, index)

        pool.withdraw(proof, pool.root, note.nullifier_hash, RECIPIENT)

        with pytest.raises(NullifierAlreadyUsedError):
            pool.withdraw(proof, pool.root, note.nullifier_hash, RECIPIENT)
        assert ledger.balance_of(RECIPIENT) == DENOMINATION
        assert len(pool.withdrawals) == 1

    def test_root_checked_before_nullifier(self, pool, hasher):
        note, index = deposit_note(pool, hasher)
        deposit_note(pool, hasher)
        proof = build_proof(pool, note, index)
        pool.withdraw(proof, pool.root, note.nullifier_hash, RECIPIENT)

        with pytest.raises(UnknownRootError):
            pool.withdraw(proof, random_field_element(), note.nullifier_hash, RECIPIENT)

    def test_nullifier_checked_before_proof(self, pool, hasher):
        note, index = deposit_note(pool, hasher)
        deposit_note(pool, hasher)
        pool.withdraw(build_proof(pool, note, index), pool.root, note.nullifier_hash, RECIPIENT)

        with pytest.raises(NullifierAlreadyUsedError):
            pool.withdraw(b"not a proof", pool.root, note.nullifier_hash, RECIPIENT)

    def test_forged_proof_changes_nothing(self, pool, ledger, hasher):
        note, index = deposit_note(pool, hasher)
        state_before = pool.state()

        with pytest.raises(InvalidProofError, match="Invalid withdraw proof"):
            pool.withdraw(b"\x00" * 64, pool.root, note.nullifier_hash, RECIPIENT)

        assert pool.state() == state_before
        assert ledger.pool_balance == DENOMINATION
        assert ledger.balance_of(RECIPIENT) == 0

    def test_proof_bound_to_recipient(self, pool, hasher):
        """Front-running: a proof for one recipient cannot pay another."""
        note, index = deposit_note(pool, hasher)
        proof = build_proof(pool, note, index, recipient=RECIPIENT)

        with pytest.raises(InvalidProofError):
            pool.withdraw(proof, pool.root, note.nullifier_hash, OTHER_RECIPIENT)
        assert not pool.is_spent(note.nullifier_hash)

    def test_wrong_nullifier_hash(self, pool, hasher):
        note, index = deposit_note(pool, hasher)
        other = Note.generate(hasher)
        with pytest.raises(InvalidProofError):
            pool.withdraw(build_proof(pool, note, index), pool.root, other.nullifier_hash, RECIPIENT)

    def test_invalid_recipient(self, pool, hasher):
        note, index = deposit_note(pool, hasher)
        with pytest.raises(InvalidAddressError):
            pool.withdraw(build_proof(pool, note, index), pool.root, note.nullifier_hash, "alice")

    def test_transfer_failure_rolls_back(self, hasher):
        ledger = RefusingLedger()
        pool = ShieldedPool(
            verifier=WitnessVerifier(DEPTH, hasher), denomination=DENOMINATION,
            tree_depth=DEPTH, hasher=hasher, ledger=ledger,
        )
        note, index = deposit_note(pool, hasher)
        proof = build_proof(pool, note, index)

        with pytest.raises(TransferFailedError):
            pool.withdraw(proof, pool.root, note.nullifier_hash, RECIPIENT)

        assert not pool.is_spent(note.nullifier_hash)
        assert pool.withdrawals == []
        assert ledger.pool_balance == DENOMINATION
        assert ledger.balance_of(RECIPIENT) == 0

        # Once the recipient accepts, the same note can be withdrawn.
        ledger.on_transfer = lambda recipient, amount: True
        pool.withdraw(proof, pool.root, note.nullifier_hash, RECIPIENT)
        assert ledger.balance_of(RECIPIENT) == DENOMINATION

    def test_insufficient_pool_balance(self, hasher):
        verifier = AcceptAllVerifier()
        pool = ShieldedPool(verifier=verifier, denomination=DENOMINATION, tree_depth=DEPTH, hasher=hasher)
        nullifier_hash = random_field_element()
        with pytest.raises(TransferFailedError):
            pool.withdraw(b"proof", pool.root, nullifier_hash, RECIPIENT)
        assert not pool.is_spent(nullifier_hash)


class TestReentrancy:
    """Tests for the re-entrancy guard."""

    def test_reentrant_withdraw_rejected(self, hasher):
        class HostileLedger(InMemoryLedger):
            pool = None
            attack = None
            error = None

            def on_transfer(self, recipient, amount):
                try:
                    self.pool.withdraw(*self.attack)
                except ReentrancyError as e:
                    self.error = e
                    raise
                return True

        ledger = HostileLedger()
        pool = ShieldedPool(
            verifier=WitnessVerifier(DEPTH, hasher), denomination=DENOMINATION,
            tree_depth=DEPTH, hasher=hasher, ledger=ledger,
        )
        note, index = deposit_note(pool, hasher)
        deposit_note(pool, hasher)
        proof = build_proof(pool, note, index)
        ledger.pool = pool
        ledger.attack = (proof, pool.root, note.nullifier_hash, RECIPIENT)

        with pytest.raises(TransferFailedError):
            pool.withdraw(proof, pool.root, note.nullifier_hash, RECIPIENT)

        assert isinstance(ledger.error, ReentrancyError)
        assert not pool.is_spent(note.nullifier_hash)
        assert ledger.balance_of(RECIPIENT) == 0
        assert ledger.pool_balance == 2 * DENOMINATION

    def test_reentrant_deposit_rejected(self, hasher):
        class DepositingLedger(InMemoryLedger):
            pool = None

            def on_transfer(self, recipient, amount):
                self.pool.deposit(random_field_element(), DENOMINATION)
                return True

        ledger = DepositingLedger(pool_balance=DENOMINATION)
        pool = ShieldedPool(
            verifier=AcceptAllVerifier(), denomination=DENOMINATION,
            tree_depth=DEPTH, hasher=hasher, ledger=ledger,
        )
        ledger.pool = pool

        with pytest.raises(TransferFailedError):
            pool.withdraw(b"proof", pool.root, random_field_element(), RECIPIENT)
        assert pool.tree.next_leaf_index == 0

    def test_concurrent_deposits_serialized(self, hasher):
        pool = ShieldedPool(
            verifier=RejectAllVerifier(), denomination=DENOMINATION,
            tree_depth=DEPTH, hasher=hasher,
        )
        commitments = [random_field_element() for _ in range(40)]
        indices = []

        def worker(chunk):
            for commitment in chunk:
                indices.append(pool.deposit(commitment, DENOMINATION))

        threads = [threading.Thread(target=worker, args=(commitments[i::4],)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(indices) == list(range(40))
        assert pool.compute_full_root() == pool.root


class TestPoolIntrospection:

    def test_statistics(self, pool, hasher):
        note, index = deposit_note(pool, hasher)
        deposit_note(pool, hasher)
        pool.withdraw(build_proof(pool, note, index), pool.root, note.nullifier_hash, RECIPIENT)

        stats = pool.statistics()
        assert stats.num_deposits == 2
        assert stats.num_withdrawals == 1
        assert stats.tree_depth == DEPTH
        assert stats.capacity == 2**DEPTH
        assert stats.current_root == pool.root

    def test_state_snapshot(self, pool, hasher):
        note, _ = deposit_note(pool, hasher)
        state = pool.state()
        assert state.denomination == DENOMINATION
        assert state.commitments == [note.commitment]
        assert state.accumulator.next_leaf_index == 1
        assert state.nullifier_hashes == []


    def test_event_timestamps_are_utc(self, pool, hasher):
        before = datetime.utcnow()
        note, index = deposit_note(pool, hasher)
        event = pool.withdraw(build_proof(pool, note, index), pool.root, note.nullifier_hash, RECIPIENT)
        after = datetime.utcnow()

        for stamp in [pool.deposits[0].timestamp, event.timestamp, pool.statistics().last_update]:
            assert stamp.tzinfo is None
            assert before - timedelta(seconds=1) <= stamp <= after + timedelta(seconds=1)


class TestCommitmentLookup:
    """Finding a note's leaf from its commitment."""

    def test_leaf_index_of(self, pool, hasher):
        notes = [deposit_note(pool, hasher) for _ in range(3)]
        for note, index in notes:
            assert pool.leaf_index_of(note.commitment) == index

    def test_unknown_commitment(self, pool, hasher):
        deposit_note(pool, hasher)
        with pytest.raises(UnknownCommitmentError):
            pool.leaf_index_of(random_field_element())
        with pytest.raises(UnknownCommitmentError):
            pool.get_commitment_proof(random_field_element())

    def test_commitment_proof_matches_index_proof(self, pool, hasher):
        deposit_note(pool, hasher)
        note, index = deposit_note(pool, hasher)
        proof = pool.get_commitment_proof(note.commitment)
        assert proof.leaf_index == index
        assert proof == pool.get_merkle_proof(index)

    def test_withdraw_with_commitment_proof(self, pool, ledger, hasher):
        note, _ = deposit_note(pool, hasher)
        deposit_note(pool, hasher)
        merkle_proof = pool.get_commitment_proof(note.commitment)
        proof = WitnessProof.from_note(note, merkle_proof, RECIPIENT).encode()

        pool.withdraw(proof, pool.root, note.nullifier_hash, RECIPIENT)
        assert ledger.balance_of(RECIPIENT) == DENOMINATION


class TestErrorHierarchy:
    """Callers can catch whole families of rejections."""

    def test_withdrawal_errors(self):
        from zkpool.exceptions import PoolError, WithdrawalError, ZKPoolException

        for error in [UnknownRootError, NullifierAlreadyUsedError, InvalidProofError, TransferFailedError]:
            assert issubclass(error, WithdrawalError)
            assert issubclass(error, PoolError)
            assert issubclass(error, ZKPoolException)

    def test_deposit_errors(self):
        from zkpool.exceptions import DepositError

        assert issubclass(DuplicateCommitmentError, DepositError)
        assert issubclass(WrongDenominationError, DepositError)

    def test_tree_errors(self):
        from zkpool.exceptions import LevelOutOfRangeError, MerkleTreeError

        assert issubclass(MerkleTreeFullError, MerkleTreeError)
        assert issubclass(LevelOutOfRangeError, MerkleTreeError)
        assert issubclass(UnknownCommitmentError, MerkleTreeError)

    def test_input_errors_are_value_errors(self):
        assert issubclass(InvalidDigestError, ValueError)
        assert issubclass(InvalidAddressError, ValueError)
