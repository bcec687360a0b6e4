import json
import threading
import time
from unittest.mock import Mock

import pytest

from wallet_auth.core.nonce_store import MemoryNonceStore
from wallet_auth.core.results import NonceError
import wallet_auth.services.nonce_manager as nonce_manager_module
from wallet_auth.services.nonce_manager import (
    MISMATCH_POLICY_RETAIN,
    NonceManager,
    generate_nonce,
    get_nonce_manager,
)

ADDRESS_X = "0x1111111111111111111111111111111111111111"
ADDRESS_Y = "0x2222222222222222222222222222222222222222"


class TestGenerateNonce:
    """Test cases for nonce generation"""

    def test_default_length(self):
        nonce = generate_nonce()

        assert len(nonce) == 64
        int(nonce, 16)

    def test_invalid_size_falls_back(self):
        assert len(generate_nonce(0)) == 64

    def test_unique(self):
        assert len({generate_nonce() for _ in range(1000)}) == 1000


class TestNonceManagerIssue:
    """Test cases for NonceManager.issue"""

    def test_issue_unbound(self, nonce_manager, nonce_store, clock):
        """Test an unbound nonce is stored with the fixed TTL"""
        nonce = nonce_manager.issue()

        record = json.loads(nonce_store.get_and_delete(nonce))
        assert record["bound_identity"] is None
        assert record["issued_at"] == clock.now
        assert record["expires_at"] == clock.now + 300

    def test_issue_bound_is_lower_cased(self, nonce_manager, nonce_store):
        """Test the bound identity is normalized"""
        nonce = nonce_manager.issue("  0xABCDEF1111111111111111111111111111111111 ")

        record = json.loads(nonce_store.get_and_delete(nonce))
        assert record["bound_identity"] == "0xabcdef1111111111111111111111111111111111"

    def test_issue_blank_identity_is_unbound(self, nonce_manager, nonce_store):
        nonce = nonce_manager.issue("   ")

        record = json.loads(nonce_store.get_and_delete(nonce))
        assert record["bound_identity"] is None

    def test_issue_single_store_write(self):
        """Test issue performs exactly one write"""
        store = Mock()
        manager = NonceManager(store, ttl_seconds=300)

        nonce = manager.issue(ADDRESS_X)

        store.put.assert_called_once()
        key, _, ttl = store.put.call_args[0]
        assert key == nonce
        assert ttl == 300

    def test_issue_never_repeats_outstanding(self, nonce_manager):
        issued = [nonce_manager.issue() for _ in range(500)]

        assert len(set(issued)) == 500

    def test_unknown_policy_rejected(self, nonce_store):
        with pytest.raises(ValueError):
            NonceManager(nonce_store, mismatch_policy="maybe")


class TestNonceManagerConsume:
    """Test cases for NonceManager.consume"""

    def test_consume_once(self, nonce_manager):
        """Test a nonce is consumed at most once"""
        nonce = nonce_manager.issue()

        assert nonce_manager.consume(nonce, ADDRESS_X) is None
        assert nonce_manager.consume(nonce, ADDRESS_X) == NonceError.NOT_FOUND_OR_EXPIRED

    def test_consume_unknown(self, nonce_manager):
        assert nonce_manager.consume("deadbeef", ADDRESS_X) == NonceError.NOT_FOUND_OR_EXPIRED

    def test_consume_after_ttl(self, nonce_manager, clock):
        """Test a nonce past its 300s window is rejected"""
        nonce = nonce_manager.issue()
        clock.advance(301)

        assert nonce_manager.consume(nonce, ADDRESS_X) == NonceError.NOT_FOUND_OR_EXPIRED

    def test_consume_within_ttl(self, nonce_manager, clock):
        nonce = nonce_manager.issue()
        clock.advance(299)

        assert nonce_manager.consume(nonce, ADDRESS_X) is None

    def test_expiry_checked_on_record(self, clock):
        """Test a store that still returns an old record cannot revive it"""
        store = Mock()
        manager = NonceManager(store, ttl_seconds=300, clock=clock)
        store.get_and_delete.return_value = json.dumps(
            {"bound_identity": None, "issued_at": clock.now - 400, "expires_at": clock.now - 100}
        ).encode()

        assert manager.consume("abc", ADDRESS_X) == NonceError.NOT_FOUND_OR_EXPIRED

    def test_consume_bound_same_identity_any_case(self, nonce_manager):
        """Test the binding check ignores case"""
        nonce = nonce_manager.issue("0xabcdef0000000000000000000000000000000001")

        assert nonce_manager.consume(nonce, "0xABCDEF0000000000000000000000000000000001") is None

    def test_consume_bound_mismatch(self, nonce_manager):
        """Test another identity is rejected and the nonce is burned"""
        nonce = nonce_manager.issue(ADDRESS_X)

        assert nonce_manager.consume(nonce, ADDRESS_Y) == NonceError.IDENTITY_MISMATCH
        assert nonce_manager.consume(nonce, ADDRESS_Y) == NonceError.NOT_FOUND_OR_EXPIRED
        assert nonce_manager.consume(nonce, ADDRESS_X) == NonceError.NOT_FOUND_OR_EXPIRED

    def test_consume_bound_mismatch_retain_policy(self, nonce_store, clock):
        """Test the retain policy keeps the nonce for its owner only"""
        manager = NonceManager(
            nonce_store, ttl_seconds=300, mismatch_policy=MISMATCH_POLICY_RETAIN, clock=clock
        )
        nonce = manager.issue(ADDRESS_X)
        clock.advance(100)

        assert manager.consume(nonce, ADDRESS_Y) == NonceError.IDENTITY_MISMATCH
        assert manager.consume(nonce, ADDRESS_Y) == NonceError.IDENTITY_MISMATCH
        assert manager.consume(nonce, ADDRESS_X) is None
        assert manager.consume(nonce, ADDRESS_X) == NonceError.NOT_FOUND_OR_EXPIRED

    def test_retain_policy_keeps_original_expiry(self, nonce_store, clock):
        """Test a retained nonce still expires at the original deadline"""
        manager = NonceManager(
            nonce_store, ttl_seconds=300, mismatch_policy=MISMATCH_POLICY_RETAIN, clock=clock
        )
        nonce = manager.issue(ADDRESS_X)
        clock.advance(250)
        assert manager.consume(nonce, ADDRESS_Y) == NonceError.IDENTITY_MISMATCH

        clock.advance(60)

        assert manager.consume(nonce, ADDRESS_X) == NonceError.NOT_FOUND_OR_EXPIRED

    def test_retain_mismatch_never_removes_entry(self, nonce_store, clock):
        """Test the owner's nonce stays in the store during a mismatched attempt"""
        manager = NonceManager(
            nonce_store, ttl_seconds=300, mismatch_policy=MISMATCH_POLICY_RETAIN, clock=clock
        )
        nonce = manager.issue(ADDRESS_X)
        nonce_store.put = Mock(wraps=nonce_store.put)
        nonce_store.delete = Mock(wraps=nonce_store.delete)

        assert manager.consume(nonce, ADDRESS_Y) == NonceError.IDENTITY_MISMATCH

        assert len(nonce_store) == 1
        nonce_store.put.assert_not_called()
        nonce_store.delete.assert_not_called()

    def test_retain_owner_wins_against_mismatched_callers(self, clock):
        """Test the owner always succeeds while other identities hammer the same nonce"""
        store = MemoryNonceStore(clock=clock)
        manager = NonceManager(
            store, ttl_seconds=300, mismatch_policy=MISMATCH_POLICY_RETAIN, clock=clock
        )
        barrier = threading.Barrier(9)

        for _ in range(30):
            nonce = manager.issue(ADDRESS_X)
            owner_result = []
            other_results = []

            def owner():
                barrier.wait()
                owner_result.append(manager.consume(nonce, ADDRESS_X))

            def other():
                barrier.wait()
                for _ in range(5):
                    other_results.append(manager.consume(nonce, ADDRESS_Y))

            threads = [threading.Thread(target=owner)]
            threads += [threading.Thread(target=other) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert owner_result == [None]
            assert None not in other_results
            assert len(store) == 0

    def test_concurrent_consume_single_winner(self, nonce_manager):
        """Test racing consumers of one nonce yield exactly one success"""
        barrier = threading.Barrier(16)

        for _ in range(20):
            nonce = nonce_manager.issue()
            results = []

            def consume():
                barrier.wait()
                results.append(nonce_manager.consume(nonce, ADDRESS_X))

            threads = [threading.Thread(target=consume) for _ in range(16)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert results.count(None) == 1
            assert results.count(NonceError.NOT_FOUND_OR_EXPIRED) == 15

    def test_unreadable_record(self):
        store = Mock()
        store.get_and_delete.return_value = b"\xff not json"
        manager = NonceManager(store)

        assert manager.consume("abc", ADDRESS_X) == NonceError.NOT_FOUND_OR_EXPIRED


class TestGetNonceManager:
    """Test cases for the process-wide manager"""

    def test_concurrent_first_use_builds_one_manager(self, monkeypatch):
        """Test threads racing on first use all get the same manager and store"""
        monkeypatch.setattr(nonce_manager_module, "_nonce_manager", None)
        real_build = nonce_manager_module.build_nonce_store
        built = []

        def slow_build(config):
            built.append(1)
            time.sleep(0.05)
            return real_build(config)

        monkeypatch.setattr(nonce_manager_module, "build_nonce_store", slow_build)
        barrier = threading.Barrier(8)
        managers = []

        def fetch():
            barrier.wait()
            managers.append(get_nonce_manager())

        threads = [threading.Thread(target=fetch) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(built) == 1
        assert len({id(m) for m in managers}) == 1
        assert len({id(m.store) for m in managers}) == 1
