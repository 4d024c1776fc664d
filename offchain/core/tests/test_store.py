"""
Tests for StelaStore: inscription state, event log, orders, cursor and lock.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from stela_core.db import OrderNotPendingError, StelaStore, parse_database_url
from stela_core.felt import pad_address

INSCRIPTION = "0x" + "0" * 63 + "1"
CREATOR = pad_address("0xc0")
BORROWER = pad_address("0xb0")
LENDER = pad_address("0x1e")
TX = "0x" + "a" * 64


def _create(store, inscription_id=INSCRIPTION, deadline=2_000, duration=100):
    store.upsert_created(
        inscription_id=inscription_id,
        creator=CREATOR,
        multi_lender=False,
        duration=duration,
        deadline=deadline,
        debt_asset_count=1,
        interest_asset_count=0,
        collateral_asset_count=1,
        block_number=10,
        timestamp=1_000,
    )


def _order(store, order_id="order-1", deadline=5_000, created_at=1_000):
    return store.create_order(
        order_id=order_id,
        borrower=BORROWER,
        order_data={"borrower": BORROWER, "duration": "100"},
        borrower_signature=["0x1", "0x2"],
        nonce="0",
        deadline=deadline,
        created_at=created_at,
    )


class TestDatabaseUrl:
    """Tests for URL normalization."""

    def test_plain_path(self):
        assert parse_database_url("./stela.db") == "sqlite:///./stela.db"

    def test_postgres_alias(self):
        assert parse_database_url("postgres://u:p@h/db") == "postgresql://u:p@h/db"


class TestInscriptions:
    """Status transitions are forward-only."""

    def test_created_is_open(self, store):
        _create(store)
        row = store.get_inscription(INSCRIPTION)
        assert row["status"] == "open"
        assert row["creator"] == CREATOR
        assert row["collateral_asset_count"] == 1

    def test_redelivered_created_keeps_status(self, store):
        _create(store)
        store.apply_signed(INSCRIPTION, BORROWER, LENDER, 10_000, "filled", 1_100)
        _create(store)
        assert store.get_inscription(INSCRIPTION)["status"] == "filled"

    def test_signed_fills(self, store):
        _create(store)
        assert store.apply_signed(INSCRIPTION, BORROWER, LENDER, 10_000, "filled", 1_100)
        row = store.get_inscription(INSCRIPTION)
        assert row["status"] == "filled"
        assert row["signed_at"] == 1_100
        assert row["lender"] == LENDER

    def test_partial_then_filled_keeps_first_signed_at(self, store):
        _create(store)
        store.apply_signed(INSCRIPTION, BORROWER, LENDER, 4_000, "partial", 1_100)
        store.apply_signed(INSCRIPTION, BORROWER, LENDER, 10_000, "filled", 1_200)
        row = store.get_inscription(INSCRIPTION)
        assert row["status"] == "filled"
        assert row["issued_debt_percentage"] == 10_000
        assert row["signed_at"] == 1_100

    def test_percentage_never_decreases(self, store):
        _create(store)
        store.apply_signed(INSCRIPTION, BORROWER, LENDER, 6_000, "partial", 1_100)
        assert not store.apply_signed(INSCRIPTION, BORROWER, LENDER, 3_000, "partial", 1_200)
        assert store.get_inscription(INSCRIPTION)["issued_debt_percentage"] == 6_000

    def test_signed_before_created_creates_row(self, store):
        assert store.apply_signed(INSCRIPTION, BORROWER, LENDER, 10_000, "filled", 1_100)
        assert store.get_inscription(INSCRIPTION)["status"] == "filled"

    def test_repaid_is_terminal(self, store):
        _create(store)
        store.apply_signed(INSCRIPTION, BORROWER, LENDER, 10_000, "filled", 1_100)
        assert store.update_inscription_status(INSCRIPTION, "repaid", 1_200)
        assert not store.update_inscription_status(INSCRIPTION, "liquidated", 1_300)
        assert not store.update_inscription_status(INSCRIPTION, "cancelled", 1_300)
        assert store.get_inscription(INSCRIPTION)["status"] == "repaid"

    def test_cancel_only_from_open(self, store):
        _create(store)
        store.apply_signed(INSCRIPTION, BORROWER, LENDER, 5_000, "partial", 1_100)
        assert not store.update_inscription_status(INSCRIPTION, "cancelled", 1_200)

    def test_unknown_id_is_noop(self, store):
        assert not store.update_inscription_status(INSCRIPTION, "repaid", 1_200)
        assert store.get_inscription(INSCRIPTION) is None

    def test_unknown_target_rejected(self, store):
        with pytest.raises(ValueError):
            store.update_inscription_status(INSCRIPTION, "open", 1_200)

    def test_find_liquidatable(self, store):
        _create(store, duration=100)
        store.apply_signed(INSCRIPTION, BORROWER, LENDER, 10_000, "filled", 1_000)
        assert store.find_liquidatable(now=1_100) == []
        candidates = store.find_liquidatable(now=1_101)
        assert [c["id"] for c in candidates] == [INSCRIPTION]

    def test_partial_is_not_liquidatable(self, store):
        _create(store, duration=100)
        store.apply_signed(INSCRIPTION, BORROWER, LENDER, 5_000, "partial", 1_000)
        assert store.find_liquidatable(now=5_000) == []

    def test_expire_open_inscriptions(self, store):
        _create(store, deadline=2_000)
        assert store.expire_open_inscriptions(now=1_999) == 0
        assert store.expire_open_inscriptions(now=2_001) == 1
        assert store.get_inscription(INSCRIPTION)["status"] == "expired"

    def test_list_by_address(self, store):
        _create(store)
        other = "0x" + "0" * 63 + "2"
        _create(store, inscription_id=other)
        store.apply_signed(other, BORROWER, LENDER, 10_000, "filled", 1_100)

        assert [r["id"] for r in store.list_inscriptions(address=LENDER)] == [other]
        assert len(store.list_inscriptions(address=CREATOR)) == 2
        assert [r["id"] for r in store.list_inscriptions(status="open")] == [INSCRIPTION]


class TestEventLog:
    """Event log dedup and share balances."""

    def test_duplicate_event_ignored(self, store):
        assert store.insert_event(INSCRIPTION, "repaid", TX, 10, 1_000, {"repayer": "0x1"})
        assert not store.insert_event(INSCRIPTION, "repaid", TX, 10, 1_000, {"repayer": "0x1"})
        events = store.get_events(INSCRIPTION)
        assert len(events) == 1
        assert events[0]["data"] == {"repayer": "0x1"}

    def test_assets_insert_if_absent(self, store):
        assert store.insert_asset(INSCRIPTION, "debt", 0, pad_address("0x10"), "ERC20", "1000")
        assert not store.insert_asset(INSCRIPTION, "debt", 0, pad_address("0x10"), "ERC20", "9")
        assets = store.get_assets(INSCRIPTION)
        assert len(assets) == 1
        assert assets[0]["value"] == "1000"

    def test_share_transfer_moves_balances_once(self, store):
        zero = "0x" + "0" * 64
        assert store.record_share_transfer(INSCRIPTION, zero, LENDER, 500, TX, 10, 1_000)
        assert not store.record_share_transfer(INSCRIPTION, zero, LENDER, 500, TX, 10, 1_000)

        second_tx = "0x" + "b" * 64
        store.record_share_transfer(INSCRIPTION, LENDER, BORROWER, 200, second_tx, 11, 1_010)

        assert store.get_share_balances(LENDER)[0]["balance"] == "300"
        assert store.get_share_balances(BORROWER)[0]["balance"] == "200"
        assert store.get_share_balances(zero) == []

    def test_locker_upsert(self, store):
        store.upsert_locker(INSCRIPTION, pad_address("0x77"), 1_000)
        store.upsert_locker(INSCRIPTION, pad_address("0x78"), 1_001)
        assert store.get_locker(INSCRIPTION)["locker_address"] == pad_address("0x78")


class TestOrders:
    """Order and offer lifecycle."""

    def test_create_and_get(self, store):
        order = _order(store)
        assert order.status == "pending"
        assert order.borrower == BORROWER
        assert order.borrower_signature == ["0x1", "0x2"]
        assert store.get_order("order-1").order_data["duration"] == "100"

    def test_duplicate_id_rejected(self, store):
        _order(store)
        with pytest.raises(IntegrityError):
            _order(store)

    def test_offer_claims_pending_order(self, store):
        _order(store)
        offer = store.create_offer("offer-1", "order-1", LENDER, 10_000, ["0x3", "0x4"], "0")
        assert offer.status == "pending"
        assert store.get_order("order-1").status == "matched"

    def test_second_offer_rejected(self, store):
        _order(store)
        store.create_offer("offer-1", "order-1", LENDER, 10_000, ["0x3", "0x4"], "0")
        with pytest.raises(OrderNotPendingError):
            store.create_offer("offer-2", "order-1", LENDER, 5_000, ["0x5", "0x6"], "0")
        assert store.get_offer("offer-2") is None

    def test_offer_on_missing_order_rejected(self, store):
        with pytest.raises(OrderNotPendingError):
            store.create_offer("offer-1", "missing", LENDER, 10_000, ["0x3"], "0")

    def test_guarded_status_update(self, store):
        _order(store)
        assert not store.update_order_status("order-1", "settled", from_status="matched")
        assert store.update_order_status("order-1", "cancelled", from_status="pending")
        assert store.get_order("order-1").status == "cancelled"

    def test_expire_orders_only_touches_pending(self, store):
        _order(store, "order-1", deadline=2_000)
        _order(store, "order-2", deadline=2_000)
        store.create_offer("offer-2", "order-2", LENDER, 10_000, ["0x3"], "0")

        assert store.expire_orders(now=2_001) == 1
        assert store.get_order("order-1").status == "expired"
        assert store.get_order("order-2").status == "matched"

    def test_matched_orders(self, store):
        _order(store, "order-1", deadline=5_000)
        _order(store, "order-2", deadline=5_000, created_at=1_001)
        store.create_offer("offer-1", "order-1", LENDER, 10_000, ["0x3"], "0")

        pairs = store.get_matched_orders(now=1_500)
        assert len(pairs) == 1
        assert pairs[0].order.id == "order-1"
        assert pairs[0].offer.id == "offer-1"
        assert store.get_matched_orders(now=5_000) == []

    def test_list_and_count(self, store):
        _order(store, "order-1")
        _order(store, "order-2", created_at=1_001)
        assert [o.id for o in store.list_orders()] == ["order-2", "order-1"]
        assert store.list_orders(address=LENDER) == []
        assert store.count_orders("pending") == 2

    def test_list_by_address_includes_lender_orders(self, store):
        _order(store, "order-1")
        _order(store, "order-2", created_at=1_001)
        store.create_offer("offer-1", "order-1", LENDER, 10_000, ["0x3"], "0")

        lent = store.list_orders(status="matched", address=LENDER)
        borrowed = store.list_orders(status=None, address=BORROWER)

        assert [o.id for o in lent] == ["order-1"]
        assert [o.id for o in borrowed] == ["order-2", "order-1"]
        assert store.list_orders(status="pending", address=LENDER) == []

    def test_settlement_claim_held_until_stale(self, store):
        _order(store)
        store.create_offer("offer-1", "order-1", LENDER, 10_000, ["0x3"], "0")

        assert store.claim_settlement("order-1", now=2_000, stale_after=420)
        assert not store.claim_settlement("order-1", now=2_301, stale_after=420)
        assert store.claim_settlement("order-1", now=2_420, stale_after=420)

    def test_released_claim_can_be_retaken(self, store):
        _order(store)
        store.create_offer("offer-1", "order-1", LENDER, 10_000, ["0x3"], "0")
        store.claim_settlement("order-1", now=2_000, stale_after=420)

        store.release_settlement_claim("order-1")

        assert store.claim_settlement("order-1", now=2_010, stale_after=420)

    def test_only_matched_orders_claimable(self, store):
        _order(store)
        assert not store.claim_settlement("order-1", now=2_000, stale_after=420)


class TestCursorAndLock:
    """Forward-only cursor and the bot lock."""

    def test_cursor_only_moves_forward(self, store):
        assert store.get_last_block() is None
        assert store.advance_last_block(10)
        assert not store.advance_last_block(10)
        assert not store.advance_last_block(5)
        assert store.advance_last_block(11)
        assert store.get_last_block() == 11

    def test_cursor_insert_race_is_not_an_error(self, store, monkeypatch):
        other = StelaStore(store.database_url)
        try:
            assert other.advance_last_block(10)
        finally:
            other.close()

        # the cursor row appeared between our read and our insert
        monkeypatch.setattr(store, "_get_meta", lambda conn, key: None)
        assert not store.advance_last_block(9)
        monkeypatch.undo()

        assert store.get_last_block() == 10

    def test_lock_excludes_second_holder(self, store):
        stamp = store.try_acquire_lock(now=1_000, ttl_seconds=300)
        assert stamp is not None
        assert store.get_lock() == 1_000
        assert store.try_acquire_lock(now=1_100, ttl_seconds=300) is None

    def test_stale_lock_is_taken_over(self, store):
        old = store.try_acquire_lock(now=1_000, ttl_seconds=300)
        new = store.try_acquire_lock(now=1_300, ttl_seconds=300)
        assert new is not None
        assert not store.release_lock(old)
        assert store.get_lock() == 1_300
        assert store.release_lock(new)
        assert store.get_lock() is None

    def test_release_then_reacquire(self, store):
        stamp = store.try_acquire_lock(now=1_000, ttl_seconds=300)
        store.release_lock(stamp)
        assert store.try_acquire_lock(now=1_001, ttl_seconds=300) is not None
