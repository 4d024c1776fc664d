"""
Tests for the off-chain order book endpoints.
"""

import time

import pytest

from stela_core.constants import DEFAULT_CHAIN_ID
from stela_core.felt import pad_address
from stela_core.orders import offer_message_hash
from stela_core.rpc import StarknetRPCError

VALID = 0x56414C4944
STELA = "0x" + "0" * 62 + "5e"
BORROWER = pad_address("0xb0")
LENDER = pad_address("0x1e")
OTHER = pad_address("0x0e")


def _order_request(**overrides):
    body = {
        "id": "order-1",
        "borrower": "0xb0",
        "order_data": {
            "borrower": "0xb0",
            "debtAssets": [{"asset_address": "0x10", "asset_type": "ERC20", "value": "1000"}],
            "interestAssets": [{"asset_address": "0x10", "asset_type": "ERC20", "value": "50"}],
            "collateralAssets": [
                {"asset_address": "0x20", "asset_type": "ERC721", "value": "1", "token_id": "7"}
            ],
            "duration": "86400",
            "deadline": str(int(time.time()) + 3600),
            "multiLender": False,
        },
        "borrower_signature": {"r": "0x1", "s": "0x2"},
        "nonce": "0",
        "deadline": int(time.time()) + 3600,
    }
    body.update(overrides)
    return body


def _offer_request(**overrides):
    body = {
        "id": "offer-1",
        "lender": "0x1e",
        "bps": 10_000,
        "lender_signature": ["0x3", "0x4"],
        "nonce": 0,
    }
    body.update(overrides)
    return body


class TestCreateOrder:
    """POST /orders without on-chain verification."""

    def test_creates_pending_order(self, client, store):
        response = client.post("/orders", json=_order_request())

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["id"] == "order-1"
        assert body["order_hash"].startswith("0x")

        order = store.get_order("order-1")
        assert order.status == "pending"
        assert order.borrower == BORROWER
        assert order.borrower_signature == ["0x1", "0x2"]
        assert order.order_data["order_hash"] == body["order_hash"]
        assert order.order_data["debt_count"] == 1

    def test_generates_id(self, client):
        body = _order_request()
        del body["id"]
        response = client.post("/orders", json=body)
        assert response.status_code == 200
        assert len(response.json()["id"]) == 36

    def test_order_data_as_json_string(self, client, store):
        response = client.post(
            "/orders",
            json=_order_request(order_data='{"borrower": "0xb0", "duration": "60", "deadline": "1"}'),
        )
        assert response.status_code == 200
        assert store.get_order("order-1").order_data["duration"] == "60"

    def test_client_order_hash_is_replaced(self, client, store):
        body = _order_request()
        body["order_data"]["orderHash"] = "0xdead"
        response = client.post("/orders", json=body)
        assert response.json()["order_hash"] != "0xdead"

    def test_past_deadline(self, client):
        response = client.post("/orders", json=_order_request(deadline=int(time.time()) - 1))
        assert response.status_code == 400

    def test_bad_signature_shape(self, client):
        response = client.post("/orders", json=_order_request(borrower_signature=[]))
        assert response.status_code == 400

    def test_borrower_mismatch(self, client):
        body = _order_request()
        body["order_data"]["borrower"] = "0xbad"
        assert client.post("/orders", json=body).status_code == 400

    def test_invalid_order_data(self, client):
        assert client.post("/orders", json=_order_request(order_data="{oops")).status_code == 400

    def test_duplicate_id(self, client):
        client.post("/orders", json=_order_request())
        assert client.post("/orders", json=_order_request()).status_code == 409

    def test_invalid_borrower_address(self, client):
        assert client.post("/orders", json=_order_request(borrower="bob")).status_code == 422


class TestOrderReads:
    """GET /orders and /orders/{id}."""

    def test_list_pending(self, client):
        client.post("/orders", json=_order_request())
        client.post("/orders", json=_order_request(id="order-2"))
        client.post("/orders/order-2/offer", json=_offer_request())

        pending = client.get("/orders").json()["data"]
        matched = client.get("/orders", params={"status": "matched"}).json()["data"]

        assert [o["id"] for o in pending] == ["order-1"]
        assert [o["id"] for o in matched] == ["order-2"]

    def test_list_by_borrower(self, client):
        client.post("/orders", json=_order_request())
        assert len(client.get("/orders", params={"address": "0xb0"}).json()["data"]) == 1
        assert client.get("/orders", params={"address": OTHER}).json()["data"] == []

    def test_get_with_offers(self, client):
        client.post("/orders", json=_order_request())
        client.post("/orders/order-1/offer", json=_offer_request())

        data = client.get("/orders/order-1").json()["data"]

        assert data["status"] == "matched"
        assert [o["id"] for o in data["offers"]] == ["offer-1"]

    def test_not_found(self, client):
        assert client.get("/orders/missing").status_code == 404


class TestCancelOrder:
    """DELETE /orders/{id}."""

    def test_borrower_cancels(self, client, store):
        client.post("/orders", json=_order_request())
        response = client.request("DELETE", "/orders/order-1", json={"borrower": "0xb0"})
        assert response.status_code == 200
        assert store.get_order("order-1").status == "cancelled"

    def test_other_caller_forbidden(self, client, store):
        client.post("/orders", json=_order_request())
        response = client.request("DELETE", "/orders/order-1", json={"borrower": OTHER})
        assert response.status_code == 403
        assert store.get_order("order-1").status == "pending"

    def test_missing_body_forbidden(self, client):
        client.post("/orders", json=_order_request())
        assert client.request("DELETE", "/orders/order-1").status_code == 403

    def test_matched_order_cannot_be_cancelled(self, client):
        client.post("/orders", json=_order_request())
        client.post("/orders/order-1/offer", json=_offer_request())
        response = client.request("DELETE", "/orders/order-1", json={"borrower": "0xb0"})
        assert response.status_code == 400

    def test_not_found(self, client):
        response = client.request("DELETE", "/orders/missing", json={"borrower": "0xb0"})
        assert response.status_code == 404


class TestCreateOffer:
    """POST /orders/{id}/offer."""

    def test_offer_matches_order(self, client, store):
        client.post("/orders", json=_order_request())
        response = client.post("/orders/order-1/offer", json=_offer_request())

        assert response.json() == {"ok": True, "id": "offer-1"}
        assert store.get_order("order-1").status == "matched"
        offer = store.get_offer("offer-1")
        assert offer.lender == LENDER
        assert offer.nonce == "0"

    def test_second_offer_rejected(self, client):
        client.post("/orders", json=_order_request())
        client.post("/orders/order-1/offer", json=_offer_request())
        response = client.post("/orders/order-1/offer", json=_offer_request(id="offer-2"))
        assert response.status_code == 400

    def test_bps_bounds(self, client):
        client.post("/orders", json=_order_request())
        assert client.post("/orders/order-1/offer", json=_offer_request(bps=0)).status_code == 422
        assert client.post("/orders/order-1/offer", json=_offer_request(bps=10_001)).status_code == 422

    def test_missing_order(self, client):
        assert client.post("/orders/missing/offer", json=_offer_request()).status_code == 404

    def test_expired_order(self, client, store):
        store.create_order("old", BORROWER, {"borrower": BORROWER}, ["0x1"], "0", deadline=1)
        response = client.post("/orders/old/offer", json=_offer_request())
        assert response.status_code == 400
        assert response.json()["detail"] == "Order deadline has passed"


class TestVerification:
    """Signature and nonce checks against the node."""

    @pytest.fixture(autouse=True)
    def verifying(self, settings, rpc):
        settings.verify_signatures = True
        rpc.set_call_result(BORROWER, "is_valid_signature", [VALID])
        rpc.set_call_result(LENDER, "is_valid_signature", [VALID])
        rpc.set_call_result(STELA, "nonces", [0])

    def test_valid_order(self, client):
        assert client.post("/orders", json=_order_request()).status_code == 200

    def test_signature_checked_against_order_hash(self, client, rpc):
        seen = []

        def account(calldata):
            seen.append(calldata)
            return [VALID]

        rpc.set_call_result(BORROWER, "is_valid_signature", account)
        response = client.post("/orders", json=_order_request())

        message_hash, sig_len, *signature = seen[0]
        assert message_hash == int(response.json()["order_hash"], 16)
        assert sig_len == 2
        assert signature == [1, 2]

    def test_rejected_signature(self, client, rpc, store):
        rpc.set_call_result(BORROWER, "is_valid_signature", [0])
        assert client.post("/orders", json=_order_request()).status_code == 401
        assert store.get_order("order-1") is None

    def test_signature_check_fails_closed(self, client, rpc):
        rpc.set_call_result(BORROWER, "is_valid_signature", StarknetRPCError(40, "no account"))
        assert client.post("/orders", json=_order_request()).status_code == 401

    def test_nonce_mismatch(self, client, rpc):
        rpc.set_call_result(STELA, "nonces", [3])
        response = client.post("/orders", json=_order_request())
        assert response.status_code == 409
        assert "on-chain 3" in response.json()["detail"]

    def test_nonce_check_fails_open(self, client, rpc):
        rpc.set_call_result(STELA, "nonces", StarknetRPCError(-1, "node down"))
        assert client.post("/orders", json=_order_request()).status_code == 200

    def test_offer_signature_binds_order_hash(self, client, rpc):
        order_hash = int(client.post("/orders", json=_order_request()).json()["order_hash"], 16)
        expected = offer_message_hash(order_hash, LENDER, 5_000, 0, DEFAULT_CHAIN_ID)
        rpc.set_call_result(
            LENDER,
            "is_valid_signature",
            lambda calldata: [VALID] if calldata[0] == expected else [0],
        )

        assert client.post("/orders/order-1/offer", json=_offer_request(bps=10_000)).status_code == 401
        assert client.post("/orders/order-1/offer", json=_offer_request(bps=5_000)).status_code == 200

    def test_cancel_with_signature(self, client, rpc, store):
        client.post("/orders", json=_order_request())
        rpc.set_call_result(BORROWER, "is_valid_signature", [0])

        response = client.request(
            "DELETE",
            "/orders/order-1",
            json={"borrower": "0xb0", "signature": ["0x5", "0x6"]},
        )

        assert response.status_code == 401
        assert store.get_order("order-1").status == "pending"
