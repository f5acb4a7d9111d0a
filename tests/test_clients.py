"""Tests for the stock service and backend collection clients."""

from unittest.mock import MagicMock

import pytest
import requests

from clients.remote import RemoteCollectionClient
from clients.stock import StockOracle
from core.errors import RemoteReadFailed, RemoteWriteFailed
from core.models import CollectionKind

from fakes import FakeClock

BASE = "http://api.test"


def _response(payload=None, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(str(status), response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


def _session(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    return session


@pytest.fixture
def clock():
    return FakeClock()


def _oracle(session, clock, **kwargs):
    kwargs.setdefault("attempts", 1)
    return StockOracle(base_url=BASE, ttl=30, session=session, clock=clock, **kwargs)


class TestStockOracle:
    def test_get_stock_fetches_and_caches(self, clock):
        session = _session(_response({"product": {"stock": 4, "inStock": True}}))
        oracle = _oracle(session, clock)

        first = oracle.get_stock("p1")
        clock.advance(29)
        second = oracle.get_stock("p1")

        assert first.stock == 4 and first.in_stock is True
        assert second is first
        session.request.assert_called_once()
        method, url = session.request.call_args.args
        assert (method, url) == ("GET", f"{BASE}/api/products/p1")

    def test_expired_entry_refetched(self, clock):
        session = _session(
            _response({"product": {"stock": 4, "inStock": True}}),
            _response({"product": {"stock": 1, "inStock": True}}),
        )
        oracle = _oracle(session, clock)

        oracle.get_stock("p1")
        clock.advance(30)

        assert oracle.get_stock("p1").stock == 1
        assert session.request.call_count == 2

    def test_accepts_bare_payload(self, clock):
        oracle = _oracle(_session(_response({"stock": 0, "inStock": False})), clock)

        snap = oracle.get_stock("p1")

        assert snap.stock == 0
        assert snap.in_stock is False

    def test_failure_is_unavailable_not_error(self, clock):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("down")
        oracle = _oracle(session, clock)

        assert oracle.get_stock("p1") is None
        assert oracle.cached("p1") is None

    def test_client_error_not_retried(self, clock):
        session = _session(_response({"error": "nope"}, status=404))
        oracle = _oracle(session, clock, attempts=3)

        assert oracle.get_stock("p1") is None
        assert session.request.call_count == 1

    def test_transient_error_retried(self, clock):
        session = _session(
            _response(status=503),
            _response({"product": {"stock": 2, "inStock": True}}),
        )
        oracle = _oracle(session, clock, attempts=2)

        assert oracle.get_stock("p1").stock == 2
        assert session.request.call_count == 2

    def test_batch_posts_ids_and_fills_cache(self, clock):
        session = _session(_response({"stockInfo": {
            "a": {"stock": 3, "inStock": True},
            "b": {"stock": 0, "inStock": False},
        }}))
        oracle = _oracle(session, clock)

        result = oracle.get_stock_batch(["a", "b", "c", "a"])

        assert set(result) == {"a", "b"}
        assert result["b"].in_stock is False
        kwargs = session.request.call_args.kwargs
        assert session.request.call_args.args == ("POST", f"{BASE}/api/products/stock")
        assert kwargs["json"] == {"productIds": ["a", "b", "c"]}
        # served from cache, no second request
        assert oracle.get_stock("a").stock == 3
        assert session.request.call_count == 1

    def test_batch_failure_returns_empty(self, clock):
        session = _session(_response(status=500))
        oracle = _oracle(session, clock)

        assert oracle.get_stock_batch(["a"]) == {}

    def test_batch_malformed_response_returns_empty(self, clock):
        oracle = _oracle(_session(_response({"unexpected": True})), clock)

        assert oracle.get_stock_batch(["a"]) == {}

    def test_batch_without_ids_skips_request(self, clock):
        session = MagicMock()
        oracle = _oracle(session, clock)

        assert oracle.get_stock_batch([]) == {}
        session.request.assert_not_called()

    def test_invalidate_one_and_all(self, clock):
        oracle = _oracle(MagicMock(), clock)
        oracle.update_local("a", 2)
        oracle.update_local("b", 2)

        oracle.invalidate("a")
        assert oracle.cached("a") is None
        assert oracle.cached("b") is not None

        oracle.invalidate()
        assert oracle.cached("b") is None

    def test_update_local(self, clock):
        oracle = _oracle(MagicMock(), clock)

        snap = oracle.update_local("a", -3)

        assert snap.stock == 0
        assert snap.in_stock is False
        assert oracle.cached("a") == snap


class TestRemoteCollectionClient:
    def _client(self, session, token="tok"):
        return RemoteCollectionClient(
            CollectionKind.CART, lambda: token, base_url=BASE, session=session, attempts=1,
        )

    def test_fetch_sends_bearer_and_parses_items(self):
        session = _session(_response({"items": [
            {"productId": "a", "name": "A", "price": 3.5, "quantity": 2},
            {"productId": "b", "name": "B", "price": 1, "quantity": 1, "stock": 4,
             "inStock": True},
        ]}))
        client = self._client(session)

        items = client.fetch()

        assert [(it.product_id, it.quantity) for it in items] == [("a", 2), ("b", 1)]
        assert items[0].cached_stock is None
        assert items[1].cached_stock == 4
        assert session.request.call_args.args == ("GET", f"{BASE}/api/cart")
        assert session.request.call_args.kwargs["headers"] == {"Authorization": "Bearer tok"}

    def test_fetch_failure_wrapped(self):
        session = MagicMock()
        session.request.side_effect = requests.Timeout("slow")

        with pytest.raises(RemoteReadFailed):
            self._client(session).fetch()

    def test_fetch_without_token_fails(self):
        session = MagicMock()

        with pytest.raises(RemoteReadFailed):
            self._client(session, token=None).fetch()
        session.request.assert_not_called()

    def test_post_body(self):
        session = _session(_response({"items": []}))

        self._client(session).post("updateQuantity", {"productId": "a", "quantity": 2})

        assert session.request.call_args.kwargs["json"] == {
            "action": "updateQuantity",
            "item": {"productId": "a", "quantity": 2},
        }

    def test_clear_has_no_item(self):
        session = _session(_response({"items": []}))

        self._client(session).post("clear")

        assert session.request.call_args.kwargs["json"] == {"action": "clear"}

    def test_post_failure_wrapped(self):
        session = _session(_response(status=401))

        with pytest.raises(RemoteWriteFailed):
            self._client(session).post("remove", {"productId": "a"})

    def test_unknown_action_rejected(self):
        with pytest.raises(ValueError):
            self._client(MagicMock()).post("explode")

    def test_post_success_does_not_need_items(self):
        session = _session(_response({"ok": True}))

        assert self._client(session).post("add", {"productId": "a", "quantity": 1}) is None

    def test_post_not_retried_by_default(self):
        session = _session(_response(status=503), _response({"items": []}))
        client = RemoteCollectionClient(
            CollectionKind.CART, lambda: "tok", base_url=BASE, session=session, attempts=3,
        )

        with pytest.raises(RemoteWriteFailed):
            client.post("add", {"productId": "a", "quantity": 1})
        assert session.request.call_count == 1
