"""Tests for wiring and the one-shot runner."""

import requests

from core.collection import Collection
from core.models import CollectionKind
from core.notices import NoticeCollector, REMOVED_UNAVAILABLE
from core.session import Session

import storefront
from fakes import FakeOracle, make_item, make_product


def _build(store, scheduler, oracle=None, session=None):
    collector = NoticeCollector()
    sf = storefront.build_storefront(
        session=session or Session(),
        oracle=oracle or FakeOracle(),
        store=store,
        scheduler=scheduler,
        on_notice=collector,
    )
    return sf, collector


class TestStorefront:
    def test_build_wires_both_collections(self, store, scheduler):
        sf, _ = _build(store, scheduler)

        assert sf.cart.kind is CollectionKind.CART
        assert sf.wishlist.kind is CollectionKind.WISHLIST
        assert sf.cart.oracle is sf.wishlist.oracle
        assert sf.cart.remote.reader.url.endswith("/api/cart")
        assert sf.wishlist.remote.reader.url.endswith("/api/wishlist")

    def test_run_once_revalidates_guest_collections(self, store, scheduler):
        store.save(Collection(CollectionKind.CART, [make_item("X", 3), make_item("Y", 4)]))
        store.save(Collection(CollectionKind.WISHLIST, [make_item("X")]))
        oracle = FakeOracle({"X": (0, False), "Y": (1, True)})
        sf, collector = _build(store, scheduler, oracle=oracle)

        assert storefront.run_once(sf) == 0

        assert store.load(CollectionKind.CART).snapshot() == {"Y": 1}
        # wishlist keeps items it only tracks
        assert store.load(CollectionKind.WISHLIST).snapshot() == {"X": 1}
        assert collector.kinds().count(REMOVED_UNAVAILABLE) == 1
        assert len(collector.notices) == 2

    def test_shared_session_drives_both(self, store, scheduler):
        session = Session()
        oracle = FakeOracle({"A": (2, True)})
        sf, _ = _build(store, scheduler, oracle=oracle, session=session)
        sf.start()
        sf.cart.add(make_product("A"))
        sf.wishlist.add(make_product("B"))

        # no backend reachable at the default URL in tests; both must stay usable
        sf.cart.remote.reader.session.request = _unreachable
        sf.wishlist.remote.reader.session.request = _unreachable
        sf.cart.remote.reader.attempts = 1
        sf.wishlist.remote.reader.attempts = 1

        session.login("u1", "tok")

        assert sf.cart.collection.snapshot() == {"A": 1}
        assert sf.wishlist.collection.snapshot() == {"B": 1}
        assert sf.cart.backing is sf.cart.remote
        assert len(store.load(CollectionKind.CART)) == 0


def _unreachable(*args, **kwargs):
    raise requests.ConnectionError("unreachable")
