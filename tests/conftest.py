import pytest

from core.models import CollectionKind
from core.notices import NoticeCollector
from core.reconciler import Reconciler
from core.scheduler import Scheduler
from core.session import Session
from core.storage import LocalCollectionStore

from fakes import FakeClock, FakeOracle, FakeRemote


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return Scheduler(clock=clock)


@pytest.fixture
def store(tmp_path):
    return LocalCollectionStore(db_path=str(tmp_path / "state.sqlite3"), scope="test")


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def notices():
    return NoticeCollector()


@pytest.fixture
def make_reconciler(session, oracle, store, remote, scheduler, notices):
    def _make(kind: CollectionKind = CollectionKind.CART, **kwargs) -> Reconciler:
        r = Reconciler(
            kind,
            session,
            kwargs.pop("oracle", oracle),
            store,
            kwargs.pop("remote", remote),
            scheduler=scheduler,
            on_notice=notices,
            **kwargs,
        )
        r.start()
        return r

    return _make


@pytest.fixture
def cart(make_reconciler):
    return make_reconciler(CollectionKind.CART)


@pytest.fixture
def wishlist(make_reconciler):
    return make_reconciler(CollectionKind.WISHLIST)
