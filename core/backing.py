# core/backing.py
from typing import List, Protocol, Sequence

from .collection import Collection
from .logger import get_logger
from .models import CollectionKind, LineItem
from .storage import LocalCollectionStore
from .sync import BestEffortSync, Mutation

logger = get_logger(__name__)


class RemoteReader(Protocol):
    def fetch(self) -> List[LineItem]:
        ...


class CollectionBacking(Protocol):
    """Where a collection's changes go for the current session."""

    remote: bool

    def load(self) -> List[LineItem]:
        ...

    def commit(self, collection: Collection, mutations: Sequence[Mutation]) -> None:
        ...


class LocalBacking:
    """Guest mode: the whole collection is rewritten to local storage."""

    remote = False

    def __init__(self, store: LocalCollectionStore, kind: CollectionKind):
        self.store = store
        self.kind = kind

    def load(self) -> List[LineItem]:
        return self.store.load(self.kind).items()

    def commit(self, collection: Collection, mutations: Sequence[Mutation]) -> None:
        self.store.save(collection)

    def discard(self) -> None:
        self.store.discard(self.kind)


class RemoteBacking:
    """Authenticated mode: each mutation is mirrored, best-effort."""

    remote = True

    def __init__(self, reader: RemoteReader, sync: BestEffortSync):
        self.reader = reader
        self.sync = sync

    def load(self) -> List[LineItem]:
        # RemoteReadFailed propagates; callers decide what "no data" means.
        return self.reader.fetch()

    def commit(self, collection: Collection, mutations: Sequence[Mutation]) -> None:
        if mutations:
            self.sync.push_all(list(mutations))
