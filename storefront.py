import os
import random
import time
from dataclasses import dataclass
from typing import Dict, Optional

from clients import RemoteCollectionClient, StockOracle
from core.logger import get_logger
from core.models import CollectionKind
from core.notices import Notice, NoticeHandler
from core.reconciler import Reconciler
from core.scheduler import Scheduler
from core.session import Session
from core.storage import LocalCollectionStore

logger = get_logger(__name__)

REVALIDATE_SECONDS = int(os.getenv("REVALIDATE_SECONDS", "30"))
MODE = os.getenv("MODE", "daemon").lower()  # "daemon" or "once"
TICK_SECONDS = float(os.getenv("TICK_SECONDS", "1"))


@dataclass
class Storefront:
    session: Session
    oracle: StockOracle
    scheduler: Scheduler
    cart: Reconciler
    wishlist: Reconciler

    def reconcilers(self) -> Dict[str, Reconciler]:
        return {"cart": self.cart, "wishlist": self.wishlist}

    def start(self) -> None:
        for r in self.reconcilers().values():
            r.start()


def log_notice(notice: Notice) -> None:
    logger.info("Notice for %s (%s): %s", notice.product_id, notice.variant, notice.message)


def build_storefront(
    session: Optional[Session] = None,
    oracle: Optional[StockOracle] = None,
    store: Optional[LocalCollectionStore] = None,
    scheduler: Optional[Scheduler] = None,
    on_notice: Optional[NoticeHandler] = log_notice,
) -> Storefront:
    """Wire one session's cart and wishlist. Nothing talks to the network yet."""
    session = session or Session(
        user_id=os.getenv("STOREFRONT_USER") or None,
        token=os.getenv("STOREFRONT_TOKEN") or None,
    )
    oracle = oracle or StockOracle()
    store = store or LocalCollectionStore()
    scheduler = scheduler or Scheduler()

    def token() -> Optional[str]:
        return session.token

    def build(kind: CollectionKind) -> Reconciler:
        return Reconciler(
            kind,
            session,
            oracle,
            store,
            RemoteCollectionClient(kind, token),
            scheduler=scheduler,
            on_notice=on_notice,
        )

    return Storefront(
        session=session,
        oracle=oracle,
        scheduler=scheduler,
        cart=build(CollectionKind.CART),
        wishlist=build(CollectionKind.WISHLIST),
    )


def revalidate_all(storefront: Storefront) -> int:
    total = 0
    for name, r in storefront.reconcilers().items():
        try:
            total += len(r.revalidate())
        except Exception as e:
            logger.exception("Revalidation of %s failed: %s", name, e)
    return total


def run_once(storefront: Optional[Storefront] = None) -> int:
    storefront = storefront or build_storefront()
    storefront.start()
    corrections = revalidate_all(storefront)
    storefront.scheduler.run_due()
    logger.info("Revalidation finished with %d notices.", corrections)
    return 0


def run_daemon(storefront: Optional[Storefront] = None) -> None:
    storefront = storefront or build_storefront()
    logger.info("Starting daemon; revalidate every %d seconds.", REVALIDATE_SECONDS)
    storefront.start()
    last_run = 0.0

    while True:
        try:
            storefront.scheduler.run_due()
            now = time.monotonic()
            if now - last_run >= REVALIDATE_SECONDS:
                revalidate_all(storefront)
                last_run = time.monotonic()
        except Exception as e:
            logger.exception("Unhandled error in daemon loop: %s", e)

        # small jitter keeps many clients from hitting the stock endpoint together
        time.sleep(TICK_SECONDS + random.uniform(0, 0.1 * TICK_SECONDS))


if __name__ == "__main__":
    try:
        if MODE == "once":
            raise SystemExit(run_once())
        else:
            run_daemon()
    except KeyboardInterrupt:
        raise SystemExit(0)
    except Exception as e:
        logger.exception("Fatal storefront error: %s", e)
        raise SystemExit(2)
