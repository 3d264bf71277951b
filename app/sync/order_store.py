# app/sync/order_store.py
import logging
import threading
from typing import Callable, Protocol

from app.core.change_feed import ChangeEvent, ChangeFeed
from app.models.order import OrderStatus
from app.schemas.order import ConsolidatedLine, OrderCommentRead, OrderDraft, OrderRead
from app.services.order_service import CHANGE_COLUMNS
from app.services.transition_policy import Actor
from app.sync.filters import OrderFilter, apply_filter, consolidate

logger = logging.getLogger(__name__)

Snapshot = tuple[OrderRead, ...]
SnapshotListener = Callable[[Snapshot], None]


class OrderSource(Protocol):
    """
    Where the store reads from and writes through, bound to one actor.
    Every method may raise; writes raise WorkflowError subclasses.
    """

    def fetch_page(self, page: int, page_size: int) -> list[OrderRead]: ...

    def fetch_one(self, order_id: str) -> OrderRead | None: ...

    def create_order(self, draft: OrderDraft) -> str: ...

    def update_order(self, order_id: str, draft: OrderDraft) -> None: ...

    def update_order_status(
        self, order_id: str, target: OrderStatus, reason: str | None = None
    ) -> None: ...

    def confirm_delivery(self, order_id: str) -> None: ...

    def assign_delivery(self, order_id: str, delivery_user_id) -> None: ...

    def add_comment(self, order_id: str, content: str) -> OrderCommentRead: ...


class OrderStore:
    """
    In-memory order collection for one viewer, kept in sync two ways:

      - fetch/refetch: newest-first pages from the source
      - apply(event): live INSERT (fetch + prepend) and UPDATE
        (shallow merge of status / assigned_delivery_id / updated_at)

    Mutations wait for the source, then refetch page 0; nothing is
    changed locally before the write succeeds. Item, log and comment
    changes made by others show up only on the next full fetch.

    Listeners get an immutable snapshot after every change.
    """

    def __init__(self, source: OrderSource, page_size: int = 50, viewer: Actor | None = None):
        self.source = source
        self.page_size = page_size
        self.viewer = viewer
        self.has_more = True
        self.loading = False
        self.error: str | None = None
        self._orders: list[OrderRead] = []
        self._listeners: list[SnapshotListener] = []
        self._lock = threading.RLock()

    # ----- Subscription -----

    @property
    def orders(self) -> Snapshot:
        with self._lock:
            return tuple(self._orders)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def attach(self, feed: ChangeFeed) -> Callable[[], None]:
        """Follow a change feed; returns the unsubscribe callable."""
        return feed.subscribe(self.apply)

    def _emit(self) -> None:
        snapshot = self.orders
        for listener in list(self._listeners):
            listener(snapshot)

    # ----- Fetching -----

    def fetch(self, page: int = 0, append: bool = False) -> None:
        """
        Load one page. A read failure is kept in `error` and logged;
        the collection is left as it was.
        """
        self.loading = page == 0
        try:
            rows = self.source.fetch_page(page, self.page_size)
        except Exception as exc:
            logger.error("Error fetching orders (page %d): %s", page, exc)
            self.error = str(exc)
            return
        finally:
            self.loading = False

        with self._lock:
            self.has_more = len(rows) == self.page_size
            if append:
                known = {o.id for o in self._orders}
                self._orders.extend(o for o in rows if o.id not in known)
            else:
                self._orders = list(rows)
            self.error = None
        self._emit()

    def refetch(self) -> None:
        self.fetch(0)

    def load_more(self) -> None:
        if not self.has_more:
            return
        self.fetch(len(self._orders) // self.page_size, append=True)

    def can_load_more(self, order_filter: OrderFilter | None = None) -> bool:
        """Load-more only makes sense on the unfiltered window."""
        return self.has_more and not (order_filter and order_filter.active)

    # ----- Views -----

    def visible(self, order_filter: OrderFilter | None = None) -> list[OrderRead]:
        return apply_filter(self.orders, order_filter or OrderFilter(), self.viewer)

    def consolidated(self, order_filter: OrderFilter | None = None) -> list[ConsolidatedLine]:
        return consolidate(self.visible(order_filter))

    def get(self, order_id: str) -> OrderRead | None:
        with self._lock:
            return next((o for o in self._orders if o.id == order_id), None)

    # ----- Live reconciliation -----

    def apply(self, event: ChangeEvent) -> None:
        if event.table != "orders":
            return
        if event.type == "INSERT":
            self._apply_insert(event.new)
        elif event.type == "UPDATE":
            self._apply_update(event.new)

    def _apply_insert(self, new: dict) -> None:
        order_id = new.get("id")
        if not order_id or self.get(order_id) is not None:
            return
        order = self.source.fetch_one(order_id)
        if order is None:
            return
        with self._lock:
            if any(o.id == order.id for o in self._orders):
                return
            self._orders.insert(0, order)
        self._emit()

    def _apply_update(self, new: dict) -> None:
        order_id = new.get("id")
        changes = {k: new[k] for k in CHANGE_COLUMNS if k in new}
        if not order_id or not changes:
            return
        with self._lock:
            for index, order in enumerate(self._orders):
                if order.id == order_id:
                    merged = {**order.model_dump(), **changes}
                    self._orders[index] = OrderRead.model_validate(merged)
                    break
            else:
                return
        self._emit()

    # ----- Mutations (write, then refetch) -----

    def create_order(self, draft: OrderDraft) -> str:
        order_id = self.source.create_order(draft)
        self.refetch()
        return order_id

    def update_order(self, order_id: str, draft: OrderDraft) -> None:
        self.source.update_order(order_id, draft)
        self.refetch()

    def update_order_status(
        self,
        order_id: str,
        target: OrderStatus,
        reason: str | None = None,
    ) -> None:
        self.source.update_order_status(order_id, target, reason)
        self.refetch()

    def confirm_delivery(self, order_id: str) -> None:
        self.source.confirm_delivery(order_id)
        self.refetch()

    def assign_delivery(self, order_id: str, delivery_user_id) -> None:
        self.source.assign_delivery(order_id, delivery_user_id)
        self.refetch()

    def add_comment(self, order_id: str, content: str) -> None:
        self.source.add_comment(order_id, content)
        self.refetch()
