import uuid
from datetime import date, datetime, timedelta

from sqlmodel import Session

from app.core.change_feed import ChangeEvent
from app.database import engine
from app.models.order import OrderStatus
from app.schemas.order import OrderItemRead, OrderRead
from app.sync.filters import OrderFilter
from app.sync.order_store import OrderStore
from app.sync.sources import ServiceOrderSource

CITY = uuid.uuid4()
SELLER = uuid.uuid4()
PRODUCT = uuid.uuid4()
POUND = uuid.uuid4()
START = datetime(2025, 3, 1, 9, 0)


def make_order(n, status=OrderStatus.SENT, qty=1, **fields):
    data = dict(
        id=f"ORD-{n:03d}",
        user_id=SELLER,
        user_name="Sofia",
        client_name=f"Cliente {n}",
        order_type="Venta",
        destination_name="Tienda Norte",
        city_id=CITY,
        city_name="Norte",
        status=status,
        created_at=START + timedelta(hours=n),
        updated_at=START + timedelta(hours=n),
        items=[
            OrderItemRead(
                product_id=PRODUCT,
                product_name="Vainilla",
                presentation_id=POUND,
                presentation_name="Libra",
                quantity=qty,
            )
        ],
    )
    data.update(fields)
    return OrderRead(**data)


class FakeSource:
    """Newest-first list; `inserted` simulates rows other writers add."""

    def __init__(self, orders):
        self.orders = sorted(orders, key=lambda o: o.created_at, reverse=True)
        self.fail = False
        self.calls = []

    def fetch_page(self, page, page_size):
        if self.fail:
            raise RuntimeError("network down")
        return self.orders[page * page_size : (page + 1) * page_size]

    def fetch_one(self, order_id):
        return next((o for o in self.orders if o.id == order_id), None)

    def update_order_status(self, order_id, target, reason=None):
        self.calls.append(("status", order_id, target))
        self.orders = [
            o.model_copy(update={"status": target}) if o.id == order_id else o
            for o in self.orders
        ]


def test_pagination_never_duplicates():
    source = FakeSource([make_order(n) for n in range(1, 6)])
    store = OrderStore(source, page_size=2)
    store.fetch(0)

    # A new order lands between page loads and shifts the offsets.
    source.orders.insert(0, make_order(6))
    store.load_more()
    store.load_more()

    ids = [o.id for o in store.orders]
    assert len(ids) == len(set(ids))
    assert ids[:3] == ["ORD-005", "ORD-004", "ORD-003"]


def test_has_more_follows_page_fill():
    store = OrderStore(FakeSource([make_order(n) for n in range(1, 4)]), page_size=3)
    store.fetch(0)
    assert store.has_more
    store.load_more()
    assert not store.has_more
    assert len(store.orders) == 3


def test_read_failure_keeps_collection_and_sets_error():
    source = FakeSource([make_order(1)])
    store = OrderStore(source, page_size=10)
    store.fetch(0)
    source.fail = True
    store.refetch()
    assert [o.id for o in store.orders] == ["ORD-001"]
    assert store.error == "network down"
    assert not store.loading


def test_insert_event_prepends_once():
    source = FakeSource([make_order(1)])
    store = OrderStore(source, page_size=10)
    store.fetch(0)
    snapshots = []
    store.subscribe(snapshots.append)

    source.orders.insert(0, make_order(2))
    event = ChangeEvent(type="INSERT", new={"id": "ORD-002"})
    store.apply(event)
    store.apply(event)

    assert [o.id for o in store.orders] == ["ORD-002", "ORD-001"]
    assert len(snapshots) == 1


def test_update_event_merges_header_columns_only():
    store = OrderStore(FakeSource([make_order(1), make_order(2)]), page_size=10)
    store.fetch(0)
    driver = uuid.uuid4()

    store.apply(
        ChangeEvent(
            type="UPDATE",
            new={
                "id": "ORD-001",
                "status": OrderStatus.DISPATCH.value,
                "assigned_delivery_id": str(driver),
                "client_name": "Renamed elsewhere",
            },
            old={"id": "ORD-001"},
        )
    )

    updated = store.get("ORD-001")
    assert updated.status == OrderStatus.DISPATCH
    assert updated.assigned_delivery_id == driver
    assert updated.client_name == "Cliente 1"
    assert [o.id for o in store.orders] == ["ORD-002", "ORD-001"]


def test_update_for_unknown_order_is_ignored():
    store = OrderStore(FakeSource([make_order(1)]), page_size=10)
    store.fetch(0)
    store.apply(ChangeEvent(type="UPDATE", new={"id": "ORD-404", "status": "Entregado"}))
    assert [o.id for o in store.orders] == ["ORD-001"]


def test_mutation_refetches():
    source = FakeSource([make_order(1)])
    store = OrderStore(source, page_size=10)
    store.fetch(0)
    store.update_order_status("ORD-001", OrderStatus.REVIEW)
    assert source.calls == [("status", "ORD-001", OrderStatus.REVIEW)]
    assert store.get("ORD-001").status == OrderStatus.REVIEW


def test_filters_narrow_the_loaded_window():
    orders = [
        make_order(1, client_name="Polar"),
        make_order(2, status=OrderStatus.CANCELLED),
        make_order(3, order_type="Muestra"),
        make_order(4, destination_name="Playa"),
    ]
    store = OrderStore(FakeSource(orders), page_size=4)
    store.fetch(0)

    assert [o.id for o in store.visible()] == ["ORD-004", "ORD-003", "ORD-002", "ORD-001"]
    assert [o.id for o in store.visible(OrderFilter(search="polar"))] == ["ORD-001"]
    assert [o.id for o in store.visible(OrderFilter(search="ord-003"))] == ["ORD-003"]
    assert [o.id for o in store.visible(OrderFilter(status=OrderStatus.CANCELLED))] == ["ORD-002"]
    assert [o.id for o in store.visible(OrderFilter(order_type="Muestra"))] == ["ORD-003"]
    assert [o.id for o in store.visible(OrderFilter(city="Playa"))] == ["ORD-004"]
    assert len(store.visible(OrderFilter(city=str(CITY)))) == 4

    window = OrderFilter(date_start=date(2025, 3, 1), date_end=date(2025, 3, 1))
    assert len(store.visible(window)) == 4
    assert store.visible(OrderFilter(date_start=date(2025, 3, 2))) == []


def test_load_more_disabled_while_filtering():
    store = OrderStore(FakeSource([make_order(n) for n in range(1, 3)]), page_size=2)
    store.fetch(0)
    assert store.can_load_more()
    assert store.can_load_more(OrderFilter())
    assert not store.can_load_more(OrderFilter(search="x"))


def test_consolidated_counts_pending_orders_only():
    orders = [
        make_order(1, qty=2),
        make_order(2, qty=3, status=OrderStatus.PRODUCTION),
        make_order(3, qty=10, status=OrderStatus.CANCELLED),
        make_order(4, qty=10, status=OrderStatus.DELIVERED),
        make_order(5, qty=10, status=OrderStatus.DRAFT),
    ]
    store = OrderStore(FakeSource(orders), page_size=10)
    store.fetch(0)
    (line,) = store.consolidated()
    assert line.product_name == "Vainilla"
    assert line.total == 5


def test_store_follows_the_service(service, session, world, make_draft, feed):
    admin = service.actor_for(session, world.admin)
    store = OrderStore(
        ServiceOrderSource(service, lambda: Session(engine), admin),
        page_size=10,
        viewer=admin,
    )
    store.attach(feed)
    store.fetch(0)
    assert store.orders == ()

    seller = service.actor_for(session, world.seller)
    order_id = service.create_order(session, seller, make_draft((world.pound, 4)))
    assert [o.id for o in store.orders] == [order_id]

    service.update_status(session, admin, order_id, OrderStatus.REVIEW)
    assert store.get(order_id).status == OrderStatus.REVIEW

    store.add_comment(order_id, "Revisado")
    assert store.get(order_id).comments[0].content == "Revisado"
