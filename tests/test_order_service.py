import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from app.core.exceptions import (
    DenialKind,
    DriverUnavailable,
    EditNotAllowed,
    PersistenceFailure,
    ReasonRequired,
    TransitionDenied,
)
from app.models.order import Order, OrderItem, OrderLog, OrderStatus
from app.services.order_service import normalize_items


def _logs(session, order_id):
    return session.exec(select(OrderLog).where(OrderLog.order_id == order_id)).all()


def _create(service, session, world, make_draft, **header):
    seller = service.actor_for(session, world.seller)
    return service.create_order(session, seller, make_draft((world.pound, 2), **header))


def test_create_assigns_sequential_ids(service, session, world, make_draft):
    first = _create(service, session, world, make_draft)
    second = _create(service, session, world, make_draft)
    assert (first, second) == ("ORD-001", "ORD-002")


def test_next_id_follows_the_numeric_maximum(service, session, world, make_draft):
    _create(service, session, world, make_draft)
    legacy = session.get(Order, "ORD-001")
    legacy.id = "ORD-999"
    session.add(legacy)
    session.commit()
    assert _create(service, session, world, make_draft) == "ORD-1000"
    assert _create(service, session, world, make_draft) == "ORD-1001"


def test_next_id_skips_non_numeric_ids(service, session, world, make_draft):
    _create(service, session, world, make_draft)
    _create(service, session, world, make_draft)
    imported = session.get(Order, "ORD-001")
    imported.id = "ORD-MIGRATED-1"
    session.add(imported)
    session.commit()
    assert _create(service, session, world, make_draft) == "ORD-003"
    assert _create(service, session, world, make_draft) == "ORD-004"


def test_create_writes_header_items_and_log(service, session, world, make_draft, feed):
    events = []
    feed.subscribe(events.append)
    order_id = _create(service, session, world, make_draft)

    admin = service.actor_for(session, world.admin)
    order = service.get_order(session, admin, order_id)
    assert order.status == OrderStatus.SENT
    assert order.user_name == "Sofia"
    assert [(i.presentation_name, i.quantity) for i in order.items] == [("Libra", 2)]
    assert [log.message for log in order.logs] == ["Pedido creado"]

    assert [e.type for e in events] == ["INSERT"]
    assert events[0].new["id"] == order_id


def test_create_draft_may_be_empty(service, session, world, make_draft):
    seller = service.actor_for(session, world.seller)
    order_id = service.create_order(session, seller, make_draft(status=OrderStatus.DRAFT))
    assert session.get(Order, order_id).status == OrderStatus.DRAFT.value

    with pytest.raises(HTTPException) as exc:
        service.create_order(session, seller, make_draft())
    assert exc.value.status_code == 400


def test_items_are_normalized(make_draft, world):
    draft = make_draft((world.pound, 2), (world.gallon, 0), (world.pound, 3), (world.gallon, -1))
    assert [(i.presentation_name, i.quantity) for i in normalize_items(draft.items)] == [
        ("Libra", 5)
    ]


def test_edit_replaces_items_wholesale(service, session, world, make_draft):
    seller = service.actor_for(session, world.seller)
    order_id = service.create_order(
        session,
        seller,
        make_draft((world.pound, 1), (world.gallon, 4), status=OrderStatus.DRAFT),
    )

    updated = service.update_order(
        session, seller, order_id, make_draft((world.gallon, 7), client_name="Polar 2")
    )

    rows = session.exec(select(OrderItem).where(OrderItem.order_id == order_id)).all()
    assert [(r.presentation_name, r.quantity) for r in rows] == [("Galón", 7)]
    assert updated.client_name == "Polar 2"
    assert [log.message for log in updated.logs] == ["Pedido creado", "Pedido actualizado"]


def test_edit_refused_outside_draft_and_review(service, session, world, make_draft):
    order_id = _create(service, session, world, make_draft)
    seller = service.actor_for(session, world.seller)
    with pytest.raises(EditNotAllowed):
        service.update_order(session, seller, order_id, make_draft((world.gallon, 1)))


def test_scenarios_a_to_d_through_the_service(service, session, world, make_draft):
    order_id = _create(service, session, world, make_draft)
    admin = service.actor_for(session, world.admin)
    service.update_status(session, admin, order_id, OrderStatus.REVIEW)

    # A
    with pytest.raises(TransitionDenied) as exc:
        service.update_status(session, admin, order_id, OrderStatus.DISPATCH)
    assert exc.value.kind == DenialKind.MISSING_DRIVER
    assert session.get(Order, order_id).status == OrderStatus.REVIEW.value

    # B
    service.assign_delivery(session, admin, order_id, world.juan.id)
    before = len(_logs(session, order_id))
    dispatched = service.update_status(session, admin, order_id, OrderStatus.DISPATCH)
    assert dispatched.status == OrderStatus.DISPATCH
    assert len(_logs(session, order_id)) == before + 1

    # C
    warehouse = service.actor_for(session, world.norte_warehouse)
    with pytest.raises(TransitionDenied) as exc:
        service.update_status(session, warehouse, order_id, OrderStatus.PRODUCTION)
    assert exc.value.kind == DenialKind.IN_TRANSIT_LOCK

    # D
    juan = service.actor_for(session, world.juan)
    delivered = service.confirm_delivery(session, juan, order_id)
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.logs[-1].message == "Estado cambiado a Entregado"
    assert delivered.logs[-1].user_name == "Juan"


def test_same_status_writes_nothing(service, session, world, make_draft, feed):
    order_id = _create(service, session, world, make_draft)
    admin = service.actor_for(session, world.admin)
    events = []
    feed.subscribe(events.append)

    service.update_status(session, admin, order_id, OrderStatus.SENT)

    assert len(_logs(session, order_id)) == 1
    assert events == []


def test_missing_reason_appends_no_log(service, session, world, make_draft):
    order_id = _create(service, session, world, make_draft)
    admin = service.actor_for(session, world.admin)
    with pytest.raises(ReasonRequired):
        service.update_status(session, admin, order_id, OrderStatus.CANCELLED, "  ")
    assert len(_logs(session, order_id)) == 1

    rejected = service.update_status(
        session, admin, order_id, OrderStatus.REJECTED, "Sin cupo de crédito"
    )
    assert rejected.logs[-1].message == "Rechazado: Sin cupo de crédito"


def test_status_update_publishes_old_and_new(service, session, world, make_draft, feed):
    order_id = _create(service, session, world, make_draft)
    events = []
    feed.subscribe(events.append)
    service.update_status(
        session, service.actor_for(session, world.admin), order_id, OrderStatus.REVIEW
    )
    (event,) = events
    assert event.type == "UPDATE"
    assert event.old["status"] == OrderStatus.SENT.value
    assert event.new["status"] == OrderStatus.REVIEW.value


def test_scenario_e_assignment_unchanged(service, session, world, make_draft):
    order_id = _create(service, session, world, make_draft)
    admin = service.actor_for(session, world.admin)
    with pytest.raises(DriverUnavailable):
        service.assign_delivery(session, admin, order_id, world.maria.id)
    assert session.get(Order, order_id).assigned_delivery_id is None

    assigned = service.assign_delivery(session, admin, order_id, world.juan.id)
    assert assigned.assigned_delivery_id == world.juan.id
    assert assigned.logs[-1].message == "Repartidor asignado"


def test_assigning_a_non_driver_is_rejected(service, session, world, make_draft):
    order_id = _create(service, session, world, make_draft)
    admin = service.actor_for(session, world.admin)
    with pytest.raises(HTTPException) as exc:
        service.assign_delivery(session, admin, order_id, world.seller.id)
    assert exc.value.status_code == 400


def test_visibility_scopes_listing(service, session, world, make_draft):
    norte_order = _create(service, session, world, make_draft)
    pablo = service.actor_for(session, world.other_seller)
    central_order = service.create_order(
        session,
        pablo,
        make_draft((world.pound, 1), city_id=world.central.id, city_name="Central"),
    )

    def ids(user):
        page = service.list_orders(session, service.actor_for(session, user), 0, 10)
        return {o.id for o in page.orders}

    assert ids(world.admin) == {norte_order, central_order}
    assert ids(world.central_warehouse) == {norte_order, central_order}
    assert ids(world.norte_warehouse) == {norte_order}
    assert ids(world.seller) == {norte_order}
    assert ids(world.juan) == set()

    with pytest.raises(HTTPException) as exc:
        service.get_order(session, service.actor_for(session, world.seller), central_order)
    assert exc.value.status_code == 404


def test_production_does_not_see_drafts(service, session, world, make_draft):
    seller = service.actor_for(session, world.seller)
    service.create_order(session, seller, make_draft(status=OrderStatus.DRAFT))
    sent = _create(service, session, world, make_draft)
    page = service.list_orders(session, service.actor_for(session, world.production), 0, 10)
    assert [o.id for o in page.orders] == [sent]


def test_paging_reports_has_more(service, session, world, make_draft):
    for _ in range(3):
        _create(service, session, world, make_draft)
    admin = service.actor_for(session, world.admin)
    first = service.list_orders(session, admin, 0, 2)
    second = service.list_orders(session, admin, 1, 2)
    assert first.has_more and not second.has_more
    assert [o.id for o in first.orders] == ["ORD-003", "ORD-002"]
    assert [o.id for o in second.orders] == ["ORD-001"]


def test_comments_newest_first(service, session, world, make_draft):
    order_id = _create(service, session, world, make_draft)
    seller = service.actor_for(session, world.seller)
    service.add_comment(session, seller, order_id, "Entregar en la mañana")
    comment = service.add_comment(session, seller, order_id, "Llamar antes")
    assert comment.user_name == "Sofia"

    order = service.get_order(session, seller, order_id)
    assert [c.content for c in order.comments] == ["Llamar antes", "Entregar en la mañana"]


def test_store_failure_rolls_back_the_whole_create(
    service, session, world, make_draft, monkeypatch
):
    def broken_add_log(*args, **kwargs):
        raise OperationalError("INSERT INTO order_logs", {}, Exception("connection lost"))

    monkeypatch.setattr(service.order_repo, "add_log", broken_add_log)
    with pytest.raises(PersistenceFailure):
        _create(service, session, world, make_draft)

    assert session.exec(select(Order)).all() == []
    assert session.exec(select(OrderItem)).all() == []
