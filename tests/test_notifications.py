import uuid

import pytest

from app.core.change_feed import ChangeEvent, ChangeFeed
from app.core.sound import SoundCue, SoundPlayer
from app.models.order import OrderStatus
from app.models.user import UserRole
from app.services.notification_service import AlertTone, NotificationDispatcher
from app.services.transition_policy import Actor

NORTE = str(uuid.uuid4())
SUR = str(uuid.uuid4())


def viewer(role, cities=(NORTE,)):
    return Actor(id=uuid.uuid4(), name="x", role=role, assigned_cities=frozenset(cities))


def row(**fields):
    base = {"id": "ORD-007", "client_name": "Polar", "city_id": NORTE, "status": "Enviado"}
    base.update(fields)
    return base


@pytest.fixture
def received():
    return []


def dispatcher(actor, received, player=None):
    return NotificationDispatcher(actor, sink=received.append, player=player)


@pytest.mark.parametrize(
    "role,city,expected",
    [
        (UserRole.ADMIN, SUR, 1),
        (UserRole.WAREHOUSE, NORTE, 1),
        (UserRole.PRODUCTION, NORTE, 1),
        (UserRole.WAREHOUSE, SUR, 0),
        (UserRole.SELLER, NORTE, 0),
        (UserRole.DELIVERY, NORTE, 0),
    ],
)
def test_new_order_alerts(role, city, expected, received):
    actor = viewer(role, cities=() if role == UserRole.ADMIN else (NORTE,))
    dispatcher(actor, received).handle(ChangeEvent(type="INSERT", new=row(city_id=city)))
    assert len(received) == expected
    if expected:
        assert received[0].message == "New order received: Polar"
        assert received[0].sound == SoundCue.NEW_ORDER


@pytest.mark.parametrize(
    "status,tone",
    [
        (OrderStatus.DELIVERED, AlertTone.SUCCESS),
        (OrderStatus.REJECTED, AlertTone.ERROR),
        (OrderStatus.PRODUCTION, AlertTone.INFO),
    ],
)
def test_seller_hears_about_own_status_changes(status, tone, received):
    seller = viewer(UserRole.SELLER)
    event = ChangeEvent(
        type="UPDATE",
        new=row(user_id=str(seller.id), status=status.value),
        old=row(user_id=str(seller.id), status="En Revisión"),
    )
    dispatcher(seller, received).handle(event)
    (alert,) = received
    assert alert.tone == tone
    assert alert.message == f"Your order for Polar is now: {status.value}"
    assert alert.sound is None


def test_seller_ignores_other_orders_and_unchanged_status(received):
    seller = viewer(UserRole.SELLER)
    d = dispatcher(seller, received)
    d.handle(ChangeEvent(type="UPDATE", new=row(user_id=str(uuid.uuid4()), status="Entregado")))
    d.handle(
        ChangeEvent(
            type="UPDATE",
            new=row(user_id=str(seller.id), status="Enviado"),
            old=row(user_id=str(seller.id), status="Enviado"),
        )
    )
    assert received == []


def test_driver_hears_new_assignment_once(received):
    driver = viewer(UserRole.DELIVERY)
    d = dispatcher(driver, received)
    me = str(driver.id)
    d.handle(ChangeEvent(type="UPDATE", new=row(assigned_delivery_id=me), old=row()))
    d.handle(
        ChangeEvent(
            type="UPDATE",
            new=row(assigned_delivery_id=me, status="En Despacho"),
            old=row(assigned_delivery_id=me),
        )
    )
    (alert,) = received
    assert alert.message == "New order assigned: Polar"
    assert alert.tone == AlertTone.SUCCESS
    assert alert.sound == SoundCue.ASSIGNED


def test_sounds_wait_for_unlock(received):
    played = []
    player = SoundPlayer(output=lambda cue, wav: played.append((cue, len(wav))))
    feed = ChangeFeed()
    unsubscribe = dispatcher(viewer(UserRole.ADMIN), received, player).attach(feed)

    feed.publish(ChangeEvent(type="INSERT", new=row()))
    assert len(received) == 1
    assert played == []
    assert player.state == "suspended"
    assert player.pending == (SoundCue.NEW_ORDER,)

    player.unlock()
    assert [cue for cue, _ in played] == [SoundCue.NEW_ORDER]
    assert played[0][1] > 44
    assert player.state == "running"

    unsubscribe()
    feed.publish(ChangeEvent(type="INSERT", new=row()))
    assert len(received) == 1


def test_alert_payload():
    alert = NotificationDispatcher(viewer(UserRole.ADMIN), sink=lambda a: None).alerts_for(
        ChangeEvent(type="INSERT", new=row())
    )[0]
    assert alert.to_dict() == {
        "type": "alert",
        "message": "New order received: Polar",
        "tone": "info",
        "order_id": "ORD-007",
        "sound": "new_order",
    }


def test_realtime_payload_shapes():
    realtime_py = {
        "data": {
            "type": "UPDATE",
            "table": "orders",
            "record": {"id": "ORD-001", "status": "Entregado"},
            "old_record": {"id": "ORD-001"},
        }
    }
    event = ChangeEvent.from_realtime_payload(realtime_py)
    assert event.type == "UPDATE"
    assert event.new["status"] == "Entregado"
    assert event.old == {"id": "ORD-001"}

    js_style = {"eventType": "INSERT", "new": {"id": "ORD-002"}, "old": {}}
    assert ChangeEvent.from_realtime_payload(js_style).new == {"id": "ORD-002"}

    with pytest.raises(ValueError):
        ChangeEvent.from_realtime_payload({"data": {"type": "TRUNCATE"}})


def test_failing_listener_does_not_stop_the_others():
    feed = ChangeFeed()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    feed.subscribe(broken)
    feed.subscribe(seen.append)
    feed.publish(ChangeEvent(type="INSERT", new=row()))
    assert len(seen) == 1
    assert feed.listener_count == 2
