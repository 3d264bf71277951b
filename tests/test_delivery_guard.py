from datetime import date

import pytest

from app.core.exceptions import DenialKind, DriverUnavailable, TransitionDenied
from app.models.order import OrderStatus
from app.services.delivery_guard import DeliveryAssignmentGuard
from app.services.transition_policy import OrderSnapshot

from conftest import TODAY


@pytest.fixture
def guard():
    return DeliveryAssignmentGuard(today=lambda: date.fromisoformat(TODAY))


def snapshot(world, status=OrderStatus.REVIEW, driver=None):
    return OrderSnapshot(status=status, assigned_delivery_id=driver, city_id=world.norte.id)


def test_scenario_e_unavailable_driver_is_refused(guard, service, session, world):
    admin = service.actor_for(session, world.admin)
    with pytest.raises(DriverUnavailable) as exc:
        guard.check(snapshot(world), admin, world.maria)
    assert exc.value.date == TODAY
    assert "Maria" in exc.value.message


def test_available_driver_is_accepted(guard, service, session, world):
    admin = service.actor_for(session, world.admin)
    assert guard.check(snapshot(world), admin, world.juan) is True


def test_same_driver_is_a_noop(guard, service, session, world):
    admin = service.actor_for(session, world.admin)
    assert guard.check(snapshot(world, driver=world.juan.id), admin, world.juan) is False


def test_reassigning_an_in_flight_order_is_allowed(guard, service, session, world):
    warehouse = service.actor_for(session, world.norte_warehouse)
    in_flight = snapshot(world, OrderStatus.DISPATCH, driver=world.maria.id)
    assert guard.check(in_flight, warehouse, world.juan) is True


def test_closed_orders_take_no_driver(guard, service, session, world):
    admin = service.actor_for(session, world.admin)
    with pytest.raises(TransitionDenied) as exc:
        guard.check(snapshot(world, OrderStatus.DELIVERED), admin, world.juan)
    assert exc.value.kind == DenialKind.ORDER_CLOSED


def test_only_management_in_scope_may_assign(guard, service, session, world):
    for user in (world.seller, world.juan):
        with pytest.raises(TransitionDenied) as exc:
            guard.check(snapshot(world), service.actor_for(session, user), world.juan)
        assert exc.value.kind == DenialKind.ROLE_INSUFFICIENT

    central_only_seller_city = OrderSnapshot(
        status=OrderStatus.REVIEW, assigned_delivery_id=None, city_id=world.central.id
    )
    with pytest.raises(TransitionDenied):
        guard.check(
            central_only_seller_city,
            service.actor_for(session, world.norte_warehouse),
            world.juan,
        )


def test_eligibility(world):
    assert DeliveryAssignmentGuard.is_eligible(world.juan)
    assert not DeliveryAssignmentGuard.is_eligible(world.seller)
    assert not DeliveryAssignmentGuard.is_eligible(None)
