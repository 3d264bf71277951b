# app/services/transition_policy.py
"""
Status transition policy.

Pure decision logic, no database and no FastAPI: given an order snapshot,
the requesting actor and a target status, either return a
TransitionDecision or raise a WorkflowError naming the blocking condition.

Evaluation order:
  1. no driver, no dispatch
  2. in-flight lock (DISPATCH + driver -> only DELIVERED / CANCELLED)
  3. closed orders accept nothing
  4. same status -> no-op
  5. role x current x target table, plus city scope
  6. reason for CANCELLED / REJECTED
"""

import enum
import uuid
from dataclasses import dataclass, field
from typing import Iterable

from app.core.exceptions import (
    DenialKind,
    EditNotAllowed,
    ReasonRequired,
    TransitionDenied,
)
from app.models.order import EDITABLE_STATUSES, TERMINAL_STATUSES, OrderStatus
from app.models.user import UserRole

S = OrderStatus


class AccessProfile(str, enum.Enum):
    FULL = "full"
    RESTRICTED = "restricted"
    OPERATOR = "operator"
    NONE = "none"


# Targets reachable from any non-closed status, per profile.
PROFILE_TARGETS: dict[AccessProfile, frozenset[OrderStatus]] = {
    AccessProfile.FULL: frozenset(S),
    AccessProfile.RESTRICTED: frozenset({S.DRAFT, S.REVIEW, S.DISPATCH, S.CANCELLED}),
    AccessProfile.OPERATOR: frozenset(),
    AccessProfile.NONE: frozenset(),
}

# Explicit edges, independent of the target sets above.
PROFILE_EDGES: dict[AccessProfile, frozenset[tuple[OrderStatus, OrderStatus]]] = {
    AccessProfile.FULL: frozenset(),
    AccessProfile.RESTRICTED: frozenset(),
    AccessProfile.OPERATOR: frozenset(
        {(S.REVIEW, S.PRODUCTION), (S.PRODUCTION, S.DISPATCH)}
    ),
    AccessProfile.NONE: frozenset(),
}

REASON_REQUIRED = frozenset({S.CANCELLED, S.REJECTED})
IN_FLIGHT_EXITS = frozenset({S.DELIVERED, S.CANCELLED})


@dataclass(frozen=True)
class Actor:
    """
    The user requesting a workflow action, with the city scope resolved.

    in_principal_city: one of the assigned cities is flagged is_principal.
    """

    id: uuid.UUID
    name: str
    role: UserRole
    assigned_cities: frozenset[str] = field(default_factory=frozenset)
    in_principal_city: bool = False

    @classmethod
    def from_user(cls, user, principal_city_ids: Iterable = ()) -> "Actor":
        cities = frozenset(str(c) for c in user.assigned_cities)
        principal = {str(c) for c in principal_city_ids}
        return cls(
            id=user.id,
            name=user.name,
            role=UserRole(user.role),
            assigned_cities=cities,
            in_principal_city=bool(cities & principal),
        )

    @property
    def sees_all_cities(self) -> bool:
        return self.role == UserRole.ADMIN or self.in_principal_city

    def covers(self, city_id) -> bool:
        return self.sees_all_cities or str(city_id) in self.assigned_cities


@dataclass(frozen=True)
class OrderSnapshot:
    """The fields of an order the policy looks at."""

    status: OrderStatus
    assigned_delivery_id: uuid.UUID | None
    city_id: uuid.UUID | str | None
    user_id: uuid.UUID | None = None

    @classmethod
    def of(cls, order) -> "OrderSnapshot":
        return cls(
            status=OrderStatus(order.status),
            assigned_delivery_id=order.assigned_delivery_id,
            city_id=order.city_id,
            user_id=getattr(order, "user_id", None),
        )


@dataclass(frozen=True)
class TransitionDecision:
    current: OrderStatus
    target: OrderStatus
    noop: bool = False
    reason: str | None = None

    @property
    def log_message(self) -> str | None:
        if self.noop:
            return None
        return status_log_message(self.target, self.reason)


def status_log_message(target: OrderStatus, reason: str | None = None) -> str:
    if target == S.REJECTED and reason:
        return f"Rechazado: {reason}"
    if target == S.CANCELLED and reason:
        return f"Cancelado: {reason}"
    return f"Estado cambiado a {target.value}"


class TransitionPolicy:
    """
    Role x current-status x target-status rule table.

    production_full_access=False demotes Production staff to the
    operator profile.
    """

    def __init__(self, production_full_access: bool = True):
        self.production_full_access = production_full_access

    # ----- Profiles -----

    def profile_for(self, actor: Actor) -> AccessProfile:
        if actor.role == UserRole.ADMIN:
            return AccessProfile.FULL
        if actor.role == UserRole.WAREHOUSE:
            return AccessProfile.FULL if actor.in_principal_city else AccessProfile.RESTRICTED
        if actor.role == UserRole.PRODUCTION:
            if self.production_full_access:
                return AccessProfile.FULL
            return AccessProfile.OPERATOR
        return AccessProfile.NONE

    def is_allowed(
        self,
        profile: AccessProfile,
        current: OrderStatus,
        target: OrderStatus,
    ) -> bool:
        return (
            target in PROFILE_TARGETS[profile]
            or (current, target) in PROFILE_EDGES[profile]
        )

    def available_targets(self, order: OrderSnapshot, actor: Actor) -> list[OrderStatus]:
        """Every status the actor could successfully request right now."""
        targets = []
        for target in S:
            if target == order.status:
                continue
            try:
                # placeholder reason so reason-gated targets are listed
                self.decide(order, actor, target, reason="-")
            except (TransitionDenied, ReasonRequired):
                continue
            targets.append(target)
        return targets

    # ----- Decisions -----

    def decide(
        self,
        order: OrderSnapshot,
        actor: Actor,
        target: OrderStatus,
        reason: str | None = None,
    ) -> TransitionDecision:
        current = order.status

        self._check_driver_for_dispatch(order, target)
        self._check_in_flight_lock(order, target)
        self._check_not_closed(order, target)

        if target == current:
            return TransitionDecision(current=current, target=target, noop=True)

        profile = self.profile_for(actor)
        if not self.is_allowed(profile, current, target):
            raise TransitionDenied(
                DenialKind.ROLE_INSUFFICIENT,
                f"Role {actor.role.value} cannot move an order from "
                f"{current.value} to {target.value}.",
            )
        if not actor.covers(order.city_id):
            raise TransitionDenied(
                DenialKind.ROLE_INSUFFICIENT,
                "This order belongs to a city outside your assigned cities.",
            )

        cleaned = self._check_reason(target, reason)
        return TransitionDecision(current=current, target=target, reason=cleaned)

    def confirm_delivery(self, order: OrderSnapshot, actor: Actor) -> TransitionDecision:
        """
        The delivery person's own DISPATCH -> DELIVERED action.

        Skips the role table; the in-flight lock still applies, and
        DELIVERED is the exit it exists to allow.
        """
        if actor.role != UserRole.DELIVERY or order.assigned_delivery_id != actor.id:
            raise TransitionDenied(
                DenialKind.ROLE_INSUFFICIENT,
                "Only the assigned delivery person can confirm this delivery.",
            )
        if order.status == S.DELIVERED:
            return TransitionDecision(current=S.DELIVERED, target=S.DELIVERED, noop=True)
        self._check_not_closed(order, S.DELIVERED)
        if order.status != S.DISPATCH:
            raise TransitionDenied(
                DenialKind.NOT_IN_TRANSIT,
                "Only orders out for delivery can be confirmed as delivered.",
            )
        self._check_in_flight_lock(order, S.DELIVERED)
        return TransitionDecision(current=S.DISPATCH, target=S.DELIVERED)

    def ensure_editable(self, order: OrderSnapshot, actor: Actor) -> None:
        """Full field/items editing: DRAFT or REVIEW only."""
        if order.status not in EDITABLE_STATUSES:
            raise EditNotAllowed(
                f"Orders can only be edited while in {S.DRAFT.value} or "
                f"{S.REVIEW.value} (current: {order.status.value})."
            )
        if actor.role == UserRole.SELLER:
            if order.user_id != actor.id:
                raise EditNotAllowed("Sellers can only edit their own orders.")
            return
        if actor.role == UserRole.DELIVERY:
            raise EditNotAllowed("Delivery staff cannot edit orders.")
        if not actor.covers(order.city_id):
            raise EditNotAllowed("This order belongs to a city outside your assigned cities.")

    # ----- Rules -----

    @staticmethod
    def _check_driver_for_dispatch(order: OrderSnapshot, target: OrderStatus) -> None:
        if target == S.DISPATCH and order.assigned_delivery_id is None:
            raise TransitionDenied(
                DenialKind.MISSING_DRIVER,
                "A delivery person must be assigned before moving the order to dispatch.",
            )

    @staticmethod
    def _check_in_flight_lock(order: OrderSnapshot, target: OrderStatus) -> None:
        if (
            order.status == S.DISPATCH
            and order.assigned_delivery_id is not None
            and target != S.DISPATCH
            and target not in IN_FLIGHT_EXITS
        ):
            raise TransitionDenied(
                DenialKind.IN_TRANSIT_LOCK,
                "Order is in transit with its delivery person and cannot be reverted; "
                "it can only be delivered or cancelled.",
            )

    @staticmethod
    def _check_not_closed(order: OrderSnapshot, target: OrderStatus) -> None:
        if order.status in TERMINAL_STATUSES and target != order.status:
            raise TransitionDenied(
                DenialKind.ORDER_CLOSED,
                f"Order is already closed ({order.status.value}).",
            )

    @staticmethod
    def _check_reason(target: OrderStatus, reason: str | None) -> str | None:
        cleaned = (reason or "").strip() or None
        if target in REASON_REQUIRED and cleaned is None:
            raise ReasonRequired(
                f"A reason is required to set the order to {target.value}."
            )
        return cleaned
