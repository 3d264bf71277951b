import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# Settings are read at import time; point them at an in-memory database.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_URL"] = "http://localhost:54321"
os.environ["SUPABASE_KEY"] = "test-anon-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["REALTIME_SOURCE"] = "local"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session, SQLModel

from app.core.change_feed import ChangeFeed
from app.database import engine
from app.main import app
from app.models.catalog import Category, City, Presentation, Product
from app.models.user import User, UserRole
from app.repositories.catalog_repo import CatalogRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.user_repo import UserRepository
from app.schemas.order import OrderDraft, OrderItemIn
from app.services.delivery_guard import DeliveryAssignmentGuard
from app.services.order_service import OrderService

TODAY = "2025-03-14"


@pytest.fixture(autouse=True)
def reset_db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture
def world(session):
    """
    Two cities (Central is principal), one product in two presentations,
    and one user per role. Maria is off on TODAY.
    """
    central = City(name="Central", is_principal=True)
    norte = City(name="Norte")
    category = Category(name="Helados")
    product = Product(name="Vainilla", category="Helados")
    pound = Presentation(name="Libra", weight_kg=0.45)
    gallon = Presentation(name="Galón", weight_kg=3.8)
    session.add_all([central, norte, category, product, pound, gallon])
    session.commit()

    def user(name, role, cities=(), unavailable=()):
        u = User(
            email=f"{name.lower()}@example.com",
            name=name,
            role=role.value,
            assigned_cities=[str(c.id) for c in cities],
            unavailable_dates=list(unavailable),
        )
        session.add(u)
        return u

    users = dict(
        admin=user("Ana", UserRole.ADMIN),
        seller=user("Sofia", UserRole.SELLER, [norte]),
        other_seller=user("Pablo", UserRole.SELLER, [central]),
        central_warehouse=user("Carlos", UserRole.WAREHOUSE, [central]),
        norte_warehouse=user("Lucia", UserRole.WAREHOUSE, [norte]),
        production=user("Diego", UserRole.PRODUCTION, [norte]),
        juan=user("Juan", UserRole.DELIVERY, [norte]),
        maria=user("Maria", UserRole.DELIVERY, [norte], unavailable=[TODAY]),
    )
    session.commit()
    for obj in [central, norte, product, pound, gallon, *users.values()]:
        session.refresh(obj)

    return SimpleNamespace(
        central=central,
        norte=norte,
        product=product,
        pound=pound,
        gallon=gallon,
        **users,
    )


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def service(feed):
    return OrderService(
        OrderRepository(),
        UserRepository(),
        CatalogRepository(),
        guard=DeliveryAssignmentGuard(
            today=lambda: datetime.strptime(TODAY, "%Y-%m-%d").date()
        ),
        feed=feed,
    )


@pytest.fixture
def make_draft(world):
    def _make(*lines, **header):
        """lines: (presentation, quantity) pairs for the Vainilla product."""
        items = [
            OrderItemIn(
                product_id=world.product.id,
                product_name=world.product.name,
                presentation_id=p.id,
                presentation_name=p.name,
                quantity=q,
            )
            for p, q in lines
        ]
        data = dict(
            client_name="Heladería Polar",
            order_type="Venta",
            destination_name="Tienda Norte",
            city_id=world.norte.id,
            city_name=world.norte.name,
            items=items,
        )
        data.update(header)
        return OrderDraft(**data)

    return _make


@pytest.fixture
def client():
    return TestClient(app)


def token_for(user: User) -> str:
    claims = {
        "sub": str(user.id),
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(claims, os.environ["SUPABASE_JWT_SECRET"], algorithm="HS256")


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}
