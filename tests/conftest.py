from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from royal_quads import services
from royal_quads.database import Base, init_db
from royal_quads.main import app

# ------------------ engine ------------------
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(bind=engine)
init_db(engine)

T0 = datetime(2025, 3, 14, 10, 0, 0)


# ------------------ fixtures ------------------
@pytest.fixture(autouse=True)
def override_db(monkeypatch):
    monkeypatch.setattr("royal_quads.main.SessionLocal", TestingSessionLocal)
    yield
    # fresh tables for every test
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def quad(db):
    return services.create_quad(db, "Quad 1", image_url="https://img/q1.jpg", imei="356938035643809")


def book(db, quad_id, name="Amina", phone="0712345678", duration=15, price=2200, now=T0, **extra):
    return services.create_booking(
        db,
        quad_id=quad_id,
        customer_name=name,
        customer_phone=phone,
        duration=duration,
        price=price,
        original_price=extra.pop("original_price", price),
        now=now,
        **extra,
    )
