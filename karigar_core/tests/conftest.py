import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from karigar_core.app.db import create_db_and_tables
from karigar_core.app.deps import get_db
from karigar_core.app.main import create_app
from karigar_core.app.models import OrderType
from karigar_core.app.services import OrderService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def make_order(db):
    def _make(order_no="R1", design="D1", quantity=10, order_type=OrderType.RB, **fields):
        return OrderService.save_order(
            db, order_no=order_no, design=design, quantity=quantity, order_type=order_type, **fields
        )
    return _make
