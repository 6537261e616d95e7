"""
Pytest configuration and shared fixtures
"""
from decimal import Decimal

import pytest

from app import create_app
from app.extensions import db
from app.models import Montage, User
from config import TestingConfig

PASSWORD = "haslo-testowe-123"


@pytest.fixture
def app():
    """Fresh application with an empty in-memory database"""
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Factory creating a user; returns its id"""
    def _make_user(username, roles, **fields):
        with app.app_context():
            user = User(username=username, roles=list(roles), is_active=fields.pop("is_active", True), **fields)
            user.set_password(PASSWORD)
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make_user


@pytest.fixture
def admin_id(make_user):
    return make_user("admin", ["admin"], name="Anna Admin")


@pytest.fixture
def office_id(make_user):
    return make_user("biuro", ["office"], name="Olga Biuro")


@pytest.fixture
def installer_id(make_user):
    """Installer with classic/click 40 zł/m2, herringbone/glue 65 zł/m2 and skirting 10 zł/mb"""
    return make_user(
        "monter",
        ["installer"],
        name="Igor Monter",
        rate_classic_click=Decimal("40.00"),
        rate_herringbone_glue=Decimal("65.00"),
        rate_skirting=Decimal("10.00"),
    )


@pytest.fixture
def login(client):
    """Log the shared test client in as the given user"""
    def _login(username, password=PASSWORD):
        client.get("/auth/logout")
        return client.post("/auth/login", data={"username": username, "password": password})

    return _login


@pytest.fixture
def make_montage(app):
    """Factory creating a montage directly in the database; returns its id"""
    counter = {"n": 0}

    def _make_montage(**fields):
        counter["n"] += 1
        values = {
            "display_id": f"M/2024/{counter['n']:04d}",
            "client_name": f"Klient {counter['n']}",
            "status": "before_measurement",
        }
        values.update(fields)
        with app.app_context():
            montage = Montage(**values)
            db.session.add(montage)
            db.session.commit()
            return montage.id

    return _make_montage
