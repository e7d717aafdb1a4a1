from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from astana import create_app
from astana.core.config import Config
from astana.core.extensions import db
from astana.core.models import Block, Grave, seed_demo_data


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login_admin(client):
    def _login():
        return client.post(
            "/auth/login",
            json={"email": "admin@astana.local", "password": "admin123"},
        )

    return _login


@pytest.fixture
def login_operator(client):
    def _login():
        return client.post(
            "/auth/login",
            json={"email": "operator@astana.local", "password": "operator123"},
        )

    return _login


@pytest.fixture
def block_a(app):
    return Block.query.filter_by(code="A").first()


@pytest.fixture
def ahmad(app):
    return Grave.query.filter_by(deceased_name="Ahmad Sulaiman").first()


@pytest.fixture
def grave_payload(block_a):
    def _payload(number: str = "10", deceased_name: str = "Hasan Basri", heirs=None):
        return {
            "grave": {
                "deceased_name": deceased_name,
                "block_id": block_a.id,
                "number": number,
                "date_of_death": "2023-06-01",
            },
            "heirs": heirs if heirs is not None else [{"full_name": "Yusuf Basri", "relationship": "anak"}],
        }

    return _payload
