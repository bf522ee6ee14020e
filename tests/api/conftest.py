# tests/api/conftest.py
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.api import api_router
from app.api.errors import lodgepay_exception_handler
from app.core.exceptions import LodgePayException
from app.core.security import create_access_token
from app.db.session import get_db


@pytest.fixture()
def test_app(session_factory):
    # Override the database dependency
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app = FastAPI()
    app.dependency_overrides[get_db] = override_get_db
    app.add_exception_handler(LodgePayException, lodgepay_exception_handler)
    app.include_router(api_router)

    yield app

    app.dependency_overrides.clear()


@pytest.fixture()
def client(test_app):
    return TestClient(test_app)


@pytest.fixture()
def auth():
    def headers_for(actor):
        token = create_access_token(actor.id, role=actor.role)
        return {"Authorization": f"Bearer {token}"}

    return headers_for
