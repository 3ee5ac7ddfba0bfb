"""Shared fixtures for history API tests."""

import pytest
from fastapi.testclient import TestClient

from web.app import create_app


@pytest.fixture
def app(tmp_path):
    return create_app(tmp_path / "remote.db")


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
