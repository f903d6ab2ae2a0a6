import pytest
from fastapi.testclient import TestClient

from taskboard.core.broadcast import Broadcaster
from taskboard.main import create_app

from helpers import database_url, seed_database_file


@pytest.fixture
def seeded(tmp_path):
    url = database_url(tmp_path)
    return url, seed_database_file(url)


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def client(seeded, broadcaster):
    url, _ = seeded
    app = create_app(database_url=url, broadcaster=broadcaster)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def ids(seeded):
    return seeded[1]
