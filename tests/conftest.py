import pytest

from splitledger import groups
from splitledger.app import create_app
from splitledger.config import Config
from splitledger.repository import InMemoryGroupRepository


class SettingsForTests(Config):
    STORAGE_BACKEND = "memory"
    LOG_LEVEL = "DEBUG"
    SECRET_KEY = "test"


def make_group(*names):
    """Group whose member ids are the lower-cased names."""
    group = groups.create_group("Trip", group_id="g1")
    for name in names:
        group, _ = groups.add_member(group, name, member_id=name.lower())
    return group


@pytest.fixture
def group_ab():
    return make_group("A", "B")


@pytest.fixture
def group_abc():
    return make_group("A", "B", "C")


@pytest.fixture
def repository():
    return InMemoryGroupRepository()


@pytest.fixture
def app(repository):
    app = create_app(SettingsForTests, repository=repository)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
