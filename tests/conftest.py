"""Common test fixtures for notegraph."""

import pytest

from notegraph.models.db_models import get_session_factory, init_db
from notegraph.observability import metrics
from notegraph.services import build_services


@pytest.fixture
def engine():
    """A fresh in-memory database per test."""
    engine = init_db("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def services(session_factory):
    return build_services(session_factory)


@pytest.fixture
def group_service(services):
    return services.groups


@pytest.fixture
def tag_service(services):
    return services.tags


@pytest.fixture
def note_service(services):
    return services.notes


@pytest.fixture
def link_service(services):
    return services.links


@pytest.fixture
def graph_service(services):
    return services.graph


@pytest.fixture
def layout_service(services):
    return services.layouts


@pytest.fixture
def user_id():
    return "alice"


@pytest.fixture
def other_user_id():
    return "bob"


@pytest.fixture
def make_note(note_service, user_id):
    """Factory creating notes for the default test user."""
    def _make(title, content="", group_id=None, tags=(), user=None):
        return note_service.create_note(
            user or user_id, title, content=content, group_id=group_id, tag_names=tags
        )
    return _make


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector isolated between tests."""
    metrics.reset()
    yield
    metrics.reset()
