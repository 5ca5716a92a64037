import random

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.dependencies import get_config, get_session
from sutra_reader.reading import (
    AuthFlowController,
    HumanVerificationGate,
    InMemoryAuthBackend,
    InMemoryKeyValueStore,
    LocalPersistence,
    ReadingDataStore,
    Sutra,
)


def solve(gate: HumanVerificationGate) -> HumanVerificationGate:
    gate.initialize()
    a, b = gate.pair
    gate.input = str(a + b)
    return gate


@pytest.fixture(name="solve")
def solve_fixture():
    return solve


@pytest.fixture
def gate():
    return solve(HumanVerificationGate(rng=random.Random(7)))


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return ReadingDataStore(LocalPersistence(kv))


@pytest.fixture
def backend():
    return InMemoryAuthBackend(require_confirmation=True)


@pytest.fixture
def controller(backend, gate):
    return AuthFlowController(backend, gate=gate, locale="en", password_update_delay=0)


@pytest.fixture
def sample_sutras():
    return [
        Sutra(id="s1", title="A", content=["foo", "bar"]),
        Sutra(id="s2", title="Middle Length", content=["right view", "right intention", "foo fighters"]),
    ]


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("READER_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("WHOOSH_DIR", str(tmp_path / "whoosh"))
    monkeypatch.setenv("LOAD_MORE_DELAY", "0")
    monkeypatch.setenv("PASSWORD_UPDATE_DELAY", "0")
    monkeypatch.setenv("REQUIRE_EMAIL_CONFIRMATION", "0")
    monkeypatch.setenv("READER_LOCALE", "en")
    monkeypatch.delenv("REMOTE_DATABASE_URL", raising=False)
    get_config.cache_clear()
    get_session.cache_clear()

    with TestClient(create_app()) as test_client:
        yield test_client

    get_session().close()
    get_config.cache_clear()
    get_session.cache_clear()
