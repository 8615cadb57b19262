import pytest
from fastapi.testclient import TestClient

from verifychain.config import Settings
from verifychain.errors import OracleUnavailable
from verifychain.ledger import InMemoryLedger
from verifychain.main import create_app

from tests.fakes import FakeOracle


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, ORACLE_API_KEY=None, LEDGER_RPC_URL=None, ANCHOR_THRESHOLD=70)


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def unavailable_oracle():
    return FakeOracle(error=OracleUnavailable("connection refused"))


@pytest.fixture
def make_client(test_settings):
    """Build TestClients with their lifespan running; closed after the test."""
    clients = []

    def _make(ledger=None, oracle=None):
        app = create_app(test_settings, ledger=ledger or InMemoryLedger(), oracle=oracle)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.__exit__(None, None, None)


@pytest.fixture
def client(make_client, ledger, unavailable_oracle):
    return make_client(ledger=ledger, oracle=unavailable_oracle)
