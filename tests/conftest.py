import pytest
from fakes import CONFORMANCE_URL, HOST, MockExecutor, conformance_statement, ok

from midata.auth.models.session import Session
from midata.auth.services.conformance import ConformanceResolver
from midata.config import MidataConfig


@pytest.fixture
def config() -> MidataConfig:
    return MidataConfig(host=HOST, app_name="test-app", secret="s3cret")


@pytest.fixture
def session() -> Session:
    return Session()


@pytest.fixture
def executor() -> MockExecutor:
    executor = MockExecutor()
    executor.add("GET", CONFORMANCE_URL, ok(conformance_statement()))
    return executor


@pytest.fixture
def conformance(executor: MockExecutor, session: Session) -> ConformanceResolver:
    return ConformanceResolver(executor, session)
