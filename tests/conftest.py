from __future__ import annotations

import pytest

from extaudit.domain.reconciliation import assemble_context
from extaudit.domain.types import AuditContext, AuditKind
from tests.helpers.directory import FakeDirectory, scenario_records, scenario_users


@pytest.fixture
def scenario_context() -> AuditContext:
    return assemble_context(
        kind=AuditKind.EXTENSION,
        users=scenario_users(),
        records=scenario_records(),
    )


@pytest.fixture
def fake_directory() -> FakeDirectory:
    return FakeDirectory(scenario_users(), extensions=scenario_records())


@pytest.fixture(autouse=True)
def _directory_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXTAUDIT_API_BASE_URI", "https://api.example.test/")
    monkeypatch.setenv("EXTAUDIT_ACCESS_TOKEN", "test-token")
    monkeypatch.delenv("EXTAUDIT_TIMEOUT_SECONDS", raising=False)
    monkeypatch.delenv("EXTAUDIT_MAX_RETRIES", raising=False)
    monkeypatch.delenv("EXTAUDIT_MAX_CALLS_PER_SECOND", raising=False)
