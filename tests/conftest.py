"""Pytest configuration and shared fixtures.

Every app built here gets its own directories and SQLite database under
``tmp_path``; nothing touches the repository tree.
"""

from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from signdesk.core.config import Settings
from signdesk.main import create_app
from tests.factories import A4, LETTER, make_pdf


@pytest.fixture
def sample_pdf() -> bytes:
    return make_pdf(A4, LETTER)


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    def _make(**overrides) -> Settings:
        values = {"base_dir": tmp_path, "environment": "development"}
        values.update(overrides)
        settings = Settings(_env_file=None, **values)
        settings.configure_paths()
        return settings

    return _make


@pytest.fixture
def make_client(make_settings) -> Generator[Callable[..., TestClient], None, None]:
    clients: list[TestClient] = []

    def _make(pipeline=None, **overrides) -> TestClient:
        settings = make_settings(**overrides)
        client = TestClient(create_app(settings, pipeline=pipeline), raise_server_exceptions=False)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.close()
