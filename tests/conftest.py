"""Shared fixtures: connection profiles and a fake ODBC server patched over pyodbc.connect."""

from unittest.mock import patch

import pytest

from helpers import FakeDatabase, FakeServer
from data_migrator.models import ConnectionProfile


@pytest.fixture
def source_profile():
    return ConnectionProfile(driver_id="ODBC Driver 17 for SQL Server", address="source-host",
                             database="legacy", username="reader", password="secret",
                             schema_name="dbo", name="source")


@pytest.fixture
def target_profile():
    return ConnectionProfile(driver_id="ODBC Driver 17 for SQL Server", address="target-host",
                             database="modern", username="writer", password="secret",
                             schema_name="dbo", name="target")


@pytest.fixture
def fake_server():
    server = FakeServer()
    with patch('data_migrator.database.connections.pyodbc.connect', side_effect=server.connect):
        yield server


@pytest.fixture
def source_db(fake_server, source_profile):
    return fake_server.register(source_profile, FakeDatabase())


@pytest.fixture
def target_db(fake_server, target_profile):
    return fake_server.register(target_profile, FakeDatabase())
