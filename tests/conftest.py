"""Shared pytest fixtures for Suncast tests."""

import os
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from flask import Flask
from flask.testing import FlaskClient

# Set test environment variables before importing app modules
os.environ["FLASK_ENV"] = "testing"
os.environ["RATE_LIMITING_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from suncast.cache.engine import HistoricalCache  # noqa: E402
from suncast.cache.store import RecordStore  # noqa: E402
from tests.fixtures.weather import make_archive_payload  # noqa: E402

# -----------------------------------------------------------------------------
# Cache store fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def temp_db_dir() -> Generator[Path]:
    """Create a temporary directory for test databases."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_db_path(temp_db_dir: Path, request: pytest.FixtureRequest) -> Path:
    """Create unique database path for each test."""
    # Use test name to create unique DB file
    test_name = request.node.name.replace("[", "_").replace("]", "_").replace("/", "_")
    return temp_db_dir / f"{test_name}.db"


@pytest.fixture
def store(test_db_path: Path) -> Generator[RecordStore]:
    """Create an isolated record store for each test."""
    record_store = RecordStore(db_path=test_db_path)
    yield record_store
    record_store.close()


@pytest.fixture
def cache(store: RecordStore) -> HistoricalCache:
    """Reconciliation engine over the isolated store."""
    return HistoricalCache(store)


# -----------------------------------------------------------------------------
# Flask app fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def app(store: RecordStore) -> Flask:
    """Create Flask test application serving from the isolated store."""
    from suncast.app import create_app

    flask_app = create_app(store=store)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create Flask test client."""
    return app.test_client()


# -----------------------------------------------------------------------------
# Mock fixtures for external services
# -----------------------------------------------------------------------------


def _archive_response(params: dict[str, Any]) -> MagicMock:
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = make_archive_payload(params["start_date"], params["end_date"])
    return response


@pytest.fixture
def mock_archive() -> Generator[MagicMock]:
    """Mock the Open-Meteo archive: every call returns data for the requested span."""
    with patch("suncast.integrations.open_meteo.requests.get") as mock:
        mock.side_effect = lambda url, headers, params, timeout: _archive_response(params)
        yield mock


@pytest.fixture
def failing_archive() -> Generator[MagicMock]:
    """Mock the Open-Meteo archive returning HTTP 503."""
    with patch("suncast.integrations.open_meteo.requests.get") as mock:
        response = MagicMock()
        response.status_code = 503
        response.text = "Service Unavailable"
        mock.return_value = response
        yield mock


@pytest.fixture
def recording_fetcher() -> Callable[..., list[dict[str, Any]]]:
    """Archive fetcher stand-in that records the spans it was asked for."""
    from tests.fixtures.weather import make_days

    calls: list[tuple[str, str]] = []

    def fetch(latitude: float, longitude: float, start: str, end: str) -> list[dict[str, Any]]:
        calls.append((start, end))
        return make_days(start, end)

    fetch.calls = calls  # type: ignore[attr-defined]
    return fetch
