"""Pytest configuration and shared fixtures for integration tests.

Provides reusable fixtures for:
- Temporary site descriptor documents
- A FastAPI test client wired to a freshly loaded registry
- Patched outbound HTTP
"""

import json
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List
from unittest import mock

import pytest
from fastapi.testclient import TestClient

# Add project root to sys.path
root_dir = Path(__file__).resolve().parent.parent.parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

from MMS.services.api.fastapi_server import create_app
from MMS.tools.scrape.fetcher import SiteFetcher
from MMS.tools.scrape.registry import SiteRegistry


@pytest.fixture
def temp_sites_dir() -> Generator[Path, None, None]:
    """Provides a temporary directory for descriptor documents with automatic cleanup."""
    temp_dir = Path(tempfile.mkdtemp(prefix="mms_test_"))
    yield temp_dir
    if temp_dir.exists():
        shutil.rmtree(temp_dir)


@pytest.fixture
def write_sites(temp_sites_dir: Path) -> Callable[[List[Dict]], Path]:
    """Writes descriptor records to sites.json and returns its path."""
    def _write(records: List[Dict]) -> Path:
        path = temp_sites_dir / "sites.json"
        path.write_text(json.dumps(records), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def example_site() -> Dict:
    return {
        "id": "example",
        "name": "Example",
        "template": "https://example.test/search?q={query}",
        "resultSelector": "div.r",
        "linkSelector": "a",
        "enabled": True,
    }


@pytest.fixture
def mock_get() -> Generator[mock.MagicMock, None, None]:
    """Patches the outbound GET used by every site fetch."""
    with mock.patch("MMS.tools.scrape.fetcher.requests.get") as patched:
        yield patched


@pytest.fixture
def client_for() -> Callable[[Path], TestClient]:
    """Builds a test client whose registry is loaded from the given file."""
    clients: List[TestClient] = []

    def _client(sites_path: Path) -> TestClient:
        registry = SiteRegistry(sites_path)
        registry.load()
        app = create_app(registry=registry, fetcher=SiteFetcher(timeout_seconds=2.0, referer="https://google.com/"))
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _client

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def html_response() -> Callable[..., mock.MagicMock]:
    """Factory for a fake requests.Response carrying an HTML body."""
    def _response(text: str, status_code: int = 200) -> mock.MagicMock:
        response = mock.MagicMock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 400
        response.text = text
        response.headers = {"Content-Type": "text/html; charset=utf-8"}
        return response
    return _response
