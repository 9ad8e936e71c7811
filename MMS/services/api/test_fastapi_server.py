import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

from MMS.services.api.fastapi_server import create_app
from MMS.services.shared.errors import FetchError
from MMS.tools.scrape.fetcher import RawPage
from MMS.tools.scrape.registry import SiteRegistry
from MMS.tools.scrape.schema import SiteDescriptor
from MMS.tools.scrape.urls import build_search_url


SITE = SiteDescriptor(
    id="example",
    name="Example",
    url_template="https://example.test/search?q={query}",
    result_selector="div.r",
)

MARKUP = """
<html><body>
  <div class="r"><a href="/x">Title</a></div>
  <div class="r"><a href="/x">Title</a></div>
</body></html>
"""


class FakeFetcher:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def fetch(self, site, query):
        self.calls += 1
        url = build_search_url(site.url_template, query)
        if self.error:
            raise FetchError(self.error, url=url)
        return RawPage(url=url, status_code=200, text=MARKUP, elapsed_ms=1)


class TestFastAPIServer(unittest.TestCase):
    def setUp(self):
        self.fetcher = FakeFetcher()
        self.registry = SiteRegistry.from_descriptors([SITE])
        self.app = create_app(registry=self.registry, fetcher=self.fetcher)

    def test_search_returns_aggregated_response(self):
        with TestClient(self.app) as client:
            response = client.get("/api/search", params={"q": "inception"})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["query"], "inception")
        self.assertTrue(payload["timestamp"].endswith("Z"))
        self.assertEqual(len(payload["results"]), 1)

        outcome = payload["results"][0]
        self.assertEqual(outcome["siteId"], "example")
        self.assertEqual(outcome["siteName"], "Example")
        self.assertEqual(outcome["url"], "https://example.test/search?q=inception")
        self.assertTrue(outcome["ok"])
        self.assertIsNone(outcome["error"])
        self.assertIn("elapsedMs", outcome)
        self.assertEqual(
            outcome["items"],
            [
                {"title": "Title", "url": "https://example.test/x", "snippet": ""},
                {"title": "Title", "url": "https://example.test/x", "snippet": ""},
            ],
        )

    def test_search_reports_fetch_failure_in_outcome(self):
        self.fetcher.error = "Connection refused"
        with TestClient(self.app) as client:
            response = client.get("/api/search", params={"q": "inception"})

        self.assertEqual(response.status_code, 200)
        outcome = response.json()["results"][0]
        self.assertFalse(outcome["ok"])
        self.assertEqual(outcome["items"], [])
        self.assertIn("Connection refused", outcome["error"])
        self.assertEqual(outcome["manualUrl"], "https://example.test/search?q=inception")

    def test_search_rejects_missing_or_blank_query(self):
        with TestClient(self.app) as client:
            missing = client.get("/api/search")
            blank = client.get("/api/search", params={"q": "   "})

        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json(), {"error": "Missing q"})
        self.assertEqual(blank.status_code, 400)
        self.assertEqual(self.fetcher.calls, 0)

    def test_search_with_no_sites_returns_500(self):
        app = create_app(registry=SiteRegistry.from_descriptors([]), fetcher=self.fetcher)
        with TestClient(app) as client:
            response = client.get("/api/search", params={"q": "inception"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "No sites configured"})
        self.assertEqual(self.fetcher.calls, 0)

    def test_search_unexpected_failure_returns_generic_500(self):
        with TestClient(self.app) as client:
            with mock.patch.object(
                self.app.state.aggregator, "search", side_effect=RuntimeError("kaboom")
            ), mock.patch("MMS.services.api.fastapi_server.report_error") as mock_report:
                response = client.get("/api/search", params={"q": "inception"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Internal server error"})
        mock_report.assert_called_once()

    def test_search_all_compact_output(self):
        with TestClient(self.app) as client:
            response = client.get("/api/searchAll", params={"q": "inception"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"Example": [
                {"title": "Title", "url": "https://example.test/x"},
                {"title": "Title", "url": "https://example.test/x"},
            ]},
        )

    def test_search_all_rejects_blank_query(self):
        with TestClient(self.app) as client:
            response = client.get("/api/searchAll", params={"q": ""})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Missing query"})

    def test_list_sites(self):
        with TestClient(self.app) as client:
            response = client.get("/api/sites")
        payload = response.json()
        self.assertEqual(payload["count"], 1)
        self.assertEqual(payload["sites"][0]["id"], "example")
        self.assertEqual(payload["sites"][0]["urlTemplate"], "https://example.test/search?q={query}")

    def test_health(self):
        with TestClient(self.app) as client:
            response = client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "sites": 1})

    def test_metrics_endpoint(self):
        with TestClient(self.app) as client:
            client.get("/api/search", params={"q": "inception"})
            response = client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        self.assertIn("text/plain", response.headers.get("content-type", ""))
        self.assertIn("mms_site_fetch_total", response.text)

    def test_static_index_is_served(self):
        with TestClient(self.app) as client:
            response = client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIn("Movie Meta-Search", response.text)


class TestReloadSites(unittest.TestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp(prefix="mms_api_"))
        self.sites_path = self.temp_dir / "sites.json"
        self._write(["alpha"])

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write(self, ids):
        self.sites_path.write_text(json.dumps([
            {"id": i, "template": f"https://{i}.test/?q={{query}}", "resultSelector": "div"}
            for i in ids
        ]))

    def test_reload_reports_new_count(self):
        registry = SiteRegistry(self.sites_path)
        registry.load()
        app = create_app(registry=registry, fetcher=FakeFetcher())

        with TestClient(app) as client:
            self.assertEqual(client.get("/health").json()["sites"], 1)
            self._write(["alpha", "beta", "gamma"])
            response = client.post("/api/reload-sites")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True, "count": 3})

    def test_startup_loads_configured_registry(self):
        with mock.patch("MMS.services.api.fastapi_server.get_settings") as mock_get_settings:
            mock_get_settings.return_value.registry.sites_path = str(self.sites_path)
            mock_get_settings.return_value.concurrency.max_workers = 4
            mock_get_settings.return_value.server.public_dir = str(self.temp_dir / "missing")
            app = create_app(fetcher=FakeFetcher())

        with TestClient(app) as client:
            response = client.get("/health")

        self.assertEqual(response.json()["sites"], 1)


if __name__ == "__main__":
    unittest.main()
