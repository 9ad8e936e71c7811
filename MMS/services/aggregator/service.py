import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from MMS.services.shared.errors import EmptyQueryError, FetchError, NoSitesError, format_user_error
from MMS.services.shared.logger import EventLogger
from MMS.services.shared.metrics import SITE_FETCH_COUNT, SITE_LATENCY
from MMS.tools.scrape.extractor import extract_items
from MMS.tools.scrape.fetcher import SiteFetcher
from MMS.tools.scrape.registry import SiteRegistry
from MMS.tools.scrape.schema import NO_TITLE, AggregatedResponse, SiteDescriptor, SitePipelineOutcome
from MMS.tools.scrape.urls import build_search_url


class AggregatorService:
    """Fans one query out to every active site and gathers the outcomes.

    Each site runs its own fetch-then-extract pipeline on a worker thread.
    A pipeline never raises: failures become `ok=False` outcomes, so one
    broken site never affects its siblings. Outcomes are returned in
    registry order, whatever order the pipelines finish in.

    Example:
        registry = SiteRegistry("MMS/config/sites.json")
        registry.load()
        aggregator = AggregatorService(registry)
        response = aggregator.search("inception")
    """

    def __init__(
        self,
        registry: SiteRegistry,
        fetcher: Optional[SiteFetcher] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        if max_workers is None:
            from MMS.services.shared.settings import get_settings
            max_workers = get_settings().concurrency.max_workers

        self.registry = registry
        self.fetcher = fetcher or SiteFetcher()
        self.max_workers = max_workers
        self.logger = EventLogger("aggregator")

    def search(self, query: Optional[str], request_id: Optional[str] = None) -> AggregatedResponse:
        """Run the query against all active sites.

        Raises:
            EmptyQueryError: if the query is blank after trimming.
            NoSitesError: if the registry has no active sites.
        """
        request_id = request_id or str(uuid.uuid4())
        query = (query or "").strip()
        if not query:
            raise EmptyQueryError(request_id=request_id)

        # One snapshot per search; a concurrent reload cannot mix registries
        sites = self.registry.snapshot()
        if not sites:
            raise NoSitesError(request_id=request_id)

        logger = self.logger.child(request_id)
        logger.log("search_started", {"query": query, "sites": len(sites)})
        start_time = time.time()

        results: List[Optional[SitePipelineOutcome]] = [None] * len(sites)
        workers = min(len(sites), self.max_workers)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_index = {
                executor.submit(self.run_site, site, query, logger): index
                for index, site in enumerate(sites)
            }

            for future in as_completed(future_to_index):
                results[future_to_index[future]] = future.result()

        ok_count = sum(1 for outcome in results if outcome.ok)
        logger.log("search_completed", {
            "query": query,
            "sites": len(results),
            "ok": ok_count,
            "failed": len(results) - ok_count,
            "items": sum(len(outcome.items) for outcome in results),
            "latency_ms": round((time.time() - start_time) * 1000.0, 2),
        })

        return AggregatedResponse(query=query, results=results)

    def run_site(
        self,
        site: SiteDescriptor,
        query: str,
        logger: Optional[EventLogger] = None,
    ) -> SitePipelineOutcome:
        """Fetch and extract one site. Always returns an outcome."""
        logger = logger or self.logger
        start_time = time.time()
        url = build_search_url(site.url_template, query)

        def elapsed_ms() -> int:
            return int((time.time() - start_time) * 1000)

        try:
            page = self.fetcher.fetch(site, query)
        except FetchError as e:
            outcome = SitePipelineOutcome.failure(
                site, e.url or url, format_user_error(e), elapsed_ms(), detail=e.message,
            )
            logger.log("site_fetch_failed", {
                "site_id": site.id,
                "url": outcome.url,
                "error": e.message,
                "status_code": e.status_code,
            }, level=logging.WARNING)
            self._record(site, "fetch_error", start_time)
            return outcome
        except Exception as e:
            outcome = SitePipelineOutcome.failure(site, url, f"Fetch error: {e}", elapsed_ms(), detail=str(e))
            logger.log("site_fetch_failed", {
                "site_id": site.id,
                "url": url,
                "error": str(e),
                "type": type(e).__name__,
            }, level=logging.ERROR)
            self._record(site, "fetch_error", start_time)
            return outcome

        try:
            items = extract_items(page.text, site, page.url)
        except Exception as e:
            # Typically an invalid selector in the site's configuration
            outcome = SitePipelineOutcome.failure(site, url, f"Parse error: {e}", elapsed_ms(), detail=str(e))
            logger.log("site_parse_failed", {
                "site_id": site.id,
                "error": str(e),
                "type": type(e).__name__,
            }, level=logging.ERROR)
            self._record(site, "parse_error", start_time)
            return outcome

        outcome = SitePipelineOutcome.success(site, url, items, elapsed_ms())
        logger.log("site_completed", {
            "site_id": site.id,
            "items": len(items),
            "elapsed_ms": outcome.elapsed_ms,
        })
        self._record(site, "ok", start_time)
        return outcome

    def search_compact(self, query: Optional[str]) -> Dict[str, object]:
        """Title/url-only view of a search keyed by site name.

        Failed sites map to `{"error": True, "message": ..., "manualUrl": ...}`
        where message is the bare failure text. Untitled items are left out.
        """
        response = self.search(query)
        output: Dict[str, object] = {}
        for outcome in response.results:
            if outcome.ok:
                output[outcome.site_name] = [
                    {"title": item.title, "url": item.url}
                    for item in outcome.items
                    if item.title != NO_TITLE
                ]
            else:
                output[outcome.site_name] = {
                    "error": True,
                    "message": outcome.detail,
                    "manualUrl": outcome.manual_url,
                }
        return output

    def _record(self, site: SiteDescriptor, status: str, start_time: float) -> None:
        SITE_FETCH_COUNT.labels(site=site.id, status=status).inc()
        SITE_LATENCY.labels(site=site.id).observe(time.time() - start_time)
