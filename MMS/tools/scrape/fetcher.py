import time
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from MMS.services.shared.errors import FetchError
from .schema import SiteDescriptor
from .urls import build_search_url


# Desktop Chrome header set; reduces trivial bot-blocking on result pages
BROWSER_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Ch-Ua": "\"Chromium\";v=\"120\", \"Not A(Brand\";v=\"99\"",
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": "\"Linux\"",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
    "Referer": "https://google.com/",
}


@dataclass
class RawPage:
    """Markup returned by a successful site fetch."""
    url: str
    status_code: int
    text: str
    elapsed_ms: int


class SiteFetcher:
    """Performs the single outbound GET for one site and query.

    Notes:
    - No retry and no custom redirect policy; requests follows redirects.
    - `timeout_seconds` applies to each request (connect and read), there is
      no aggregate deadline across sites.
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        referer: Optional[str] = None,
    ) -> None:
        if timeout_seconds is None or referer is None:
            from MMS.services.shared.settings import get_settings

            fetch_settings = get_settings().fetch
            if timeout_seconds is None:
                timeout_seconds = fetch_settings.timeout_seconds
            if referer is None:
                referer = fetch_settings.referer

        self.timeout_seconds = timeout_seconds
        self.headers = {**BROWSER_HEADERS, "Referer": referer}

    def fetch(self, site: SiteDescriptor, query: str) -> RawPage:
        """Fetch the site's result page for query.

        Raises:
            FetchError: on transport failure or a non-2xx status. The error
                carries the constructed URL.
        """
        url = build_search_url(site.url_template, query)
        return self.fetch_url(url, site_id=site.id)

    def fetch_url(self, url: str, site_id: Optional[str] = None) -> RawPage:
        start_time = time.time()

        try:
            response = requests.get(url, headers=self.headers, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise FetchError(str(e) or type(e).__name__, url=url, site_id=site_id) from e

        if not 200 <= response.status_code < 300:
            raise FetchError(
                f"HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
                site_id=site_id,
            )

        # Pages served without a charset would otherwise decode as ISO-8859-1
        content_type = response.headers.get("Content-Type", "")
        if "charset" not in content_type.lower():
            response.encoding = response.apparent_encoding

        elapsed_ms = int((time.time() - start_time) * 1000)
        return RawPage(
            url=url,
            status_code=response.status_code,
            text=response.text,
            elapsed_ms=elapsed_ms,
        )
