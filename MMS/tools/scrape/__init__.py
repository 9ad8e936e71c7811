from .schema import SiteDescriptor, SearchResultItem, SitePipelineOutcome, AggregatedResponse
from .urls import build_search_url, encode_query, resolve_url
from .fetcher import SiteFetcher, RawPage, BROWSER_HEADERS
from .extractor import extract_items
from .registry import SiteRegistry

__all__ = [
    "SiteDescriptor",
    "SearchResultItem",
    "SitePipelineOutcome",
    "AggregatedResponse",
    "build_search_url",
    "encode_query",
    "resolve_url",
    "SiteFetcher",
    "RawPage",
    "BROWSER_HEADERS",
    "extract_items",
    "SiteRegistry",
]
