from typing import List

from bs4 import BeautifulSoup

from .schema import NO_TITLE, SearchResultItem, SiteDescriptor
from .urls import resolve_url


def _first_text(node, selector: str) -> str:
    match = node.select_one(selector)
    if match is None:
        return ""
    return match.get_text().strip()


def extract_items(markup: str, site: SiteDescriptor, page_url: str) -> List[SearchResultItem]:
    """Walk the site's result nodes and normalize each into a SearchResultItem.

    Selectors other than `result_selector` match descendants of the result
    node and the first match wins. Results without an href, or with neither
    title nor snippet text, are skipped. Items keep document order.

    Raises:
        soupsieve.SelectorSyntaxError: if a configured selector is invalid.
    """
    soup = BeautifulSoup(markup, "html.parser")
    items: List[SearchResultItem] = []

    for node in soup.select(site.result_selector):
        link = node.select_one(site.link_selector)
        if link is None:
            continue
        href = link.get("href")
        if not href:
            continue

        url = resolve_url(page_url, href)

        title = _first_text(node, site.title_selector)
        if not title:
            title = link.get_text().strip()

        snippet = ""
        if site.snippet_selector:
            snippet = _first_text(node, site.snippet_selector)

        if not title and not snippet:
            continue

        items.append(SearchResultItem(title=title or NO_TITLE, url=url, snippet=snippet))

    return items
