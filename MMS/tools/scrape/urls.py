from urllib.parse import quote, urljoin, urlsplit

from .schema import QUERY_PLACEHOLDER

# Characters JavaScript's encodeURIComponent leaves unescaped besides [A-Za-z0-9_.-~]
_URI_COMPONENT_SAFE = "!*'()"


def encode_query(query: str) -> str:
    """Percent-encode a query string the way encodeURIComponent does."""
    return quote(query, safe=_URI_COMPONENT_SAFE)


def build_search_url(url_template: str, query: str) -> str:
    """Substitute the encoded query for the first placeholder in the template."""
    return url_template.replace(QUERY_PLACEHOLDER, encode_query(query), 1)


def resolve_url(base_url: str, href: str) -> str:
    """Resolve href against base_url.

    Returns href unchanged when resolution fails or does not produce an
    absolute URL, so a single malformed link never aborts extraction.
    """
    try:
        absolute = urljoin(base_url, href)
        parts = urlsplit(absolute)
        # .port raises ValueError on a non-numeric or out-of-range port
        parts.port
    except ValueError:
        return href

    if not parts.scheme:
        return href
    return absolute
