"""URL scoping and validation for the crawler.

Links are followed only inside the registrable domain of the crawl root
(``docs.example.co.uk`` and ``www.example.co.uk`` share ``example.co.uk``).
Root URLs are checked for scheme and literal private addresses before a
job is accepted.
"""

import ipaddress
import logging
from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlparse, urlunparse

import tldextract

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = {'http', 'https'}

# Hrefs that never lead to a crawlable page
SKIPPED_PREFIXES = ('mailto:', 'tel:', 'javascript:', 'data:', 'sms:')

# Offline extractor: use the suffix list bundled with tldextract, no HTTP fetch.
_extract = tldextract.TLDExtract(suffix_list_urls=())


class InvalidRootURL(ValueError):
    """Raised when a crawl root URL is not acceptable."""
    pass


def registrable_domain(url: str) -> str:
    """Return the registrable domain of ``url`` (``a.b.example.com`` -> ``example.com``).

    Hosts without a public suffix (IP addresses, ``localhost``) are returned
    as-is, lower-cased.
    """
    hostname = (urlparse(url).hostname or "").lower()
    if not hostname:
        return ""
    ext = _extract(hostname)
    if ext.suffix and ext.domain:
        return f"{ext.domain}.{ext.suffix}"
    return hostname


def same_registrable_domain(url: str, root_url: str) -> bool:
    domain = registrable_domain(url)
    return bool(domain) and domain == registrable_domain(root_url)


def canonical_url(url: str) -> str:
    """Drop the fragment and give a bare host the root path.

    ``https://example.com`` and ``https://example.com/#top`` both become
    ``https://example.com/``, so a root and a link back to it are one page.
    """
    parsed = urlparse(url)
    return urlunparse(parsed._replace(path=parsed.path or '/', fragment=''))


def normalize_link(href: str, base_url: str) -> Optional[str]:
    """Resolve ``href`` against ``base_url`` and strip its fragment.

    Returns None for fragment-only links, non-navigational schemes and
    anything that is not http(s).
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith('#'):
        return None
    if href.lower().startswith(SKIPPED_PREFIXES):
        return None

    try:
        absolute = urljoin(base_url, href)
        parsed = urlparse(absolute)
    except ValueError:
        return None

    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc:
        return None

    return canonical_url(absolute)


def filter_links(hrefs: Iterable[str], base_url: str, root_url: str, limit: int = 20) -> List[str]:
    """Turn raw anchor hrefs into the crawlable same-domain links of a page.

    Order of first appearance is kept and duplicates are dropped. At most
    ``limit`` links are returned.
    """
    links: List[str] = []
    seen = set()

    for href in hrefs:
        if len(links) >= limit:
            break
        url = normalize_link(href, base_url)
        if url is None or url in seen:
            continue
        if not same_registrable_domain(url, root_url):
            continue
        seen.add(url)
        links.append(url)

    return links


def _is_private_address(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(hostname.strip('[]'))
    except ValueError:
        return False
    return ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved or ip.is_multicast


def validate_root_url(url: str) -> str:
    """Validate a crawl root and return its canonical form (see :func:`canonical_url`).

    Raises:
        InvalidRootURL: for unsupported schemes, missing hosts, ``localhost``
            and literal private or loopback addresses.
    """
    try:
        parsed = urlparse(url.strip())
    except (AttributeError, ValueError) as e:
        raise InvalidRootURL(f"Malformed URL: {url!r}") from e

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidRootURL(f"Scheme '{parsed.scheme}' not allowed. Only {sorted(ALLOWED_SCHEMES)} are permitted.")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise InvalidRootURL(f"URL has no host: {url!r}")

    if hostname == 'localhost' or hostname.endswith('.localhost') or _is_private_address(hostname):
        raise InvalidRootURL(f"Private or local address not allowed: {hostname}")

    return canonical_url(urlunparse(parsed))
