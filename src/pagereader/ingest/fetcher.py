"""Page fetcher — single-URL retrieval with SSRF protection and politeness.

Security requirements:
- SSRF guard: ipaddress module blocks private/loopback/link-local ranges before
  any connection is established, and again for every redirect target.
- Allowed URL schemes: https:// and http:// only.
- Content-Type whitelist: text/html and text/plain only.
- Max response body: 5 MB (crawl.max_bytes).
- Timeout: 30 seconds (crawl.timeout).
- Max redirects: 3.

Politeness (owned here, not by the indexing pipeline):
- At most ``crawl.max_pages`` fetches per fetcher instance.
- At least ``crawl.min_delay_ms`` between two requests to the same origin.

Failures are raised as FetchError and never retried here.
"""

from __future__ import annotations

import asyncio
import codecs
import http.client
import ipaddress
import logging
import socket
import time
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pagereader.config import CrawlCfg
from pagereader.errors import CrawlBudgetExceeded, FetchError, SsrfError

logger = logging.getLogger(__name__)

_USER_AGENT = "pagereader/0.1"
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}
_ALLOWED_CONTENT_TYPES = {"text/html", "text/plain"}
_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass
class FetchedPage:
    """A retrieved page.

    Attributes:
        url: Canonical form of the requested URL (not the redirect target).
        text: Decoded response body.
        content_type: Media type without parameters (text/html or text/plain).
    """

    url: str
    text: str
    content_type: str = "text/html"


def canonical_url(url: str) -> str:
    """Return the canonical string form of *url*.

    Lower-cases scheme and host, drops default ports and the fragment, and
    gives an empty path ``/``. Query strings are kept verbatim.

    Raises:
        FetchError: If the scheme is not http/https or there is no host.
    """
    parsed = urllib.parse.urlsplit(url.strip())
    scheme = parsed.scheme.lower()
    if scheme not in _ALLOWED_SCHEMES:
        raise FetchError(
            f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed.",
            url=url,
        )
    host = (parsed.hostname or "").lower()
    if not host:
        raise FetchError(f"URL has no hostname: {url}", url=url)
    try:
        port = parsed.port
    except ValueError as exc:
        raise FetchError(f"Invalid port in URL '{url}': {exc}", url=url) from exc

    if ":" in host:
        host = f"[{host}]"
    netloc = host if port is None or port == _DEFAULT_PORTS[scheme] else f"{host}:{port}"
    if parsed.username or parsed.password:
        raise FetchError("URLs with embedded credentials are not supported.", url=url)
    return urllib.parse.urlunsplit((scheme, netloc, parsed.path or "/", parsed.query, ""))


def check_ssrf(url: str) -> None:
    """Resolve the hostname and block private/reserved IP ranges.

    Raises:
        SsrfError: If any resolved address is private, loopback, link-local,
            multicast, unspecified or otherwise reserved.
        FetchError: If the hostname is missing or does not resolve.
    """
    hostname = urllib.parse.urlsplit(url).hostname
    if not hostname:
        raise FetchError(f"URL has no hostname: {url}", url=url)

    try:
        addrinfos = socket.getaddrinfo(hostname, None)
    except socket.gaierror as exc:
        raise FetchError(f"DNS resolution failed for '{hostname}': {exc}", url=url) from exc

    for addrinfo in addrinfos:
        addr_str = addrinfo[4][0]
        try:
            ip = ipaddress.ip_address(addr_str)
        except ValueError:
            continue
        if (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_reserved
            or ip.is_multicast
            or ip.is_unspecified
        ):
            raise SsrfError(
                f"URL resolves to private address ({ip}). "
                "Access to internal network addresses is not allowed.",
                url=url,
            )


class PageFetcher:
    """Fetch single pages over HTTP(S), one politeness budget per instance.

    Args:
        cfg: Crawl limits (page budget, per-origin delay, timeout, body cap).
        clock: Monotonic clock in seconds (injectable for tests).
        sleep: Coroutine used to wait out the per-origin delay.
    """

    def __init__(
        self,
        cfg: CrawlCfg | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.cfg = cfg or CrawlCfg()
        self._clock = clock
        self._sleep = sleep
        self._pages_fetched = 0
        self._last_request: dict[str, float] = {}
        self._origin_locks: dict[str, asyncio.Lock] = {}

    @property
    def pages_fetched(self) -> int:
        return self._pages_fetched

    async def fetch(self, url: str) -> FetchedPage:
        """Fetch *url* and return its decoded body.

        Raises:
            CrawlBudgetExceeded: If ``max_pages`` fetches were already made.
            SsrfError: If the host resolves to an internal address.
            FetchError: On any other network, HTTP or policy failure.
        """
        canonical = canonical_url(url)
        if self._pages_fetched >= self.cfg.max_pages:
            raise CrawlBudgetExceeded(
                f"Crawl budget of {self.cfg.max_pages} pages exhausted; not fetching '{canonical}'.",
                url=canonical,
            )
        self._pages_fetched += 1

        await self._wait_for_origin(canonical)
        await asyncio.to_thread(check_ssrf, canonical)
        body, content_type, charset = await asyncio.to_thread(self._fetch, canonical)
        logger.info("Fetched %s (%d bytes, %s)", canonical, len(body), content_type)
        return FetchedPage(
            url=canonical,
            text=body.decode(charset or "utf-8", errors="replace"),
            content_type=content_type,
        )

    # ------------------------------------------------------------------
    # Politeness
    # ------------------------------------------------------------------

    async def _wait_for_origin(self, url: str) -> None:
        """Sleep until ``min_delay_ms`` has passed since the last request to this origin."""
        parts = urllib.parse.urlsplit(url)
        origin = f"{parts.scheme}://{parts.netloc}"
        lock = self._origin_locks.setdefault(origin, asyncio.Lock())
        async with lock:
            last = self._last_request.get(origin)
            if last is not None:
                wait = last + self.cfg.min_delay_ms / 1000 - self._clock()
                if wait > 0:
                    logger.debug("Waiting %.3fs before requesting %s", wait, origin)
                    await self._sleep(wait)
            self._last_request[origin] = self._clock()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _fetch(self, url: str) -> tuple[bytes, str, str | None]:
        """Fetch *url* with timeout, redirect limit, size cap, and Content-Type check.

        Returns (body_bytes, content_type_without_params, charset_or_None).
        """
        request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))
        max_bytes = self.cfg.max_bytes

        try:
            with opener.open(request, timeout=self.cfg.timeout) as response:
                raw_ct = response.headers.get("Content-Type", "text/html")
                ct = raw_ct.split(";")[0].strip().lower()
                if ct not in _ALLOWED_CONTENT_TYPES:
                    raise FetchError(
                        f"Unsupported Content-Type '{ct}' for URL '{url}'. "
                        f"Accepted: {', '.join(sorted(_ALLOWED_CONTENT_TYPES))}",
                        url=url,
                    )
                charset = response.headers.get_content_charset()
                if charset is not None and not _known_charset(charset):
                    logger.warning("Unknown charset %r for %s; decoding as utf-8", charset, url)
                    charset = None
                body = response.read(max_bytes + 1)
        except urllib.error.HTTPError as exc:
            raise FetchError(f"HTTP {exc.code} fetching '{url}': {exc.reason}", url=url) from exc
        except (OSError, http.client.HTTPException) as exc:
            raise FetchError(f"Failed to fetch URL '{url}': {exc}", url=url) from exc

        if len(body) > max_bytes:
            raise FetchError(
                f"Response body exceeds {max_bytes // (1024 * 1024)} MB limit for URL '{url}'.",
                url=url,
            )
        return body, ct, charset


def _known_charset(charset: str) -> bool:
    try:
        codecs.lookup(charset)
    except LookupError:
        return False
    return True


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Fail after *max_redirects* redirects; SSRF-check every redirect target."""

    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise FetchError(
                f"Too many redirects (>{self._max_redirects}) for URL '{req.full_url}'.",
                url=req.full_url,
            )
        if urllib.parse.urlsplit(newurl).scheme.lower() not in _ALLOWED_SCHEMES:
            raise FetchError(f"Redirect to unsupported scheme: '{newurl}'.", url=req.full_url)
        check_ssrf(newurl)
        return super().redirect_request(req, fp, code, msg, headers, newurl)
