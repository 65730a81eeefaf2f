"""
Expansion Strategies

Interchangeable one-hop resolvers. Each one takes a URL and reports the next
hop, no change, or a failure reason; network and parsing trouble never
escapes as an exception. The resolver decides the order they are tried in.
"""

import asyncio
import re
from abc import abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple
from urllib.parse import unquote, urljoin, urlparse

import aiohttp
import httpx

from linkscope.config.logging import get_logger
from linkscope.core.resilience import CircuitBreaker, Throttle, api_retrying
from linkscope.services.interfaces import (
    ExpansionError, ExpansionOutcome, Failed, IExpansionStrategy, NoChange,
    RateLimitError, Resolved, ServiceUnavailableError, StrategyId
)
from linkscope.services.redirect_interfaces import hostname_of, is_absolute_http_url

logger = get_logger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; linkscope-resolver/1.0)"
REDIRECT_STATUSES = (301, 302, 303, 307, 308)
MAX_PAGE_BYTES = 256 * 1024


def _lower_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {str(k).lower(): str(v) for k, v in headers.items()}


async def _read_capped(response: aiohttp.ClientResponse, limit: int) -> bytes:
    chunks = []
    size = 0
    async for chunk in response.content.iter_chunked(8192):
        chunks.append(chunk)
        size += len(chunk)
        if size >= limit:
            break
    return b"".join(chunks)[:limit]


class BaseExpansionStrategy(IExpansionStrategy):
    """Applies the timeout and never-raise rules around ``_attempt``."""

    strategy_id: StrategyId

    def __init__(self, timeout: float = 3.0):
        self.timeout = timeout

    async def attempt(self, url: str) -> ExpansionOutcome:
        try:
            outcome = await asyncio.wait_for(self._attempt(url), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug(f"{self.strategy_id.value} timed out after {self.timeout}s for {url}")
            return Failed("timeout")
        except ServiceUnavailableError as e:
            logger.debug(f"{self.strategy_id.value} skipped: {e}")
            return Failed("circuit open")
        except ExpansionError as e:
            logger.debug(f"{self.strategy_id.value} failed for {url}: {e}")
            return Failed(str(e))
        except Exception as e:
            logger.warning(f"{self.strategy_id.value} raised for {url}: {e!r}")
            return Failed(f"{type(e).__name__}: {e}")
        return self._normalize(url, outcome)

    def _normalize(self, url: str, outcome: ExpansionOutcome) -> ExpansionOutcome:
        if isinstance(outcome, Resolved):
            if outcome.next_url == url:
                return NoChange()
            if not is_absolute_http_url(outcome.next_url):
                return Failed(f"not an absolute http(s) URL: {outcome.next_url!r}")
        return outcome

    @abstractmethod
    async def _attempt(self, url: str) -> ExpansionOutcome:
        pass


class _AiohttpStrategy(BaseExpansionStrategy):
    """Shared session handling for strategies that talk to the target directly."""

    def __init__(
        self,
        timeout: float = 3.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[aiohttp.ClientSession] = None
    ):
        super().__init__(timeout)
        self.user_agent = user_agent
        self._session = session

    async def _attempt(self, url: str) -> ExpansionOutcome:
        if self._session is not None:
            return await self._probe(self._session, url)

        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={
                'User-Agent': self.user_agent,
                'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
                'Accept-Language': 'en-US,en;q=0.5',
            }
        ) as session:
            return await self._probe(session, url)

    @abstractmethod
    async def _probe(self, session: aiohttp.ClientSession, url: str) -> ExpansionOutcome:
        pass


class DirectNavigationStrategy(_AiohttpStrategy):
    """Follow HTTP redirects with a bodiless request and report where they end."""

    strategy_id = StrategyId.DIRECT_NAVIGATION

    def __init__(self, *args, max_redirects: int = 10, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_redirects = max_redirects

    async def _probe(self, session: aiohttp.ClientSession, url: str) -> ExpansionOutcome:
        try:
            status, final_url, redirected, headers = await self._request(session, "HEAD", url)
            if status == 405:
                status, final_url, redirected, headers = await self._request(session, "GET", url)
        except aiohttp.TooManyRedirects:
            return Failed("too many redirects")
        except aiohttp.ClientError as e:
            return Failed(f"HTTP client error: {e}")

        if status >= 400:
            return Failed(f"HTTP {status}")
        # aiohttp normalises URLs, so only trust a change that came from a redirect
        if not redirected or final_url == url:
            return NoChange()
        return Resolved(final_url, headers)

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str
    ) -> Tuple[int, str, bool, Dict[str, str]]:
        request = session.head if method == "HEAD" else session.get
        async with request(url, allow_redirects=True, max_redirects=self.max_redirects) as response:
            return (
                response.status,
                str(response.url),
                bool(response.history),
                _lower_headers(response.headers),
            )


class MetaRefreshDetector:
    """Detects meta refresh redirects in HTML content"""

    META_PATTERN = re.compile(
        r'<meta[^>]*http-equiv\s*=\s*["\']refresh["\'][^>]*content\s*=\s*["\']([^"\']*)["\'][^>]*>',
        re.IGNORECASE
    )

    @classmethod
    def extract_meta_refresh(cls, html_content: str) -> Optional[Tuple[int, str]]:
        """
        Extract meta refresh directive from HTML content

        Returns:
            Tuple of (delay_seconds, url) if a directive with a target is found
        """
        for match in cls.META_PATTERN.finditer(html_content):
            content = match.group(1)
            if ';' not in content:
                continue
            delay_part, url_part = content.split(';', 1)
            try:
                delay = int(float(delay_part.strip() or 0))
            except ValueError:
                continue
            url_part = url_part.strip()
            if url_part.lower().startswith('url='):
                target = url_part[4:].strip().strip('\'"')
                if target:
                    return delay, target
        return None


class JavaScriptRedirectDetector:
    """Detects JavaScript-based redirects in HTML/JS content"""

    PATTERNS = [
        (re.compile(r'window\.location\.replace\s*\(\s*["\']([^"\']+)["\']\s*\)', re.IGNORECASE), 'location_replace'),
        (re.compile(r'window\.location\.href\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE), 'location_href'),
        (re.compile(r'window\.location\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE), 'location_assignment'),
        (re.compile(r'location\.href\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE), 'location_href'),
        (re.compile(r'document\.location\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE), 'document_location'),
        (re.compile(r'window\.open\s*\(\s*["\']([^"\']+)["\'][\s,]*["\']_self["\']', re.IGNORECASE), 'window_open_self'),
    ]

    @classmethod
    def extract_js_redirects(cls, content: str) -> List[Tuple[str, str]]:
        """
        Extract JavaScript redirects from content, in pattern priority order

        Returns:
            List of (redirect_type, url) tuples
        """
        redirects = []
        for pattern, redirect_type in cls.PATTERNS:
            for match in pattern.finditer(content):
                redirects.append((redirect_type, match.group(1)))
        return redirects


class PageRedirectStrategy(_AiohttpStrategy):
    """Fetch the page itself and look for a Location, meta-refresh or script redirect."""

    strategy_id = StrategyId.PAGE_REDIRECT

    async def _probe(self, session: aiohttp.ClientSession, url: str) -> ExpansionOutcome:
        try:
            async with session.get(url, allow_redirects=False) as response:
                status = response.status
                headers = _lower_headers(response.headers)
                if status in REDIRECT_STATUSES and headers.get('location'):
                    return Resolved(urljoin(url, headers['location']))
                if status >= 400:
                    return Failed(f"HTTP {status}")
                if 'html' not in headers.get('content-type', 'text/html').lower():
                    return NoChange()
                body = await _read_capped(response, MAX_PAGE_BYTES)
        except aiohttp.ClientError as e:
            return Failed(f"HTTP client error: {e}")

        html = body.decode('utf-8', errors='replace')
        target = self.find_redirect_target(html)
        if target is None:
            return NoChange()
        return Resolved(urljoin(url, target))

    @staticmethod
    def find_redirect_target(html: str) -> Optional[str]:
        meta = MetaRefreshDetector.extract_meta_refresh(html)
        if meta:
            return meta[1]
        js_redirects = JavaScriptRedirectDetector.extract_js_redirects(html)
        if js_redirects:
            return js_redirects[0][1]
        return None


class _ApiStrategy(BaseExpansionStrategy):
    """Throttled, retried, circuit-broken access to a third-party HTTP API."""

    service_name = "api"

    def __init__(
        self,
        timeout: float = 3.0,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        throttle: Optional[Throttle] = None,
        breaker: Optional[CircuitBreaker] = None,
        retry_count: int = 3
    ):
        super().__init__(timeout)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            follow_redirects=True
        )
        self.throttle = throttle or Throttle(0.5)
        self.breaker = breaker or CircuitBreaker(self.service_name)
        self.retry_count = retry_count

    async def _send(self, build: Callable[[], Any]) -> httpx.Response:
        """Send a request built by ``build`` under throttle, breaker and retry."""
        async for attempt in api_retrying(self.retry_count):
            with attempt:
                async with self.breaker:
                    async with self.throttle:
                        response = await build()
                    if response.status_code == 429:
                        raise RateLimitError(self.service_name, _retry_after(response))
                    if response.status_code >= 500:
                        raise ExpansionError(f"{self.service_name} HTTP {response.status_code}")
        return response

    async def _fetch_json(self, build: Callable[[], Any]) -> Dict[str, Any]:
        response = await self._send(build)
        if not 200 <= response.status_code < 300:
            raise ExpansionError(f"{self.service_name} HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            raise ExpansionError(f"{self.service_name} returned invalid JSON")
        if not isinstance(data, dict):
            raise ExpansionError(f"{self.service_name} returned unexpected payload")
        return data

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class UnshortenApiStrategy(_ApiStrategy):
    """Ask an authoritative unshortening service for the long form."""

    strategy_id = StrategyId.UNSHORTEN_API
    service_name = "unshorten_api"

    def __init__(self, endpoint: str = "https://unshorten.it/json/", **kwargs):
        super().__init__(**kwargs)
        self.endpoint = endpoint

    async def _attempt(self, url: str) -> ExpansionOutcome:
        data = await self._fetch_json(lambda: self.client.post(self.endpoint, json={"url": url}))
        resolved = data.get("resolved_url")
        if not resolved:
            return Failed("missing resolved_url")
        return Resolved(resolved)


class ExpandApiStrategy(_ApiStrategy):
    """Third-party expand service queried with the URL as a parameter."""

    strategy_id = StrategyId.EXPAND_API
    service_name = "expand_api"

    def __init__(self, endpoint: str = "https://api.expandurl.net/v1/", **kwargs):
        super().__init__(**kwargs)
        self.endpoint = endpoint

    async def _attempt(self, url: str) -> ExpansionOutcome:
        data = await self._fetch_json(lambda: self.client.get(self.endpoint, params={"url": url}))
        expanded = data.get("expanded_url")
        if not expanded:
            return Failed("missing expanded_url")
        return Resolved(expanded)


def _short_code(url: str) -> str:
    return urlparse(url).path.lstrip('/')


# Preview/info pages per shortener, tried in order
PREVIEW_PAGES: Dict[str, Tuple[Callable[[str], str], ...]] = {
    "bit.ly": (
        lambda code: f"https://bitly.com/{code}+",
        lambda code: f"https://bit.ly/{code}+",
    ),
    "tinyurl.com": (
        lambda code: f"https://preview.tinyurl.com/{code}",
    ),
}

# Markup patterns per shortener; first match wins
SCRAPE_PATTERNS: Dict[str, Tuple[Pattern, ...]] = {
    "bit.ly": (
        re.compile(r'data-long-url="([^"]+)"'),
        re.compile(r'long_url["\']?\s*:\s*["\']([^"\']+)["\']'),
        re.compile(r'"long_url":"([^"]+)"'),
        re.compile(r'originalURL["\']?\s*:\s*["\']([^"\']+)["\']'),
    ),
    "tinyurl.com": (
        re.compile(r'redirecturl=([^&"\']+)'),
        re.compile(r'data-url="([^"]+)"'),
        re.compile(r'"redirecturl":"([^"]+)"'),
    ),
}


class PatternScrapeStrategy(_ApiStrategy):
    """
    Best-effort: read a shortener's public preview page through a neutral
    fetch proxy and pull the long URL out of the markup. Upstream markup is
    outside our control, so every candidate is validated before use.
    """

    strategy_id = StrategyId.PATTERN_SCRAPE
    service_name = "fetch_proxy"

    def __init__(
        self,
        proxy_url: str = "https://api.allorigins.win/get",
        preview_pages: Optional[Mapping[str, Sequence[Callable[[str], str]]]] = None,
        patterns: Optional[Mapping[str, Sequence[Pattern]]] = None,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.proxy_url = proxy_url
        self.preview_pages = preview_pages if preview_pages is not None else PREVIEW_PAGES
        self.patterns = patterns if patterns is not None else SCRAPE_PATTERNS

    async def _attempt(self, url: str) -> ExpansionOutcome:
        host = hostname_of(url)
        code = _short_code(url)
        pages = self.preview_pages.get(host, ())
        patterns = self.patterns.get(host, ())
        if not code or not pages or not patterns:
            return Failed(f"no scrape patterns for {host}")

        for page in pages:
            preview_url = page(code)
            try:
                data = await self._fetch_json(
                    lambda: self.client.get(self.proxy_url, params={"url": preview_url})
                )
            except (ExpansionError, httpx.HTTPError) as e:
                logger.debug(f"Preview fetch failed for {preview_url}: {e}")
                continue
            content = data.get("contents")
            if not isinstance(content, str):
                continue
            candidate = self.extract(content, patterns)
            if candidate:
                return Resolved(candidate)
        return Failed("no pattern matched")

    @staticmethod
    def extract(content: str, patterns: Sequence[Pattern]) -> Optional[str]:
        """First pattern match that decodes to an absolute http(s) URL."""
        for pattern in patterns:
            match = pattern.search(content)
            if match and match.group(1):
                candidate = unquote(match.group(1)).replace('\\/', '/')
                if is_absolute_http_url(candidate):
                    return candidate
        return None


# Well-known demo short codes. Only for sandboxed demos and tests.
DEMO_MAPPINGS: Dict[Tuple[str, str], str] = {
    ("bit.ly", "3QzdcZp"): "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    ("bit.ly", "test"): "https://www.google.com/search?q=linkscope+demo",
    ("bit.ly", "demo"): "https://github.com/topics/url-security",
    ("bit.ly", "example"): "https://www.example.com/security-analysis",
    ("tinyurl.com", "test"): "https://www.example.com/test-page",
    ("tinyurl.com", "demo"): "https://www.wikipedia.org/wiki/URL_shortening",
}


class StaticTableStrategy(BaseExpansionStrategy):
    """Deterministic lookup of known demo codes; never part of production resolution."""

    strategy_id = StrategyId.STATIC_TABLE

    def __init__(self, mappings: Optional[Mapping[Tuple[str, str], str]] = None, timeout: float = 3.0):
        super().__init__(timeout)
        self.mappings = dict(DEMO_MAPPINGS if mappings is None else mappings)

    async def _attempt(self, url: str) -> ExpansionOutcome:
        target = self.mappings.get((hostname_of(url), _short_code(url)))
        if target is None:
            return Failed("unknown demo code")
        return Resolved(target)


__all__ = [
    "BaseExpansionStrategy",
    "DirectNavigationStrategy",
    "PageRedirectStrategy",
    "UnshortenApiStrategy",
    "ExpandApiStrategy",
    "PatternScrapeStrategy",
    "StaticTableStrategy",
    "MetaRefreshDetector",
    "JavaScriptRedirectDetector",
    "PREVIEW_PAGES",
    "SCRAPE_PATTERNS",
    "DEMO_MAPPINGS",
]
