"""Polite async scraping of government permit pages."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from . import config
from .cache import TTLCache
from .circuit_breaker import CircuitBreaker, scraping_breaker
from .errors import CircuitOpenError, NetworkError, RateLimitExceeded
from .extractors import (
    extract_main_content,
    extract_permit_links,
    extract_structured,
    extract_title,
    parse_html,
    strip_noise,
)
from .models import ScrapeResult
from .rate_limiter import RateLimiter, government_site_rate_limiter
from .robots import RobotsPolicy

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
SCRAPE_CACHE_TTL_SECONDS = 30 * 60


@dataclass(slots=True)
class ScrapingOptions:
    timeout: float = 30.0
    delay_between_requests: float = 2.0
    max_retries: int = 3
    respect_robots: bool = True
    enable_advanced_extraction: bool = True


def clean_url(url: str) -> str:
    """Strip control characters and whitespace; default to https."""
    if not url:
        return ""
    cleaned = re.sub(r"[\x00-\x1f\x7f]", "", url).strip()
    cleaned = cleaned.replace(" ", "%20")
    if cleaned and "://" not in cleaned:
        cleaned = "https://" + cleaned
    return cleaned


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.hostname) and "." in (parsed.hostname or "")


def failed_result(url: str, error: str) -> ScrapeResult:
    return ScrapeResult(url=url, title="", content="", links=[], success=False, error=error)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, NetworkError) and exc.retryable


class WebScraper:
    """Fetches pages with rate limiting, retries and a circuit breaker.

    ``scrape_url`` never raises for network problems; failures come back as
    ScrapeResult objects with ``success=False``.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        user_agent: str = config.USER_AGENT,
        rate_limiter: RateLimiter = government_site_rate_limiter,
        breaker: CircuitBreaker = scraping_breaker,
        cache: TTLCache[ScrapeResult] | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={
                "User-Agent": user_agent,
                "Accept": DEFAULT_ACCEPT_HEADER,
                "Accept-Language": "en-US,en;q=0.9",
            },
            timeout=httpx.Timeout(30.0, connect=10.0),
            http2=True,
            follow_redirects=True,
        )
        self._rate_limiter = rate_limiter
        self._breaker = breaker
        self._cache: TTLCache[ScrapeResult] = cache or TTLCache(ttl=SCRAPE_CACHE_TTL_SECONDS, max_size=500)
        self._robots = RobotsPolicy(self._client, user_agent=user_agent)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def __aenter__(self) -> "WebScraper":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def scrape_url(self, url: str, options: ScrapingOptions | None = None) -> ScrapeResult:
        options = options or ScrapingOptions()
        original_url = url
        url = clean_url(url)
        if not is_valid_url(url):
            logger.warning("Invalid URL provided: %r", original_url)
            return failed_result(original_url, "Invalid URL provided")

        cached = self._cache.get(url)
        if cached is not None:
            logger.debug("Scrape cache hit for %s", url)
            return cached

        if options.respect_robots and not await self._robots.allows(url):
            logger.info("robots.txt disallows %s", url)
            return failed_result(url, "Scraping failed: blocked by robots.txt")

        try:
            result = await self._breaker.execute(lambda: self._scrape_with_retries(url, options))
        except CircuitOpenError as exc:
            return failed_result(url, f"Scraping failed: {exc}")
        except NetworkError as exc:
            logger.warning("Scraping %s failed: %s", url, exc)
            return failed_result(url, f"Network error: {exc} ({exc.code})")
        except RateLimitExceeded as exc:
            return failed_result(url, f"Scraping failed: {exc}")

        self._cache.set(url, result)
        return result

    async def _scrape_with_retries(self, url: str, options: ScrapingOptions) -> ScrapeResult:
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(max(1, options.max_retries)),
            wait=wait_fixed(options.delay_between_requests),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.info("Retrying %s (attempt %d/%d)", url, number, options.max_retries)
                return await self._fetch_once(url, options)
        raise NetworkError(f"No attempts made for {url}")  # pragma: no cover

    async def _fetch_once(self, url: str, options: ScrapingOptions) -> ScrapeResult:
        await self._rate_limiter.wait_for_slot()
        try:
            response = await self._client.get(url, timeout=options.timeout)
        except httpx.RequestError as exc:
            raise NetworkError.from_httpx(exc) from exc

        if response.status_code >= 400:
            raise NetworkError.from_status(response.status_code, response.reason_phrase)

        return self._build_result(str(response.url), response.text, options)

    def _build_result(self, url: str, html: str, options: ScrapingOptions) -> ScrapeResult:
        soup = parse_html(html)
        title = extract_title(soup)
        links = extract_permit_links(soup, url)
        strip_noise(soup)
        content = extract_main_content(soup)
        structured = extract_structured(html, url) if options.enable_advanced_extraction else None
        return ScrapeResult(
            url=url,
            title=title,
            content=content,
            links=links,
            success=True,
            timestamp=time.time(),
            structured=structured,
        )

    async def is_accessible(self, url: str, *, timeout: float = 10.0) -> bool:
        """Cheap reachability probe used during jurisdiction discovery."""
        url = clean_url(url)
        if not is_valid_url(url):
            return False
        try:
            await self._rate_limiter.wait_for_slot()
            response = await self._client.head(url, timeout=timeout)
            if response.status_code in (405, 501):
                response = await self._client.get(url, timeout=timeout)
        except (httpx.RequestError, RateLimitExceeded) as exc:
            logger.debug("Probe failed for %s: %s", url, exc)
            return False
        return response.status_code < 400

    async def scrape_multiple_urls(
        self,
        urls: list[str],
        options: ScrapingOptions | None = None,
    ) -> list[ScrapeResult]:
        options = options or ScrapingOptions()
        results: list[ScrapeResult] = []
        for index, url in enumerate(urls):
            if index:
                await asyncio.sleep(options.delay_between_requests)
            try:
                results.append(await self.scrape_url(url, options))
            except Exception as exc:
                logger.exception("Unexpected error scraping %s", url)
                results.append(failed_result(url, f"Scraping failed: {exc}"))
        return results

    def clear_cache(self) -> None:
        self._cache.clear()

