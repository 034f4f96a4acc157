"""Find the permit-issuing jurisdiction for an address."""

from __future__ import annotations

import logging
import re
import time
from typing import Sequence
from urllib.parse import urljoin, urlparse

from .cache import TTLCache
from .circuit_breaker import CircuitBreaker, discovery_breaker
from .errors import CircuitOpenError
from .extractors import ADDRESS_RE, PERMIT_KEYWORDS, format_phone, normalize_whitespace, parse_address_match
from .geocoding import Geocoder
from .government_sites import GovernmentSite, find_government_site
from .models import Address, ContactInfo, Jurisdiction, JurisdictionType
from .scraper import ScrapingOptions, WebScraper

logger = logging.getLogger(__name__)

DISCOVERY_CACHE_TTL_SECONDS = 10 * 60
DEFAULT_MAX_CANDIDATES = 16
MAX_LINK_CANDIDATES = 5

COMMON_PERMIT_PATHS = (
    "/permits",
    "/building",
    "/building-permits",
    "/planning",
    "/development",
    "/applications",
    "/forms",
    "/services/building",
    "/departments/building",
    "/permits-and-licenses",
)

HOMEPAGE_OPTIONS = ScrapingOptions(timeout=15.0, delay_between_requests=1.0, max_retries=1)


def sanitize_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (name or "").lower())


def to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value <= 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def is_permit_related_url(url: str) -> bool:
    lowered = url.lower()
    return any(keyword in lowered for keyword in PERMIT_KEYWORDS)


def candidate_sites(address: Address) -> list[str]:
    """Likely official website URLs for the address' city and county."""

    city = sanitize_name(address.city)
    state = sanitize_name(address.state)
    county = sanitize_name(address.county or "")

    hosts: list[str] = []
    if city:
        hosts += [
            f"{city}.gov",
            f"www.{city}.gov",
            f"cityof{city}.gov",
            f"www.cityof{city}.gov",
            f"{city}{state}.gov",
            f"www.{city}{state}.gov",
            f"{city}.{state}.gov",
            f"ci.{city}.{state}.us",
            f"www.ci.{city}.{state}.us",
            f"cityof{city}.org",
            f"www.{city}.org",
        ]
    if county:
        hosts += [
            f"{county}county.gov",
            f"www.{county}county.gov",
            f"{county}county{state}.gov",
            f"co.{county}.{state}.us",
        ]

    urls: list[str] = []
    seen: set[str] = set()
    for host in hosts:
        for scheme in ("https", "http"):
            url = f"{scheme}://{host}"
            if url not in seen:
                seen.add(url)
                urls.append(url)
    return urls


def jurisdiction_id(address: Address, now: float | None = None) -> str:
    base = re.sub(r"[^a-z0-9]", "-", f"{address.city}-{address.state}".lower())
    return f"{base}-{to_base36(int((now or time.time()) * 1000))}"


def jurisdiction_name(address: Address, page_title: str) -> str:
    if page_title and address.city.lower() in page_title.lower():
        return page_title
    if address.county:
        return f"{address.city}, {address.county} County, {address.state}"
    return f"{address.city}, {address.state}"


def jurisdiction_type(website: str, address: Address) -> JurisdictionType:
    domain = (urlparse(website).hostname or website).lower()
    if "county" in domain:
        return JurisdictionType.COUNTY
    state = address.state.lower()
    if state and state in domain and sanitize_name(address.city) not in domain:
        return JurisdictionType.STATE
    return JurisdictionType.CITY


def _parse_office_address(text: str) -> Address | None:
    match = ADDRESS_RE.search(normalize_whitespace(text))
    return parse_address_match(match) if match else None


class JurisdictionDiscovery:
    """Resolves an address to a Jurisdiction with a website and permit page."""

    def __init__(
        self,
        scraper: WebScraper,
        *,
        geocoder: Geocoder | None = None,
        breaker: CircuitBreaker = discovery_breaker,
        cache: TTLCache[Jurisdiction] | None = None,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
        use_registry: bool = True,
    ) -> None:
        self._scraper = scraper
        self._geocoder = geocoder
        self._breaker = breaker
        self._cache: TTLCache[Jurisdiction] = cache or TTLCache(ttl=DISCOVERY_CACHE_TTL_SECONDS, max_size=200)
        self._max_candidates = max_candidates
        self._use_registry = use_registry

    async def discover_jurisdiction(self, address: Address) -> Jurisdiction | None:
        key = f"{sanitize_name(address.city)}|{address.state.lower()}|{address.zip_code}"
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Jurisdiction cache hit for %s", key)
            return cached

        try:
            jurisdiction = await self._breaker.execute(lambda: self._discover(address))
        except CircuitOpenError as exc:
            logger.warning("Skipping discovery for %s: %s", address.one_line(), exc)
            return None
        except Exception:
            logger.exception("Jurisdiction discovery failed for %s", address.one_line())
            return None

        if jurisdiction is not None:
            self._cache.set(key, jurisdiction)
        return jurisdiction

    async def _discover(self, address: Address) -> Jurisdiction | None:
        validated = await self._validate_address(address)

        if self._use_registry:
            site = find_government_site(validated.city, validated.state)
            if site is not None:
                logger.info("Using known permit office for %s, %s", site.city, site.state)
                return self.from_government_site(validated, site)

        for site_url in candidate_sites(validated)[: self._max_candidates]:
            if not await self._scraper.is_accessible(site_url):
                continue
            logger.info("Found accessible site %s", site_url)
            permit_urls = await self.find_permit_urls(site_url)
            if permit_urls:
                return await self.create_jurisdiction(validated, site_url, permit_urls)

        logger.info("No jurisdiction found for %s", validated.one_line())
        return None

    async def _validate_address(self, address: Address) -> Address:
        if self._geocoder is None:
            return address
        try:
            enriched = await self._geocoder.geocode(address)
        except Exception as exc:
            logger.warning("Address validation failed, using original address: %s", exc)
            return address
        return enriched or address

    async def find_permit_urls(self, base_url: str) -> list[str]:
        """Permit page candidates for a site: portal link, common paths, then homepage links."""

        found: list[str] = []
        homepage = await self._scraper.scrape_url(base_url, HOMEPAGE_OPTIONS)

        if homepage.success and homepage.structured and homepage.structured.permit_portal_url:
            found.append(homepage.structured.permit_portal_url)

        if not found:
            for path in COMMON_PERMIT_PATHS:
                url = urljoin(base_url, path)
                if await self._scraper.is_accessible(url):
                    found.append(url)

        if not found and homepage.success:
            links = [link for link in homepage.links if is_permit_related_url(link)]
            for link in links[:MAX_LINK_CANDIDATES]:
                if await self._scraper.is_accessible(link):
                    found.append(link)

        return list(dict.fromkeys(found))

    async def create_jurisdiction(
        self,
        address: Address,
        website: str,
        permit_urls: Sequence[str],
    ) -> Jurisdiction:
        homepage = await self._scraper.scrape_url(website, HOMEPAGE_OPTIONS)
        contact = ContactInfo()
        if homepage.success and homepage.structured is not None:
            contact = homepage.structured.contact
        return Jurisdiction(
            id=jurisdiction_id(address),
            name=jurisdiction_name(address, homepage.title if homepage.success else ""),
            type=jurisdiction_type(website, address),
            address=address,
            website=website,
            permit_url=permit_urls[0] if permit_urls else None,
            contact_info=contact,
        )

    def from_government_site(self, address: Address, site: GovernmentSite) -> Jurisdiction:
        return Jurisdiction(
            id=jurisdiction_id(address),
            name=f"{site.city}, {site.state}",
            type=JurisdictionType.CITY,
            address=address,
            website=site.website,
            permit_url=site.permit_url,
            contact_info=ContactInfo(
                phone=format_phone(site.phone) or site.phone,
                email=site.email,
                address=_parse_office_address(site.office_address),
            ),
        )
