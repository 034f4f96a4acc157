"""Jurisdiction discovery tests using an in-memory scraper."""
import asyncio
from dataclasses import replace

from permit_agent.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from permit_agent.discovery import (
    JurisdictionDiscovery,
    candidate_sites,
    jurisdiction_id,
    jurisdiction_name,
    jurisdiction_type,
    sanitize_name,
    to_base36,
)
from permit_agent.government_sites import find_government_site, search_government_sites
from permit_agent.models import Address, JurisdictionType, ScrapeResult, StructuredData


class FakeScraper:
    def __init__(self, accessible=(), pages=None, explode=False):
        self.accessible = set(accessible)
        self.pages = pages or {}
        self.explode = explode
        self.probes = []

    async def is_accessible(self, url, *, timeout=10.0):
        if self.explode:
            raise RuntimeError("network meltdown")
        self.probes.append(url)
        return url in self.accessible

    async def scrape_url(self, url, options=None):
        page = self.pages.get(url)
        if page is None:
            return ScrapeResult(url=url, title="", content="", links=[], success=False, error="Network error")
        return page


class FakeGeocoder:
    async def geocode(self, address):
        return replace(address, county="Sangamon", latitude=39.8, longitude=-89.6)


def _breaker(threshold=5):
    return CircuitBreaker(CircuitBreakerConfig(failure_threshold=threshold, reset_timeout=60.0), name="discovery-test")


def test_name_helpers():
    assert sanitize_name("St. Louis") == "stlouis"
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"


def test_candidate_sites(address):
    sites = candidate_sites(replace(address, county="Sangamon"))
    assert sites[:2] == ["https://springfield.gov", "http://springfield.gov"]
    assert "https://ci.springfield.il.us" in sites
    assert "https://sangamoncounty.gov" in sites
    assert len(sites) == len(set(sites))


def test_jurisdiction_helpers(address):
    assert jurisdiction_id(address, now=1.0) == "springfield-il-rs"
    assert jurisdiction_name(address, "City of Springfield - Home") == "City of Springfield - Home"
    assert jurisdiction_name(address, "Welcome") == "Springfield, IL"
    assert jurisdiction_name(replace(address, county="Sangamon"), "") == "Springfield, Sangamon County, IL"
    assert jurisdiction_type("https://sangamoncounty.gov", address) is JurisdictionType.COUNTY
    assert jurisdiction_type("https://www.illinois.gov", address) is JurisdictionType.STATE
    assert jurisdiction_type("https://springfield.gov", address) is JurisdictionType.CITY


def test_government_site_registry():
    assert find_government_site("seattle", "wa").website == "https://www.seattle.gov"
    assert find_government_site("Seattle", "OR") is None
    assert any(site.city == "Austin" for site in search_government_sites("austin"))


def test_known_city_uses_registry():
    scraper = FakeScraper()
    discovery = JurisdictionDiscovery(scraper, breaker=_breaker())
    address = Address(street="400 Pine St", city="Seattle", state="WA", zip_code="98101")
    jurisdiction = asyncio.run(discovery.discover_jurisdiction(address))

    assert jurisdiction.website == "https://www.seattle.gov"
    assert jurisdiction.permit_url == "https://www.seattle.gov/sdci/permits"
    assert jurisdiction.contact_info.phone == "(206) 684-8600"
    assert jurisdiction.contact_info.address.street == "700 5th Avenue"
    assert jurisdiction.contact_info.address.zip_code == "98104"
    assert scraper.probes == []


def test_discovers_site_by_probing(address):
    homepage = ScrapeResult(
        url="https://springfield.gov",
        title="City of Springfield - Home",
        content="Welcome",
        links=[],
        success=True,
        structured=StructuredData(),
    )
    scraper = FakeScraper(
        accessible={"https://springfield.gov", "https://springfield.gov/permits"},
        pages={"https://springfield.gov": homepage},
    )
    discovery = JurisdictionDiscovery(scraper, geocoder=FakeGeocoder(), breaker=_breaker(), use_registry=False)

    async def run():
        first = await discovery.discover_jurisdiction(address)
        second = await discovery.discover_jurisdiction(address)
        return first, second

    first, second = asyncio.run(run())
    assert first is second
    assert first.website == "https://springfield.gov"
    assert first.permit_url == "https://springfield.gov/permits"
    assert first.name == "City of Springfield - Home"
    assert first.type is JurisdictionType.CITY
    assert first.address.county == "Sangamon"


def test_portal_link_wins_over_common_paths(address):
    homepage = ScrapeResult(
        url="https://springfield.gov",
        title="Springfield",
        content="",
        links=[],
        success=True,
        structured=StructuredData(permit_portal_url="https://aca.springfield.gov/citizen"),
    )
    scraper = FakeScraper(accessible={"https://springfield.gov/permits"}, pages={"https://springfield.gov": homepage})
    discovery = JurisdictionDiscovery(scraper, breaker=_breaker(), use_registry=False)
    assert asyncio.run(discovery.find_permit_urls("https://springfield.gov")) == ["https://aca.springfield.gov/citizen"]
    assert scraper.probes == []


def test_homepage_links_are_last_resort(address):
    homepage = ScrapeResult(
        url="https://springfield.gov",
        title="Springfield",
        content="",
        links=["https://springfield.gov/about", "https://springfield.gov/dept/inspections"],
        success=True,
    )
    scraper = FakeScraper(
        accessible={"https://springfield.gov/dept/inspections"},
        pages={"https://springfield.gov": homepage},
    )
    discovery = JurisdictionDiscovery(scraper, breaker=_breaker(), use_registry=False)
    urls = asyncio.run(discovery.find_permit_urls("https://springfield.gov"))
    assert urls == ["https://springfield.gov/dept/inspections"]
    assert "https://springfield.gov/about" not in scraper.probes


def test_nothing_accessible_returns_none(address):
    scraper = FakeScraper()
    discovery = JurisdictionDiscovery(scraper, breaker=_breaker(), use_registry=False, max_candidates=4)
    assert asyncio.run(discovery.discover_jurisdiction(address)) is None
    assert len(scraper.probes) == 4


def test_errors_return_none_and_trip_breaker(address):
    breaker = _breaker(threshold=1)
    discovery = JurisdictionDiscovery(FakeScraper(explode=True), breaker=breaker, use_registry=False)

    async def run():
        return await discovery.discover_jurisdiction(address), await discovery.discover_jurisdiction(address)

    assert asyncio.run(run()) == (None, None)
    assert breaker.get_stats()["state"] == "OPEN"
