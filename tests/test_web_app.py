"""API tests for the FastAPI service."""
import asyncio
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import web.app as app_module
from permit_agent.jobs import SearchJobManager
from permit_agent.models import ContactInfo, Jurisdiction, JurisdictionType, ScrapeResult
from permit_agent.validator import DataValidator

ADDRESS = {"street": "123 Main St", "city": "Springfield", "state": "IL", "zipCode": "62701"}


class FakeDiscovery:
    async def discover_jurisdiction(self, address):
        return Jurisdiction(
            id="springfield-il-abc",
            name="Springfield, IL",
            type=JurisdictionType.CITY,
            address=address,
            website="https://springfield.gov",
            contact_info=ContactInfo(phone="(217) 555-0100"),
        )


class FakeScraper:
    async def scrape_url(self, url, options=None):
        return ScrapeResult(url=url, title="", content="", links=[], success=False, error="Network error")


class FakeProcessor:
    async def extract_permit_info(self, content, url, structured=None):
        raise AssertionError("not expected")


class RecordingManager:
    def __init__(self, fail=False):
        self.fail = fail
        self.created = []
        self.started = []

    def create_job(self, address):
        if self.fail:
            raise RuntimeError("store offline")
        self.created.append(address)
        return "job123"

    def start_job(self, job_id):
        self.started.append(job_id)


@pytest.fixture
def manager():
    return SearchJobManager(FakeDiscovery(), FakeScraper(), FakeProcessor())


@pytest.fixture
def client(monkeypatch, manager):
    services = SimpleNamespace(manager=manager, validator=DataValidator(FakeScraper()))
    monkeypatch.setattr(app_module, "SERVICES", services)
    return TestClient(app_module.app)


def test_start_search_job(monkeypatch, client):
    recorder = RecordingManager()
    monkeypatch.setattr(app_module.SERVICES, "manager", recorder)
    resp = client.post("/search-job", json={"address": dict(ADDRESS, state="il")})

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["data"] == {"jobId": "job123", "estimatedTime": "30-60 seconds"}
    assert "timestamp" in body
    assert recorder.created[0].state == "IL"
    assert recorder.created[0].zip_code == "62701"
    assert recorder.started == ["job123"]


def test_start_search_job_failure(monkeypatch, client):
    monkeypatch.setattr(app_module.SERVICES, "manager", RecordingManager(fail=True))
    resp = client.post("/search-job", json={"address": ADDRESS})
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to start search job. Please try again."


@pytest.mark.parametrize(
    "address",
    [
        dict(ADDRESS, state="Illinois"),
        dict(ADDRESS, zipCode="627"),
        {k: v for k, v in ADDRESS.items() if k != "street"},
    ],
)
def test_invalid_address_is_rejected(client, address):
    resp = client.post("/search-job", json={"address": address})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"].startswith("Invalid request: ")


def test_job_status(client, manager):
    from permit_agent.models import Address

    job_id = manager.create_job(Address(street="123 Main St", city="Springfield", state="IL", zip_code="62701"))
    asyncio.run(manager.execute_job(job_id))

    resp = client.get(f"/search-job/{job_id}")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["jobId"] == job_id
    assert data["status"] == "completed"
    assert data["progress"] == 100
    assert data["error"] is None
    assert isinstance(data["elapsedTime"], int)
    assert data["result"]["dataSource"] == "placeholder"
    assert data["result"]["jurisdiction"]["type"] == "city"
    assert data["result"]["contact"]["phone"] == "(217) 555-0100"
    assert data["result"]["jurisdiction"]["contactInfo"]["phone"] == "(217) 555-0100"
    assert data["result"]["processingInfo"]["averageTime"].startswith("Contact jurisdiction")
    assert "data_source" not in data["result"]


def test_unknown_job_is_404(client):
    resp = client.get("/search-job/nope")
    assert resp.status_code == 404
    assert resp.json() == {
        "success": False,
        "error": "Job not found. Jobs expire after 30 minutes.",
        "timestamp": resp.json()["timestamp"],
    }


def test_job_stats(client, manager):
    from permit_agent.models import Address

    manager.create_job(Address(street="1 A St", city="Springfield", state="IL", zip_code="62701"))
    resp = client.get("/search-job")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"total": 1, "pending": 1, "running": 0, "completed": 0, "failed": 0}


def test_validate_endpoint(client):
    payload = {
        "fees": [{"type": "Building", "amount": -5}],
        "contact": {"phone": "555-555-5555", "email": "permits@springfield.gov"},
    }
    resp = client.post("/validate", json=payload)
    assert resp.status_code == 200
    data = resp.json()["data"]
    codes = [issue["code"] for issue in data["issues"]]
    assert codes == ["INVALID_VALUE", "SUSPICIOUS_PHONE"]
    assert data["isValid"] is False
    assert data["sources"] == ["Fee Validation", "Contact Validation"]


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert {b["name"] for b in body["circuitBreakers"]} == {"discovery", "web_scraping", "ai_processing"}
    assert body["rateLimiters"]["government"]["requests_per_second"] == 1
