import asyncio
from types import SimpleNamespace

import pytest

from permit_agent import main as cli
from permit_agent.errors import JobNotFoundError


def test_parse_args():
    args = cli._parse_args(
        ["--street", "123 Main St", "--city", "Springfield", "--state", "il", "--zip", "62701", "--no-geocode"]
    )
    assert args.zip_code == "62701"
    assert args.no_geocode is True
    assert args.validate is False


def test_state_must_be_two_letters():
    with pytest.raises(SystemExit):
        cli._parse_args(["--street", "1 A St", "--city", "Springfield", "--state", "Illinois", "--zip", "62701"])


def test_build_services_shares_one_client():
    services = cli.build_services(geocode=False)
    try:
        assert services.scraper.client is services.client
        assert services.discovery._geocoder is None
    finally:
        asyncio.run(services.aclose())


def test_run_search_raises_when_job_disappears(monkeypatch, address):
    class VanishingManager:
        def create_job(self, address):
            return "job123"

        async def execute_job(self, job_id):
            return None

        def get_job(self, job_id):
            return None

    closed = []

    async def aclose():
        closed.append(True)

    services = SimpleNamespace(manager=VanishingManager(), aclose=aclose)
    monkeypatch.setattr(cli, "build_services", lambda **kwargs: services)

    with pytest.raises(JobNotFoundError):
        asyncio.run(cli._run_search(address, geocode=False, validate=False))
    assert closed == [True]
