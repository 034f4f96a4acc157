"""CLI entry point for the permit agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import httpx

from . import config
from .discovery import JurisdictionDiscovery
from .errors import JobNotFoundError
from .geocoding import Geocoder
from .jobs import InMemoryJobStore, JobStore, SearchJobManager
from .models import Address, to_dict
from .processor import PermitDataProcessor
from .scraper import DEFAULT_ACCEPT_HEADER, WebScraper
from .validator import DataValidator


@dataclass(slots=True)
class Services:
    """Everything a search needs, sharing one HTTP client."""

    client: httpx.AsyncClient
    scraper: WebScraper
    discovery: JurisdictionDiscovery
    processor: PermitDataProcessor
    validator: DataValidator
    manager: SearchJobManager

    async def aclose(self) -> None:
        await self.client.aclose()


def build_services(
    *,
    user_agent: str = config.USER_AGENT,
    geocode: bool = config.GEOCODING_ENABLED,
    store: JobStore | None = None,
) -> Services:
    client = httpx.AsyncClient(
        headers={
            "User-Agent": user_agent,
            "Accept": DEFAULT_ACCEPT_HEADER,
            "Accept-Language": "en-US,en;q=0.9",
        },
        timeout=httpx.Timeout(30.0, connect=10.0),
        http2=True,
        follow_redirects=True,
    )
    scraper = WebScraper(client=client, user_agent=user_agent)
    geocoder = Geocoder(client, user_agent=user_agent) if geocode else None
    discovery = JurisdictionDiscovery(scraper, geocoder=geocoder)
    processor = PermitDataProcessor()
    manager = SearchJobManager(discovery, scraper, processor, store=store or InMemoryJobStore())
    return Services(
        client=client,
        scraper=scraper,
        discovery=discovery,
        processor=processor,
        validator=DataValidator(scraper),
        manager=manager,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Execute the CLI."""

    args = _parse_args(argv)
    _configure_logging(args.log_level)

    address = Address(
        street=args.street,
        city=args.city,
        state=args.state.upper(),
        zip_code=args.zip_code,
        county=args.county,
    )
    logging.info("Searching permits for %s", address.one_line())

    payload = asyncio.run(_run_search(address, geocode=not args.no_geocode, validate=args.validate))
    text = json.dumps(payload, indent=2, default=str)
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text + "\n", encoding="utf-8")
        logging.info("Wrote result to %s", output_path)
    else:
        print(text)
    return 0 if payload["status"] == "completed" else 1


async def _run_search(address: Address, *, geocode: bool, validate: bool) -> dict[str, object]:
    services = build_services(geocode=geocode)
    try:
        job_id = services.manager.create_job(address)
        await services.manager.execute_job(job_id)
        job = services.manager.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        payload: dict[str, object] = {
            "jobId": job.id,
            "status": job.status.value,
            "elapsedTime": job.elapsed_seconds(),
            "result": to_dict(job.result) if job.result else None,
            "error": job.error,
        }
        if validate and job.result is not None:
            validation = await services.validator.validate_permit_data(
                jurisdiction=job.result.jurisdiction,
                permits=job.result.permits,
                contact=job.result.contact,
            )
            payload["validation"] = to_dict(validation)
        return payload
    finally:
        await services.aclose()


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Look up building permit information for a US address")
    parser.add_argument("--street", required=True, help="Street address")
    parser.add_argument("--city", required=True, help="City")
    parser.add_argument("--state", required=True, help="Two-letter state code")
    parser.add_argument("--zip", dest="zip_code", required=True, help="ZIP code")
    parser.add_argument("--county", default=None, help="County name, if known")
    parser.add_argument(
        "--no-geocode",
        action="store_true",
        help="Skip address validation through Nominatim",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Run data quality checks on the result",
    )
    parser.add_argument("--output", default=None, help="Write the JSON result to this path instead of stdout")
    parser.add_argument(
        "--log-level",
        default=config.LOG_LEVEL,
        help="Logging level (e.g. INFO, DEBUG)",
    )
    args = parser.parse_args(argv)
    if len(args.state.strip()) != 2:
        parser.error("--state must be a two-letter code")
    return args


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(message)s",
    )
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
