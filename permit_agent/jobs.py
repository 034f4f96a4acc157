"""Asynchronous permit search jobs."""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import time
from dataclasses import replace
from typing import Callable, Iterable, Optional, Protocol

from . import config
from .discovery import to_base36
from .errors import JobNotFoundError, JurisdictionNotFoundError
from .models import (
    Address,
    ContactInfo,
    ExtractedPermitData,
    ExtractionKind,
    Jurisdiction,
    JobStatus,
    PermitCategory,
    PermitType,
    ProcessingInfo,
    ScrapeResult,
    SearchJob,
    SearchResponse,
    StructuredData,
)
from .scraper import ScrapingOptions

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n--- Next Page ---\n\n"
MIN_SCRAPED_CHARS = 100
JOB_SCRAPE_OPTIONS = ScrapingOptions(timeout=15.0, delay_between_requests=1.0, max_retries=2)
JURISDICTION_NOT_FOUND = "Could not find jurisdiction information for this address"

_ID_ALPHABET = string.ascii_lowercase + string.digits


class Discovery(Protocol):
    async def discover_jurisdiction(self, address: Address) -> Optional[Jurisdiction]: ...


class Scraper(Protocol):
    async def scrape_url(self, url: str, options: ScrapingOptions | None = None) -> ScrapeResult: ...


class Processor(Protocol):
    async def extract_permit_info(
        self, content: str, url: str, structured: StructuredData | None = None
    ) -> ExtractedPermitData: ...


class JobStore(Protocol):
    """Where search jobs live. The default keeps them in process memory."""

    def get(self, job_id: str) -> Optional[SearchJob]: ...

    def save(self, job: SearchJob) -> None: ...

    def delete(self, job_id: str) -> None: ...

    def values(self) -> Iterable[SearchJob]: ...

    def __len__(self) -> int: ...


class InMemoryJobStore:
    def __init__(self) -> None:
        self._jobs: dict[str, SearchJob] = {}

    def get(self, job_id: str) -> Optional[SearchJob]:
        return self._jobs.get(job_id)

    def save(self, job: SearchJob) -> None:
        self._jobs[job.id] = job

    def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    def values(self) -> list[SearchJob]:
        return list(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)


def generate_job_id(now: float | None = None) -> str:
    stamp = to_base36(int((now if now is not None else time.time()) * 1000))
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return stamp + suffix


def placeholder_permit_data() -> ExtractedPermitData:
    """Generic guidance used when no real permit data could be extracted."""
    return ExtractedPermitData(
        permits=[
            PermitType(
                id="basic-permit-info",
                name="Contact jurisdiction for permit types",
                category=PermitCategory.BUILDING,
                description="Contact the local building department for the permits that apply to your project",
                requirements=["Contact local building department for specific requirements"],
                processing_time="Contact jurisdiction for processing times",
            )
        ],
        fees=[],
        contact=ContactInfo(),
        processing=ProcessingInfo(
            average_time="Contact jurisdiction for processing times",
            inspection_schedule="Contact jurisdiction for inspection scheduling",
        ),
        kind=ExtractionKind.PLACEHOLDER,
    )


def merge_structured(blocks: Iterable[Optional[StructuredData]]) -> Optional[StructuredData]:
    """Fold the structured data of every scraped page into one block.

    Lists are concatenated in page order with duplicates dropped, later pages
    fill in contact fields, and the first portal link found is kept.
    """
    merged: Optional[StructuredData] = None
    for block in blocks:
        if block is None:
            continue
        if merged is None:
            merged = StructuredData(contact=ContactInfo())
        merged.fees.extend(block.fees)
        merged.contact = merged.contact.merged_with(block.contact)
        for requirement in block.requirements:
            if requirement not in merged.requirements:
                merged.requirements.append(requirement)
        for permit_type, period in block.processing_times.items():
            merged.processing_times.setdefault(permit_type, period)
        seen_types = {name.lower() for name in merged.permit_types}
        for name in block.permit_types:
            if name.lower() not in seen_types:
                seen_types.add(name.lower())
                merged.permit_types.append(name)
        seen_forms = {form.url for form in merged.permit_forms}
        for form in block.permit_forms:
            if form.url not in seen_forms:
                seen_forms.add(form.url)
                merged.permit_forms.append(form)
        if merged.permit_portal_url is None:
            merged.permit_portal_url = block.permit_portal_url
    return merged


class SearchJobManager:
    """Creates, runs and expires permit search jobs.

    ``execute_job`` drives a job through discovery (progress 10 to 40),
    scraping (to 70) and extraction (to 100). Pipeline errors mark the job
    failed instead of propagating.
    """

    def __init__(
        self,
        discovery: Discovery,
        scraper: Scraper,
        processor: Processor,
        *,
        store: JobStore | None = None,
        max_jobs: int = config.MAX_JOBS,
        max_age: float = config.JOB_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._discovery = discovery
        self._scraper = scraper
        self._processor = processor
        self._store: JobStore = store if store is not None else InMemoryJobStore()
        self._max_jobs = max_jobs
        self._max_age = max_age
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()

    def create_job(self, address: Address) -> str:
        if len(self._store) >= self._max_jobs:
            self.clean_old_jobs()

        now = self._clock()
        job = SearchJob(id=generate_job_id(now), address=address, start_time=now)
        while self._store.get(job.id) is not None:
            job.id = generate_job_id(now)
        self._store.save(job)
        logger.info("Created search job %s for %s", job.id, address.one_line())
        return job.id

    def get_job(self, job_id: str) -> Optional[SearchJob]:
        return self._store.get(job_id)

    def start_job(self, job_id: str) -> asyncio.Task:
        """Run ``execute_job`` in the background on the current event loop."""
        task = asyncio.create_task(self.execute_job(job_id), name=f"search-job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Search job task %s crashed: %s", task.get_name(), exc, exc_info=exc)

    def _advance(self, job: SearchJob, progress: int) -> None:
        job.set_progress(progress)
        self._store.save(job)

    async def execute_job(self, job_id: str) -> None:
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status is not JobStatus.PENDING:
            raise ValueError(f"Job {job_id} is already {job.status.value}")

        try:
            job.mark_running()
            self._advance(job, 10)

            jurisdiction = await self._discovery.discover_jurisdiction(job.address)
            if jurisdiction is None:
                raise JurisdictionNotFoundError(JURISDICTION_NOT_FOUND)
            self._advance(job, 40)

            pages = await self._scrape_pages(jurisdiction)
            self._advance(job, 70)

            extracted = await self._extract(jurisdiction, pages)
            job.mark_completed(self._build_response(jurisdiction, extracted), now=self._clock())
            self._store.save(job)
            logger.info(
                "Job %s completed in %ds (%s)",
                job_id,
                job.elapsed_seconds(),
                extracted.kind.value,
            )
        except Exception as exc:
            logger.warning("Job %s failed: %s", job_id, exc)
            job.mark_failed(str(exc) or exc.__class__.__name__, now=self._clock())
            self._store.save(job)

    async def _scrape_pages(self, jurisdiction: Jurisdiction) -> list[ScrapeResult]:
        urls = [jurisdiction.website]
        if jurisdiction.permit_url and jurisdiction.permit_url != jurisdiction.website:
            urls.append(jurisdiction.permit_url)

        pages: list[ScrapeResult] = []
        for url in urls:
            try:
                result = await self._scraper.scrape_url(url, JOB_SCRAPE_OPTIONS)
            except Exception as exc:
                logger.warning("Failed to scrape %s: %s", url, exc)
                continue
            if result.success and len(result.content) > MIN_SCRAPED_CHARS:
                pages.append(result)
            else:
                logger.info("Skipping %s: %s", url, result.error or "too little content")
        return pages

    async def _extract(self, jurisdiction: Jurisdiction, pages: list[ScrapeResult]) -> ExtractedPermitData:
        if not pages:
            logger.info("No content scraped for %s; using placeholder data", jurisdiction.name)
            return placeholder_permit_data()

        combined = PAGE_SEPARATOR.join(page.content for page in pages)
        structured = merge_structured(page.structured for page in pages)
        try:
            return await self._processor.extract_permit_info(combined, jurisdiction.website, structured)
        except Exception as exc:
            logger.warning("Extraction failed for %s, using placeholder data: %s", jurisdiction.website, exc)
            return placeholder_permit_data()

    @staticmethod
    def _build_response(jurisdiction: Jurisdiction, extracted: ExtractedPermitData) -> SearchResponse:
        contact = jurisdiction.contact_info.merged_with(extracted.contact)
        jurisdiction = replace(jurisdiction, contact_info=contact)
        return SearchResponse(
            jurisdiction=jurisdiction,
            permits=[replace(permit, jurisdiction_id=jurisdiction.id) for permit in extracted.permits],
            forms=list(extracted.permit_forms),
            contact=contact,
            processing_info=extracted.processing,
            data_source=extracted.kind,
        )

    def clean_old_jobs(self) -> int:
        """Drop finished jobs older than the configured max age."""
        cutoff = self._clock() - self._max_age
        stale = [
            job.id
            for job in self._store.values()
            if job.status.is_terminal and job.start_time < cutoff
        ]
        for job_id in stale:
            self._store.delete(job_id)
        if stale:
            logger.info("Cleaned %d old jobs", len(stale))
        return len(stale)

    def get_job_stats(self) -> dict[str, int]:
        stats = {"total": 0, "pending": 0, "running": 0, "completed": 0, "failed": 0}
        for job in self._store.values():
            stats["total"] += 1
            stats[job.status.value] += 1
        return stats
