"""FastAPI service exposing permit search jobs."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from permit_agent import config
from permit_agent.circuit_breaker import all_breakers
from permit_agent.main import Services, build_services
from permit_agent.models import (
    Address,
    ContactInfo,
    Jurisdiction,
    JurisdictionType,
    PermitCategory,
    PermitFee,
    PermitType,
    to_dict,
)
from permit_agent.rate_limiter import api_rate_limiter, government_site_rate_limiter

logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO), format="%(levelname)s %(message)s")
logging.getLogger("httpx").setLevel(logging.INFO)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

ESTIMATED_TIME = "30-60 seconds"

app = FastAPI(title="Permit Agent API")

SERVICES: Services | None = None
_cleanup_task: asyncio.Task | None = None


def get_services() -> Services:
    global SERVICES
    if SERVICES is None:
        SERVICES = build_services()
    return SERVICES


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data, "timestamp": _timestamp()}


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": message, "timestamp": _timestamp()},
        status_code=status_code,
    )


class AddressIn(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=2, max_length=2)
    zipCode: str = Field(..., min_length=5)
    county: Optional[str] = None

    def to_address(self) -> Address:
        return Address(
            street=self.street.strip(),
            city=self.city.strip(),
            state=self.state.upper(),
            zip_code=self.zipCode.strip(),
            county=(self.county or "").strip() or None,
        )


class SearchJobRequest(BaseModel):
    address: AddressIn


class FeeIn(BaseModel):
    type: str = ""
    amount: Optional[float] = None
    unit: str = "flat"
    description: str = ""

    def to_fee(self) -> PermitFee:
        return PermitFee(type=self.type, amount=self.amount, unit=self.unit, description=self.description)  # type: ignore[arg-type]


class PermitIn(BaseModel):
    name: str = ""
    category: str = "other"
    description: str = ""
    requirements: list[str] = Field(default_factory=list)
    fees: list[FeeIn] = Field(default_factory=list)

    def to_permit(self, index: int) -> PermitType:
        return PermitType(
            id=f"permit-{index}",
            name=self.name,
            category=PermitCategory.coerce(self.category),
            description=self.description,
            requirements=list(self.requirements),
            fees=[fee.to_fee() for fee in self.fees],
        )


class ContactAddressIn(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zipCode: str = ""


class ContactIn(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[ContactAddressIn] = None

    def to_contact(self) -> ContactInfo:
        address = None
        if self.address is not None:
            address = Address(
                street=self.address.street,
                city=self.address.city,
                state=self.address.state,
                zip_code=self.address.zipCode,
            )
        return ContactInfo(phone=self.phone, email=self.email, address=address)


class JurisdictionIn(BaseModel):
    id: str = ""
    name: str = Field(..., min_length=1)
    website: str = Field(..., min_length=1)
    permitUrl: Optional[str] = None
    address: AddressIn

    def to_jurisdiction(self) -> Jurisdiction:
        return Jurisdiction(
            id=self.id,
            name=self.name,
            type=JurisdictionType.CITY,
            address=self.address.to_address(),
            website=self.website,
            permit_url=self.permitUrl,
            contact_info=ContactInfo(),
        )


class ValidateRequest(BaseModel):
    jurisdiction: Optional[JurisdictionIn] = None
    permits: Optional[list[PermitIn]] = None
    fees: Optional[list[FeeIn]] = None
    contact: Optional[ContactIn] = None


def _describe_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return ", ".join(parts)


@app.exception_handler(RequestValidationError)
async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(f"Invalid request: {_describe_validation_error(exc)}", 400)


async def _cleanup_loop() -> None:
    while True:
        await asyncio.sleep(config.CLEANUP_INTERVAL_SECONDS)
        try:
            get_services().manager.clean_old_jobs()
        except Exception:
            logger.exception("Job cleanup failed")


@app.on_event("startup")
async def _on_startup() -> None:
    global _cleanup_task
    if _cleanup_task is None:
        _cleanup_task = asyncio.create_task(_cleanup_loop())


@app.on_event("shutdown")
async def _on_shutdown() -> None:
    global _cleanup_task, SERVICES
    if _cleanup_task is not None:
        _cleanup_task.cancel()
        _cleanup_task = None
    if SERVICES is not None:
        await SERVICES.aclose()
        SERVICES = None


@app.post("/search-job")
async def start_search_job(payload: SearchJobRequest):
    try:
        manager = get_services().manager
        job_id = manager.create_job(payload.address.to_address())
        manager.start_job(job_id)
    except Exception:
        logger.exception("Failed to start search job")
        return _error("Failed to start search job. Please try again.", 500)
    return _ok({"jobId": job_id, "estimatedTime": ESTIMATED_TIME})


@app.get("/search-job")
def search_job_stats():
    return _ok(get_services().manager.get_job_stats())


@app.get("/search-job/{job_id}")
def search_job_status(job_id: str):
    job = get_services().manager.get_job(job_id)
    if job is None:
        return _error("Job not found. Jobs expire after 30 minutes.", 404)
    return _ok(
        {
            "jobId": job.id,
            "status": job.status.value,
            "progress": job.progress,
            "elapsedTime": job.elapsed_seconds(),
            "result": to_dict(job.result) if job.result is not None else None,
            "error": job.error,
        }
    )


@app.post("/validate")
async def validate_permit_data(payload: ValidateRequest):
    validator = get_services().validator
    result = await validator.validate_permit_data(
        jurisdiction=payload.jurisdiction.to_jurisdiction() if payload.jurisdiction else None,
        permits=[p.to_permit(i) for i, p in enumerate(payload.permits)] if payload.permits is not None else None,
        fees=[f.to_fee() for f in payload.fees] if payload.fees is not None else None,
        contact=payload.contact.to_contact() if payload.contact else None,
    )
    return _ok(to_dict(result))


@app.get("/health")
def health():
    return {
        "status": "ok",
        "circuitBreakers": [breaker.get_stats() for breaker in all_breakers()],
        "rateLimiters": {
            "government": government_site_rate_limiter.get_stats(),
            "api": api_rate_limiter.get_stats(),
        },
    }
