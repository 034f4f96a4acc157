"""Data models used across the permit agent."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Allowed forward transitions for a search job.
_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class PermitCategory(str, Enum):
    BUILDING = "building"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    MECHANICAL = "mechanical"
    ZONING = "zoning"
    DEMOLITION = "demolition"
    SIGN = "sign"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Any) -> "PermitCategory":
        """Map free-form input onto a category, falling back to OTHER."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.OTHER


class JurisdictionType(str, Enum):
    CITY = "city"
    COUNTY = "county"
    STATE = "state"


class ExtractionKind(str, Enum):
    """Marks whether permit data came from a real extraction or the fallback."""

    EXTRACTED = "extracted"
    PLACEHOLDER = "placeholder"


@dataclass(slots=True, frozen=True)
class Address:
    """A US mailing address. Immutable once attached to a job."""

    street: str
    city: str
    state: str
    zip_code: str
    county: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def one_line(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip_code}".strip(", ")


@dataclass(slots=True)
class TimeRange:
    open: str
    close: str


@dataclass(slots=True)
class ContactInfo:
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[Address] = None
    hours_of_operation: Optional[dict[str, TimeRange]] = None

    def is_empty(self) -> bool:
        return not (self.phone or self.email or self.address or self.hours_of_operation)

    def merged_with(self, other: "ContactInfo") -> "ContactInfo":
        """Return a copy where non-empty fields of *other* win."""
        return ContactInfo(
            phone=other.phone or self.phone,
            email=other.email or self.email,
            address=other.address or self.address,
            hours_of_operation=other.hours_of_operation or self.hours_of_operation,
        )


@dataclass(slots=True)
class Jurisdiction:
    """A government body that issues building permits."""

    id: str
    name: str
    type: JurisdictionType
    address: Address
    website: str
    contact_info: ContactInfo
    permit_url: Optional[str] = None
    last_updated: float = field(default_factory=time.time)
    is_active: bool = True


@dataclass(slots=True)
class PermitFee:
    type: str
    amount: float
    unit: str = "flat"
    description: str = ""
    conditions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PermitForm:
    id: str
    name: str
    url: str
    file_type: str = "pdf"
    is_required: bool = False
    description: str = ""


@dataclass(slots=True)
class PermitType:
    id: str
    name: str
    category: PermitCategory
    description: str = ""
    jurisdiction_id: str = ""
    requirements: list[str] = field(default_factory=list)
    processing_time: str = ""
    fees: list[PermitFee] = field(default_factory=list)
    forms: list[PermitForm] = field(default_factory=list)
    last_updated: float = field(default_factory=time.time)


@dataclass(slots=True)
class ProcessingInfo:
    average_time: str = ""
    inspection_schedule: str = ""
    rush_options: list[str] = field(default_factory=list)
    appeal_process: Optional[str] = None


@dataclass(slots=True)
class StructuredData:
    """Facts pulled straight from a page's markup, without AI."""

    fees: list[PermitFee] = field(default_factory=list)
    contact: ContactInfo = field(default_factory=ContactInfo)
    requirements: list[str] = field(default_factory=list)
    processing_times: dict[str, str] = field(default_factory=dict)
    permit_types: list[str] = field(default_factory=list)
    permit_forms: list[PermitForm] = field(default_factory=list)
    permit_portal_url: Optional[str] = None


@dataclass(slots=True)
class ScrapeResult:
    """Outcome of scraping a single page."""

    url: str
    title: str
    content: str
    links: list[str]
    success: bool
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    structured: Optional[StructuredData] = None


@dataclass(slots=True)
class ExtractedPermitData:
    permits: list[PermitType]
    fees: list[PermitFee]
    contact: ContactInfo
    processing: ProcessingInfo
    permit_forms: list[PermitForm] = field(default_factory=list)
    kind: ExtractionKind = ExtractionKind.EXTRACTED


@dataclass(slots=True)
class SearchResponse:
    jurisdiction: Jurisdiction
    permits: list[PermitType]
    forms: list[PermitForm]
    contact: ContactInfo
    processing_info: ProcessingInfo
    data_source: ExtractionKind


@dataclass(slots=True)
class SearchJob:
    """One asynchronous permit lookup.

    Status only moves forward (pending, running, then completed or failed)
    and progress never decreases.
    """

    id: str
    address: Address
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    result: Optional[SearchResponse] = None
    error: Optional[str] = None
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    def _transition(self, status: JobStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Cannot move job {self.id} from {self.status.value} to {status.value}")
        self.status = status

    def set_progress(self, progress: int) -> None:
        if not 0 <= progress <= 100:
            raise ValueError(f"progress out of range: {progress}")
        if progress < self.progress:
            raise ValueError(f"progress cannot go backwards ({self.progress} -> {progress})")
        self.progress = progress

    def mark_running(self) -> None:
        self._transition(JobStatus.RUNNING)

    def mark_completed(self, result: SearchResponse, now: float | None = None) -> None:
        self._transition(JobStatus.COMPLETED)
        self.result = result
        self.set_progress(100)
        self.end_time = now if now is not None else time.time()

    def mark_failed(self, error: str, now: float | None = None) -> None:
        self._transition(JobStatus.FAILED)
        self.error = error
        self.end_time = now if now is not None else time.time()

    def elapsed_seconds(self, now: float | None = None) -> int:
        end = self.end_time if self.end_time is not None else (now or time.time())
        return int(max(0.0, end - self.start_time))


class IssueType(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(slots=True)
class ValidationIssue:
    type: IssueType
    field: str
    message: str
    severity: Severity
    code: str
    suggested_fix: Optional[str] = None


@dataclass(slots=True)
class CrossReference:
    source: str
    field: str
    value: Any
    confidence: float
    match_type: str


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool
    confidence: float
    issues: list[ValidationIssue] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    cross_references: list[CrossReference] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    last_validated: float = field(default_factory=time.time)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _dict_factory(items: list[tuple[str, Any]]) -> dict[str, Any]:
    return {_camel(key): (value.value if isinstance(value, Enum) else value) for key, value in items}


def to_dict(obj: Any) -> dict[str, Any]:
    """Serialize a model dataclass into the camelCase JSON wire format.

    Only field names are renamed; keys of plain dicts such as
    ``processing_times`` pass through untouched.
    """
    return asdict(obj, dict_factory=_dict_factory)
