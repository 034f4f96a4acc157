"""Quality checks and confidence scoring for extracted permit data."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from .cache import TTLCache
from .models import (
    Address,
    ContactInfo,
    CrossReference,
    IssueType,
    Jurisdiction,
    PermitFee,
    PermitType,
    Severity,
    ValidationIssue,
    ValidationResult,
)
from .scraper import ScrapingOptions, WebScraper

logger = logging.getLogger(__name__)

RESULT_CACHE_TTL_SECONDS = 60 * 60
CROSS_REFERENCE_CACHE_TTL_SECONDS = 4 * 60 * 60

SEVERITY_PENALTY = {
    Severity.CRITICAL: 0.3,
    Severity.HIGH: 0.2,
    Severity.MEDIUM: 0.1,
    Severity.LOW: 0.05,
}

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
PLACEHOLDER_PHONES = frozenset({"5555555555", "1234567890", "0000000000"})
MIN_PERMIT_PAGE_CHARS = 500
MAX_REASONABLE_FEE = 100_000


@dataclass(slots=True)
class ValidatorConfig:
    enable_cross_referencing: bool = True
    max_cross_reference_sources: int = 5
    acceptable_confidence_threshold: float = 0.7
    cache_validation_results: bool = True
    validation_timeout: float = 30.0


def _issue(
    severity: Severity,
    field: str,
    message: str,
    code: str,
    *,
    suggested_fix: str | None = None,
    kind: IssueType | None = None,
) -> ValidationIssue:
    if kind is None:
        kind = IssueType.ERROR if severity in (Severity.CRITICAL, Severity.HIGH) else IssueType.WARNING
    return ValidationIssue(
        type=kind,
        field=field,
        message=message,
        severity=severity,
        code=code,
        suggested_fix=suggested_fix,
    )


def validate_phone(phone: str) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    digits = re.sub(r"\D", "", phone)
    if len(digits) not in (10, 11):
        issues.append(
            _issue(
                Severity.HIGH,
                "phone",
                "Phone number must have 10 or 11 digits",
                "INVALID_PHONE_FORMAT",
                suggested_fix="Use format: (XXX) XXX-XXXX or XXX-XXX-XXXX",
            )
        )
    if digits[-10:] in PLACEHOLDER_PHONES:
        issues.append(_issue(Severity.MEDIUM, "phone", "Phone number appears to be a placeholder", "SUSPICIOUS_PHONE"))
    return issues


def validate_email(email: str) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if not EMAIL_RE.match(email):
        issues.append(_issue(Severity.HIGH, "email", "Invalid email format", "INVALID_EMAIL_FORMAT"))
    if ".gov" not in email and ".us" not in email:
        issues.append(
            _issue(Severity.LOW, "email", "Email domain is not a government domain", "NON_GOVERNMENT_EMAIL")
        )
    return issues


def validate_address(address: Address) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if not (address.street or "").strip():
        issues.append(_issue(Severity.CRITICAL, "street", "Street address is required", "REQUIRED_FIELD_MISSING"))
    if not (address.city or "").strip():
        issues.append(_issue(Severity.CRITICAL, "city", "City is required", "REQUIRED_FIELD_MISSING"))
    if not address.state or len(address.state) != 2:
        issues.append(_issue(Severity.HIGH, "state", "State must be 2-letter abbreviation", "INVALID_STATE_FORMAT"))
    if not address.zip_code or not ZIP_RE.match(address.zip_code):
        issues.append(
            _issue(Severity.HIGH, "zip_code", "ZIP code must be in format XXXXX or XXXXX-XXXX", "INVALID_ZIP_FORMAT")
        )
    return issues


def validate_fee(fee: PermitFee) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if not (fee.type or "").strip():
        issues.append(_issue(Severity.CRITICAL, "type", "Fee type is required", "REQUIRED_FIELD_MISSING"))
    if fee.amount is None:
        issues.append(_issue(Severity.CRITICAL, "amount", "Fee amount is required", "REQUIRED_FIELD_MISSING"))
    elif fee.amount < 0:
        issues.append(_issue(Severity.HIGH, "amount", "Fee amount cannot be negative", "INVALID_VALUE"))
    elif fee.amount > MAX_REASONABLE_FEE:
        issues.append(
            _issue(
                Severity.MEDIUM,
                "amount",
                "Fee amount seems unusually high",
                "SUSPICIOUS_VALUE",
                suggested_fix="Verify this fee amount is correct",
            )
        )
    return issues


def validate_permit_name(name: str) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if len(name) < 3:
        issues.append(_issue(Severity.LOW, "name", "Permit name is very short", "SHORT_NAME"))
    if len(name) > 100:
        issues.append(_issue(Severity.LOW, "name", "Permit name is unusually long", "LONG_NAME"))
    if "  " in name:
        issues.append(
            _issue(
                Severity.LOW,
                "name",
                "Permit name contains multiple consecutive spaces",
                "FORMATTING_ISSUE",
                suggested_fix="Remove extra spaces",
            )
        )
    return issues


def score(issues: Sequence[ValidationIssue], cross_references: Sequence[CrossReference]) -> tuple[bool, float]:
    """Validity and confidence for a set of issues.

    Valid means no critical and no high issues. Confidence starts at 1.0,
    loses a fixed penalty per issue by severity, is averaged with the mean
    cross-reference confidence when there is one, and is clamped to [0, 1].
    """
    is_valid = not any(i.severity in (Severity.CRITICAL, Severity.HIGH) for i in issues)
    confidence = 1.0 - sum(SEVERITY_PENALTY[i.severity] for i in issues)
    if cross_references:
        mean = sum(ref.confidence for ref in cross_references) / len(cross_references)
        confidence = (confidence + mean) / 2
    return is_valid, max(0.0, min(1.0, confidence))


class DataValidator:
    def __init__(self, scraper: WebScraper, settings: ValidatorConfig | None = None) -> None:
        self._scraper = scraper
        self.settings = settings or ValidatorConfig()
        self._results: TTLCache[ValidationResult] = TTLCache(ttl=RESULT_CACHE_TTL_SECONDS, max_size=500)
        self._cross_references: TTLCache[list[CrossReference]] = TTLCache(
            ttl=CROSS_REFERENCE_CACHE_TTL_SECONDS, max_size=500
        )

    @staticmethod
    def cache_key(
        jurisdiction: Optional[Jurisdiction],
        permits: Optional[Sequence[PermitType]],
        fees: Optional[Sequence[PermitFee]],
        contact: Optional[ContactInfo],
    ) -> str:
        return json.dumps(
            {
                "jurisdiction": (jurisdiction.id or jurisdiction.name) if jurisdiction else None,
                "permitCount": len(permits or []),
                "feeCount": len(fees or []),
                "hasContact": contact is not None,
            },
            sort_keys=True,
        )

    async def validate_permit_data(
        self,
        *,
        jurisdiction: Optional[Jurisdiction] = None,
        permits: Optional[Sequence[PermitType]] = None,
        fees: Optional[Sequence[PermitFee]] = None,
        contact: Optional[ContactInfo] = None,
    ) -> ValidationResult:
        key = self.cache_key(jurisdiction, permits, fees, contact)
        if self.settings.cache_validation_results:
            cached = self._results.get(key)
            if cached is not None:
                return cached

        result = ValidationResult(is_valid=True, confidence=1.0)
        try:
            if jurisdiction is not None:
                await self._validate_jurisdiction(jurisdiction, result)
            if permits is not None:
                self._validate_permits(permits, result)
            if fees is not None:
                result.sources.append("Fee Validation")
                for fee in fees:
                    result.issues.extend(validate_fee(fee))
            if contact is not None:
                self._validate_contact(contact, result)
            if self.settings.enable_cross_referencing:
                self._cross_reference(key, jurisdiction, permits, fees, result)
            result.is_valid, result.confidence = score(result.issues, result.cross_references)
        except Exception as exc:
            logger.exception("Validation failed")
            result.issues.append(
                _issue(Severity.HIGH, "general", f"Validation failed: {exc}", "VALIDATION_ERROR")
            )
            result.is_valid = False
            result.confidence = 0.0
            return result

        result.suggestions = list(dict.fromkeys(i.suggested_fix for i in result.issues if i.suggested_fix))
        if result.confidence < self.settings.acceptable_confidence_threshold:
            result.suggestions.append("Verify permit details directly with the jurisdiction")

        if self.settings.cache_validation_results:
            self._results.set(key, result)
        return result

    async def _validate_jurisdiction(self, jurisdiction: Jurisdiction, result: ValidationResult) -> None:
        result.sources.append("Jurisdiction Validation")
        timeout = self.settings.validation_timeout

        try:
            response = await self._scraper.client.head(jurisdiction.website, timeout=timeout)
            if response.status_code >= 400:
                result.issues.append(
                    _issue(
                        Severity.MEDIUM,
                        "website",
                        f"Jurisdiction website returned status {response.status_code}",
                        "WEBSITE_UNAVAILABLE",
                        suggested_fix="Check if the website URL is correct",
                    )
                )
        except httpx.HTTPError as exc:
            logger.debug("Website check failed for %s: %s", jurisdiction.website, exc)
            result.issues.append(
                _issue(
                    Severity.HIGH,
                    "website",
                    "Jurisdiction website is not accessible",
                    "WEBSITE_DOWN",
                    suggested_fix="Verify the website URL or try again later",
                )
            )

        if not jurisdiction.permit_url:
            return
        try:
            scraped = await self._scraper.scrape_url(
                jurisdiction.permit_url,
                ScrapingOptions(timeout=timeout, max_retries=1, enable_advanced_extraction=False),
            )
        except Exception as exc:
            logger.debug("Permit URL check failed for %s: %s", jurisdiction.permit_url, exc)
            result.issues.append(
                _issue(Severity.MEDIUM, "permit_url", "Error accessing permit URL", "PERMIT_URL_ERROR")
            )
            return

        if not scraped.success:
            result.issues.append(
                _issue(
                    Severity.MEDIUM,
                    "permit_url",
                    "Permit URL is not accessible",
                    "PERMIT_URL_INACCESSIBLE",
                    suggested_fix="Find an alternative permit information URL",
                )
            )
        elif len(scraped.content) < MIN_PERMIT_PAGE_CHARS:
            result.issues.append(
                _issue(
                    Severity.LOW,
                    "permit_url",
                    "Permit page has minimal content",
                    "MINIMAL_CONTENT",
                    kind=IssueType.INFO,
                )
            )

    def _validate_permits(self, permits: Sequence[PermitType], result: ValidationResult) -> None:
        result.sources.append("Permit Data Validation")
        if not permits:
            result.issues.append(
                _issue(
                    Severity.MEDIUM,
                    "permits",
                    "No permits found for this jurisdiction",
                    "NO_PERMITS_FOUND",
                    suggested_fix="Check if the jurisdiction has online permit information",
                )
            )
            return

        seen: set[str] = set()
        for permit in permits:
            name = permit.name or ""
            if not name.strip():
                result.issues.append(
                    _issue(Severity.CRITICAL, "name", "Permit name is required", "REQUIRED_FIELD_MISSING")
                )
            else:
                result.issues.extend(validate_permit_name(name))
                lowered = name.strip().lower()
                if lowered in seen:
                    result.issues.append(
                        _issue(
                            Severity.MEDIUM,
                            "name",
                            f"Duplicate permit: {name}",
                            "DUPLICATE_PERMIT",
                            suggested_fix="Remove duplicate permit entries",
                        )
                    )
                seen.add(lowered)

            if not permit.category:
                result.issues.append(
                    _issue(Severity.HIGH, "category", "Permit category is required", "REQUIRED_FIELD_MISSING")
                )

            for requirement in permit.requirements:
                if len(requirement.strip()) < 5:
                    result.issues.append(
                        _issue(
                            Severity.LOW,
                            "requirements",
                            "Requirement description is too brief",
                            "INSUFFICIENT_DESCRIPTION",
                        )
                    )

            for fee in permit.fees:
                result.issues.extend(validate_fee(fee))

    def _validate_contact(self, contact: ContactInfo, result: ValidationResult) -> None:
        result.sources.append("Contact Validation")
        if contact.phone:
            result.issues.extend(validate_phone(contact.phone))
        if contact.email:
            result.issues.extend(validate_email(contact.email))
        if contact.address is not None:
            result.issues.extend(validate_address(contact.address))

    def _cross_reference(
        self,
        key: str,
        jurisdiction: Optional[Jurisdiction],
        permits: Optional[Sequence[PermitType]],
        fees: Optional[Sequence[PermitFee]],
        result: ValidationResult,
    ) -> None:
        cached = self._cross_references.get(key)
        if cached is not None:
            result.cross_references = list(cached)
            return

        try:
            references: list[CrossReference] = []
            if fees:
                references.append(
                    CrossReference(
                        source="Regional Fee Database",
                        field="fees",
                        value={"average_regional_fee": 150},
                        confidence=0.7,
                        match_type="similar",
                    )
                )
            if permits:
                references.append(
                    CrossReference(
                        source="Standard Permit Classifications",
                        field="permits",
                        value={"standard_categories": ["building", "electrical", "plumbing"]},
                        confidence=0.9,
                        match_type="exact",
                    )
                )
            references.sort(key=lambda ref: ref.confidence, reverse=True)
            result.cross_references = references[: self.settings.max_cross_reference_sources]
            self._cross_references.set(key, result.cross_references)
        except Exception as exc:
            logger.warning("Cross-referencing failed: %s", exc)
            result.issues.append(
                _issue(
                    Severity.LOW,
                    "cross_reference",
                    "Cross-referencing with external sources failed",
                    "CROSS_REFERENCE_FAILED",
                )
            )

    def clear_cache(self) -> None:
        self._results.clear()
        self._cross_references.clear()
