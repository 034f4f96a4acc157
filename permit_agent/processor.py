"""Turn scraped permit page text into structured permit data."""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from . import config
from .circuit_breaker import CircuitBreaker, ai_breaker
from .errors import CircuitOpenError, ExtractionError
from .models import (
    Address,
    ContactInfo,
    ExtractedPermitData,
    ExtractionKind,
    PermitCategory,
    PermitFee,
    PermitType,
    ProcessingInfo,
    StructuredData,
    TimeRange,
)

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 8000
MIN_CONTENT_CHARS = 100
SYSTEM_PROMPT = (
    "You are an expert at extracting permit information from government websites. "
    "Return only valid JSON."
)

_CATEGORY_KEYWORDS: tuple[tuple[PermitCategory, tuple[str, ...]], ...] = (
    (PermitCategory.ELECTRICAL, ("electrical", "electric")),
    (PermitCategory.PLUMBING, ("plumbing", "plumb")),
    (PermitCategory.MECHANICAL, ("mechanical", "hvac", "heating")),
    (PermitCategory.DEMOLITION, ("demolition", "demo")),
    (PermitCategory.SIGN, ("sign",)),
    (PermitCategory.ZONING, ("zoning", "land use")),
    (PermitCategory.BUILDING, ("building", "construction")),
)

_openai_client: AsyncOpenAI | None = None


def get_openai_client() -> AsyncOpenAI | None:
    """Shared AsyncOpenAI client, or None when no API key is configured."""
    global _openai_client
    if config.OPENAI_API_KEY is None:
        return None
    if _openai_client is None:
        _openai_client = AsyncOpenAI(api_key=config.OPENAI_API_KEY)
    return _openai_client


def build_prompt(content: str, url: str) -> str:
    return f"""Please extract permit information from the following government website content.

Website URL: {url}

Content to analyze:
{content[:MAX_PROMPT_CHARS]}

Extract the following information and return as JSON:

{{
  "permits": [
    {{
      "name": "string",
      "category": "building|electrical|plumbing|mechanical|zoning|demolition|sign|other",
      "description": "string",
      "requirements": ["array of requirements"],
      "processingTime": "string (e.g., '5-10 business days')"
    }}
  ],
  "fees": [
    {{
      "type": "string (e.g., 'Building Permit')",
      "amount": number,
      "unit": "string (e.g., 'flat', 'per_sqft')",
      "description": "string",
      "conditions": ["array of conditions"]
    }}
  ],
  "contact": {{
    "phone": "string",
    "email": "string",
    "address": {{"street": "string", "city": "string", "state": "string", "zipCode": "string"}},
    "hoursOfOperation": {{"monday": {{"open": "HH:mm", "close": "HH:mm"}}}}
  }},
  "processing": {{
    "averageTime": "string",
    "rushOptions": ["array of expedited options"],
    "inspectionSchedule": "string",
    "appealProcess": "string"
  }}
}}

If information is not found, omit the field or use null/empty array as appropriate.
Return only the JSON object, no additional text."""


def parse_json_object(raw: str) -> dict[str, Any]:
    """Parse the first {...} block of a model response."""
    match = re.search(r"\{[\s\S]*\}", raw or "")
    if not match:
        raise ExtractionError("No JSON found in AI response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Invalid AI response format: {exc}") from exc
    if not isinstance(data, dict):
        raise ExtractionError("Invalid AI response format: expected an object")
    return data


def infer_permit_category(name: str) -> PermitCategory:
    lowered = (name or "").lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return PermitCategory.OTHER


def _new_id(prefix: str = "permit") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [_text(item) for item in value if _text(item)]


def _amount(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


def coerce_permits(items: Any) -> list[PermitType]:
    if not isinstance(items, list):
        return []
    permits: list[PermitType] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        permits.append(
            PermitType(
                id=_new_id(),
                name=_text(item.get("name")) or "Unknown Permit",
                category=PermitCategory.coerce(item.get("category")),
                description=_text(item.get("description")),
                requirements=_string_list(item.get("requirements")),
                processing_time=_text(item.get("processingTime") or item.get("processing_time")),
            )
        )
    return permits


def coerce_fees(items: Any) -> list[PermitFee]:
    if not isinstance(items, list):
        return []
    fees: list[PermitFee] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        fees.append(
            PermitFee(
                type=_text(item.get("type")) or "Unknown Fee",
                amount=_amount(item.get("amount")),
                unit=_text(item.get("unit")) or "flat",
                description=_text(item.get("description")),
                conditions=_string_list(item.get("conditions")),
            )
        )
    return fees


def coerce_contact(data: Any) -> ContactInfo:
    if not isinstance(data, dict):
        return ContactInfo()

    address = None
    raw_address = data.get("address")
    if isinstance(raw_address, dict) and (raw_address.get("street") or raw_address.get("city")):
        address = Address(
            street=_text(raw_address.get("street")),
            city=_text(raw_address.get("city")),
            state=_text(raw_address.get("state")),
            zip_code=_text(raw_address.get("zipCode") or raw_address.get("zip_code")),
        )

    hours: dict[str, TimeRange] = {}
    raw_hours = data.get("hoursOfOperation") or data.get("hours_of_operation")
    if isinstance(raw_hours, dict):
        for day, span in raw_hours.items():
            if isinstance(span, dict) and span.get("open") and span.get("close"):
                hours[str(day).lower()] = TimeRange(open=_text(span["open"]), close=_text(span["close"]))

    return ContactInfo(
        phone=_text(data.get("phone")) or None,
        email=_text(data.get("email")) or None,
        address=address,
        hours_of_operation=hours or None,
    )


def coerce_processing(data: Any) -> ProcessingInfo:
    if not isinstance(data, dict):
        return ProcessingInfo()
    return ProcessingInfo(
        average_time=_text(data.get("averageTime") or data.get("average_time")),
        rush_options=_string_list(data.get("rushOptions") or data.get("rush_options")),
        inspection_schedule=_text(data.get("inspectionSchedule") or data.get("inspection_schedule")),
        appeal_process=_text(data.get("appealProcess") or data.get("appeal_process")) or None,
    )


def convert_fees_to_permits(fees: list[PermitFee]) -> list[PermitType]:
    """Group fees into one permit per fee type."""
    permits: dict[str, PermitType] = {}
    for fee in fees:
        name = re.sub(r"fee|cost|charge", "", fee.type, flags=re.IGNORECASE).strip() or fee.type
        permit = permits.get(name)
        if permit is None:
            permit = PermitType(
                id=_new_id(),
                name=name,
                category=infer_permit_category(fee.type),
                description=fee.description or f"{name} permit",
            )
            permits[name] = permit
        permit.fees.append(fee)
    return list(permits.values())


class PermitDataProcessor:
    """Extracts permits, fees, contact and processing details from page text.

    Raises ExtractionError when nothing usable can be produced; callers decide
    what to fall back to. Only the OpenAI request itself runs inside *breaker*,
    so thin pages and a missing API key never open it.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        model: str = config.OPENAI_MODEL,
        max_tokens: int = config.OPENAI_MAX_TOKENS,
        timeout: float = config.OPENAI_TIMEOUT_SECONDS,
        breaker: CircuitBreaker = ai_breaker,
    ) -> None:
        self._client = client
        self._breaker = breaker
        self._model = model
        self._max_tokens = max_tokens
        self._timeout = timeout

    def _get_client(self) -> AsyncOpenAI | None:
        return self._client or get_openai_client()

    async def extract_permit_info(
        self,
        content: str,
        url: str,
        structured: StructuredData | None = None,
    ) -> ExtractedPermitData:
        logger.info("Extracting permit data from %s (%d chars)", url, len(content or ""))
        if structured is not None:
            return await self._process_structured(structured, content, url)
        return await self._process_with_ai(content, url)

    async def _process_with_ai(self, content: str, url: str) -> ExtractedPermitData:
        if not content or len(content.strip()) < MIN_CONTENT_CHARS:
            raise ExtractionError("Insufficient content for extraction")

        client = self._get_client()
        if client is None:
            raise ExtractionError("OPENAI_API_KEY is not configured")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(content, url)},
        ]
        try:
            response = await self._breaker.execute(
                lambda: client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=0.1,
                    max_tokens=self._max_tokens,
                    timeout=self._timeout,
                )
            )
        except CircuitOpenError as exc:
            raise ExtractionError(f"AI processing unavailable: {exc}") from exc
        except OpenAIError as exc:
            raise ExtractionError(f"AI request failed: {exc}") from exc

        raw = response.choices[0].message.content if response.choices else None
        if not raw:
            raise ExtractionError("Empty AI response")

        data = parse_json_object(raw)
        permits = coerce_permits(data.get("permits"))
        fees = coerce_fees(data.get("fees"))
        if not permits and fees:
            permits = convert_fees_to_permits(fees)
        return ExtractedPermitData(
            permits=permits,
            fees=fees,
            contact=coerce_contact(data.get("contact")),
            processing=coerce_processing(data.get("processing")),
            kind=ExtractionKind.EXTRACTED,
        )

    async def _process_structured(
        self,
        structured: StructuredData,
        content: str,
        url: str,
    ) -> ExtractedPermitData:
        fees = list(structured.fees)
        permits = convert_fees_to_permits(fees)
        known = {p.name.lower() for p in permits}
        for name in structured.permit_types:
            if name.lower() not in known:
                known.add(name.lower())
                permits.append(
                    PermitType(id=_new_id(), name=name, category=infer_permit_category(name), description=name)
                )
        if structured.requirements and permits:
            permits[0].requirements = list(structured.requirements)

        contact = structured.contact
        processing = ProcessingInfo(average_time=", ".join(dict.fromkeys(structured.processing_times.values())))

        needs_ai = not permits or not (contact.phone or contact.email)
        if needs_ai and self._get_client() is not None:
            logger.info("Supplementing structured data for %s with AI", url)
            try:
                ai = await self._process_with_ai(content, url)
            except ExtractionError as exc:
                logger.warning("AI supplementation failed, using structured data only: %s", exc)
            else:
                permits = permits or ai.permits
                fees = fees or ai.fees
                contact = contact.merged_with(ai.contact) if not (contact.phone or contact.email) else contact
                if not processing.average_time:
                    processing = ai.processing

        if not permits and not fees:
            raise ExtractionError("Structured data insufficient")

        return ExtractedPermitData(
            permits=permits,
            fees=fees,
            contact=contact,
            processing=processing,
            permit_forms=list(structured.permit_forms),
            kind=ExtractionKind.EXTRACTED,
        )
