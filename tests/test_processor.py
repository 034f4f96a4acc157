"""PermitDataProcessor tests with a stubbed OpenAI client."""
import asyncio
import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from permit_agent import processor as processor_module
from permit_agent.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from permit_agent.errors import ExtractionError
from permit_agent.models import ContactInfo, ExtractionKind, PermitCategory, PermitFee, PermitForm, StructuredData
from permit_agent.processor import (
    PermitDataProcessor,
    coerce_fees,
    convert_fees_to_permits,
    infer_permit_category,
    parse_json_object,
)

CONTENT = "Building permits are required for all new construction and major renovations. " * 3

AI_PAYLOAD = {
    "permits": [
        {
            "name": "Residential Building Permit",
            "category": "building",
            "description": "New homes and additions",
            "requirements": ["Site plan", "Construction drawings", ""],
            "processingTime": "10-15 business days",
        },
        {"category": "garage"},
    ],
    "fees": [
        {"type": "Building Permit", "amount": 250, "unit": "flat", "description": "Base fee"},
        {"amount": "call"},
    ],
    "contact": {
        "phone": "(217) 555-0100",
        "email": "permits@springfield.gov",
        "address": {"street": "800 E Monroe St", "city": "Springfield", "state": "IL", "zipCode": "62701"},
        "hoursOfOperation": {"Monday": {"open": "08:00", "close": "16:30"}},
    },
    "processing": {"averageTime": "2 weeks", "rushOptions": ["Expedited review"], "inspectionSchedule": "Daily"},
}


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


def _client(content=None, error=None):
    completions = FakeCompletions(content, error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _processor(client=None, breaker=None, **kwargs):
    breaker = breaker or CircuitBreaker(CircuitBreakerConfig(failure_threshold=5, reset_timeout=60.0), name="ai-test")
    return PermitDataProcessor(client, breaker=breaker, **kwargs)


@pytest.fixture(autouse=True)
def no_api_key(monkeypatch):
    monkeypatch.setattr(processor_module.config, "OPENAI_API_KEY", None)


def test_parse_json_object_finds_embedded_block():
    raw = "Here you go:\n```json\n{\"permits\": []}\n```"
    assert parse_json_object(raw) == {"permits": []}


@pytest.mark.parametrize("raw", ["no json here", "{not: valid}", ""])
def test_parse_json_object_rejects_garbage(raw):
    with pytest.raises(ExtractionError):
        parse_json_object(raw)


def test_extracts_with_ai():
    client, completions = _client("```json\n" + json.dumps(AI_PAYLOAD) + "\n```")
    data = asyncio.run(_processor(client, model="test-model").extract_permit_info(CONTENT, "https://x.gov"))

    assert data.kind is ExtractionKind.EXTRACTED
    assert [p.name for p in data.permits] == ["Residential Building Permit", "Unknown Permit"]
    assert data.permits[0].requirements == ["Site plan", "Construction drawings"]
    assert data.permits[0].processing_time == "10-15 business days"
    assert data.permits[1].category is PermitCategory.OTHER
    assert data.fees[0].amount == 250.0
    assert data.fees[1].type == "Unknown Fee"
    assert data.fees[1].amount == 0.0
    assert data.contact.email == "permits@springfield.gov"
    assert data.contact.address.zip_code == "62701"
    assert data.contact.hours_of_operation["monday"].close == "16:30"
    assert data.processing.rush_options == ["Expedited review"]

    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["temperature"] == 0.1
    assert call["messages"][0]["role"] == "system"
    assert "https://x.gov" in call["messages"][1]["content"]


def test_fees_become_permits_when_ai_lists_none():
    payload = {"fees": [{"type": "Electrical Permit Fee", "amount": 80}, {"type": "Electrical Permit Fee", "amount": 20}]}
    client, _ = _client(json.dumps(payload))
    data = asyncio.run(_processor(client).extract_permit_info(CONTENT, "https://x.gov"))
    assert len(data.permits) == 1
    permit = data.permits[0]
    assert permit.name == "Electrical Permit"
    assert permit.category is PermitCategory.ELECTRICAL
    assert [fee.amount for fee in permit.fees] == [80.0, 20.0]


def test_short_content_is_rejected():
    client, completions = _client("{}")
    with pytest.raises(ExtractionError, match="Insufficient content"):
        asyncio.run(_processor(client).extract_permit_info("too short", "https://x.gov"))
    assert completions.calls == []


def test_missing_client_is_an_extraction_error():
    with pytest.raises(ExtractionError, match="OPENAI_API_KEY"):
        asyncio.run(_processor().extract_permit_info(CONTENT, "https://x.gov"))


def test_api_failure_is_an_extraction_error():
    client, _ = _client(error=OpenAIError("quota exceeded"))
    with pytest.raises(ExtractionError, match="quota exceeded"):
        asyncio.run(_processor(client).extract_permit_info(CONTENT, "https://x.gov"))


def test_empty_response_is_an_extraction_error():
    client, _ = _client(content="")
    with pytest.raises(ExtractionError, match="Empty AI response"):
        asyncio.run(_processor(client).extract_permit_info(CONTENT, "https://x.gov"))


def test_structured_data_skips_ai_when_complete():
    client, completions = _client("{}")
    structured = StructuredData(
        fees=[PermitFee(type="Building Permit Fee", amount=150.0)],
        contact=ContactInfo(phone="(217) 555-0100"),
        requirements=["Site plan showing setbacks"],
        processing_times={"building": "10 days", "general": "10 days"},
        permit_types=["Fence Permit", "building permit"],
        permit_forms=[PermitForm(id="form-1", name="Application", url="https://x.gov/app.pdf")],
    )
    data = asyncio.run(_processor(client).extract_permit_info(CONTENT, "https://x.gov", structured))

    assert completions.calls == []
    assert [p.name for p in data.permits] == ["Building Permit", "Fence Permit"]
    assert data.permits[0].requirements == ["Site plan showing setbacks"]
    assert data.processing.average_time == "10 days"
    assert data.permit_forms[0].id == "form-1"
    assert data.contact.phone == "(217) 555-0100"


def test_structured_data_supplemented_by_ai():
    client, completions = _client(json.dumps(AI_PAYLOAD))
    structured = StructuredData(permit_types=["Deck Permit"])
    data = asyncio.run(_processor(client).extract_permit_info(CONTENT, "https://x.gov", structured))

    assert len(completions.calls) == 1
    assert [p.name for p in data.permits] == ["Deck Permit"]
    assert data.fees[0].type == "Building Permit"
    assert data.contact.email == "permits@springfield.gov"
    assert data.processing.average_time == "2 weeks"


def test_insufficient_structured_data_without_ai():
    with pytest.raises(ExtractionError, match="Structured data insufficient"):
        asyncio.run(_processor().extract_permit_info(CONTENT, "https://x.gov", StructuredData()))


def test_helpers():
    assert infer_permit_category("HVAC replacement") is PermitCategory.MECHANICAL
    assert infer_permit_category("Pool") is PermitCategory.OTHER
    assert coerce_fees("nope") == []
    assert coerce_fees([{"type": "X", "amount": True}])[0].amount == 0.0
    assert convert_fees_to_permits([PermitFee(type="Sign Charge", amount=10)])[0].name == "Sign"


def test_api_failures_open_the_breaker():
    breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=2, reset_timeout=60.0), name="ai-test")
    client, completions = _client(error=OpenAIError("upstream down"))
    processor = _processor(client, breaker)
    for _ in range(2):
        with pytest.raises(ExtractionError, match="upstream down"):
            asyncio.run(processor.extract_permit_info(CONTENT, "https://x.gov"))
    assert breaker.get_state() is CircuitState.OPEN

    with pytest.raises(ExtractionError, match="AI processing unavailable"):
        asyncio.run(processor.extract_permit_info(CONTENT, "https://x.gov"))
    assert len(completions.calls) == 2


def test_failures_before_the_ai_call_leave_breaker_closed():
    breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=1, reset_timeout=60.0), name="ai-test")
    processor = _processor(breaker=breaker)
    with pytest.raises(ExtractionError, match="OPENAI_API_KEY"):
        asyncio.run(processor.extract_permit_info(CONTENT, "https://x.gov"))
    with pytest.raises(ExtractionError, match="Structured data insufficient"):
        asyncio.run(processor.extract_permit_info(CONTENT, "https://x.gov", StructuredData()))
    assert breaker.get_state() is CircuitState.CLOSED


def test_open_breaker_still_returns_structured_data():
    breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=1, reset_timeout=60.0), name="ai-test")
    breaker.force_open()
    client, completions = _client(json.dumps(AI_PAYLOAD))
    structured = StructuredData(permit_types=["Deck Permit"])
    data = asyncio.run(_processor(client, breaker).extract_permit_info(CONTENT, "https://x.gov", structured))
    assert completions.calls == []
    assert [p.name for p in data.permits] == ["Deck Permit"]
    assert data.kind is ExtractionKind.EXTRACTED
