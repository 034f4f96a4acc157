"""HTML extraction helpers for permit pages."""

from __future__ import annotations

import hashlib
import re
from typing import Iterable
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from .models import Address, ContactInfo, PermitFee, PermitForm, StructuredData, TimeRange

MAX_CONTENT_CHARS = 10_000
MIN_MAIN_CONTENT_CHARS = 200

NOISE_TAGS = ("script", "style", "noscript", "nav", "header", "footer")
# Removed before structured extraction; header and footer are kept.
NON_TEXT_TAGS = ("script", "style", "noscript", "template")

CONTENT_SELECTORS = (
    "main",
    ".content",
    ".main-content",
    "#content",
    "#main",
    ".permit",
    ".building",
    ".application",
    "article",
    ".page-content",
)

PERMIT_KEYWORDS = (
    "permit",
    "building",
    "application",
    "form",
    "development",
    "planning",
    "zoning",
    "construction",
    "inspection",
    "license",
)

PERMIT_TYPE_PATTERNS = tuple(
    re.compile(rf"\b{name} permit\b", re.IGNORECASE)
    for name in (
        "building",
        "electrical",
        "plumbing",
        "mechanical",
        "residential",
        "commercial",
        "demolition",
        "renovation",
        "addition",
        "fence",
        "deck",
        "pool",
        "sign",
        "zoning",
    )
)

PORTAL_HINTS = ("apply online", "online portal", "permit portal", "citizen access", "accela", "energov", "etrakit")
FORM_EXTENSIONS = {".pdf": "pdf", ".doc": "doc", ".docx": "doc"}

PHONE_RE = re.compile(r"(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]{1,64}@[a-zA-Z0-9.-]{1,253}\.[a-zA-Z]{2,24}")
ADDRESS_RE = re.compile(
    r"\b\d{1,6}\s+(?:[\w.]+\s+){0,6}?(?:street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln|way|court|ct|place|pl)\b"
    r"[\s,.]+([A-Za-z .]{1,40}?),?\s+([A-Z]{2})\s+(\d{5}(?:-\d{4})?)",
    re.IGNORECASE,
)
AMOUNT_RE = re.compile(r"\$?\s*([\d,]+(?:\.\d+)?)")
TIME_PERIOD_RE = re.compile(r"(\d+\s*[-–]\s*\d+|\d+)\s*(business\s+)?(days?|weeks?|months?|hours?)", re.IGNORECASE)
CLOCK = r"(\d{1,2}(?::\d{2})?\s*[ap]\.?m\.?)"
DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
IGNORED_EMAIL_FRAGMENTS = ("example", "noreply", "donotreply", "no-reply")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def normalize_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def extract_title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.get_text(strip=True):
        return normalize_whitespace(soup.title.get_text())
    heading = soup.find("h1")
    if heading and heading.get_text(strip=True):
        return normalize_whitespace(heading.get_text())
    return "No title"


def strip_noise(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(list(NOISE_TAGS)):
        tag.decompose()


def extract_main_content(soup: BeautifulSoup, *, limit: int = MAX_CONTENT_CHARS) -> str:
    """Return the page's main text, whitespace-collapsed and capped at *limit*.

    Expects noise tags to be stripped already.
    """
    text = ""
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        candidate = normalize_whitespace(element.get_text(" "))
        if len(candidate) > len(text):
            text = candidate
        if len(text) >= MIN_MAIN_CONTENT_CHARS:
            break

    if len(text) < MIN_MAIN_CONTENT_CHARS:
        root = soup.body or soup
        text = normalize_whitespace(root.get_text(" "))
    return text[:limit]


def _same_site(url: str, base_url: str) -> bool:
    host = (urlparse(url).hostname or "").lower().removeprefix("www.")
    base_host = (urlparse(base_url).hostname or "").lower().removeprefix("www.")
    return bool(host) and (host == base_host or host.endswith("." + base_host))


def extract_permit_links(
    soup: BeautifulSoup,
    base_url: str,
    *,
    keywords: Iterable[str] = PERMIT_KEYWORDS,
) -> list[str]:
    """Return same-site links whose text or href mentions a permit keyword."""

    lowered = tuple(k.lower() for k in keywords)
    found: list[str] = []
    seen: set[str] = set()

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        href_lower = href.lower()
        if not href or href_lower.startswith(("mailto:", "tel:", "javascript:", "#")):
            continue

        text = anchor.get_text(" ", strip=True).lower()
        if not any(k in text or k in href_lower for k in lowered):
            continue

        absolute = urljoin(base_url, href).split("#", 1)[0]
        if absolute in seen or not _same_site(absolute, base_url):
            continue
        seen.add(absolute)
        found.append(absolute)

    return found


def parse_amount(value: str) -> float | None:
    match = AMOUNT_RE.search(value or "")
    if not match:
        return None
    try:
        return float(match.group(1).replace(",", ""))
    except ValueError:
        return None


def detect_fee_unit(value: str) -> str:
    lower = (value or "").lower()
    if "sq" in lower or "square" in lower:
        return "per_sqft"
    if "hour" in lower or "hr" in lower:
        return "per_hour"
    if "unit" in lower:
        return "per_unit"
    if "%" in lower or "percent" in lower:
        return "percentage"
    return "flat"


def _table_rows(table: Tag) -> tuple[list[str], list[list[str]]]:
    rows = [
        [normalize_whitespace(cell.get_text(" ")) for cell in row.find_all(["th", "td"])]
        for row in table.find_all("tr")
    ]
    rows = [row for row in rows if any(row)]
    if not rows:
        return [], []
    return [h.lower() for h in rows[0]], rows[1:]


def extract_fees(soup: BeautifulSoup) -> list[PermitFee]:
    """Pull fees out of tables with type/amount headers and definition lists."""

    fees: list[PermitFee] = []
    for table in soup.find_all("table"):
        headers, rows = _table_rows(table)
        type_idx = next((i for i, h in enumerate(headers) if re.search(r"type|permit|description|service", h)), -1)
        amount_idx = next((i for i, h in enumerate(headers) if re.search(r"fee|cost|amount|price", h)), -1)
        if type_idx == -1 or amount_idx == -1 or type_idx == amount_idx:
            continue
        for row in rows:
            if len(row) <= max(type_idx, amount_idx):
                continue
            amount = parse_amount(row[amount_idx])
            if not row[type_idx] or amount is None:
                continue
            extra = [cell for i, cell in enumerate(row) if i not in (type_idx, amount_idx) and cell]
            fees.append(
                PermitFee(
                    type=row[type_idx],
                    amount=amount,
                    unit=detect_fee_unit(row[amount_idx]),
                    description=" ".join(extra),
                )
            )

    for term in soup.find_all("dt"):
        definition = term.find_next_sibling("dd")
        if definition is None:
            continue
        amount_text = normalize_whitespace(definition.get_text(" "))
        if "$" not in amount_text:
            continue
        amount = parse_amount(amount_text)
        if amount is None:
            continue
        fees.append(
            PermitFee(
                type=normalize_whitespace(term.get_text(" ")),
                amount=amount,
                unit=detect_fee_unit(amount_text),
                description=AMOUNT_RE.sub("", amount_text, count=1).strip(),
            )
        )
    return fees


def format_phone(raw: str) -> str | None:
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return None
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def _to_24h(value: str) -> str:
    match = re.match(r"(\d{1,2})(?::(\d{2}))?\s*([ap])", value.strip().lower().replace(".", ""))
    if not match:
        return value.strip()
    hour = int(match.group(1)) % 12
    minute = int(match.group(2) or 0)
    if match.group(3) == "p":
        hour += 12
    return f"{hour:02d}:{minute:02d}"


def extract_business_hours(text: str) -> dict[str, TimeRange]:
    hours: dict[str, TimeRange] = {}
    lowered = text.lower()

    weekday = re.search(rf"monday\s*(?:-|–|through|to)\s*friday[:\s,]*{CLOCK}\s*(?:-|–|to)\s*{CLOCK}", lowered)
    if weekday:
        for day in DAYS[:5]:
            hours[day] = TimeRange(open=_to_24h(weekday.group(1)), close=_to_24h(weekday.group(2)))

    for day in DAYS:
        match = re.search(rf"{day}[:\s-]*{CLOCK}\s*(?:-|–|to)\s*{CLOCK}", lowered)
        if match:
            hours[day] = TimeRange(open=_to_24h(match.group(1)), close=_to_24h(match.group(2)))
    return hours


def parse_address_match(match: re.Match[str]) -> Address | None:
    city = match.group(1).strip(" ,.")
    street = normalize_whitespace(match.group(0)[: match.start(1) - match.start(0)]).strip(" ,.")
    if not street or not city:
        return None
    return Address(street=street, city=city, state=match.group(2).upper(), zip_code=match.group(3))


def extract_contact(soup: BeautifulSoup) -> ContactInfo:
    text = normalize_whitespace(soup.get_text(" "))
    contact = ContactInfo()

    tel_links = [a["href"][4:] for a in soup.select('a[href^="tel:"]')]
    for candidate in tel_links + PHONE_RE.findall(text):
        phone = format_phone(candidate)
        if phone:
            contact.phone = phone
            break

    mail_links = [a["href"][7:].split("?")[0] for a in soup.select('a[href^="mailto:"]')]
    for candidate in mail_links + EMAIL_RE.findall(text):
        lower = candidate.lower()
        if EMAIL_RE.fullmatch(candidate) and not any(frag in lower for frag in IGNORED_EMAIL_FRAGMENTS):
            contact.email = candidate
            break

    for selector in ("address", ".address", ".location", ".contact-address", '[itemprop="address"]'):
        element = soup.select_one(selector)
        if element is None:
            continue
        match = ADDRESS_RE.search(normalize_whitespace(element.get_text(", ")))
        if match:
            contact.address = parse_address_match(match)
            break
    if contact.address is None:
        match = ADDRESS_RE.search(text)
        if match:
            contact.address = parse_address_match(match)

    hours = extract_business_hours(text)
    if hours:
        contact.hours_of_operation = hours
    return contact


def extract_requirements(soup: BeautifulSoup, *, limit: int = 25) -> list[str]:
    """List items under headings that talk about requirements or documents."""

    requirements: list[str] = []
    seen: set[str] = set()
    for heading in soup.find_all(["h2", "h3", "h4", "strong"]):
        title = heading.get_text(" ", strip=True).lower()
        if not re.search(r"requirement|document|checklist|what you need|submit", title):
            continue
        listing = heading.find_next(["ul", "ol"])
        if listing is None:
            continue
        for item in listing.find_all("li"):
            value = normalize_whitespace(item.get_text(" "))
            if 5 <= len(value) <= 500 and value.lower() not in seen:
                seen.add(value.lower())
                requirements.append(value)
                if len(requirements) >= limit:
                    return requirements
    return requirements


def extract_processing_times(text: str) -> dict[str, str]:
    times: dict[str, str] = {}
    for permit_type in ("building", "electrical", "plumbing", "mechanical", "demolition"):
        match = re.search(rf"{permit_type}[^.]{{0,200}}?{TIME_PERIOD_RE.pattern}", text, re.IGNORECASE)
        if match:
            period = TIME_PERIOD_RE.search(match.group(0))
            if period:
                times[permit_type] = normalize_whitespace(period.group(0))
    if not times:
        match = re.search(rf"(?:processing|review|turnaround)[^.]{{0,200}}?{TIME_PERIOD_RE.pattern}", text, re.IGNORECASE)
        if match:
            period = TIME_PERIOD_RE.search(match.group(0))
            if period:
                times["general"] = normalize_whitespace(period.group(0))
    return times


def extract_permit_types(text: str) -> list[str]:
    found: dict[str, str] = {}
    for pattern in PERMIT_TYPE_PATTERNS:
        for match in pattern.findall(text):
            found.setdefault(match.lower(), match.title())
    return list(found.values())


def detect_forms(soup: BeautifulSoup, base_url: str) -> list[PermitForm]:
    """Downloadable permit documents (PDF/Word) linked from the page."""

    forms: list[PermitForm] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        url = urljoin(base_url, anchor["href"].strip())
        path = urlparse(url).path.lower()
        file_type = next((kind for ext, kind in FORM_EXTENSIONS.items() if path.endswith(ext)), None)
        if file_type is None or url in seen:
            continue
        name = normalize_whitespace(anchor.get_text(" ")) or path.rsplit("/", 1)[-1]
        if not any(k in (name + path).lower() for k in PERMIT_KEYWORDS):
            continue
        seen.add(url)
        forms.append(
            PermitForm(
                id="form-" + hashlib.sha1(url.encode("utf-8")).hexdigest()[:10],
                name=name,
                url=url,
                file_type=file_type,
                is_required="required" in name.lower(),
            )
        )
    return forms


def find_portal_url(soup: BeautifulSoup, base_url: str) -> str | None:
    for anchor in soup.find_all("a", href=True):
        haystack = (anchor.get_text(" ", strip=True) + " " + anchor["href"]).lower()
        if any(hint in haystack for hint in PORTAL_HINTS):
            return urljoin(base_url, anchor["href"].strip())
    return None


def extract_structured(html: str, base_url: str) -> StructuredData:
    soup = parse_html(html)
    for tag in soup.find_all(list(NON_TEXT_TAGS)):
        tag.decompose()
    text = normalize_whitespace(soup.get_text(" "))
    forms = detect_forms(soup, base_url)
    portal = find_portal_url(soup, base_url)
    if portal:
        forms.append(
            PermitForm(
                id="form-portal",
                name="Online permit application",
                url=portal,
                file_type="online",
            )
        )
    return StructuredData(
        fees=extract_fees(soup),
        contact=extract_contact(soup),
        requirements=extract_requirements(soup),
        processing_times=extract_processing_times(text),
        permit_types=extract_permit_types(text),
        permit_forms=forms,
        permit_portal_url=portal,
    )
