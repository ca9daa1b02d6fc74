"""Name normalization helpers shared by the matcher, adapters and merge resolver."""

from __future__ import annotations

import re

_SERVICE_WORDS = (
    r"paid content|recurring content|new deal|one[- ]off content|ongoing|content delivery"
    r"|ads?\s*management|ads?\s*mgmt|social media|organic socials|ad creative|upsell"
    r"|round\s*\d+|batch\s*\d+|website|xmas campaign"
)

# "Acme - Paid Content", "Acme - Content"
_DASH_SUFFIX_RE = re.compile(rf"\s*[-–—]\s*({_SERVICE_WORDS}|content)$", re.IGNORECASE)
# "Acme (Ads Management)", "Acme (SM)"
_PAREN_SUFFIX_RE = re.compile(
    r"\s*\((ads?\s*management|ads?\s*mgmt|sm|content delivery|content|social media|organic socials)\)$",
    re.IGNORECASE,
)
# "Acme Paid Content", "Acme Round 2"
_BARE_SUFFIX_RE = re.compile(rf"\s+({_SERVICE_WORDS})$", re.IGNORECASE)

_LEGAL_SUFFIXES = (
    "pty. ltd.", "pty. ltd", "pty ltd", "ltd", "limited", "inc.", "inc", "incorporated",
    "llc", "corp", "corporation", "co", "company", "group", "holdings", "australia", "au",
)


def normalize_for_match(name: str) -> str:
    """Lowercase, '&' -> 'and', strip punctuation, collapse whitespace."""
    value = (name or "").lower().replace("&", "and").replace("-", " ")
    value = re.sub(r"[^a-z0-9\s]", "", value)
    return re.sub(r"\s+", " ", value).strip()


def extract_company_name(name: str) -> str:
    """Strip a trailing service-line suffix from a deal or board item name."""
    value = (name or "").strip()
    value = _DASH_SUFFIX_RE.sub("", value)
    value = _PAREN_SUFFIX_RE.sub("", value)
    value = _BARE_SUFFIX_RE.sub("", value)
    return value.strip()


def get_service_type(name: str) -> str | None:
    """Return the service-line suffix that extract_company_name removed, if any."""
    company = extract_company_name(name)
    suffix = (name or "").strip()[len(company):].strip()
    suffix = re.sub(r"^[-–—\s(]+|[)\s]+$", "", suffix).strip()
    return suffix or None


def normalize_company_name(name: str) -> str:
    """Drop legal-entity suffixes (Pty Ltd, Inc, ...) then punctuation."""
    value = (name or "").lower().strip()
    for suffix in _LEGAL_SUFFIXES:
        value = re.sub(rf"\s+{re.escape(suffix)}\s*$", "", value)
    value = re.sub(r"[^\w\s]", "", value)
    return re.sub(r"\s+", " ", value).strip()


def normalize_person_name(name: str) -> str:
    return re.sub(r"\s+", " ", (name or "").lower().strip())


def first_word(normalized: str) -> str:
    parts = normalized.split(" ", 1)
    return parts[0] if parts else ""


def email_domain(value: str | None) -> str | None:
    """Extract a lowercase domain from an email address or "Name <addr>" header."""
    if not value:
        return None
    match = re.search(r"@([A-Za-z0-9.-]+\.[A-Za-z]{2,})", value)
    return match.group(1).lower() if match else None


def website_domain(url: str | None) -> str | None:
    if not url:
        return None
    value = re.sub(r"^[a-z]+://", "", url.strip().lower())
    value = value.split("/", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    return value or None
