"""
TalentDesk Backend: CV Parser
=============================

What:  Turns an uploaded CV into plain text and pulls out a name, an email
       address and a phone number with heuristics.
How:
    PDF   → pypdf, text of every page joined with newlines
    DOCX  → python-docx, paragraph text
    DOC   → legacy binary; printable ASCII is kept, everything else blanked
    TXT   → utf-8 (undecodable bytes replaced)

Confidence score (0-100):
    name found   +40
    email found  +40
    phone found  +20

The heuristics are deliberately simple and language-agnostic; a confidence
below 100 tells the recruiter which fields deserve a second look.
"""

import io
import logging
import re
from dataclasses import dataclass
from typing import Optional

import docx
from pypdf import PdfReader

from talentdesk.services.file_service import DOCX_MIME

logger = logging.getLogger(__name__)

MAX_EXTRACTED_TEXT = 10000

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

PHONE_PATTERNS = [
    re.compile(r"\+?[0-9]{1,4}[-.\s]?\(?[0-9]{1,4}\)?[-.\s]?[0-9]{1,4}[-.\s]?[0-9]{1,9}"),
    re.compile(r"\(\d{2,4}\)\s?\d{3}[-.\s]?\d{2}[-.\s]?\d{2}"),
    re.compile(r"\d{4}[-.\s]?\d{2}[-.\s]?\d{2}[-.\s]?\d{2}"),
]

NAME_CHARS = "A-Za-zéèêëàâäùûüôöîïç'-"

SKIP_LINE_PATTERNS = [
    re.compile(r"^curriculum vitae$", re.IGNORECASE),
    re.compile(r"^resume$", re.IGNORECASE),
    re.compile(r"^cv$", re.IGNORECASE),
    re.compile(r"^contact$", re.IGNORECASE),
    re.compile(r"^email$", re.IGNORECASE),
    re.compile(r"^phone$", re.IGNORECASE),
    re.compile(r"^address$", re.IGNORECASE),
    re.compile(r"^experience$", re.IGNORECASE),
    re.compile(r"^education$", re.IGNORECASE),
    re.compile(r"^skills$", re.IGNORECASE),
    re.compile(r"^objective$", re.IGNORECASE),
    re.compile(r"^summary$", re.IGNORECASE),
    re.compile(r"^profile$", re.IGNORECASE),
    re.compile(r"^[0-9]"),
    re.compile(r"@"),
    re.compile(r"^http", re.IGNORECASE),
    re.compile(r"linkedin", re.IGNORECASE),
    re.compile(r"github", re.IGNORECASE),
]

TITLE_ONLY_RE = re.compile(r"^(mr|mrs|ms|dr|prof)\.?\s*$", re.IGNORECASE)
NAME_WORD_RE = re.compile(rf"^[A-Za-z][{NAME_CHARS}]*$")
NAME_LABEL_RE = re.compile(
    rf"(?:name|naam|nom|full name)\s*[:\-]?\s*([{NAME_CHARS}]+(?:\s+[{NAME_CHARS}]+)+)",
    re.IGNORECASE,
)
CAPITALISED_RUN_RE = re.compile(
    r"\b([A-Z][a-zéèêëàâäùûüôöîïç'-]+)\s+([A-Z][a-zéèêëàâäùûüôöîïç'-]+)"
    r"(?:\s+([A-Z][a-zéèêëàâäùûüôöîïç'-]+))?\b"
)
HEADER_WORDS_RE = re.compile(r"curriculum|resume|vitae|profile|contact|experience", re.IGNORECASE)

COUNTRY_PREFIXES = {
    "BE": "+32",
    "NL": "+31",
    "FR": "+33",
    "DE": "+49",
    "UK": "+44",
    "US": "+1",
}
DEFAULT_COUNTRY_PREFIX = "+32"


class CVParseError(Exception):
    """The file could not be turned into text."""


@dataclass
class ParsedCV:
    full_name: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    extracted_text: str
    confidence: int


# ── Text extraction ───────────────────────────────────────────────────────


# pypdf and python-docx raise whatever their internals hit on a damaged
# file (lxml syntax errors included); all of it means unreadable.


def extract_text_from_pdf(content: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(content))
        return "\n".join(page.extract_text() or "" for page in reader.pages).strip()
    except Exception as e:
        logger.warning("PDF text extraction failed: %s", str(e))
        raise CVParseError("Failed to parse PDF") from e


def extract_text_from_docx(content: bytes) -> str:
    try:
        document = docx.Document(io.BytesIO(content))
        return "\n".join(p.text for p in document.paragraphs).strip()
    except Exception as e:
        logger.warning("DOCX text extraction failed: %s", str(e))
        raise CVParseError("Failed to parse Word document") from e


def extract_text_from_doc(content: bytes) -> str:
    """Legacy .doc files: keep printable ASCII and collapse whitespace."""
    text = content.decode("latin-1")
    text = re.sub(r"[^\x20-\x7E\n\r\t]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def extract_text(content: bytes, mime_type: str) -> str:
    if mime_type == "application/pdf":
        return extract_text_from_pdf(content)
    if mime_type == DOCX_MIME:
        return extract_text_from_docx(content)
    if mime_type == "application/msword":
        return extract_text_from_doc(content)
    if mime_type == "text/plain":
        return content.decode("utf-8", errors="replace")
    raise CVParseError(f"Unsupported file type: {mime_type}")


# ── Field heuristics ──────────────────────────────────────────────────────


def extract_email(text: str) -> Optional[str]:
    matches = EMAIL_RE.findall(text)
    if not matches:
        return None
    for candidate in matches:
        lower = candidate.lower()
        if "example" not in lower and "test@" not in lower and "@domain" not in lower:
            return candidate
    return matches[0]


def extract_phone(text: str) -> Optional[str]:
    for pattern in PHONE_PATTERNS:
        match = pattern.search(text)
        if match:
            phone = re.sub(r"[\s.-]", "", match.group(0))
            if len(re.sub(r"\D", "", phone)) >= 8:
                return phone
    return None


def _title_case(words) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def extract_name(text: str) -> Optional[str]:
    lines = [line.strip() for line in text.split("\n")]
    lines = [line for line in lines if line]

    for line in lines[:15]:
        if any(p.search(line) for p in SKIP_LINE_PATTERNS):
            continue
        if len(line) < 3 or len(line) > 60:
            continue
        if re.search(r"\d", line):
            continue
        if TITLE_ONLY_RE.match(line):
            continue

        words = [w for w in line.split() if len(w) > 1]
        if 1 <= len(words) <= 5:
            name_words = [w for w in words if NAME_WORD_RE.match(w)]
            if len(name_words) >= 2:
                return _title_case(name_words)

    label = NAME_LABEL_RE.search(text)
    if label:
        return _title_case(label.group(1).split())

    run = CAPITALISED_RUN_RE.search(text[:500])
    if run:
        combined = " ".join(part for part in run.groups() if part)
        if not HEADER_WORDS_RE.search(combined):
            return combined

    return None


def calculate_confidence(name: Optional[str], email: Optional[str], phone: Optional[str]) -> int:
    score = 0
    if name:
        score += 40
    if email:
        score += 40
    if phone:
        score += 20
    return score


def parse_cv(content: bytes, mime_type: str) -> ParsedCV:
    """
    Extracts text and candidate fields from a CV.

    Raises:
        CVParseError: unsupported type or unreadable document
    """
    text = extract_text(content, mime_type)
    full_name = extract_name(text)
    email = extract_email(text)
    phone = extract_phone(text)
    return ParsedCV(
        full_name=full_name,
        email=email,
        phone=phone,
        extracted_text=text[:MAX_EXTRACTED_TEXT],
        confidence=calculate_confidence(full_name, email, phone),
    )


def normalize_phone(phone: Optional[str], country_code: str = "BE") -> Optional[str]:
    """
    Best-effort E.164 normalisation.

    "+32 470 12 34 56" → "+32470123456"
    "0032470123456"    → "+32470123456"
    "0470 12 34 56"    → "+32470123456" (country BE)
    """
    if not phone:
        return None

    normalized = re.sub(r"[^\d+]", "", phone)
    if normalized.startswith("+"):
        return normalized
    if normalized.startswith("00"):
        return "+" + normalized[2:]

    prefix = COUNTRY_PREFIXES.get(country_code.upper(), DEFAULT_COUNTRY_PREFIX)
    if normalized.startswith("0"):
        normalized = normalized[1:]
    return prefix + normalized
