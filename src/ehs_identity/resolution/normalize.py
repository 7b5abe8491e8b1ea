"""Text normalization for offender names, postcodes, registration numbers
and legislation titles.

All functions are pure. They never raise on odd input: non-string values
are returned unchanged.
"""

import re
from typing import Any

# Punctuation that carries no identity information in a company name
_PUNCTUATION = re.compile(r"[.,:;!@#$%^&*()]+")
_LIMITED_SUFFIX = re.compile(r"\s+(limited|ltd\.?)$")
_PLC_SUFFIX = re.compile(r"\s+(plc|p\.l\.c\.?)$")
_WHITESPACE = re.compile(r"\s+")

_SCRAPE_ARTEFACTS = ("(opens in new tab)",)

# Words kept lower-case in legislation titles (except as the first word)
SMALL_WORDS = frozenset(
    ["at", "of", "and", "the", "in", "on", "for", "with", "to", "by", "under", "from", "etc"]
)

LEGISLATION_ABBREVIATIONS = [
    (re.compile(r"\bh&s\b", re.IGNORECASE), "Health and Safety"),
    (re.compile(r"\bcdm\b", re.IGNORECASE), "Construction (Design and Management)"),
    (re.compile(r"\bcoshh\b", re.IGNORECASE), "Control of Substances Hazardous to Health"),
    (
        re.compile(r"\bpuwer\b", re.IGNORECASE),
        "Provision and Use of Work Equipment Regulations",
    ),
    (
        re.compile(r"\bdsear\b", re.IGNORECASE),
        "Dangerous Substances and Explosive Atmospheres",
    ),
    (re.compile(r"\bloler\b", re.IGNORECASE), "Lifting Operations and Lifting Equipment"),
    (re.compile(r"\bcomah\b", re.IGNORECASE), "Control of Major Accident Hazards"),
]

_ETC = re.compile(r"\b[Ee]tc\.?\b")
_YEAR = re.compile(r"\b((?:19|20)\d{2})\b")


def normalize_company_name(name: Any) -> Any:
    """Canonicalize a company name for comparison.

    Lower-cases, strips identity-neutral punctuation and folds the
    ``ltd``/``limited`` and ``plc``/``p.l.c.`` suffix variants.

    Args:
        name: Raw name; non-strings are returned as given

    Returns:
        Normalized name

    Example:
        >>> normalize_company_name("  ACME Ltd. ")
        'acme limited'
    """
    if not isinstance(name, str):
        return name

    normalized = name.strip().lower()
    normalized = _PUNCTUATION.sub("", normalized)
    normalized = _LIMITED_SUFFIX.sub(" limited", normalized)
    normalized = _PLC_SUFFIX.sub(" plc", normalized)
    normalized = _WHITESPACE.sub(" ", normalized)
    return normalized.strip()


def normalize_postcode(postcode: Any) -> str | None:
    """Trim and upper-case a postcode. Empty values become None."""
    if not isinstance(postcode, str):
        return None
    cleaned = postcode.strip().upper()
    return cleaned or None


def clean_company_number(number: Any) -> str | None:
    """Clean a company registration number scraped from a source page.

    Removes the "(opens in new tab)" link artefact, upper-cases and pads
    seven-digit numeric numbers to the registry's eight digits.
    """
    if number is None:
        return None
    if isinstance(number, int):
        number = str(number)
    if not isinstance(number, str):
        return None

    cleaned = number
    for artefact in _SCRAPE_ARTEFACTS:
        cleaned = cleaned.replace(artefact, "")
    cleaned = cleaned.strip().upper()

    if not cleaned:
        return None
    if len(cleaned) == 7 and cleaned.isdigit():
        return f"0{cleaned}"
    return cleaned


# =========================
# Legislation titles
# =========================


def _title_case_word(word: str, index: int) -> str:
    if index > 0 and word in SMALL_WORDS:
        return word
    return word.capitalize()


def normalize_legislation_title(title: Any) -> Any:
    """Normalize a legislation title to proper title case.

    Example:
        >>> normalize_legislation_title("HEALTH AND SAFETY AT WORK ETC. ACT")
        'Health and Safety at Work etc. Act'
    """
    if not isinstance(title, str):
        return title

    words = title.strip().lower().split(" ")
    cased = " ".join(_title_case_word(word, i) for i, word in enumerate(words))

    cased = _ETC.sub("etc.", cased).replace("etc..", "etc.")
    for pattern, expansion in LEGISLATION_ABBREVIATIONS:
        cased = pattern.sub(expansion, cased)

    return _WHITESPACE.sub(" ", cased).strip()


def determine_legislation_type(title: str) -> str:
    """Infer the legislation type from keywords in its title."""
    lowered = title.lower()
    if "acop" in lowered or "approved code of practice" in lowered:
        return "acop"
    if "regulation" in lowered:
        return "regulation"
    if "order" in lowered:
        return "order"
    return "act"


def extract_year(title: str) -> int | None:
    """Extract a 19xx/20xx year from a title, if present."""
    match = _YEAR.search(title)
    return int(match.group(1)) if match else None


def legislation_identity_key(title: str, year: int | None, number: int | None) -> str:
    """Build the NULL-safe key enforcing (title, year, number) uniqueness."""
    return f"{title.lower()}|{'' if year is None else year}|{'' if number is None else number}"
