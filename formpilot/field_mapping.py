"""
Field mapping module: canonical field vocabulary and label normalization.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class CanonicalField(Enum):
    """Semantic purposes a form control can serve."""
    # Personal Information
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    FULL_NAME = "full_name"
    EMAIL = "email"
    PHONE = "phone"

    # Location
    CITY = "city"
    ADDRESS = "address"
    ZIP_CODE = "zip_code"
    COUNTRY = "country"

    # Online Presence
    LINKEDIN_URL = "linkedin_url"
    GITHUB_URL = "github_url"
    PORTFOLIO_URL = "portfolio_url"

    # Work Authorization
    WORK_AUTHORIZATION = "work_authorization"
    REQUIRES_SPONSORSHIP = "requires_sponsorship"

    # Experience
    YEARS_EXPERIENCE = "years_experience"
    CURRENT_COMPANY = "current_company"
    CURRENT_TITLE = "current_title"

    # Logistics
    SALARY_EXPECTATION = "salary_expectation"
    START_DATE = "start_date"
    US_TIMEZONE = "us_timezone"

    # Free text
    WHY_FIT = "why_fit"
    HOW_DID_YOU_HEAR = "how_did_you_hear"

    # Uploads
    RESUME_UPLOAD = "resume_upload"
    COVER_LETTER_UPLOAD = "cover_letter_upload"

    UNKNOWN = "unknown"


UPLOAD_FIELDS = {
    CanonicalField.RESUME_UPLOAD,
    CanonicalField.COVER_LETTER_UPLOAD,
}

# Answers for these are reduced to a bare integer before filling
NUMERIC_FIELDS = {
    CanonicalField.YEARS_EXPERIENCE,
}

# Filler words ignored by fuzzy matching
STOP_WORDS = {
    "a", "an", "and", "are", "do", "does", "enter", "for", "in", "is", "of",
    "on", "or", "our", "please", "the", "this", "to", "what", "which", "you",
    "your",
}


@dataclass
class FieldPattern:
    """Synonyms and attribute hints for a canonical field."""
    field: CanonicalField
    synonyms: List[str]
    # Substrings seen in name/id/data-automation-id attributes
    attribute_hints: List[str] = field(default_factory=list)


# Order matters: fuzzy ties go to the earlier entry
FIELD_PATTERNS: List[FieldPattern] = [
    FieldPattern(
        field=CanonicalField.FIRST_NAME,
        synonyms=["first name", "given name", "legal first name", "preferred first name", "forename"],
        attribute_hints=["first_name", "firstname", "fname", "legalNameSection_firstName"],
    ),
    FieldPattern(
        field=CanonicalField.LAST_NAME,
        synonyms=["last name", "surname", "family name", "legal last name"],
        attribute_hints=["last_name", "lastname", "lname", "legalNameSection_lastName"],
    ),
    FieldPattern(
        field=CanonicalField.FULL_NAME,
        synonyms=["full name", "name", "your name", "legal name", "full legal name"],
        attribute_hints=["full_name", "fullname"],
    ),
    FieldPattern(
        field=CanonicalField.EMAIL,
        synonyms=["email", "email address", "e-mail", "e-mail address"],
        attribute_hints=["email"],
    ),
    FieldPattern(
        field=CanonicalField.PHONE,
        synonyms=["phone", "phone number", "mobile", "mobile phone", "mobile phone number", "telephone", "cell phone"],
        attribute_hints=["phone", "mobile", "phone-number"],
    ),
    FieldPattern(
        field=CanonicalField.CITY,
        synonyms=["city", "current city", "city of residence", "current location", "location"],
        attribute_hints=["city", "location"],
    ),
    FieldPattern(
        field=CanonicalField.ADDRESS,
        synonyms=["address", "street address", "address line 1"],
        attribute_hints=["address", "addressLine1"],
    ),
    FieldPattern(
        field=CanonicalField.ZIP_CODE,
        synonyms=["zip", "zip code", "postal code", "postcode"],
        attribute_hints=["zip", "postal"],
    ),
    FieldPattern(
        field=CanonicalField.COUNTRY,
        synonyms=["country", "country of residence"],
        attribute_hints=["country"],
    ),
    FieldPattern(
        field=CanonicalField.LINKEDIN_URL,
        synonyms=["linkedin", "linkedin profile", "linkedin url", "linkedin profile url"],
        attribute_hints=["linkedin"],
    ),
    FieldPattern(
        field=CanonicalField.GITHUB_URL,
        synonyms=["github", "github url", "github profile"],
        attribute_hints=["github"],
    ),
    FieldPattern(
        field=CanonicalField.PORTFOLIO_URL,
        synonyms=["portfolio", "portfolio url", "website", "personal website", "other website"],
        attribute_hints=["portfolio", "website"],
    ),
    FieldPattern(
        field=CanonicalField.WORK_AUTHORIZATION,
        synonyms=[
            "work authorization",
            "authorized to work",
            "legally authorized to work",
            "are you legally authorized to work in the united states",
        ],
        attribute_hints=["authorized", "work_auth"],
    ),
    FieldPattern(
        field=CanonicalField.REQUIRES_SPONSORSHIP,
        synonyms=[
            "sponsorship",
            "visa sponsorship",
            "require sponsorship",
            "will you now or in the future require sponsorship",
        ],
        attribute_hints=["sponsor"],
    ),
    FieldPattern(
        field=CanonicalField.YEARS_EXPERIENCE,
        synonyms=[
            "years of experience",
            "total years of experience",
            "years of professional experience",
            "how many years of experience",
        ],
        attribute_hints=["experience", "years"],
    ),
    FieldPattern(
        field=CanonicalField.CURRENT_COMPANY,
        synonyms=["current company", "company name", "current employer", "employer", "company"],
        attribute_hints=["company", "org", "employer"],
    ),
    FieldPattern(
        field=CanonicalField.CURRENT_TITLE,
        synonyms=["current title", "job title", "current job title", "current role", "title"],
        attribute_hints=["title", "position"],
    ),
    FieldPattern(
        field=CanonicalField.SALARY_EXPECTATION,
        synonyms=["salary", "desired salary", "expected salary", "salary expectations", "compensation expectations"],
        attribute_hints=["salary", "compensation"],
    ),
    FieldPattern(
        field=CanonicalField.START_DATE,
        synonyms=["start date", "earliest start date", "available start date", "when can you start"],
        attribute_hints=["start_date", "startdate", "availability"],
    ),
    FieldPattern(
        field=CanonicalField.US_TIMEZONE,
        synonyms=["time zone", "timezone", "comfortable working us time zones"],
        attribute_hints=["timezone"],
    ),
    FieldPattern(
        field=CanonicalField.WHY_FIT,
        synonyms=[
            "why are you a good fit",
            "why do you want to work here",
            "why are you interested in this role",
            "additional information",
        ],
        attribute_hints=["comments", "additional"],
    ),
    FieldPattern(
        field=CanonicalField.HOW_DID_YOU_HEAR,
        synonyms=["how did you hear about us", "how did you hear about this job", "source", "referral source"],
        attribute_hints=["source", "referral"],
    ),
    FieldPattern(
        field=CanonicalField.RESUME_UPLOAD,
        synonyms=["resume", "cv", "resume cv", "upload resume", "attach resume", "resume upload"],
        attribute_hints=["resume", "cv"],
    ),
    FieldPattern(
        field=CanonicalField.COVER_LETTER_UPLOAD,
        synonyms=["cover letter", "upload cover letter", "attach cover letter"],
        attribute_hints=["cover_letter", "coverletter", "cover-letter"],
    ),
]


def normalize_label(text: str) -> str:
    """Case-fold and collapse a raw label into its matching form.

    Drops required markers ("*"), trailing colons and question marks,
    and turns underscores, slashes and other punctuation into spaces.
    """
    text = (text or "").casefold()
    text = text.replace("*", " ").replace("_", " ")
    text = re.sub(r"\((required|optional)\)", " ", text)
    text = re.sub(r"[^\w\s-]", " ", text)
    return " ".join(text.split()).strip(" -")


def label_tokens(text: str) -> List[str]:
    """Content tokens of a normalized label, stop words removed."""
    return [t for t in normalize_label(text).replace("-", " ").split() if t not in STOP_WORDS]


def get_field_pattern(canonical: CanonicalField) -> Optional[FieldPattern]:
    """Get pattern for a specific canonical field."""
    for pattern in FIELD_PATTERNS:
        if pattern.field == canonical:
            return pattern
    return None


def field_from_key(key: str) -> CanonicalField:
    """Map a vocabulary key back to its enum member ("unknown" for anything else)."""
    try:
        return CanonicalField((key or "").strip().lower())
    except ValueError:
        return CanonicalField.UNKNOWN


def vocabulary() -> List[str]:
    """Keys a classifier may answer with, in pattern order."""
    return [p.field.value for p in FIELD_PATTERNS]


def is_upload_field(canonical: CanonicalField) -> bool:
    return canonical in UPLOAD_FIELDS


def display_label(canonical: CanonicalField) -> str:
    """Human label used when filling without on-page labels."""
    pattern = get_field_pattern(canonical)
    if pattern and pattern.synonyms:
        return pattern.synonyms[0].title()
    return canonical.value.replace("_", " ").title()
