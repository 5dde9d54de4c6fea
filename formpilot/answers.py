"""
Answer synthesis boundary: canonical answers plus which resume to upload.
"""

from dataclasses import dataclass, field
from typing import Dict, Protocol

from .config import Profile
from .field_mapping import FIELD_PATTERNS, is_upload_field


@dataclass
class AnswerSet:
    """Answers keyed by canonical field value, e.g. {"email": "..."}."""
    answers: Dict[str, str] = field(default_factory=dict)
    resume_variant: str = ""


class AnswerSynthesizer(Protocol):
    async def synthesize_answers(
        self, job_id: str, title: str, description: str, profile_summary: str
    ) -> AnswerSet:
        ...


class ProfileAnswerSynthesizer:
    """Answers straight from the applicant profile; same answers for every job."""

    def __init__(self, profile: Profile, resume_variant: str = ""):
        self.profile = profile
        self.resume_variant = resume_variant

    async def synthesize_answers(
        self, job_id: str, title: str, description: str, profile_summary: str
    ) -> AnswerSet:
        answers = {}
        for pattern in FIELD_PATTERNS:
            if is_upload_field(pattern.field):
                continue
            value = self.profile.get_field_value(pattern.field.value)
            if value:
                answers[pattern.field.value] = value
        return AnswerSet(answers=answers, resume_variant=self.resume_variant)
