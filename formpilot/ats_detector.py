"""
Platform detection for application pages.

A page is attributed to a platform when its URL matches one of the
platform's host patterns. Pages served from a company domain (embedded
boards, custom career sites) are attributed by markers in their HTML.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class Platform(Enum):
    LEVER = "lever"
    GREENHOUSE = "greenhouse"
    WORKDAY = "workday"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PlatformSignature:
    hosts: List[str]
    markers: List[str]


@dataclass
class DetectionResult:
    platform: Platform
    confidence: float
    detection_method: str  # url | dom | none

    @property
    def known(self) -> bool:
        return self.platform != Platform.UNKNOWN


SIGNATURES: Dict[Platform, PlatformSignature] = {
    Platform.LEVER: PlatformSignature(
        hosts=[r"jobs\.lever\.co", r"lever\.co/[^/]+/jobs"],
        markers=["lever-application-form", "lever-jobs-container", "data-lever"],
    ),
    Platform.GREENHOUSE: PlatformSignature(
        hosts=[r"(job-)?boards\.greenhouse\.io", r"greenhouse\.io/[^/]+/jobs", r"/greenhouse/"],
        markers=["grnhse_app", "greenhouse-job-board", "data-greenhouse"],
    ),
    Platform.WORKDAY: PlatformSignature(
        hosts=[r"myworkdayjobs\.com", r"\.workday\.com", r"/workday/"],
        markers=['data-automation-id="jobpostingheader"', "workday-application"],
    ),
}

URL_CONFIDENCE = 0.95
DOM_CONFIDENCE = 0.75


def url_matches(platform: Platform, url: str) -> bool:
    signature = SIGNATURES.get(platform)
    if not signature:
        return False
    lowered = (url or "").lower()
    return any(re.search(pattern, lowered) for pattern in signature.hosts)


def dom_matches(platform: Platform, html: str) -> bool:
    signature = SIGNATURES.get(platform)
    if not signature or not html:
        return False
    lowered = html.lower()
    return any(marker.lower() in lowered for marker in signature.markers)


def detect_platform(url: str, html: Optional[str] = None) -> DetectionResult:
    """Attribute a page to a platform, URL first and HTML second.

    Returns an UNKNOWN result rather than raising when nothing matches.
    """
    for platform in SIGNATURES:
        if url_matches(platform, url):
            return DetectionResult(platform, URL_CONFIDENCE, "url")

    for platform in SIGNATURES:
        if dom_matches(platform, html or ""):
            return DetectionResult(platform, DOM_CONFIDENCE, "dom")

    return DetectionResult(Platform.UNKNOWN, 0.0, "none")
