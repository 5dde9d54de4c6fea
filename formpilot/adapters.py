"""
Platform adapters: per-ATS detection, smoke checks and fill strategy chains.

The registry walks adapters in a fixed priority order and commits to the
first one whose detect() is true. Generic is always last.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

from .ats_detector import Platform, detect_platform
from .controls import ControlKind, ControlSet
from .errors import AdapterMismatch, ElementNotFound
from .field_mapping import (
    CanonicalField,
    display_label,
    field_from_key,
)
from .form_filler import (
    AttributeStrategy,
    CachedLocatorStrategy,
    FieldFiller,
    FilledField,
    FillPlan,
    FillTarget,
    LabelTextStrategy,
    PlaceholderStrategy,
    RoleStrategy,
    Strategy,
    UploadTargetStrategy,
)
from .label_resolver import ResolvedLabel
from .runtime import BrowserPage, Locator

DEFAULT_UPLOAD_TARGETS = [
    'input[type="file"][name*="resume" i]',
    'input[type="file"][id*="resume" i]',
    'input[type="file"][name*="cv" i]',
    '[data-automation-id*="resume" i] input[type="file"]',
    'input[type="file"]',
]

SUBMIT_BUTTONS = 'button[type="submit"], input[type="submit"], button:has-text("Submit")'


class ResumeUploadStrategy(UploadTargetStrategy):
    """Upload selectors only ever receive the resume."""

    def candidates(self, target, cached):
        if target.field != CanonicalField.RESUME_UPLOAD:
            return []
        return super().candidates(target, cached)


def build_targets(
    answers: Dict[str, str],
    resume_ref: Optional[str],
    labels: Optional[Sequence[ResolvedLabel]] = None,
) -> List[FillTarget]:
    """Turn resolved labels (or, without labels, the answers) into fill targets.

    One target per canonical field. Unknown labels and fields with no answer
    are left out; the state machine reports those separately.
    """
    def value_for(canonical: CanonicalField) -> Optional[str]:
        if canonical == CanonicalField.RESUME_UPLOAD:
            return resume_ref
        return answers.get(canonical.value)

    targets = []
    seen = set()
    if labels is None:
        keys = [field_from_key(k) for k in answers] + [CanonicalField.RESUME_UPLOAD]
        for canonical in keys:
            value = value_for(canonical)
            if canonical == CanonicalField.UNKNOWN or canonical in seen or not value:
                continue
            seen.add(canonical)
            targets.append(FillTarget(canonical, display_label(canonical), value, from_page=False))
        return targets

    for resolved in labels:
        value = value_for(resolved.field)
        if not resolved.is_known or resolved.field in seen or not value:
            continue
        seen.add(resolved.field)
        targets.append(FillTarget(resolved.field, resolved.raw_label, value))
    return targets


async def any_present(page: BrowserPage, selectors: Sequence[str]) -> bool:
    """True if any selector matches; timeouts count as absent."""
    for selector in selectors:
        try:
            if await page.count(Locator.css(selector)) > 0:
                return True
        except ElementNotFound:
            continue
    return False


class PlatformAdapter(ABC):
    """
    Base class for platform adapters.

    Subclasses provide detect() and smoke() plus their strategy chains;
    fill() is shared and runs through the composed FieldFiller.
    """

    name = "base"
    upload_targets: List[str] = DEFAULT_UPLOAD_TARGETS
    controls: ControlSet = ControlSet()

    def __init__(self, filler: FieldFiller):
        self.filler = filler

    @abstractmethod
    async def detect(self, page: BrowserPage) -> bool:
        """Side-effect-free check that the page belongs to this platform."""

    @abstractmethod
    async def smoke(self, page: BrowserPage) -> bool:
        """Cheap check that the form looks interactive."""

    def extra_strategies(self) -> List[Strategy]:
        """Platform-specific fallbacks tried after label matching."""
        return []

    def scope_key(self, page: BrowserPage) -> str:
        return self.name

    def plan(self, page: BrowserPage) -> FillPlan:
        return FillPlan(
            scope_key=self.scope_key(page),
            text_chain=[RoleStrategy(), CachedLocatorStrategy(), LabelTextStrategy()] + self.extra_strategies(),
            upload_chain=[
                CachedLocatorStrategy(),
                AttributeStrategy("upload-attribute", [
                    'input[type="file"][name*="{hint}" i]',
                    'input[type="file"][id*="{hint}" i]',
                ]),
                ResumeUploadStrategy(self.upload_targets),
                LabelTextStrategy(),
            ],
        )

    async def fill(
        self,
        page: BrowserPage,
        answers: Dict[str, str],
        resume_ref: Optional[str],
        labels: Optional[Sequence[ResolvedLabel]] = None,
    ) -> List[FilledField]:
        """Fill every field we have an answer for."""
        targets = build_targets(answers, resume_ref, labels)
        return await self.filler.fill_all(page, targets, self.plan(page))

    async def _matches_platform(self, page: BrowserPage, platform: Platform) -> bool:
        result = detect_platform(page.url)
        if not result.known:
            try:
                result = detect_platform(page.url, await page.content())
            except ElementNotFound:
                return False
        return result.platform == platform

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class LeverAdapter(PlatformAdapter):
    """jobs.lever.co application forms."""

    name = Platform.LEVER.value
    upload_targets = ['input[type="file"][name="resume"]', "#resume-upload-input"] + DEFAULT_UPLOAD_TARGETS
    controls = ControlSet.with_overrides({
        ControlKind.SUBMIT: [Locator.css("#btn-submit"), Locator.css('button[data-qa="btn-submit"]')],
    })

    async def detect(self, page):
        if not await self._matches_platform(page, Platform.LEVER):
            return False
        return await any_present(page, ['form[action*="/apply"]', ".application-form"])

    async def smoke(self, page):
        return await any_present(page, ["form"]) and await any_present(page, [SUBMIT_BUTTONS])

    def extra_strategies(self):
        return [
            PlaceholderStrategy(),
            AttributeStrategy("attribute", ['input[name*="{hint}" i]', 'textarea[name*="{hint}" i]']),
        ]


class GreenhouseAdapter(PlatformAdapter):
    """boards.greenhouse.io and embedded Greenhouse forms."""

    name = Platform.GREENHOUSE.value
    upload_targets = ['input[type="file"]#resume', 'input[type="file"][name*="resume" i]'] + DEFAULT_UPLOAD_TARGETS
    controls = ControlSet.with_overrides({
        ControlKind.SUBMIT: [Locator.css("#submit_app"), Locator.css('button[type="submit"]:has-text("Submit")')],
    })

    async def detect(self, page):
        if not await self._matches_platform(page, Platform.GREENHOUSE):
            return False
        return await any_present(page, ["#application_form", "form#application-form", 'form[action*="greenhouse"]'])

    async def smoke(self, page):
        return await any_present(page, ["form"]) and await any_present(page, [SUBMIT_BUTTONS])

    def extra_strategies(self):
        return [
            AttributeStrategy("attribute", [
                'input[id*="{hint}" i]',
                'input[name*="{hint}" i]',
                'textarea[name*="{hint}" i]',
            ]),
        ]


class WorkdayAdapter(PlatformAdapter):
    """myworkdayjobs.com multi-page applications."""

    name = Platform.WORKDAY.value
    upload_targets = [
        '[data-automation-id*="resume" i] input[type="file"]',
        'input[data-automation-id="file-upload-input-ref"]',
    ] + DEFAULT_UPLOAD_TARGETS
    controls = ControlSet.with_overrides({
        ControlKind.SUBMIT: [
            Locator.css('button[data-automation-id="bottom-navigation-next-button"]:has-text("Submit")'),
        ],
        ControlKind.NEXT: [
            Locator.css('button[data-automation-id="bottom-navigation-next-button"]'),
            Locator.css('button[data-automation-id="pageFooterNextButton"]'),
        ],
    })

    async def detect(self, page):
        if not await self._matches_platform(page, Platform.WORKDAY):
            return False
        return await any_present(page, ["[data-automation-id]"])

    async def smoke(self, page):
        return await any_present(page, ["input"])

    def extra_strategies(self):
        return [
            AttributeStrategy("automation-id", [
                'input[data-automation-id*="{hint}" i]',
                '[data-automation-id*="{hint}" i] input',
            ]),
        ]


class GenericAdapter(PlatformAdapter):
    """Fallback for any page that has form controls at all."""

    name = "generic"

    async def detect(self, page):
        return await any_present(page, ["input, textarea, select"])

    async def smoke(self, page):
        return await any_present(page, ['input:not([type="hidden"]), textarea'])

    def scope_key(self, page):
        host = urlparse(page.url).netloc.lower()
        return f"generic:{host}" if host else "generic"

    def extra_strategies(self):
        return [
            PlaceholderStrategy(),
            AttributeStrategy("attribute", [
                'input[name*="{hint}" i]',
                'input[id*="{hint}" i]',
                'textarea[name*="{hint}" i]',
            ]),
        ]


class AdapterRegistry:
    """Ordered adapter list; the first adapter that detects the page wins."""

    def __init__(self, adapters: Sequence[PlatformAdapter]):
        self.adapters = list(adapters)

    @classmethod
    def default(cls, filler: FieldFiller) -> "AdapterRegistry":
        return cls([
            LeverAdapter(filler),
            GreenhouseAdapter(filler),
            WorkdayAdapter(filler),
            GenericAdapter(filler),
        ])

    async def select(self, page: BrowserPage) -> PlatformAdapter:
        for adapter in self.adapters:
            try:
                detected = await adapter.detect(page)
            except ElementNotFound:
                detected = False
            if detected:
                return adapter
        raise AdapterMismatch(f"No adapter recognised {page.url}")
