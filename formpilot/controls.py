"""
Form progress controls: what counts as Submit, Review, Next and Done.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .errors import ElementNotFound
from .runtime import BrowserPage, Locator


class Transition(Enum):
    """What attempting to move the form forward amounted to."""
    SUBMIT = "submit"
    NEXT = "next"
    DONE = "done"
    STUCK = "stuck"


class ControlKind(Enum):
    SUBMIT = "submit"
    REVIEW = "review"
    NEXT = "next"
    DONE = "done"


DEFAULT_PRIORITY = [ControlKind.SUBMIT, ControlKind.REVIEW, ControlKind.NEXT, ControlKind.DONE]

DEFAULT_CONTROLS: Dict[ControlKind, List[Locator]] = {
    ControlKind.SUBMIT: [
        Locator.css('button:has-text("Submit application")'),
        Locator.css('button[aria-label*="Submit application"]'),
        Locator.css('button:has-text("Submit")'),
        Locator.css('input[type="submit"][value*="Submit" i]'),
    ],
    ControlKind.REVIEW: [
        Locator.css('button:has-text("Review")'),
        Locator.css('button[aria-label*="Review"]'),
    ],
    ControlKind.NEXT: [
        Locator.css('button:has-text("Next")'),
        Locator.css('button:has-text("Continue")'),
        Locator.css('button[aria-label*="Continue to next step"]'),
        Locator.css('button[aria-label*="Next"]'),
    ],
    ControlKind.DONE: [
        Locator.css('button:has-text("Done")'),
        Locator.css('h2:has-text("Application sent")'),
        Locator.css('h3:has-text("Application sent")'),
        Locator.by_text("Thank you for applying"),
        Locator.by_text("application has been submitted"),
    ],
}


@dataclass
class ControlSet:
    """Locators per control kind plus the order kinds are checked in."""
    locators: Dict[ControlKind, List[Locator]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CONTROLS.items()}
    )
    priority: List[ControlKind] = field(default_factory=lambda: list(DEFAULT_PRIORITY))

    @classmethod
    def with_overrides(
        cls,
        extra: Optional[Dict[ControlKind, Sequence[Locator]]] = None,
        priority: Optional[Sequence[ControlKind]] = None,
    ) -> "ControlSet":
        """Defaults with platform locators checked first and an optional priority order."""
        controls = cls()
        for kind, locators in (extra or {}).items():
            controls.locators[kind] = list(locators) + controls.locators.get(kind, [])
        if priority:
            controls.priority = list(priority)
        return controls


@dataclass
class ControlProbe:
    """The highest-priority control present on the page, if any."""
    kind: Optional[ControlKind] = None
    locator: Optional[Locator] = None
    enabled: bool = False


async def find_control(page: BrowserPage, controls: ControlSet) -> ControlProbe:
    """Look for controls kind by kind in priority order; the first present one wins."""
    for kind in controls.priority:
        for locator in controls.locators.get(kind, []):
            try:
                if await page.count(locator) == 0:
                    continue
                enabled = True if kind == ControlKind.DONE else await page.is_enabled(locator)
            except ElementNotFound:
                continue
            return ControlProbe(kind, locator, enabled)
    return ControlProbe()


def classify(probe: ControlProbe) -> Transition:
    """Map the control found to the transition it represents.

    Review counts as moving forward. A disabled Next or Submit means the form
    is waiting on something we could not provide.
    """
    if probe.kind is None:
        return Transition.STUCK
    if probe.kind == ControlKind.DONE:
        return Transition.DONE
    if not probe.enabled:
        return Transition.STUCK
    if probe.kind == ControlKind.SUBMIT:
        return Transition.SUBMIT
    return Transition.NEXT
