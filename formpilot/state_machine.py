"""
Apply state machine: drives one multi-step application form to a terminal state.

Init -> ExtractFields -> MapFields -> FillFields -> AttemptTransition, repeated
until Submitted, Done, Stuck or MaxStepsExceeded. The step loop is bounded by
max_steps, so every run terminates.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import urlparse

from rich.console import Console

from .adapters import PlatformAdapter
from .controls import Transition, classify, find_control
from .errors import (
    ApplyError,
    ElementNotFound,
    NavigationUnexpected,
    StepBudgetExceeded,
    UnknownField,
    UploadFailed,
)
from .field_mapping import is_upload_field
from .form_filler import FilledField
from .label_resolver import LabelResolver
from .resilience import ResilienceCoordinator
from .runtime import BrowserPage

console = Console()

# Repeats of an identical labelled step before giving up; the one
# before the last still gets a forced transition attempt
MAX_REPEATS = 3


class ApplyState(Enum):
    INIT = "init"
    EXTRACT_FIELDS = "extract_fields"
    MAP_FIELDS = "map_fields"
    FILL_FIELDS = "fill_fields"
    ATTEMPT_TRANSITION = "attempt_transition"
    SUBMITTED = "submitted"
    DONE = "done"
    STUCK = "stuck"
    MAX_STEPS_EXCEEDED = "max_steps_exceeded"
    # Dry run stopped where a real run would have clicked
    PREVIEWED = "previewed"


TERMINAL_STATES = {
    ApplyState.SUBMITTED,
    ApplyState.DONE,
    ApplyState.STUCK,
    ApplyState.MAX_STEPS_EXCEEDED,
    ApplyState.PREVIEWED,
}

SUCCESS_STATES = {ApplyState.SUBMITTED, ApplyState.DONE}


@dataclass
class ApplyOutcome:
    """How a form run ended and what happened along the way."""
    state: ApplyState
    reason: str
    steps: int
    transition: Optional[Transition] = None
    error: Optional[ApplyError] = None
    screenshot_ref: Optional[str] = None
    unknown_labels: List[str] = field(default_factory=list)
    issues: List[ApplyError] = field(default_factory=list)
    filled: List[FilledField] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state in SUCCESS_STATES


def _host(url: str) -> str:
    return urlparse(url or "").netloc.lower()


async def extract_labels(page: BrowserPage, aria_limit: int = 20) -> List[str]:
    """Visible <label> texts, then aria-labels of form controls, de-duplicated in order."""
    labels: List[str] = []
    sources = (page.label_texts, lambda: page.aria_labels(aria_limit))
    for source in sources:
        try:
            found = await source()
        except ElementNotFound:
            continue
        for text in found:
            text = " ".join((text or "").split())
            if text and text not in labels:
                labels.append(text)
    return labels


class ApplyStateMachine:
    """One instance per job."""

    def __init__(
        self,
        resolver: LabelResolver,
        coordinator: ResilienceCoordinator,
        max_steps: int = 8,
        dry_run: bool = False,
    ):
        self.resolver = resolver
        self.coordinator = coordinator
        self.max_steps = max_steps
        self.dry_run = dry_run
        self.state = ApplyState.INIT
        self.history: List[ApplyState] = []

    def _enter(self, state: ApplyState):
        self.state = state
        self.history.append(state)

    def _finish(self, state: ApplyState, reason: str, steps: int, **kwargs) -> ApplyOutcome:
        self._enter(state)
        style = "green" if state in SUCCESS_STATES else "yellow"
        console.print(f"  [{style}]{state.value}[/{style}]: {reason}")
        return ApplyOutcome(state=state, reason=reason, steps=steps, **kwargs)

    async def run(
        self,
        page: BrowserPage,
        job_id: str,
        adapter: PlatformAdapter,
        answers: Dict[str, str],
        resume_ref: Optional[str],
    ) -> ApplyOutcome:
        self.history = []
        self._enter(ApplyState.INIT)
        anchor_host = _host(page.url)
        recovered = False
        last_signature = None
        repeats = 0
        unknown_labels: List[str] = []
        issues: List[ApplyError] = []
        filled_all: List[FilledField] = []
        screenshot_ref = None

        def collected(**kwargs):
            return dict(
                unknown_labels=unknown_labels,
                issues=issues,
                filled=filled_all,
                screenshot_ref=screenshot_ref,
                **kwargs,
            )

        for step in range(1, self.max_steps + 1):
            if step > 1:
                self.coordinator.check_stop()

            console.print(f"[dim]  Step {step}/{self.max_steps} ({adapter.name})[/dim]")
            async with self.coordinator.step(job_id, f"step-{step}") as record:
                self._enter(ApplyState.EXTRACT_FIELDS)
                labels = await extract_labels(page)

                self._enter(ApplyState.MAP_FIELDS)
                resolved = await self.resolver.resolve(labels) if labels else []
                for r in resolved:
                    if not r.is_known and r.raw_label not in unknown_labels:
                        unknown_labels.append(r.raw_label)
                        issues.append(UnknownField(r.raw_label, job_id))

                self._enter(ApplyState.FILL_FIELDS)
                if labels:
                    filled = await adapter.fill(page, answers, resume_ref, resolved)
                else:
                    filled = await adapter.fill(page, answers, resume_ref)
                filled_all.extend(filled)
                for f in filled:
                    if not f.success:
                        error_type = UploadFailed if is_upload_field(f.target.field) else ElementNotFound
                        issues.append(error_type(f"{f.target.raw_label}: {f.error}", job_id))

                self._enter(ApplyState.ATTEMPT_TRANSITION)
                probe = await find_control(page, adapter.controls)
                transition = classify(probe)

                # Steps without labels (intros, review pages) never count as repeats
                signature = (tuple(sorted(labels)), probe.kind, probe.enabled) if labels else None
                if signature is not None and signature == last_signature:
                    repeats += 1
                else:
                    repeats = 0
                last_signature = signature
                if repeats >= MAX_REPEATS and transition == Transition.NEXT:
                    transition = Transition.STUCK

                record.screenshot_ref = await self.coordinator.recorder.capture_screenshot(
                    page, job_id, f"step-{step}"
                )
                screenshot_ref = record.screenshot_ref or screenshot_ref
                record.ok = transition != Transition.STUCK
                record.message = (
                    f"{len(labels)} labels, {sum(1 for f in filled if f.success)}/{len(filled)} filled, "
                    f"{sum(1 for r in resolved if not r.is_known)} unknown -> {transition.value}"
                )
                if repeats == MAX_REPEATS - 1 and transition == Transition.NEXT:
                    record.message += " (same step again, forcing another attempt)"

                needs_click = transition in (Transition.SUBMIT, Transition.NEXT)
                if needs_click and self.dry_run:
                    record.message += f" (dry run: would click {probe.locator})"
                elif needs_click:
                    try:
                        await page.click(probe.locator)
                    except ElementNotFound as e:
                        record.ok = False
                        record.message += f"; click failed: {e.message}"
                        return self._finish(
                            ApplyState.STUCK,
                            f"Could not click {probe.kind.value} control: {e.message}",
                            step,
                            **collected(transition=Transition.STUCK, error=e),
                        )
                    if transition == Transition.NEXT:
                        await self.coordinator.pace("step")
                        if _host(page.url) != anchor_host:
                            if recovered:
                                record.ok = False
                                record.message += f"; left the form again ({page.url})"
                                return self._finish(
                                    ApplyState.STUCK,
                                    f"Navigated away from {anchor_host} twice",
                                    step,
                                    **collected(
                                        transition=Transition.STUCK,
                                        error=NavigationUnexpected(f"Unexpected navigation to {page.url}", job_id),
                                    ),
                                )
                            recovered = True
                            record.message += f"; unexpected navigation to {page.url}, going back"
                            await page.go_back()

            if needs_click and self.dry_run:
                return self._finish(
                    ApplyState.PREVIEWED,
                    f"Dry run stopped before {transition.value}",
                    step,
                    **collected(transition=transition),
                )
            if transition == Transition.SUBMIT:
                return self._finish(ApplyState.SUBMITTED, "Application submitted", step, **collected(transition=transition))
            if transition == Transition.DONE:
                return self._finish(ApplyState.DONE, "Application complete", step, **collected(transition=transition))
            if transition == Transition.STUCK:
                if repeats >= MAX_REPEATS:
                    reason = f"No progress after {repeats + 1} identical steps"
                elif probe.kind is None:
                    reason = "No submit, review, next or done control found"
                else:
                    reason = f"{probe.kind.value.title()} control is disabled"
                return self._finish(ApplyState.STUCK, reason, step, **collected(transition=transition))

        return self._finish(
            ApplyState.MAX_STEPS_EXCEEDED,
            f"No terminal state within {self.max_steps} steps",
            self.max_steps,
            **collected(error=StepBudgetExceeded(self.max_steps, job_id)),
        )
