"""
Apply engine: pulls queued jobs and drives each one to applied or skipped.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from rich.console import Console

from .adapters import AdapterRegistry, PlatformAdapter, any_present
from .answers import AnswerSynthesizer
from .config import Profile, Settings
from .errors import ElementNotFound, NavigationUnexpected, StopRequested
from .job_queue import Job, JobQueue, JobStatus
from .label_resolver import LabelResolver
from .logger import RunLogEntry
from .resilience import ResilienceCoordinator, retry_async
from .runtime import BrowserPage, BrowserSession, Locator
from .state_machine import ApplyOutcome, ApplyState, ApplyStateMachine

console = Console()

EASY_APPLY_BUTTONS = [
    "button.jobs-apply-button",
    'button[aria-label*="Easy Apply"]',
    'button:has-text("Easy Apply")',
]

# External postings: the link or button that opens the application form
APPLY_BUTTON_SELECTORS = [
    '#grnhse_app a',
    'a[href*="boards.greenhouse.io"]',
    'a[href*="jobs.lever.co"][href*="/apply"]',
    'a.postings-btn',
    'a[data-qa="apply-button"]',
    'button[data-qa="apply-button"]',
    '[data-testid="apply-button"]',
    '[data-automation-id="adventureButton"]',
    'a:has-text("Apply for this job")',
    'a:has-text("Apply Now")',
    'button:has-text("Apply Now")',
    'a:has-text("Apply")',
    'button:has-text("Apply")',
]

OVERLAY_CLOSE_SELECTORS = [
    'button[aria-label="Dismiss"]',
    "#onetrust-accept-btn-handler",
    'button:has-text("Accept all cookies")',
]

FORM_PRESENT = ['form input:not([type="hidden"])', "form textarea", "[data-automation-id] input"]


@dataclass
class JobResult:
    """Per-job line of the run report."""
    job_id: str
    title: str
    company: str
    status: str  # "applied", "skipped" or "previewed"
    reason: str
    adapter: Optional[str] = None
    state: Optional[ApplyState] = None
    unknown_labels: List[str] = field(default_factory=list)


@dataclass
class RunReport:
    applied: int = 0
    skipped: int = 0
    previewed: int = 0
    total: int = 0
    stopped: bool = False
    results: List[JobResult] = field(default_factory=list)

    def add(self, result: JobResult):
        self.results.append(result)
        if result.status == JobStatus.APPLIED.value:
            self.applied += 1
        elif result.status == JobStatus.SKIPPED.value:
            self.skipped += 1
        else:
            self.previewed += 1


async def dismiss_overlays(page: BrowserPage):
    """Close cookie banners and sign-in prompts that sit over the form."""
    for selector in OVERLAY_CLOSE_SELECTORS:
        locator = Locator.css(selector)
        try:
            if await page.count(locator) > 0:
                await page.click(locator)
        except ElementNotFound:
            continue


async def open_application(page: BrowserPage, job: Job) -> BrowserPage:
    """Get from the job posting to the application form.

    Easy-apply jobs open an in-page dialog; external postings follow the apply
    link, which may open a new tab. Returns the page holding the form.
    """
    await dismiss_overlays(page)

    if job.easy_apply:
        for selector in EASY_APPLY_BUTTONS:
            locator = Locator.css(selector)
            if await page.count(locator) > 0:
                await page.click(locator)
                await page.wait(1000)
                return page
        raise ElementNotFound(f"Easy Apply button not found on {page.url}", job.id)

    if await any_present(page, FORM_PRESENT):
        return page

    for selector in APPLY_BUTTON_SELECTORS:
        locator = Locator.css(selector)
        try:
            if await page.count(locator) == 0:
                continue
            popup = await page.click_for_popup(locator)
        except ElementNotFound:
            continue
        console.print(f"[dim]  Opened application via {selector}[/dim]")
        await page.wait(1000)
        return popup or page

    # No apply control; the adapter registry gets the page as it is
    return page


class ApplyEngine:
    """Sequential job loop with strict per-job isolation."""

    def __init__(
        self,
        session: BrowserSession,
        job_queue: JobQueue,
        synthesizer: AnswerSynthesizer,
        registry: AdapterRegistry,
        resolver: LabelResolver,
        coordinator: ResilienceCoordinator,
        settings: Settings,
        profile: Profile,
        dry_run: bool = False,
    ):
        self.session = session
        self.job_queue = job_queue
        self.synthesizer = synthesizer
        self.registry = registry
        self.resolver = resolver
        self.coordinator = coordinator
        self.recorder = coordinator.recorder
        self.settings = settings
        self.profile = profile
        self.dry_run = dry_run

    def select_jobs(self, easy_apply_only: Optional[bool] = None, job_id: Optional[str] = None) -> List[Job]:
        if job_id:
            job = self.job_queue.get_job(job_id)
            if not job:
                console.print(f"[red]Job not found:[/red] {job_id}")
                return []
            if job.status != JobStatus.QUEUED:
                console.print(f"[yellow]Job {job_id} is {job.status.value}, not queued[/yellow]")
                return []
            return [job]
        return self.job_queue.get_jobs_by_status(JobStatus.QUEUED, easy_apply_only)

    async def run(self, easy_apply_only: Optional[bool] = None, job_id: Optional[str] = None) -> RunReport:
        """Process every selected job; one job's failure never stops the batch."""
        jobs = self.select_jobs(easy_apply_only, job_id)
        report = RunReport(total=len(jobs))
        mode = "[yellow]DRY RUN[/yellow] " if self.dry_run else ""
        console.print(f"{mode}[bold]{len(jobs)} job(s) to process[/bold]")

        for i, job in enumerate(jobs):
            if self.coordinator.should_stop():
                console.print(f"[yellow]Stopping before job {i + 1}: {self.coordinator.stop_signal.reason}[/yellow]")
                report.stopped = True
                break

            console.print(f"\n[bold]Processing job {i + 1}/{len(jobs)}[/bold] {job.company} - {job.title}")
            try:
                result = await self.process_job(job)
            except StopRequested as e:
                console.print(f"[yellow]Stopped mid-job ({e}); {job.id} stays queued[/yellow]")
                report.stopped = True
                break
            report.add(result)

            await self.coordinator.pace("job")

        return report

    async def process_job(self, job: Job) -> JobResult:
        """Run one job end to end and write its status exactly once."""
        self.recorder.start_job(job.id, job.url, job.title, job.company)
        page = self.session.page
        adapter: Optional[PlatformAdapter] = None
        outcome: Optional[ApplyOutcome] = None

        try:
            async with self.coordinator.isolate(job.id) as guard:
                async with self.coordinator.traced(self.session, job.id):
                    answer_set = await self.synthesizer.synthesize_answers(
                        job.id, job.title, job.description, self.profile.summary()
                    )
                    resume = self.profile.resume.get_absolute_path(answer_set.resume_variant)
                    resume_ref = str(resume) if resume else None

                    await retry_async(
                        lambda: page.goto(job.url),
                        retryable=(NavigationUnexpected,),
                    )
                    page = await open_application(page, job)

                    adapter = await self.registry.select(page)
                    console.print(f"[green]✓[/green] Platform: [bold]{adapter.name}[/bold]")
                    if not await adapter.smoke(page):
                        console.print(f"[yellow]⚠[/yellow] Smoke check failed for {adapter.name}, continuing")

                    machine = ApplyStateMachine(
                        self.resolver, self.coordinator, self.settings.max_steps, self.dry_run
                    )
                    outcome = await machine.run(page, job.id, adapter, answer_set.answers, resume_ref)

            try:
                return await self._finalize(job, page, adapter, outcome, guard)
            except Exception as e:
                reason = f"Fatal: could not record result: {type(e).__name__}: {e}"
                console.print(f"[red]✗ {reason}[/red]")
                return JobResult(
                    job_id=job.id,
                    title=job.title,
                    company=job.company,
                    status=JobStatus.SKIPPED.value,
                    reason=reason,
                    adapter=adapter.name if adapter else None,
                    state=outcome.state if outcome else None,
                )
        finally:
            if page is not self.session.page:
                await self._close_popup(page)

    async def _close_popup(self, page: BrowserPage):
        try:
            await page.close()
        except Exception as e:
            console.print(f"[yellow]⚠ Could not close application tab: {e}[/yellow]")

    async def _finalize(self, job, page, adapter, outcome, guard) -> JobResult:
        screenshot = None
        if guard.failed:
            status = JobStatus.SKIPPED
            reason = f"{type(guard.error).__name__}: {guard.error.message}"
            screenshot = await self.recorder.capture_screenshot(page, job.id, "error")
            console.print(f"[red]✗ {reason}[/red]")
        elif outcome.success or outcome.state == ApplyState.PREVIEWED:
            status = JobStatus.APPLIED
            reason = outcome.reason
            screenshot = outcome.screenshot_ref
        else:
            status = JobStatus.SKIPPED
            reason = outcome.reason
            if outcome.error:
                reason = f"{type(outcome.error).__name__}: {reason}"
            screenshot = outcome.screenshot_ref

        unknown = outcome.unknown_labels if outcome else []
        self.recorder.note_unknown_labels(job.id, unknown)

        result_status = status.value
        if self.dry_run:
            # Dry runs never touch job status
            if status == JobStatus.APPLIED:
                result_status = "previewed"
        else:
            self.job_queue.update_job_status(job.id, status)

        self.recorder.log(RunLogEntry(
            job_id=job.id,
            step="error" if guard.failed else "complete",
            ok=status == JobStatus.APPLIED,
            message=reason,
            screenshot_ref=screenshot,
        ))
        self.recorder.finish_job(job.id, result_status, reason)

        return JobResult(
            job_id=job.id,
            title=job.title,
            company=job.company,
            status=result_status,
            reason=reason,
            adapter=adapter.name if adapter else None,
            state=outcome.state if outcome else None,
            unknown_labels=list(unknown),
        )
