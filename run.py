#!/usr/bin/env python3
"""
formpilot - adaptive application form automation

Main entry point: applies to queued jobs.
"""

import argparse
import asyncio
import sys
from typing import Optional

# ANTHROPIC_API_KEY and FORMPILOT_* overrides may live in .env
from dotenv import load_dotenv
load_dotenv()

from rich.console import Console

from formpilot.adapters import AdapterRegistry
from formpilot.answers import ProfileAnswerSynthesizer
from formpilot.browser import BrowserManager
from formpilot.config import get_available_profiles, load_profile, load_settings
from formpilot.engine import ApplyEngine
from formpilot.form_filler import FieldFiller
from formpilot.job_queue import SQLiteJobQueue
from formpilot.label_resolver import LabelResolver
from formpilot.llm_helper import LLMHelper
from formpilot.logger import RunRecorder
from formpilot.resilience import ResilienceCoordinator, StopSignal
from formpilot.selector_store import SelectorStore
from formpilot.summary import RunSummaryUI


console = Console()


async def main(
    easy_apply_only: Optional[bool] = None,
    job_id: Optional[str] = None,
    dry_run: bool = False,
    jobs_file: Optional[str] = None,
    profile_name: Optional[str] = None,
    profile_path: Optional[str] = None,
    settings_path: Optional[str] = None,
    cdp_url: Optional[str] = None,
):
    """Apply to queued jobs and print the run report."""
    settings = load_settings(settings_path)
    if cdp_url:
        settings.cdp_url = cdp_url

    try:
        profile = load_profile(profile_name=profile_name, config_path=profile_path)
        console.print(f"[green]✓[/green] Profile loaded: [bold]{profile_name or profile_path or 'default'}[/bold]")
    except FileNotFoundError as e:
        console.print(f"[red]Error loading profile:[/red] {e}")
        return 1

    if not profile.resume.get_absolute_path():
        console.print("[yellow]⚠[/yellow] No resume found; upload fields will be skipped")

    queue = SQLiteJobQueue(settings.database_path)
    if jobs_file:
        imported = queue.import_jobs(jobs_file)
        console.print(f"[green]✓[/green] Imported {imported} jobs from {jobs_file}")

    llm = LLMHelper(
        model=settings.llm_model,
        timeout=settings.classifier_timeout_s,
        max_retries=settings.classifier_max_retries,
    )
    if llm.is_available():
        console.print("[green]✓[/green] LLM label classifier available")
    else:
        console.print("[yellow]⚠[/yellow] LLM label classifier not available (set ANTHROPIC_API_KEY)")

    stop_signal = StopSignal()
    stop_signal.clear()
    stop_signal.install_handlers()

    recorder = RunRecorder(settings.artifacts_dir, sink=queue)
    console.print(f"[green]✓[/green] Logging to {recorder.session_dir}")

    store = SelectorStore(settings.database_path)
    filler = FieldFiller(store, dry_run=dry_run)
    coordinator = ResilienceCoordinator(settings, recorder, stop_signal)
    resolver = LabelResolver(
        llm if llm.is_available() else None,
        classifier_timeout=settings.classifier_timeout_s,
    )

    try:
        async with BrowserManager(settings) as browser:
            engine = ApplyEngine(
                session=browser.session,
                job_queue=queue,
                synthesizer=ProfileAnswerSynthesizer(profile),
                registry=AdapterRegistry.default(filler),
                resolver=resolver,
                coordinator=coordinator,
                settings=settings,
                profile=profile,
                dry_run=dry_run,
            )
            report = await engine.run(easy_apply_only=easy_apply_only, job_id=job_id)
    except ConnectionError as e:
        console.print(f"[red]Browser connection failed:[/red] {e}")
        return 1
    finally:
        store_stats = store.stats()
        store.close()
        queue.close()

    ui = RunSummaryUI(console)
    ui.display_report(report, dry_run=dry_run)
    ui.display_learning(store_stats)
    return 0


def cli():
    """Parse arguments and run the engine."""
    parser = argparse.ArgumentParser(
        description="formpilot - apply to queued jobs"
    )
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument(
        "--easy",
        action="store_true",
        help="Only easy-apply jobs",
    )
    scope.add_argument(
        "--ext",
        action="store_true",
        help="Only external (ATS) jobs",
    )
    parser.add_argument(
        "--job",
        dest="job_id",
        help="Apply to a single queued job by id",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Resolve and locate everything but do not fill, upload or click through",
    )
    parser.add_argument(
        "--jobs", "-j",
        dest="jobs_file",
        help="Import jobs from a JSON file before running",
    )
    parser.add_argument(
        "--profile", "-p",
        dest="profile_name",
        help="Profile name. Profiles are stored in config/profiles/",
    )
    parser.add_argument(
        "--profile-path",
        dest="profile_path",
        help="Direct path to profile YAML file (overrides --profile)",
    )
    parser.add_argument(
        "--settings",
        dest="settings_path",
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--cdp-url",
        help="Attach to a running Chrome instead of launching one, e.g. http://localhost:9222",
    )
    parser.add_argument(
        "--stop",
        action="store_true",
        help="Ask a running formpilot process to stop after its current job, then exit",
    )
    parser.add_argument(
        "--list-profiles",
        action="store_true",
        help="List available profiles and exit",
    )

    args = parser.parse_args()

    if args.stop:
        StopSignal().create_file()
        console.print("[yellow]Stop requested[/yellow]")
        return 0

    if args.list_profiles:
        profiles = get_available_profiles()
        if profiles:
            console.print("[bold]Available profiles:[/bold]")
            for p in profiles:
                console.print(f"  - {p}")
        else:
            console.print("[yellow]No profiles found. Create one in config/profiles/<name>/profile.yaml[/yellow]")
        return 0

    easy_apply_only = True if args.easy else False if args.ext else None

    return asyncio.run(main(
        easy_apply_only=easy_apply_only,
        job_id=args.job_id,
        dry_run=args.dry_run,
        jobs_file=args.jobs_file,
        profile_name=args.profile_name,
        profile_path=args.profile_path,
        settings_path=args.settings_path,
        cdp_url=args.cdp_url,
    ))


if __name__ == "__main__":
    sys.exit(cli())
