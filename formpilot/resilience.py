"""
Resilience coordinator: per-job isolation, tracing, pacing and step logging.
"""

import asyncio
import random
import signal
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from .config import Settings
from .errors import ApplyError, Fatal, StopRequested
from .logger import RunLogEntry, RunRecorder
from .runtime import BrowserSession

T = TypeVar("T")

STOP_SIGNAL_FILE = Path(tempfile.gettempdir()) / "formpilot-stop-signal"


class StopSignal:
    """Cooperative stop: an in-process flag or a signal file in the temp dir."""

    def __init__(self, signal_file: Path = STOP_SIGNAL_FILE):
        self.signal_file = Path(signal_file)
        self._requested = False
        self.reason = ""

    def request(self, reason: str = "stop requested"):
        self._requested = True
        self.reason = reason

    def is_set(self) -> bool:
        if self._requested:
            return True
        if self.signal_file.exists():
            self.reason = f"stop file {self.signal_file}"
            return True
        return False

    def create_file(self):
        """Ask a running process to stop (e.g. from another shell)."""
        self.signal_file.write_text("stop")

    def clear(self):
        self._requested = False
        self.reason = ""
        self.signal_file.unlink(missing_ok=True)

    def install_handlers(self):
        """SIGINT/SIGTERM finish the current job, then stop."""
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                asyncio.get_running_loop().add_signal_handler(sig, self.request, f"received {sig.name}")
            except (NotImplementedError, RuntimeError):
                signal.signal(sig, lambda signum, frame: self.request(f"received signal {signum}"))


def bounded_delay(min_ms: int, max_ms: int, rng: Optional[random.Random] = None) -> float:
    """Normally distributed delay around the midpoint, clamped to [min_ms, max_ms]."""
    rng = rng or random
    if max_ms <= min_ms:
        return float(min_ms)
    mean = (min_ms + max_ms) / 2
    std = (max_ms - min_ms) / 6
    return min(max_ms, max(min_ms, rng.gauss(mean, std)))


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    base_delay: float = 1.0,
    retryable: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call fn, retrying up to max_retries times with exponential backoff and jitter."""
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except retryable as e:
            if attempt == max_retries:
                raise
            delay = base_delay * (2 ** attempt) * (0.5 + random.random())
            print(f"  Attempt {attempt + 1} failed ({e}), retrying in {delay:.1f}s...")
            await sleep(delay)
    raise RuntimeError("unreachable")


@dataclass
class StepRecord:
    """Filled in by the step body; logged when the step exits."""
    name: str
    ok: bool = True
    message: str = ""
    screenshot_ref: Optional[str] = None


@dataclass
class JobGuard:
    """What isolate() caught, if anything."""
    error: Optional[ApplyError] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class ResilienceCoordinator:
    """Keeps one job's failure from touching the next, and paces the run."""

    def __init__(
        self,
        settings: Settings,
        recorder: RunRecorder,
        stop_signal: Optional[StopSignal] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings
        self.recorder = recorder
        self.stop_signal = stop_signal or StopSignal()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def should_stop(self) -> bool:
        return self.stop_signal.is_set()

    def check_stop(self):
        if self.should_stop():
            raise StopRequested(self.stop_signal.reason or "stop requested")

    @asynccontextmanager
    async def isolate(self, job_id: str):
        """Job boundary: every exception is caught and classified, none escape.

        StopRequested and cancellation pass through untouched.
        """
        guard = JobGuard()
        try:
            yield guard
        except StopRequested:
            raise
        except ApplyError as e:
            e.job_id = e.job_id or job_id
            guard.error = e
        except Exception as e:
            guard.error = Fatal(e, job_id)

    @asynccontextmanager
    async def traced(self, session: BrowserSession, job_id: str):
        """Trace the job from before navigation; always stop and flush."""
        started = False
        if self.settings.enable_tracing:
            try:
                await session.start_tracing()
                started = True
            except Exception as e:
                print(f"  Warning: could not start tracing: {e}")
        try:
            yield
        finally:
            if started:
                try:
                    await session.stop_tracing(self.recorder.trace_path(job_id))
                except Exception as e:
                    print(f"  Warning: could not save trace: {e}")

    @asynccontextmanager
    async def step(self, job_id: str, name: str):
        """Exactly one RunLogEntry per step, whether the body finishes or raises."""
        record = StepRecord(name)
        try:
            yield record
        except BaseException as e:
            record.ok = False
            record.message = f"{record.message} | {type(e).__name__}: {e}" if record.message else f"{type(e).__name__}: {e}"
            raise
        finally:
            self.recorder.log(RunLogEntry(
                job_id=job_id,
                step=name,
                ok=record.ok,
                message=record.message,
                screenshot_ref=record.screenshot_ref,
            ))

    async def pace(self, kind: str = "job"):
        """Randomized pause: after a job, or between form steps."""
        if kind == "step":
            low, high = self.settings.step_delay_min_ms, self.settings.step_delay_max_ms
        else:
            low, high = self.settings.random_delay_min_ms, self.settings.random_delay_max_ms
        delay_ms = bounded_delay(low, high, self._rng)
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)
