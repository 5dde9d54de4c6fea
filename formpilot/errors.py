"""
Error types raised while driving an application form.
"""

from typing import Optional


class ApplyError(Exception):
    """Base class for every failure the apply engine knows how to classify."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class ElementNotFound(ApplyError):
    """A locator matched nothing (or the element never became ready) within its timeout."""


class NavigationUnexpected(ApplyError):
    """The page left the application flow without us asking it to."""


class AdapterMismatch(ApplyError):
    """No registered platform adapter recognised the page."""


class UnknownField(ApplyError):
    """A label could not be resolved to any canonical field."""

    def __init__(self, raw_label: str, job_id: Optional[str] = None):
        super().__init__(f"Unrecognised field label: {raw_label!r}", job_id)
        self.raw_label = raw_label


class UploadFailed(ApplyError):
    """A file could not be attached to an upload control."""


class StepBudgetExceeded(ApplyError):
    """The form did not reach a terminal state within the step ceiling."""

    def __init__(self, max_steps: int, job_id: Optional[str] = None):
        super().__init__(f"Gave up after {max_steps} steps", job_id)
        self.max_steps = max_steps


class Fatal(ApplyError):
    """Wraps any unclassified exception caught at the job boundary."""

    def __init__(self, cause: BaseException, job_id: Optional[str] = None):
        super().__init__(f"{type(cause).__name__}: {cause}", job_id)
        self.cause = cause


class StopRequested(Exception):
    """A graceful stop was requested between steps; not a job failure."""
