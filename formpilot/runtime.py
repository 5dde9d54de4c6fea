"""
Browser runtime interface the engine drives.

Everything above this module talks to a BrowserPage, never to Playwright
directly, so the engine runs the same against a real browser or a fake.
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol

LOCATOR_KINDS = ("css", "role", "label", "placeholder", "text")


@dataclass(frozen=True)
class Locator:
    """How to find an element.

    kind "css" takes a selector; "label", "placeholder" and "text" take a
    case-insensitive substring; "role" takes an ARIA role plus an accessible
    name substring.
    """
    kind: str
    value: str
    role: Optional[str] = None

    @classmethod
    def css(cls, selector: str) -> "Locator":
        return cls("css", selector)

    @classmethod
    def by_role(cls, role: str, name: str) -> "Locator":
        return cls("role", name, role)

    @classmethod
    def by_label(cls, text: str) -> "Locator":
        return cls("label", text)

    @classmethod
    def by_placeholder(cls, text: str) -> "Locator":
        return cls("placeholder", text)

    @classmethod
    def by_text(cls, text: str) -> "Locator":
        return cls("text", text)

    def serialize(self) -> str:
        """Storable form, e.g. "css=#email" or "role=textbox:Email"."""
        if self.kind == "role":
            return f"role={self.role}:{self.value}"
        return f"{self.kind}={self.value}"

    @classmethod
    def parse(cls, text: str) -> "Locator":
        """Inverse of serialize(); bare strings are treated as CSS."""
        kind, sep, rest = text.partition("=")
        if not sep or kind not in LOCATOR_KINDS:
            return cls.css(text)
        if kind == "role":
            role, _, name = rest.partition(":")
            return cls.by_role(role, name)
        return cls(kind, rest)

    def __str__(self) -> str:
        return self.serialize()


class BrowserPage(Protocol):
    """The page operations the engine needs. Element operations raise
    ElementNotFound when their timeout expires."""

    @property
    def url(self) -> str:
        ...

    async def goto(self, url: str) -> None:
        ...

    async def go_back(self) -> None:
        ...

    async def content(self) -> str:
        ...

    async def count(self, locator: Locator) -> int:
        ...

    async def is_enabled(self, locator: Locator) -> bool:
        ...

    async def input_value(self, locator: Locator) -> str:
        ...

    async def fill(self, locator: Locator, value: str) -> None:
        ...

    async def attached_files(self, locator: Locator) -> List[str]:
        ...

    async def set_input_files(self, locator: Locator, path: str) -> None:
        ...

    async def click(self, locator: Locator) -> None:
        ...

    async def click_for_popup(self, locator: Locator) -> Optional["BrowserPage"]:
        """Click and return the page it opened, or None if none opened."""
        ...

    async def stable_selector(self, locator: Locator) -> Optional[str]:
        """A CSS selector for the matched element that should survive reloads."""
        ...

    async def label_texts(self) -> List[str]:
        ...

    async def aria_labels(self, limit: int = 20) -> List[str]:
        ...

    async def press(self, key: str) -> None:
        ...

    async def screenshot(self, path: str) -> None:
        ...

    async def wait(self, ms: int) -> None:
        ...

    async def close(self) -> None:
        ...


class BrowserSession(Protocol):
    """A browser context: owns the page and the trace recorder."""

    page: BrowserPage

    async def start_tracing(self) -> None:
        ...

    async def stop_tracing(self, path: str) -> None:
        ...
