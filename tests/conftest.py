"""
Pytest fixtures for the formpilot test suite.

FakePage is an in-memory BrowserPage: a list of screens, each a flat list of
elements, with just enough CSS matching for the selectors the engine uses.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from formpilot.browser import build_stable_selector
from formpilot.config import Settings
from formpilot.errors import ElementNotFound
from formpilot.job_queue import SQLiteJobQueue
from formpilot.logger import RunRecorder
from formpilot.resilience import ResilienceCoordinator, StopSignal
from formpilot.runtime import Locator
from formpilot.selector_store import SelectorStore

TEXTBOX_TYPES = {"", "text", "email", "tel", "url", "number", "search"}
FORM_CONTROLS = {"input", "textarea", "select"}


# === Fake DOM ===

@dataclass
class FakeElement:
    tag: str = "input"
    attrs: Dict[str, str] = field(default_factory=dict)
    label: str = ""
    text: str = ""
    value: str = ""
    files: List[str] = field(default_factory=list)
    enabled: bool = True
    on_click: Optional[Callable[["FakePage"], None]] = None
    fills: int = 0

    @property
    def role(self) -> str:
        if self.tag == "textarea":
            return "textbox"
        if self.tag == "input" and self.attrs.get("type", "") in TEXTBOX_TYPES:
            return "textbox"
        if self.tag == "button":
            return "button"
        if self.tag == "a":
            return "link"
        return ""

    @property
    def accessible_name(self) -> str:
        return self.attrs.get("aria-label") or self.label or self.text


def text_input(label: str = "", name: str = "", id: str = "", placeholder: str = "",
               type: str = "text", value: str = "", aria: str = "") -> FakeElement:
    attrs = {"type": type}
    for key, val in (("name", name), ("id", id), ("placeholder", placeholder), ("aria-label", aria)):
        if val:
            attrs[key] = val
    return FakeElement("input", attrs, label=label, value=value)


def file_input(label: str = "Resume/CV", name: str = "resume", id: str = "") -> FakeElement:
    attrs = {"type": "file", "name": name}
    if id:
        attrs["id"] = id
    return FakeElement("input", attrs, label=label)


def button(text: str, enabled: bool = True, on_click=None, **attrs) -> FakeElement:
    attrs = {k.replace("_", "-"): v for k, v in attrs.items()}
    return FakeElement("button", attrs, text=text, enabled=enabled, on_click=on_click)


def form(action: str = "/apply", **attrs) -> FakeElement:
    return FakeElement("form", dict(attrs, action=action))


def heading(text: str, tag: str = "h2") -> FakeElement:
    return FakeElement(tag, {}, text=text)


# === Minimal CSS matching ===

_SIMPLE = re.compile(
    r'(?P<tag>[a-zA-Z][\w-]*)'
    r'|\#(?P<id>[\w-]+)'
    r'|\.(?P<cls>[\w-]+)'
    r'|\[(?P<attr>[\w-]+)(?:(?P<op>[*^$]?=)"(?P<val>[^"]*)"(?:\s+(?P<flag>i))?)?\]'
    r'|:has-text\("(?P<has>[^"]*)"\)'
    r'|:not\((?P<neg>[^()]*)\)'
)


def _split_top(selector: str, sep: str) -> List[str]:
    """Split on sep outside brackets, parens and quotes."""
    parts, depth, quoted, current = [], 0, False, ""
    for ch in selector:
        if ch == '"':
            quoted = not quoted
        elif not quoted and ch in "[(":
            depth += 1
        elif not quoted and ch in "])":
            depth -= 1
        if ch == sep and depth == 0 and not quoted:
            parts.append(current)
            current = ""
            continue
        current += ch
    parts.append(current)
    return [p.strip() for p in parts if p.strip()]


def _compound_matches(compound: str, el: FakeElement) -> bool:
    pos = 0
    while pos < len(compound):
        m = _SIMPLE.match(compound, pos)
        if not m or m.end() == pos:
            raise ValueError(f"FakePage cannot parse selector: {compound!r}")
        if m.group("tag") and pos != 0:
            raise ValueError(f"FakePage cannot parse selector: {compound!r}")
        pos = m.end()

        if m.group("tag") and m.group("tag").lower() != el.tag:
            return False
        if m.group("id") and el.attrs.get("id") != m.group("id"):
            return False
        if m.group("cls") and m.group("cls") not in el.attrs.get("class", "").split():
            return False
        if m.group("attr"):
            actual = el.attrs.get(m.group("attr"))
            if actual is None:
                return False
            if m.group("op"):
                expected = m.group("val")
                if m.group("flag"):
                    actual, expected = actual.lower(), expected.lower()
                if m.group("op") == "=" and actual != expected:
                    return False
                if m.group("op") == "*=" and expected not in actual:
                    return False
        if m.group("has") is not None and m.group("has").lower() not in el.text.lower():
            return False
        if m.group("neg") is not None and _compound_matches(m.group("neg"), el):
            return False
    return True


# === Fake browser ===

class FakePage:
    """In-memory page. Elements live on screens; buttons advance or navigate via on_click."""

    def __init__(self, url: str = "https://example.com/apply", screens: Optional[List[List[FakeElement]]] = None):
        self.url = url
        self.screens: List[List[FakeElement]] = screens or [[]]
        self.screen = 0
        self.html = ""
        self.routes: Dict[str, Callable[["FakePage"], None]] = {}
        self.history: List[str] = []
        self.actions: List[tuple] = []
        self.popup: Optional["FakePage"] = None
        self.fail_screenshots = False
        self.closed = False

    @property
    def elements(self) -> List[FakeElement]:
        return self.screens[self.screen]

    def load(self, screens: List[List[FakeElement]], url: Optional[str] = None):
        self.screens = screens
        self.screen = 0
        if url:
            self.url = url

    def advance(self):
        self.screen = min(self.screen + 1, len(self.screens) - 1)

    def navigate(self, url: str):
        self.history.append(self.url)
        self.url = url

    def _matches(self, locator: Locator, el: FakeElement) -> bool:
        needle = locator.value.lower()
        if locator.kind == "css":
            for alternative in _split_top(locator.value, ","):
                *ancestors, target = _split_top(alternative, " ")
                if not _compound_matches(target, el):
                    continue
                if all(any(_compound_matches(a, other) for other in self.elements) for a in ancestors):
                    return True
            return False
        if locator.kind == "role":
            return el.role == locator.role and needle in el.accessible_name.lower()
        if locator.kind == "label":
            names = (el.label, el.attrs.get("aria-label", ""))
            return el.tag in FORM_CONTROLS and any(needle in n.lower() for n in names if n)
        if locator.kind == "placeholder":
            return needle in el.attrs.get("placeholder", "").lower()
        if locator.kind == "text":
            return bool(el.text) and needle in el.text.lower()
        return False

    def find_all(self, locator: Locator) -> List[FakeElement]:
        return [el for el in self.elements if self._matches(locator, el)]

    def _first(self, locator: Locator) -> FakeElement:
        found = self.find_all(locator)
        if not found:
            raise ElementNotFound(f"No element for {locator}")
        return found[0]

    async def goto(self, url: str) -> None:
        self.actions.append(("goto", url))
        self.url = url
        route = self.routes.get(url)
        if route:
            route(self)

    async def go_back(self) -> None:
        self.actions.append(("go_back", self.url))
        if self.history:
            self.url = self.history.pop()

    async def content(self) -> str:
        return self.html

    async def count(self, locator: Locator) -> int:
        return len(self.find_all(locator))

    async def is_enabled(self, locator: Locator) -> bool:
        return self._first(locator).enabled

    async def input_value(self, locator: Locator) -> str:
        return self._first(locator).value

    async def fill(self, locator: Locator, value: str) -> None:
        el = self._first(locator)
        el.value = value
        el.fills += 1
        self.actions.append(("fill", el.label or el.accessible_name, value))

    async def attached_files(self, locator: Locator) -> List[str]:
        return list(self._first(locator).files)

    async def set_input_files(self, locator: Locator, path: str) -> None:
        el = self._first(locator)
        el.files = [Path(path).name]
        el.fills += 1
        self.actions.append(("upload", el.label, Path(path).name))

    async def click(self, locator: Locator) -> None:
        el = self._first(locator)
        self.actions.append(("click", el.text or el.accessible_name))
        if el.on_click:
            el.on_click(self)

    async def click_for_popup(self, locator: Locator) -> Optional["FakePage"]:
        await self.click(locator)
        return self.popup

    async def stable_selector(self, locator: Locator) -> Optional[str]:
        el = self._first(locator)
        return build_stable_selector({
            "tag": el.tag,
            "id": el.attrs.get("id", ""),
            "name": el.attrs.get("name", ""),
            "type": el.attrs.get("type", ""),
            "aria": el.attrs.get("aria-label", ""),
            "automation": el.attrs.get("data-automation-id", ""),
        })

    async def label_texts(self) -> List[str]:
        return [el.label for el in self.elements if el.label]

    async def aria_labels(self, limit: int = 20) -> List[str]:
        labels = [el.attrs["aria-label"] for el in self.elements
                  if el.tag in FORM_CONTROLS and el.attrs.get("aria-label")]
        return labels[:limit]

    async def press(self, key: str) -> None:
        self.actions.append(("press", key))

    async def screenshot(self, path: str) -> None:
        if self.fail_screenshots:
            raise ElementNotFound("screenshot timed out")
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        Path(path).write_bytes(b"png")
        self.actions.append(("screenshot", Path(path).name))

    async def wait(self, ms: int) -> None:
        return None

    async def close(self) -> None:
        self.closed = True

    def action_names(self, kind: str) -> List[str]:
        return [a[1] for a in self.actions if a[0] == kind]


class FakeSession:
    """BrowserSession over a FakePage that records tracing calls."""

    def __init__(self, page: FakePage):
        self.page = page
        self.tracing_started = 0
        self.traces: List[str] = []

    async def start_tracing(self) -> None:
        self.tracing_started += 1

    async def stop_tracing(self, path: str) -> None:
        self.traces.append(path)


async def no_sleep(_seconds: float) -> None:
    return None


# === Fixtures ===

@pytest.fixture
def settings(tmp_path):
    """Fast settings: no delays, artifacts under tmp_path."""
    return Settings(
        headless=True,
        random_delay_min_ms=0,
        random_delay_max_ms=0,
        step_delay_min_ms=0,
        step_delay_max_ms=0,
        artifacts_dir=str(tmp_path / "artifacts"),
        database_path=":memory:",
    )


@pytest.fixture
def store():
    selector_store = SelectorStore(":memory:")
    yield selector_store
    selector_store.close()


@pytest.fixture
def job_queue():
    queue = SQLiteJobQueue(":memory:")
    yield queue
    queue.close()


@pytest.fixture
def recorder(settings, job_queue):
    return RunRecorder(settings.artifacts_dir, sink=job_queue)


@pytest.fixture
def stop_signal(tmp_path):
    return StopSignal(tmp_path / "stop-signal")


@pytest.fixture
def coordinator(settings, recorder, stop_signal):
    return ResilienceCoordinator(settings, recorder, stop_signal, sleep=no_sleep)


@pytest.fixture
def resume_file(tmp_path):
    path = tmp_path / "resume.pdf"
    path.write_bytes(b"%PDF-1.4 test resume")
    return str(path)


@pytest.fixture
def answers():
    return {
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane@example.com",
        "phone": "555-0100",
        "years_experience": "6+ years",
    }
