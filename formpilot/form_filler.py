"""
Form filler module: locates a field through an ordered strategy chain and fills it.

A chain is a plain list of strategies. The cached-locator strategy is moved
within the list according to how much the store trusts it, then the list is
walked until one strategy finds an element and the fill goes through.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

from .errors import ElementNotFound, UploadFailed
from .field_mapping import (
    NUMERIC_FIELDS,
    CanonicalField,
    get_field_pattern,
    is_upload_field,
)
from .runtime import BrowserPage, Locator
from .selector_store import INITIAL_CONFIDENCE, MIN_CONFIDENCE, LabelMapping, SelectorStore

CACHE_STRATEGY = "cache"


class FillStatus(Enum):
    FILLED = "filled"
    ALREADY_SET = "already_set"
    DRY_RUN = "dry_run"
    FAILED = "failed"


@dataclass
class FillTarget:
    """One field to fill: what it is, what the page calls it, and the value."""
    field: CanonicalField
    raw_label: str
    value: str
    # False when the label was made up from an answer key rather than read off the page
    from_page: bool = True

    def search_terms(self) -> List[str]:
        """Texts worth matching against accessible names and labels."""
        terms = []
        cleaned = clean_label(self.raw_label)
        if cleaned:
            terms.append(cleaned)
        if not self.from_page:
            pattern = get_field_pattern(self.field)
            if pattern:
                for synonym in pattern.synonyms[:3]:
                    if synonym not in [t.lower() for t in terms]:
                        terms.append(synonym)
        return terms


@dataclass
class FilledField:
    """Result of filling a field."""
    target: FillTarget
    status: FillStatus
    strategy: Optional[str] = None
    locator: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status != FillStatus.FAILED


@dataclass
class StrategyOutcome:
    name: str
    ok: bool
    locator: Optional[Locator] = None
    status: Optional[FillStatus] = None
    error: Optional[str] = None


def clean_label(raw_label: str) -> str:
    """Drop required markers and trailing colons, collapse whitespace."""
    text = re.sub(r"[*:]+", " ", raw_label or "")
    return " ".join(text.split())


def coerce_value(target: FillTarget) -> str:
    """Numeric questions get the first integer in the answer ("5+ years" -> "5")."""
    value = target.value
    numeric = target.field in NUMERIC_FIELDS or re.search(r"how many years", target.raw_label, re.I)
    if numeric:
        match = re.search(r"\d+", value)
        if match:
            return match.group(0)
    return value


# --- Strategies -------------------------------------------------------------


class Strategy:
    """Produces candidate locators for a target, most specific first."""
    name = "base"

    def candidates(self, target: FillTarget, cached: Optional[LabelMapping]) -> List[Locator]:
        return []


class RoleStrategy(Strategy):
    name = "role"

    def __init__(self, role: str = "textbox"):
        self.role = role

    def candidates(self, target, cached):
        return [Locator.by_role(self.role, term) for term in target.search_terms()]


class CachedLocatorStrategy(Strategy):
    name = CACHE_STRATEGY

    def candidates(self, target, cached):
        if cached and cached.learned_locator:
            return [Locator.parse(cached.learned_locator)]
        return []


class LabelTextStrategy(Strategy):
    name = "label"

    def candidates(self, target, cached):
        return [Locator.by_label(term) for term in target.search_terms()]


class PlaceholderStrategy(Strategy):
    name = "placeholder"

    def candidates(self, target, cached):
        return [Locator.by_placeholder(term) for term in target.search_terms()]


class AttributeStrategy(Strategy):
    """CSS templates filled with the field's attribute hints, e.g. 'input[name*="{hint}" i]'."""

    def __init__(self, name: str, templates: Sequence[str]):
        self.name = name
        self.templates = list(templates)

    def candidates(self, target, cached):
        pattern = get_field_pattern(target.field)
        hints = pattern.attribute_hints if pattern else []
        return [Locator.css(t.format(hint=hint)) for hint in hints for t in self.templates]


class UploadTargetStrategy(Strategy):
    """File inputs matched by a prioritized list of selectors."""
    name = "upload"

    def __init__(self, selectors: Sequence[str]):
        self.selectors = list(selectors)

    def candidates(self, target, cached):
        return [Locator.css(s) for s in self.selectors]


@dataclass
class FillPlan:
    """Per-platform strategy chains, in their cold-start order."""
    scope_key: str
    text_chain: List[Strategy] = field(default_factory=list)
    upload_chain: List[Strategy] = field(default_factory=list)

    def chain_for(self, canonical: CanonicalField) -> List[Strategy]:
        return self.upload_chain if is_upload_field(canonical) else self.text_chain


def order_strategies(chain: Sequence[Strategy], cached: Optional[LabelMapping]) -> List[Strategy]:
    """Place the cache strategy by how far the store trusts it.

    Trusted (>= INITIAL_CONFIDENCE) goes first, at the floor it goes last,
    anything in between keeps its place in the chain.
    """
    ordered = list(chain)
    cache = [s for s in ordered if s.name == CACHE_STRATEGY]
    if not cache or not cached:
        return ordered
    rest = [s for s in ordered if s.name != CACHE_STRATEGY]
    if cached.confidence >= INITIAL_CONFIDENCE:
        return cache + rest
    if cached.confidence <= MIN_CONFIDENCE:
        return rest + cache
    return ordered


async def run_strategies(
    strategies: Sequence[Strategy],
    attempt: Callable[[Strategy], Awaitable[StrategyOutcome]],
) -> List[StrategyOutcome]:
    """Attempt strategies in order and stop at the first success.

    Returns the outcome of every strategy that ran; a success, if any, is last.
    """
    outcomes = []
    for strategy in strategies:
        outcome = await attempt(strategy)
        outcomes.append(outcome)
        if outcome.ok:
            break
    return outcomes


# --- Filler -----------------------------------------------------------------


class FieldFiller:
    """Fills fields and feeds the outcome back into the selector store."""

    def __init__(self, store: Optional[SelectorStore] = None, dry_run: bool = False):
        self.store = store
        self.dry_run = dry_run
        self.debug = os.getenv("FORMPILOT_DEBUG") == "1"

    async def fill_all(self, page: BrowserPage, targets: Sequence[FillTarget], plan: FillPlan) -> List[FilledField]:
        results = []
        for target in targets:
            results.append(await self.fill_field(page, target, plan))
        return results

    async def fill_field(self, page: BrowserPage, target: FillTarget, plan: FillPlan) -> FilledField:
        """Run the chain for one target and record what worked."""
        value = coerce_value(target)

        if is_upload_field(target.field) and not Path(value).is_file():
            error = UploadFailed(f"File not found: {value}")
            print(f"    ✗ {target.raw_label}: {error.message}")
            return FilledField(target, FillStatus.FAILED, error=error.message)

        cached = self.store.lookup(target.field, plan.scope_key) if self.store else None
        chain = order_strategies(plan.chain_for(target.field), cached)

        async def attempt(strategy: Strategy) -> StrategyOutcome:
            last_error = None
            for locator in strategy.candidates(target, cached):
                try:
                    if await page.count(locator) == 0:
                        continue
                    status = await self._apply(page, locator, target, value)
                    return StrategyOutcome(strategy.name, True, locator, status)
                except (ElementNotFound, UploadFailed) as e:
                    last_error = e.message
            return StrategyOutcome(strategy.name, False, error=last_error)

        outcomes = await run_strategies(chain, attempt)
        winner = outcomes[-1] if outcomes and outcomes[-1].ok else None

        if self.debug:
            trail = ", ".join(f"{o.name}:{'ok' if o.ok else 'miss'}" for o in outcomes)
            print(f"    [fill] {target.field.value} via [{trail}]")

        if not self.dry_run and self.store:
            cache_outcome = next((o for o in outcomes if o.name == CACHE_STRATEGY), None)
            if cache_outcome and not cache_outcome.ok and cached and cached.learned_locator:
                self.store.record_failure(cached)
            if winner:
                learned = await self._learned_locator(page, winner.locator)
                mapping = self.store.get(plan.scope_key, target.raw_label) or LabelMapping(
                    raw_label=target.raw_label,
                    canonical_field=target.field,
                    scope_key=plan.scope_key,
                )
                mapping.canonical_field = target.field
                self.store.record_success(mapping, learned)

        if not winner:
            errors = [o.error for o in outcomes if o.error]
            message = errors[-1] if errors else "no strategy found the field"
            print(f"    ✗ {target.raw_label}: {message}")
            return FilledField(target, FillStatus.FAILED, error=message)

        if winner.status == FillStatus.FILLED:
            print(f"    ✓ {target.raw_label}: {value if not is_upload_field(target.field) else Path(value).name}")
        return FilledField(target, winner.status, winner.name, winner.locator.serialize())

    async def _apply(self, page: BrowserPage, locator: Locator, target: FillTarget, value: str) -> FillStatus:
        """Fill or attach unless the page already holds the value."""
        if is_upload_field(target.field):
            name = Path(value).name
            if name in await page.attached_files(locator):
                return FillStatus.ALREADY_SET
            if self.dry_run:
                print(f"    [dry-run] would attach {name} to '{target.raw_label}' via {locator}")
                return FillStatus.DRY_RUN
            try:
                await page.set_input_files(locator, value)
            except ElementNotFound as e:
                raise UploadFailed(f"Could not attach {name}: {e.message}") from e
            return FillStatus.FILLED

        current = await page.input_value(locator)
        if current.strip() == value.strip():
            return FillStatus.ALREADY_SET
        if self.dry_run:
            print(f"    [dry-run] would fill '{target.raw_label}' with '{value}' via {locator}")
            return FillStatus.DRY_RUN
        await page.fill(locator, value)
        return FillStatus.FILLED

    async def _learned_locator(self, page: BrowserPage, locator: Locator) -> str:
        """Prefer a durable CSS selector over the locator that happened to work."""
        try:
            selector = await page.stable_selector(locator)
        except ElementNotFound:
            selector = None
        return Locator.css(selector).serialize() if selector else locator.serialize()
