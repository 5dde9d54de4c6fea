"""
Tests for the field filler and its strategy chains.
"""

import pytest

from formpilot.field_mapping import CanonicalField
from formpilot.form_filler import (
    CachedLocatorStrategy,
    FieldFiller,
    FillPlan,
    FillStatus,
    FillTarget,
    LabelTextStrategy,
    PlaceholderStrategy,
    RoleStrategy,
    Strategy,
    StrategyOutcome,
    UploadTargetStrategy,
    clean_label,
    coerce_value,
    order_strategies,
    run_strategies,
)
from formpilot.selector_store import LabelMapping

from conftest import FakePage, file_input, text_input


def lever_plan():
    return FillPlan(
        scope_key="lever",
        text_chain=[RoleStrategy(), CachedLocatorStrategy(), LabelTextStrategy(), PlaceholderStrategy()],
        upload_chain=[CachedLocatorStrategy(), UploadTargetStrategy(['input[type="file"]']), LabelTextStrategy()],
    )


def learned(store, label, field, locator, confidence_steps=0):
    """Seed a mapping; each extra step is one more success."""
    m = LabelMapping(raw_label=label, canonical_field=field, scope_key="lever")
    for _ in range(confidence_steps + 1):
        store.record_success(m, locator)
    return m


class TestFill:
    """Filling text fields through the chain."""

    @pytest.mark.asyncio
    async def test_fills_by_role_and_learns_stable_selector(self, store):
        page = FakePage(screens=[[text_input("First Name", name="first_name")]])
        filler = FieldFiller(store)

        result = await filler.fill_field(page, FillTarget(CanonicalField.FIRST_NAME, "First Name", "Jane"), lever_plan())

        assert result.status == FillStatus.FILLED
        assert result.strategy == "role"
        assert page.elements[0].value == "Jane"
        mapping = store.get("lever", "First Name")
        assert mapping.learned_locator == 'css=input[name="first_name"]'
        assert mapping.success_count == 1

    @pytest.mark.asyncio
    async def test_second_fill_is_a_no_op(self, store):
        page = FakePage(screens=[[text_input("Email", id="email")]])
        filler = FieldFiller(store)
        target = FillTarget(CanonicalField.EMAIL, "Email", "jane@example.com")

        await filler.fill_field(page, target, lever_plan())
        result = await filler.fill_field(page, target, lever_plan())

        assert result.status == FillStatus.ALREADY_SET
        assert result.success
        assert page.elements[0].fills == 1

    @pytest.mark.asyncio
    async def test_placeholder_fallback(self, store):
        page = FakePage(screens=[[text_input(placeholder="Phone number", name="tel")]])
        filler = FieldFiller(store)

        result = await filler.fill_field(page, FillTarget(CanonicalField.PHONE, "Phone number", "555"), lever_plan())

        assert result.strategy == "placeholder"
        assert page.elements[0].value == "555"

    @pytest.mark.asyncio
    async def test_missing_field_fails_without_learning(self, store):
        page = FakePage(screens=[[text_input("Email", id="email")]])
        filler = FieldFiller(store)

        result = await filler.fill_field(page, FillTarget(CanonicalField.PHONE, "Phone", "555"), lever_plan())

        assert result.status == FillStatus.FAILED
        assert not result.success
        assert result.error
        assert store.stats().mappings == 0

    @pytest.mark.asyncio
    async def test_dry_run_touches_nothing(self, store):
        page = FakePage(screens=[[text_input("Email", id="email")]])
        filler = FieldFiller(store, dry_run=True)

        result = await filler.fill_field(page, FillTarget(CanonicalField.EMAIL, "Email", "jane@example.com"), lever_plan())

        assert result.status == FillStatus.DRY_RUN
        assert result.success
        assert page.elements[0].value == ""
        assert store.stats().mappings == 0

    @pytest.mark.asyncio
    async def test_numeric_answers_are_coerced(self, store):
        page = FakePage(screens=[[text_input("Years of experience", name="years")]])
        filler = FieldFiller(store)

        await filler.fill_field(
            page, FillTarget(CanonicalField.YEARS_EXPERIENCE, "Years of experience", "6+ years"), lever_plan()
        )

        assert page.elements[0].value == "6"


class TestUploads:

    @pytest.mark.asyncio
    async def test_attaches_resume_once(self, store, resume_file):
        page = FakePage(screens=[[file_input("Resume/CV")]])
        filler = FieldFiller(store)
        target = FillTarget(CanonicalField.RESUME_UPLOAD, "Resume/CV", resume_file)

        first = await filler.fill_field(page, target, lever_plan())
        second = await filler.fill_field(page, target, lever_plan())

        assert first.status == FillStatus.FILLED
        assert second.status == FillStatus.ALREADY_SET
        assert page.elements[0].files == ["resume.pdf"]
        assert page.elements[0].fills == 1

    @pytest.mark.asyncio
    async def test_missing_file_fails(self, store, tmp_path):
        page = FakePage(screens=[[file_input("Resume/CV")]])
        filler = FieldFiller(store)
        target = FillTarget(CanonicalField.RESUME_UPLOAD, "Resume/CV", str(tmp_path / "nope.pdf"))

        result = await filler.fill_field(page, target, lever_plan())

        assert result.status == FillStatus.FAILED
        assert "File not found" in result.error
        assert page.elements[0].files == []


class TestLearnedLocators:
    """How the cached locator moves through the chain."""

    @pytest.mark.asyncio
    async def test_trusted_cache_is_tried_first(self, store):
        learned(store, "First Name", CanonicalField.FIRST_NAME, "css=#fname")
        page = FakePage(screens=[[text_input("First Name", id="fname")]])
        filler = FieldFiller(store)

        result = await filler.fill_field(page, FillTarget(CanonicalField.FIRST_NAME, "First Name", "Jane"), lever_plan())

        assert result.strategy == "cache"
        assert store.get("lever", "First Name").success_count == 2

    @pytest.mark.asyncio
    async def test_stale_cache_is_penalised_and_replaced(self, store):
        learned(store, "First Name", CanonicalField.FIRST_NAME, "css=#gone")
        page = FakePage(screens=[[text_input("First Name", id="fname")]])
        filler = FieldFiller(store)

        result = await filler.fill_field(page, FillTarget(CanonicalField.FIRST_NAME, "First Name", "Jane"), lever_plan())

        assert result.strategy == "role"
        mapping = store.get("lever", "First Name")
        assert mapping.failure_count == 1
        assert mapping.learned_locator == "css=#fname"
        assert mapping.confidence == pytest.approx(0.75)

    def test_order_by_confidence(self):
        chain = lever_plan().text_chain
        names = lambda strategies: [s.name for s in strategies]
        m = LabelMapping("Email", CanonicalField.EMAIL, "lever", learned_locator="css=#e")

        m.confidence = 0.8
        assert names(order_strategies(chain, m)) == ["cache", "role", "label", "placeholder"]
        m.confidence = 0.5
        assert names(order_strategies(chain, m)) == ["role", "label", "placeholder", "cache"]
        m.confidence = 0.6
        assert names(order_strategies(chain, m)) == ["role", "cache", "label", "placeholder"]
        assert names(order_strategies(chain, None)) == ["role", "cache", "label", "placeholder"]


class TestRunStrategies:

    @pytest.mark.asyncio
    async def test_stops_at_first_success(self):
        tried = []

        class Named(Strategy):
            def __init__(self, name):
                self.name = name

        async def attempt(strategy):
            tried.append(strategy.name)
            return StrategyOutcome(strategy.name, ok=strategy.name == "b")

        outcomes = await run_strategies([Named("a"), Named("b"), Named("c")], attempt)

        assert tried == ["a", "b"]
        assert outcomes[-1].ok

    @pytest.mark.asyncio
    async def test_all_failing(self):
        async def attempt(strategy):
            return StrategyOutcome(strategy.name, ok=False, error="miss")

        outcomes = await run_strategies([RoleStrategy(), LabelTextStrategy()], attempt)
        assert [o.ok for o in outcomes] == [False, False]


class TestHelpers:

    def test_clean_label(self):
        assert clean_label("Email: *") == "Email"

    def test_coerce_value(self):
        years = FillTarget(CanonicalField.YEARS_EXPERIENCE, "Years", "about 6 years")
        question = FillTarget(CanonicalField.WHY_FIT, "How many years of Python?", "4+")
        text = FillTarget(CanonicalField.CITY, "City", "Area 51")
        assert coerce_value(years) == "6"
        assert coerce_value(question) == "4"
        assert coerce_value(text) == "Area 51"

    def test_search_terms_add_synonyms_for_answer_driven_targets(self):
        target = FillTarget(CanonicalField.EMAIL, "Email", "x", from_page=False)
        assert target.search_terms()[:2] == ["Email", "email address"]
        assert FillTarget(CanonicalField.EMAIL, "Work email", "x").search_terms() == ["Work email"]
