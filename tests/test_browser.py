"""
Tests for the parts of the browser layer that need no browser.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from formpilot.browser import build_stable_selector
from formpilot.llm_helper import LLMHelper
from formpilot.runtime import Locator


class TestStableSelector:

    def test_prefers_id(self):
        assert build_stable_selector({"tag": "input", "id": "email", "name": "email"}) == "#email"

    def test_non_css_id_uses_attribute_form(self):
        assert build_stable_selector({"tag": "input", "id": ":r1:"}) == 'input[id=":r1:"]'

    def test_falls_back_through_attributes(self):
        assert build_stable_selector({"tag": "input", "name": "phone"}) == 'input[name="phone"]'
        assert build_stable_selector({"tag": "input", "automation": "email"}) == 'input[data-automation-id="email"]'
        assert build_stable_selector({"tag": "input", "type": "file", "aria": "Resume"}) == \
            'input[type="file"][aria-label="Resume"]'
        assert build_stable_selector({"tag": "textarea"}) is None


class TestLocator:

    def test_serialize_and_parse(self):
        for locator in (Locator.css("#email"), Locator.by_role("textbox", "Email"), Locator.by_label("First Name")):
            assert Locator.parse(locator.serialize()) == locator

    def test_bare_string_is_css(self):
        assert Locator.parse('input[name="email"]') == Locator.css('input[name="email"]')


class TestClassifierResponse:

    def setup_method(self):
        self.helper = LLMHelper(api_key=None)

    def test_parses_mappings_object(self):
        text = 'Sure:\n{"mappings": [{"label": "Pronouns", "key": "unknown"}, {"label": "Notice period", "key": "start_date"}]}'
        assert self.helper._parse_response(text, ["Pronouns", "Notice period"]) == {
            "Pronouns": "unknown",
            "Notice period": "start_date",
        }

    def test_ignores_labels_it_was_not_asked_about(self):
        text = '[{"label": "Something else", "key": "email"}]'
        assert self.helper._parse_response(text, ["Pronouns"]) == {}

    def test_no_json(self):
        assert self.helper._parse_response("I cannot help with that", ["Pronouns"]) == {}

    @pytest.mark.asyncio
    async def test_classify_labels_makes_one_request(self):
        reply = SimpleNamespace(content=[SimpleNamespace(
            text='{"mappings": [{"label": "Pronouns", "key": "unknown"}, {"label": "Notice", "key": "start_date"}]}'
        )])
        self.helper.client = MagicMock()
        self.helper.client.messages.create = AsyncMock(return_value=reply)

        result = await self.helper.classify_labels(["Pronouns", "Notice"], ["email", "start_date"])

        assert result == {"Pronouns": "unknown", "Notice": "start_date"}
        self.helper.client.messages.create.assert_awaited_once()
        prompt = self.helper.client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert "- Notice" in prompt
        assert "start_date" in prompt

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self):
        self.helper.client = MagicMock()
        self.helper.client.messages.create = AsyncMock()
        assert await self.helper.classify_labels([], ["email"]) == {}
        self.helper.client.messages.create.assert_not_awaited()
