"""
LLM helper module for classifying form labels the heuristics could not place.
"""

import json
import os
import re
from typing import Dict, List, Optional, Sequence

from anthropic import AsyncAnthropic

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class LLMHelper:
    """Uses Claude to map leftover form labels onto the canonical vocabulary."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        timeout: float = 20.0,
        max_retries: int = 2,
        api_key: Optional[str] = None,
    ):
        self.model = model
        self.client = None
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if api_key:
            self.client = AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=max_retries)

    def is_available(self) -> bool:
        """Check if LLM is available."""
        return self.client is not None

    async def classify_labels(
        self, labels: Sequence[str], vocabulary: Sequence[str]
    ) -> Dict[str, str]:
        """One batched request: raw label -> vocabulary key.

        Raises whatever the client raises; callers decide how to degrade.
        """
        if not self.client or not labels:
            return {}

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=1000,
            messages=[
                {
                    "role": "user",
                    "content": self._build_prompt(labels, vocabulary),
                }
            ],
        )
        return self._parse_response(response.content[0].text, labels)

    def _build_prompt(self, labels: Sequence[str], vocabulary: Sequence[str]) -> str:
        """Build prompt for the LLM."""
        label_lines = "\n".join(f"- {label}" for label in labels)
        return f"""You are mapping job application form labels to canonical field keys.

ALLOWED KEYS:
{", ".join(vocabulary)}, unknown

LABELS:
{label_lines}

INSTRUCTIONS:
1. Map every label to exactly one allowed key.
2. Use "unknown" when no key clearly fits.
3. Respond with JSON only, in this shape:
{{"mappings": [{{"label": "<label as given>", "key": "<allowed key>"}}]}}
"""

    def _parse_response(self, response: str, labels: Sequence[str]) -> Dict[str, str]:
        """Pull the label -> key pairs out of the model's reply."""
        match = re.search(r"[\[{].*[\]}]", response, re.DOTALL)
        if not match:
            return {}
        data = json.loads(match.group(0))

        mappings: List[dict] = data.get("mappings", []) if isinstance(data, dict) else data
        wanted = set(labels)
        result = {}
        for item in mappings:
            if not isinstance(item, dict):
                continue
            label = item.get("label")
            key = item.get("key")
            if label in wanted and isinstance(key, str):
                result[label] = key
        return result
