"""
Label resolver: turns raw on-page labels into canonical fields.

Three tiers, cheapest first:
  1. exact match of the normalized label against known synonyms
  2. fuzzy token overlap against the same synonyms
  3. one batched classifier call for whatever is left

Anything still unplaced comes back as CanonicalField.UNKNOWN so the caller
can surface it.
"""

import asyncio
import os
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from .field_mapping import (
    FIELD_PATTERNS,
    CanonicalField,
    field_from_key,
    label_tokens,
    normalize_label,
    vocabulary,
)

FUZZY_THRESHOLD = 0.6
TOKEN_MATCH_RATIO = 0.8


class LabelClassifier(Protocol):
    async def classify_labels(
        self, labels: Sequence[str], vocabulary: Sequence[str]
    ) -> Dict[str, str]:
        ...


@dataclass
class ResolvedLabel:
    """Outcome of resolving one raw label."""
    raw_label: str
    field: CanonicalField
    method: str  # "exact", "fuzzy", "classifier" or "none"
    confidence: float

    @property
    def is_known(self) -> bool:
        return self.field != CanonicalField.UNKNOWN


def _tokens_match(a: str, b: str) -> bool:
    if a == b:
        return True
    return SequenceMatcher(None, a, b).ratio() >= TOKEN_MATCH_RATIO


def fuzzy_score(label: str, synonym: str) -> Tuple[float, int]:
    """Score how well a label covers a synonym.

    Returns (score, matched_tokens). The score weights coverage of the
    synonym's tokens over plain Jaccard overlap, so long questions still
    match short synonyms.
    """
    label_toks = label_tokens(label)
    syn_toks = label_tokens(synonym)
    if not label_toks or not syn_toks:
        return 0.0, 0

    matched = sum(1 for s in syn_toks if any(_tokens_match(s, t) for t in label_toks))
    if not matched:
        return 0.0, 0
    coverage = matched / len(syn_toks)
    jaccard = matched / (len(set(label_toks)) + len(syn_toks) - matched)
    return 0.7 * coverage + 0.3 * jaccard, matched


class LabelResolver:
    """Resolves labels with a per-instance cache so answers never flip mid-run."""

    def __init__(
        self,
        classifier: Optional[LabelClassifier] = None,
        fuzzy_threshold: float = FUZZY_THRESHOLD,
        classifier_timeout: float = 30.0,
    ):
        self.classifier = classifier
        self.fuzzy_threshold = fuzzy_threshold
        self.classifier_timeout = classifier_timeout
        self._cache: Dict[str, ResolvedLabel] = {}
        self._exact: Dict[str, CanonicalField] = {}
        for pattern in FIELD_PATTERNS:
            for synonym in pattern.synonyms:
                self._exact.setdefault(normalize_label(synonym), pattern.field)
        self.debug = os.getenv("FORMPILOT_DEBUG") == "1"

    def clear_cache(self):
        """End the current cache lifetime."""
        self._cache.clear()

    def match_exact(self, raw_label: str) -> Optional[CanonicalField]:
        return self._exact.get(normalize_label(raw_label))

    def match_fuzzy(self, raw_label: str) -> Optional[Tuple[CanonicalField, float]]:
        """Best fuzzy match above threshold; ties go to more matched tokens, then pattern order."""
        best = None
        best_key = (0.0, 0)
        for pattern in FIELD_PATTERNS:
            for synonym in pattern.synonyms:
                score, matched = fuzzy_score(raw_label, synonym)
                if score >= self.fuzzy_threshold and (score, matched) > best_key:
                    best = pattern.field
                    best_key = (score, matched)
        if best is None:
            return None
        return best, round(best_key[0], 3)

    async def resolve(self, raw_labels: Sequence[str]) -> List[ResolvedLabel]:
        """Resolve every label, in input order, unknowns included."""
        pending: List[str] = []
        pending_keys = set()
        for raw in raw_labels:
            key = normalize_label(raw)
            if key in self._cache or key in pending_keys:
                continue
            if not key:
                self._cache[key] = ResolvedLabel(raw, CanonicalField.UNKNOWN, "none", 0.0)
                continue

            exact = self._exact.get(key)
            if exact:
                self._cache[key] = ResolvedLabel(raw, exact, "exact", 0.99)
                continue

            fuzzy = self.match_fuzzy(raw)
            if fuzzy:
                self._cache[key] = ResolvedLabel(raw, fuzzy[0], "fuzzy", fuzzy[1])
                continue

            pending.append(raw)
            pending_keys.add(key)

        if pending:
            classified = await self._classify(pending)
            for raw in pending:
                canonical = field_from_key(classified.get(raw, ""))
                method = "classifier" if canonical != CanonicalField.UNKNOWN else "none"
                confidence = 0.8 if method == "classifier" else 0.0
                self._cache[normalize_label(raw)] = ResolvedLabel(raw, canonical, method, confidence)

        results = []
        for raw in raw_labels:
            cached = self._cache[normalize_label(raw)]
            results.append(ResolvedLabel(raw, cached.field, cached.method, cached.confidence))
            if self.debug:
                print(f"    [resolve] '{raw}' -> {cached.field.value} ({cached.method})")
        return results

    async def _classify(self, labels: List[str]) -> Dict[str, str]:
        """Single classifier call; any failure leaves every label unplaced."""
        if not self.classifier:
            return {}
        try:
            return await asyncio.wait_for(
                self.classifier.classify_labels(labels, vocabulary()),
                timeout=self.classifier_timeout,
            )
        except asyncio.TimeoutError:
            print(f"  Label classifier timed out after {self.classifier_timeout}s")
        except Exception as e:
            print(f"  Label classifier error: {e}")
        return {}
