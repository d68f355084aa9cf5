"""
Classifier: scores candidate (intent, domain, pattern-set) tuples against signals.

Signals are keyword terms already extracted from the raw text by an external
front-end. Confidence is a weighted sum of three [0,1] terms:

    keyword_overlap   share of signals explained by the candidate's patterns
    intent_alignment  share of the candidate's patterns serving its intent and domain
    stack_coherence   share of pattern pairs the library considers compatible

Ranking is deterministic: confidence descending, then the pattern-id tuple
ascending, then intent and domain ascending.
"""

from __future__ import annotations

import logging
from collections import Counter
from itertools import combinations
from typing import Iterable

from rlcompiler.config import ClassifierConfig
from rlcompiler.errors import LowConfidenceError
from rlcompiler.models.patterns import ANY
from rlcompiler.models.spec import ClassificationCandidate
from rlcompiler.services.pattern_library import PatternLibrary

logger = logging.getLogger(__name__)

DEFAULT_INTENT = "build"
DEFAULT_DOMAIN = "general"


class Classifier:
    def __init__(self, library: PatternLibrary, config: ClassifierConfig | None = None) -> None:
        self.library = library
        self.config = config or ClassifierConfig()

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def classify(
        self,
        signals: Iterable[str],
        *,
        intent: str | None = None,
        domain: str | None = None,
    ) -> list[ClassificationCandidate]:
        """
        Rank candidates and enforce the confidence threshold.

        Raises:
            LowConfidenceError: nothing matched, or the best candidate scored
                below ``confidence_threshold``.
        """
        candidates = self.rank(signals, intent=intent, domain=domain)
        threshold = self.config.confidence_threshold
        top = candidates[0].confidence if candidates else 0.0
        if top < threshold:
            logger.info(
                "Classification below threshold: top=%.3f threshold=%.3f candidates=%d",
                top, threshold, len(candidates),
            )
            raise LowConfidenceError(top, threshold, candidates)
        return candidates

    def rank(
        self,
        signals: Iterable[str],
        *,
        intent: str | None = None,
        domain: str | None = None,
    ) -> list[ClassificationCandidate]:
        """Ranked candidates, best first. Never raises on low confidence."""
        ordered_signals = _dedupe(signals)
        matched = self._match(ordered_signals)
        if not matched:
            return []

        intents = [intent] if intent else self._best_supported(matched, "intents", DEFAULT_INTENT)
        domains = [domain] if domain else self._best_supported(matched, "domains", DEFAULT_DOMAIN)

        candidates: list[ClassificationCandidate] = []
        for pattern_set in self._pattern_sets(matched):
            for cand_intent in intents:
                for cand_domain in domains:
                    candidates.append(
                        self.score(pattern_set, ordered_signals, intent=cand_intent, domain=cand_domain)
                    )

        candidates.sort(key=lambda c: (-c.confidence, tuple(sorted(c.patterns)), c.intent, c.domain))
        return candidates[: self.config.max_candidates]

    def score(
        self,
        patterns: list[str],
        signals: Iterable[str],
        *,
        intent: str,
        domain: str,
    ) -> ClassificationCandidate:
        """Score one (intent, domain, patterns) tuple against the signals."""
        ordered_signals = _dedupe(signals)
        pattern_ids = set(patterns)

        explained = [
            s for s in ordered_signals
            if any(pid in pattern_ids for pid in self.library.match_keywords(s))
        ]
        keyword_overlap = len(explained) / len(ordered_signals) if ordered_signals else 0.0

        if patterns:
            aligned = sum(1 for pid in patterns if self.library.get(pid).serves(intent, domain))
            intent_alignment = aligned / len(patterns)
        else:
            intent_alignment = 0.0

        pairs = list(combinations(sorted(pattern_ids), 2))
        if pairs:
            stack_coherence = sum(1 for a, b in pairs if self.library.compatible(a, b)) / len(pairs)
        else:
            stack_coherence = 1.0 if patterns else 0.0

        w = self.config.weights
        confidence = (
            w.keyword_overlap * keyword_overlap
            + w.intent_alignment * intent_alignment
            + w.stack_coherence * stack_coherence
        )
        return ClassificationCandidate(
            intent=intent,
            domain=domain,
            patterns=list(patterns),
            confidence=round(min(max(confidence, 0.0), 1.0), 6),
            keyword_overlap=keyword_overlap,
            intent_alignment=intent_alignment,
            stack_coherence=stack_coherence,
            matched_signals=explained,
        )

    def infer_context(self, patterns: list[str]) -> tuple[str, str]:
        """Most-supported (intent, domain) for a caller-chosen pattern set."""
        intents = self._best_supported(patterns, "intents", DEFAULT_INTENT)
        domains = self._best_supported(patterns, "domains", DEFAULT_DOMAIN)
        return intents[0], domains[0]

    # -----------------------------------------------------------------------
    # Candidate generation
    # -----------------------------------------------------------------------

    def _match(self, signals: list[str]) -> list[str]:
        """Matched pattern ids in order of first matching signal."""
        matched: list[str] = []
        for signal in signals:
            for pid in self.library.match_keywords(signal):
                if pid not in matched:
                    matched.append(pid)
        return matched

    def _pattern_sets(self, matched: list[str]) -> list[list[str]]:
        """The full matched set plus one variant per incompatible pattern dropped."""
        sets = [matched]
        conflicted: set[str] = set()
        for a, b in combinations(matched, 2):
            if not self.library.compatible(a, b):
                conflicted.update((a, b))
        for pid in sorted(conflicted):
            variant = [p for p in matched if p != pid]
            if variant:
                sets.append(variant)
        return sets

    def _best_supported(self, matched: list[str], attr: str, fallback: str) -> list[str]:
        """Values (intents or domains) explicitly declared by the most matched patterns."""
        counts: Counter[str] = Counter()
        for pid in matched:
            for value in getattr(self.library.get(pid), attr):
                if value != ANY:
                    counts[value] += 1
        if not counts:
            return [fallback]
        best = max(counts.values())
        return sorted(value for value, count in counts.items() if count == best)


def _dedupe(signals: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for signal in signals:
        key = signal.strip().lower()
        if key and key not in seen:
            seen.add(key)
            ordered.append(signal.strip())
    return ordered
