"""
Constraint resolver: merges defaults, pattern-implied and explicit constraints.

Resolution policy (highest first):

    explicit  >  later-listed pattern tier  >  earlier tier  >  default

Patterns listed in the same tier have equal priority. If they disagree on a
key and nothing of higher priority settles it, the policy has no single
winner and a ConflictError is raised.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence, Union

from rlcompiler.config import ResolverConfig
from rlcompiler.errors import ConflictError, IncompatibleStackError
from rlcompiler.models.pattern_catalog import STACK_COMPATIBILITY
from rlcompiler.models.spec import ConstraintSet, ConstraintValue
from rlcompiler.services.pattern_library import PatternLibrary

logger = logging.getLogger(__name__)

PatternOrder = Sequence[Union[str, Sequence[str]]]


def normalize_tiers(ordered_patterns: PatternOrder) -> list[list[str]]:
    """Turn a mixed sequence of ids and id-groups into a list of tiers."""
    tiers: list[list[str]] = []
    for item in ordered_patterns:
        if isinstance(item, str):
            tiers.append([item])
        else:
            tier = [pid for pid in item]
            if tier:
                tiers.append(tier)
    return tiers


class ConstraintResolver:
    def __init__(
        self,
        library: PatternLibrary,
        config: ResolverConfig | None = None,
        compatibility: Mapping[str, Mapping[str, tuple[str, ...]]] | None = None,
    ) -> None:
        self.library = library
        self.config = config or ResolverConfig()
        self.compatibility = compatibility if compatibility is not None else STACK_COMPATIBILITY

    def merge(
        self,
        explicit: Mapping[str, Any] | None,
        ordered_patterns: PatternOrder,
    ) -> ConstraintSet:
        """
        Fold defaults, each pattern tier in order, then explicit constraints.

        Raises:
            UnknownPatternError: a pattern id is not in the library.
            ConflictError: equal-priority patterns disagree on a key that no
                later tier and no explicit constraint overrides.
        """
        entries: dict[str, ConstraintValue] = {
            key: ConstraintValue(value=value, provenance="default")
            for key, value in self.config.defaults.items()
        }
        # key -> {pattern id: value} for same-tier disagreements not yet overridden
        unresolved: dict[str, dict[str, Any]] = {}

        for tier in normalize_tiers(ordered_patterns):
            declared: dict[str, dict[str, Any]] = {}
            for pid in tier:
                for key, value in self.library.resolve(pid).items():
                    declared.setdefault(key, {})[pid] = value

            for key, by_pattern in declared.items():
                values = _distinct(by_pattern.values())
                if len(values) == 1:
                    entries[key] = ConstraintValue(
                        value=values[0],
                        provenance="pattern",
                        source=next(iter(by_pattern)),
                    )
                    unresolved.pop(key, None)
                else:
                    unresolved[key] = by_pattern
                    entries.pop(key, None)

        for key, value in (explicit or {}).items():
            entries[key] = ConstraintValue(value=value, provenance="explicit")
            unresolved.pop(key, None)

        if unresolved:
            key = sorted(unresolved)[0]
            logger.info("Unresolvable constraint conflict on '%s': %s", key, unresolved[key])
            raise ConflictError(key, unresolved[key])

        return ConstraintSet(entries={key: entries[key] for key in sorted(entries)})

    def validate_coherence(self, constraints: ConstraintSet) -> None:
        """
        Check declared technologies against the static compatibility table.

        Raises:
            IncompatibleStackError: e.g. language=python with framework=express;
                carries the first allowed value for the language as suggestion.
        """
        for key, language, value, allowed in self._checks(constraints):
            if _norm(value) not in {_norm(a) for a in allowed}:
                raise IncompatibleStackError(key, value, language, allowed[0] if allowed else None)

    def coherence_ratio(self, constraints: ConstraintSet) -> float:
        """Share of applicable compatibility checks that pass (1.0 when none apply)."""
        checks = list(self._checks(constraints))
        if not checks:
            return 1.0
        passed = sum(
            1 for _, _, value, allowed in checks
            if _norm(value) in {_norm(a) for a in allowed}
        )
        return passed / len(checks)

    def _checks(self, constraints: ConstraintSet):
        language = constraints.get("language")
        if language is None:
            return
        for key, by_language in self.compatibility.items():
            value = constraints.get(key)
            if value is None:
                continue
            allowed = by_language.get(_norm(language))
            if allowed is None:
                # Unknown language: nothing to check against
                continue
            yield key, language, value, allowed


def _distinct(values) -> list[Any]:
    out: list[Any] = []
    for value in values:
        if value not in out:
            out.append(value)
    return out


def _norm(value: Any) -> str:
    return str(value).strip().lower()
