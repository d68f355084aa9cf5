"""
Compiler error taxonomy.

Fatal errors abort the current compilation request and carry structured
detail (offending key / pattern ids / cycle members) so the caller can
correct the input or ask for clarification. Soft quality problems are not
exceptions: they are reported as warning diagnostics on the Blueprint.
"""

from __future__ import annotations

from typing import Any


# Warning diagnostic codes (non-fatal, attached to a produced Blueprint)
LAYOUT_NON_CONVERGENCE = "LayoutNonConvergenceWarning"
INSUFFICIENT_REDUCTION = "InsufficientReductionWarning"
LOW_CLARITY = "LowClarityWarning"
REDUCTION_MISMATCH = "ReductionMismatchWarning"


class CompilerError(Exception):
    """Base class for fatal compilation errors."""

    code = "CompilerError"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class CycleError(CompilerError):
    """Raised when a graph that must be acyclic contains a cycle."""

    code = "CycleError"

    def __init__(self, cycle: list[str], scope: str = "pattern inheritance"):
        self.cycle = list(cycle)
        self.scope = scope
        path = " -> ".join(self.cycle + self.cycle[:1])
        super().__init__(f"Cycle detected in {scope}: {path}")

    def to_detail(self) -> dict[str, Any]:
        return {**super().to_detail(), "cycle": self.cycle, "scope": self.scope}


class LowConfidenceError(CompilerError):
    """Raised when the best classification candidate is below threshold.

    Not auto-resolved: the caller has to supply clarification or an
    explicit pattern override.
    """

    code = "LowConfidenceError"

    def __init__(self, confidence: float, threshold: float, candidates: list[Any] | None = None):
        self.confidence = confidence
        self.threshold = threshold
        self.candidates = list(candidates or [])
        super().__init__(
            f"Top classification confidence {confidence:.2f} is below threshold {threshold:.2f}"
        )

    def to_detail(self) -> dict[str, Any]:
        return {
            **super().to_detail(),
            "confidence": self.confidence,
            "threshold": self.threshold,
            "candidates": [
                c.model_dump() if hasattr(c, "model_dump") else c for c in self.candidates
            ],
        }


class ConflictError(CompilerError):
    """Raised when equal-priority patterns disagree on a constraint value."""

    code = "ConflictError"

    def __init__(self, key: str, competing: dict[str, Any]):
        self.key = key
        # pattern id -> value it declares for `key`
        self.competing = dict(competing)
        sources = ", ".join(f"{pid}={value!r}" for pid, value in self.competing.items())
        super().__init__(f"Conflicting values for constraint '{key}': {sources}")

    @property
    def pattern_ids(self) -> list[str]:
        return list(self.competing)

    def to_detail(self) -> dict[str, Any]:
        return {
            **super().to_detail(),
            "key": self.key,
            "patterns": self.pattern_ids,
            "values": [self.competing[pid] for pid in self.pattern_ids],
        }


class IncompatibleStackError(CompilerError):
    """Raised when declared technologies do not belong together."""

    code = "IncompatibleStackError"

    def __init__(self, key: str, value: Any, language: str, suggestion: str | None):
        self.key = key
        self.value = value
        self.language = language
        self.suggestion = suggestion
        hint = f"; try {key}={suggestion!r}" if suggestion else ""
        super().__init__(f"{key}={value!r} is not compatible with language={language!r}{hint}")

    def to_detail(self) -> dict[str, Any]:
        return {
            **super().to_detail(),
            "key": self.key,
            "value": self.value,
            "language": self.language,
            "suggestion": self.suggestion,
        }


class UnknownPatternError(CompilerError):
    code = "UnknownPatternError"

    def __init__(self, pattern_id: str, referenced_by: str | None = None):
        self.pattern_id = pattern_id
        self.referenced_by = referenced_by
        where = f" (referenced by '{referenced_by}')" if referenced_by else ""
        super().__init__(f"Unknown pattern '{pattern_id}'{where}")

    def to_detail(self) -> dict[str, Any]:
        return {
            **super().to_detail(),
            "pattern_id": self.pattern_id,
            "referenced_by": self.referenced_by,
        }


class InvalidGraphError(CompilerError):
    """Raised for malformed component graphs (duplicate ids, dangling edges)."""

    code = "InvalidGraphError"

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("Invalid component graph: " + "; ".join(self.problems))

    def to_detail(self) -> dict[str, Any]:
        return {**super().to_detail(), "problems": self.problems}
