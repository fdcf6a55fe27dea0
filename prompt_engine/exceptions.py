"""Exception hierarchy for the prompt engine.

All exceptions inherit from PromptEngineError. Two families matter to callers:

- StructuralError: aborts a whole ``compile`` / ``resolve_slots`` call. Carries every
  violation found in ``violations`` rather than only the first one.
- SlotError: a single slot failed. Recovered locally by the slot's ``errorHandling``
  strategy and never aborts resolution on its own.

Compression errors never escape ``PromptCompiler.compile``; they become issues.
"""

from collections.abc import Mapping, Sequence


class PromptEngineError(Exception):
    """Base exception for all prompt engine errors."""


class StructuralError(PromptEngineError):
    """Raised when a request cannot be processed at all.

    ``violations`` holds one human-readable line per problem found.
    """

    def __init__(self, message: str, violations: Sequence[str] = ()) -> None:
        self.violations: tuple[str, ...] = tuple(violations) or (message,)
        super().__init__(message)


class MissingRequiredValueError(StructuralError):
    """Raised when required slots have no value and no fallback."""

    def __init__(self, slot_ids: Sequence[str], violations: Sequence[str] = ()) -> None:
        self.slot_ids: tuple[str, ...] = tuple(slot_ids)
        names = ", ".join(self.slot_ids)
        super().__init__(f"Missing required value for slot(s): {names}", violations or [f"Slot '{slot_id}' is required but has no value" for slot_id in self.slot_ids])


class CyclicDependencyError(StructuralError):
    """Raised when the slot dependency graph contains a cycle.

    ``cycle`` is the offending path with the first node repeated at the end, e.g. ``("a", "b", "a")``.
    """

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle: tuple[str, ...] = tuple(cycle)
        path = " -> ".join(self.cycle)
        super().__init__(f"Cyclic slot dependency detected: {path}")


class UnknownDependencyError(StructuralError):
    """Raised when slots declare dependencies that are not part of the request."""

    def __init__(self, missing: Mapping[str, Sequence[str]]) -> None:
        self.missing: dict[str, tuple[str, ...]] = {slot_id: tuple(deps) for slot_id, deps in missing.items()}
        violations = [f"Slot '{slot_id}' depends on unknown slot(s): {', '.join(deps)}" for slot_id, deps in self.missing.items()]
        super().__init__(f"Unknown slot dependencies in {len(self.missing)} slot(s)", violations)


class InvalidSlotValuesError(StructuralError):
    """Raised in strict mode when caller-supplied values violate declared validation rules."""


class SlotError(PromptEngineError):
    """Base exception for failures of a single slot."""

    def __init__(self, slot_id: str, message: str) -> None:
        self.slot_id = slot_id
        super().__init__(message)


class ValidationFailedError(SlotError):
    """Raised when a resolved value violates one of the slot's validation rules."""


class DataSourceError(SlotError):
    """Raised when an API, computed or external data source fails (after retries)."""


class UnsupportedDataSourceTypeError(SlotError):
    """Raised when a slot references a data source variant the resolver cannot handle."""


class SlotResolutionError(StructuralError):
    """Raised when one or more slots failed and had no error handling to recover them."""

    def __init__(self, errors: Sequence[PromptEngineError]) -> None:
        self.errors: tuple[PromptEngineError, ...] = tuple(errors)
        super().__init__(f"{len(self.errors)} slot(s) failed to resolve", [str(error) for error in self.errors])


class ExpressionError(PromptEngineError):
    """Raised when a computed-slot expression cannot be parsed or evaluated."""


class CompressionError(PromptEngineError):
    """Raised when text compression fails."""


class UnsupportedAlgorithmError(CompressionError):
    """Raised when a compression strategy names an algorithm that is not implemented."""


__all__ = [
    "CompressionError",
    "CyclicDependencyError",
    "DataSourceError",
    "ExpressionError",
    "InvalidSlotValuesError",
    "MissingRequiredValueError",
    "PromptEngineError",
    "SlotError",
    "SlotResolutionError",
    "StructuralError",
    "UnknownDependencyError",
    "UnsupportedAlgorithmError",
    "UnsupportedDataSourceTypeError",
    "ValidationFailedError",
]
