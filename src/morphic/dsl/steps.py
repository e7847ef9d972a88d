"""
Pipeline steps.

A step is one element of a pipeline stage:

- MorphStep:   invoke a morph
- GuardedStep: invoke the inner step only when its Guard holds
- MapStep:     an unnamed function (value, context) -> value
- FusedStep:   several adjacent pure, fusible morphs run as one step
               (produced by the optimizer, never by the builder)

Every step threads a value: execute(value, context) -> value. Errors are
raised, never returned.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from ..morph_exceptions import PipelineConfigurationError
from .morph import Morph, is_async_callable

# Conditional steps cost less: they may not run
GUARD_COST_FACTOR = 0.8
MAP_STEP_COST = 1


# =============================================================================
# Provenance
# =============================================================================

@dataclass(frozen=True)
class StepProvenance:
    """Where a step failure happened.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    """
    pipeline: Optional[str]
    stage: Optional[str]
    index: int
    step: str

    def __str__(self) -> str:
        parts = [p for p in (self.pipeline, self.stage) if p]
        parts.append(f"#{self.index} {self.step}")
        return " / ".join(parts)


def record_provenance(exc: BaseException, record: StepProvenance) -> None:
    """Append a provenance record to an exception (innermost first)."""
    chain: Optional[List[StepProvenance]] = getattr(exc, "morph_provenance", None)
    if chain is None:
        chain = []
        exc.morph_provenance = chain
    chain.append(record)
    exc.add_note(f"in {record}")


# =============================================================================
# Guard
# =============================================================================

@dataclass(frozen=True)
class Guard:
    """
    A predicate over (value, context), evaluated on every run.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a guard.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    predicate: Callable[[Any, Any], Any]
    description: Optional[str] = None

    def __post_init__(self):
        if not callable(self.predicate):
            raise PipelineConfigurationError(
                f"guard predicate must be callable, got {type(self.predicate).__name__}"
            )

    @property
    def is_async(self) -> bool:
        return is_async_callable(self.predicate)

    def test(self, value: Any, context: Any = None) -> bool:
        return bool(self.predicate(value, context))

    async def test_async(self, value: Any, context: Any = None) -> bool:
        result = self.predicate(value, context)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)


# =============================================================================
# Steps
# =============================================================================

class Step(ABC):
    """
    One element of a pipeline stage.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """

    @property
    @abstractmethod
    def label(self) -> str:
        """Name used in provenance and debug output."""

    @property
    @abstractmethod
    def cost(self) -> float:
        """Estimated cost contribution."""

    @property
    def pure(self) -> bool:
        return False

    @property
    def is_async(self) -> bool:
        return False

    def morphs(self) -> Tuple[Morph, ...]:
        """Morphs this step invokes."""
        return ()

    @abstractmethod
    def execute(self, value: Any, context: Any = None) -> Any:
        """Transform the threaded value."""

    async def execute_async(self, value: Any, context: Any = None) -> Any:
        return self.execute(value, context)

    def describe(self) -> str:
        return f"{self.label} (cost: {self.cost:g})"


@dataclass(frozen=True)
class MorphStep(Step):
    """Invoke a single morph.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    morph: Morph

    @property
    def label(self) -> str:
        return self.morph.name

    @property
    def cost(self) -> float:
        return self.morph.cost

    @property
    def pure(self) -> bool:
        return self.morph.pure

    @property
    def is_async(self) -> bool:
        return self.morph.is_async

    def morphs(self) -> Tuple[Morph, ...]:
        return (self.morph,)

    def execute(self, value: Any, context: Any = None) -> Any:
        return self.morph.apply(value, context)

    async def execute_async(self, value: Any, context: Any = None) -> Any:
        return await self.morph.apply_async(value, context)

    def describe(self) -> str:
        return f"Morph: {self.morph.name} (cost: {self.cost:g})"


@dataclass(frozen=True)
class GuardedStep(Step):
    """Run the inner step only when the guard holds; otherwise pass the value through.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    guard: Guard
    step: Step

    @property
    def label(self) -> str:
        return self.step.label

    @property
    def cost(self) -> float:
        return self.step.cost * GUARD_COST_FACTOR

    @property
    def pure(self) -> bool:
        return self.step.pure

    @property
    def is_async(self) -> bool:
        return self.step.is_async or self.guard.is_async

    def morphs(self) -> Tuple[Morph, ...]:
        return self.step.morphs()

    def execute(self, value: Any, context: Any = None) -> Any:
        if not self.guard.test(value, context):
            return value
        return self.step.execute(value, context)

    async def execute_async(self, value: Any, context: Any = None) -> Any:
        if not await self.guard.test_async(value, context):
            return value
        return await self.step.execute_async(value, context)

    def describe(self) -> str:
        return f"Conditional: {self.step.label} (cost: {self.cost:g})"


@dataclass(frozen=True)
class MapStep(Step):
    """Apply an unnamed function. Never fused or memoized.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    fn: Callable[[Any, Any], Any]

    def __post_init__(self):
        if not callable(self.fn):
            raise PipelineConfigurationError(
                f"map function must be callable, got {type(self.fn).__name__}"
            )

    @property
    def label(self) -> str:
        return "map"

    @property
    def cost(self) -> float:
        return MAP_STEP_COST

    @property
    def is_async(self) -> bool:
        return is_async_callable(self.fn)

    def execute(self, value: Any, context: Any = None) -> Any:
        if self.is_async:
            raise PipelineConfigurationError("map function is async; use apply_async()")
        return self.fn(value, context)

    async def execute_async(self, value: Any, context: Any = None) -> Any:
        result = self.fn(value, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    def describe(self) -> str:
        return f"Map function (cost: {self.cost:g})"


@dataclass(frozen=True)
class FusedStep(Step):
    """Adjacent pure, fusible morphs executed as a single step.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is-in-process Main-Process.
    ::: This is stateless.

    Each member still goes through Morph.apply, so memoization of a
    member is unaffected by fusion. A member failure is recorded in the
    exception's provenance before the pipeline adds its own record.
    """
    parts: Tuple[Morph, ...]

    @property
    def label(self) -> str:
        return "➝".join(m.name for m in self.parts)

    @property
    def cost(self) -> float:
        return sum(m.cost for m in self.parts)

    @property
    def pure(self) -> bool:
        return all(m.pure for m in self.parts)

    @property
    def is_async(self) -> bool:
        return any(m.is_async for m in self.parts)

    def morphs(self) -> Tuple[Morph, ...]:
        return self.parts

    def execute(self, value: Any, context: Any = None) -> Any:
        for index, morph in enumerate(self.parts):
            try:
                value = morph.apply(value, context)
            except Exception as exc:
                record_provenance(exc, StepProvenance(None, None, index, morph.name))
                raise
        return value

    async def execute_async(self, value: Any, context: Any = None) -> Any:
        for index, morph in enumerate(self.parts):
            try:
                value = await morph.apply_async(value, context)
            except Exception as exc:
                record_provenance(exc, StepProvenance(None, None, index, morph.name))
                raise
        return value

    def describe(self) -> str:
        return f"Fused: {self.label} (cost: {self.cost:g})"
