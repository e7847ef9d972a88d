"""
Pipeline builder and built pipelines.

    pipeline = (
        create_pipeline("Normalize")
        .stage("clean", "Strip and lowercase")
            .pipe(strip)
            .pipe(lowercase)
        .end_stage()
        .conditionally(lambda rec, ctx: ctx.enabled, enrich)
        .map(lambda rec, ctx: {**rec, "done": True})
        .build(description="Record normalization", category="text")
    )
    result = pipeline.apply(record, context)

The builder is a value: every method returns a new builder and leaves the
receiver unchanged. Steps added while no stage is open go to an implicit
"default" stage. build() validates the assembly and returns an immutable
Pipeline whose execution plan may fuse adjacent pure, fusible morphs.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import (
    Any, Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union
)

from ..logging_config import configure_logger_for_trace
from ..morph_exceptions import MorphMetadataError, PipelineConfigurationError
from ..services.config_loader import get_settings
from .catpy import PipelineResult, pipeline_err, pipeline_ok
from .morph import Morph, MorphMetadata
from .optimizer import fuse_steps
from .steps import (
    Guard, GuardedStep, MapStep, MorphStep, Step, StepProvenance, record_provenance
)

logger = configure_logger_for_trace(__name__)

I = TypeVar("I")
O = TypeVar("O")

DEFAULT_STAGE_NAME = "default"


# =============================================================================
# Stage & Build Metadata
# =============================================================================

@dataclass(frozen=True)
class Stage:
    """A named, ordered group of steps. Purely organizational.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    name: str
    steps: Tuple[Step, ...] = ()
    description: Optional[str] = None
    implicit: bool = False

    def with_step(self, step: Step) -> "Stage":
        return replace(self, steps=self.steps + (step,))


@dataclass(frozen=True)
class BuildMetadata:
    """Descriptive metadata attached at build(). Has no effect on execution.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    """
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Tuple[str, ...] = ()
    input_type: Optional[str] = None
    output_type: Optional[str] = None

    def __post_init__(self):
        tags = (self.tags,) if isinstance(self.tags, str) else tuple(self.tags or ())
        object.__setattr__(self, "tags", tags)

    @classmethod
    def coerce(cls, value: Union[None, "BuildMetadata", Mapping] = None, **fields: Any) -> "BuildMetadata":
        if value is None:
            merged: Dict[str, Any] = {}
        elif isinstance(value, BuildMetadata):
            merged = dataclasses.asdict(value)
        elif isinstance(value, Mapping):
            merged = dict(value)
        else:
            raise PipelineConfigurationError(
                f"build metadata must be a mapping or BuildMetadata, got {type(value).__name__}"
            )
        merged.update(fields)
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(merged) - known)
        if unknown:
            raise PipelineConfigurationError(f"unknown build metadata fields: {', '.join(unknown)}")
        return cls(**merged)


# =============================================================================
# Builder
# =============================================================================

def _as_morph(target: Any, operation: str) -> Morph:
    if isinstance(target, Morph):
        return target
    if isinstance(target, Pipeline):
        return target.as_morph()
    raise PipelineConfigurationError(
        f"{operation}() expects a Morph or Pipeline, got {type(target).__name__}"
    )


@dataclass(frozen=True)
class PipelineBuilder:
    """
    Immutable, fluent pipeline assembly.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a builder.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    name: str
    stages: Tuple[Stage, ...] = ()
    open_stage: Optional[Stage] = None

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise PipelineConfigurationError(f"pipeline name must be a non-empty string, got {self.name!r}")

    def _append(self, step: Step) -> "PipelineBuilder":
        """Add a step to the open stage, or to the trailing implicit stage."""
        if self.open_stage is not None:
            return replace(self, open_stage=self.open_stage.with_step(step))
        if self.stages and self.stages[-1].implicit:
            return replace(self, stages=self.stages[:-1] + (self.stages[-1].with_step(step),))
        return replace(self, stages=self.stages + (Stage(DEFAULT_STAGE_NAME, (step,), implicit=True),))

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def stage(self, name: str, description: Optional[str] = None) -> "PipelineBuilder":
        """Open a named stage. Stages do not nest."""
        if self.open_stage is not None:
            raise PipelineConfigurationError(
                f"cannot open stage '{name}': stage '{self.open_stage.name}' is still open"
            )
        if not isinstance(name, str) or not name.strip():
            raise PipelineConfigurationError(f"stage name must be a non-empty string, got {name!r}")
        return replace(self, open_stage=Stage(name, (), description))

    def end_stage(self) -> "PipelineBuilder":
        """Close the open stage."""
        if self.open_stage is None:
            raise PipelineConfigurationError("end_stage() called with no open stage")
        return replace(self, stages=self.stages + (self.open_stage,), open_stage=None)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def pipe(self, morph: Union[Morph, "Pipeline"]) -> "PipelineBuilder":
        """Append a morph (or a built pipeline, nested as a morph)."""
        return self._append(MorphStep(_as_morph(morph, "pipe")))

    def conditionally(self, predicate: Callable[[Any, Any], bool],
                      morph: Union[Morph, "Pipeline"]) -> "PipelineBuilder":
        """Append a morph that runs only when predicate(value, context) is true."""
        guard = Guard(predicate)
        return self._append(GuardedStep(guard, MorphStep(_as_morph(morph, "conditionally"))))

    def map(self, fn: Callable[[Any, Any], Any]) -> "PipelineBuilder":
        """Append an unnamed function (value, context) -> value."""
        return self._append(MapStep(fn))

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    def build(self, metadata: Union[None, BuildMetadata, Mapping] = None, *,
              fuse: Optional[bool] = None, **fields: Any) -> "Pipeline":
        """
        Validate and freeze the assembly.

        Args:
            metadata: BuildMetadata or mapping (description, category, tags,
                input_type, output_type)
            fuse: Override the configured fusion default
            **fields: Individual build metadata fields

        Returns:
            Pipeline

        Raises:
            PipelineConfigurationError: open stage, no steps, mixed sync/async
                steps, or duplicate memoizable names under strict_names
            MorphMetadataError: a morph violates memoizable => pure
        """
        if self.open_stage is not None:
            raise PipelineConfigurationError(
                f"pipeline '{self.name}': stage '{self.open_stage.name}' is still open; call end_stage()"
            )
        steps = [step for stage in self.stages for step in stage.steps]
        if not steps:
            raise PipelineConfigurationError(f"pipeline '{self.name}' has no steps")

        self._check_morphs(steps)
        self._check_async(steps)

        settings = get_settings()
        if fuse is None:
            fuse = settings.fusion_enabled
        pipeline = Pipeline(self.name, self.stages, BuildMetadata.coerce(metadata, **fields), fuse=fuse)
        logger.debug(
            f"Built pipeline '{self.name}': {len(self.stages)} stages, {len(steps)} steps, "
            f"{len(pipeline.plan)} planned, cost {pipeline.estimated_cost:g}"
        )
        return pipeline

    def _check_morphs(self, steps: List[Step]) -> None:
        memoizable_by_name: Dict[str, List[Morph]] = {}
        for step in steps:
            for morph in step.morphs():
                m = morph.metadata
                if m.memoizable and not m.pure:
                    raise MorphMetadataError(
                        f"pipeline '{self.name}': morph '{morph.name}' is memoizable but not pure"
                    )
                if m.memoizable:
                    seen = memoizable_by_name.setdefault(morph.name, [])
                    if not any(other is morph for other in seen):
                        seen.append(morph)

        for name, morphs in memoizable_by_name.items():
            if len(morphs) < 2:
                continue
            message = (
                f"pipeline '{self.name}': {len(morphs)} distinct memoizable morphs share the name '{name}'"
            )
            if get_settings().strict_names:
                raise PipelineConfigurationError(message)
            logger.warning(message)

    def _check_async(self, steps: List[Step]) -> None:
        async_steps = [s.label for s in steps if s.is_async]
        if async_steps and len(async_steps) != len(steps):
            raise PipelineConfigurationError(
                f"pipeline '{self.name}' mixes async and sync steps (async: {', '.join(async_steps)})"
            )


def create_pipeline(name: str) -> PipelineBuilder:
    """Start assembling a pipeline."""
    return PipelineBuilder(name)


# =============================================================================
# Pipeline
# =============================================================================

class Pipeline(Generic[I, O]):
    """
    A built, immutable pipeline.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a pipeline.
    ::: This is-in-process Main-Process.
    ::: This is stateless.

    stages holds the declared steps; plan holds what actually runs (fused
    where fusion applied). Both produce the same output.
    """

    def __init__(self, name: str, stages: Tuple[Stage, ...],
                 build_metadata: Optional[BuildMetadata] = None, *, fuse: bool = True):
        self._name = name
        self._stages = tuple(stages)
        self._build_metadata = build_metadata or BuildMetadata()
        self._fused = fuse
        self._plan: Tuple[Tuple[Stage, Tuple[Step, ...]], ...] = tuple(
            (stage, fuse_steps(stage.steps, stage.name) if fuse else stage.steps)
            for stage in self._stages
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def stages(self) -> Tuple[Stage, ...]:
        return self._stages

    @property
    def build_metadata(self) -> BuildMetadata:
        return self._build_metadata

    @property
    def steps(self) -> Tuple[Step, ...]:
        """Declared steps in stage order."""
        return tuple(step for stage in self._stages for step in stage.steps)

    @property
    def plan(self) -> Tuple[Step, ...]:
        """Execution-plan steps in stage order."""
        return tuple(step for _, steps in self._plan for step in steps)

    @property
    def fused(self) -> bool:
        return self._fused

    @property
    def is_async(self) -> bool:
        return any(step.is_async for step in self.steps)

    @property
    def estimated_cost(self) -> float:
        return sum(step.cost for step in self.steps)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _iter_plan(self) -> Iterator[Tuple[Stage, int, Step]]:
        for stage, steps in self._plan:
            for index, step in enumerate(steps):
                yield stage, index, step

    def _annotate(self, exc: BaseException, stage: Stage, index: int, step: Step) -> None:
        record = StepProvenance(self._name, stage.name, index, step.label)
        record_provenance(exc, record)
        logger.debug(f"Step failed at {record}: {type(exc).__name__}: {exc}")

    def apply(self, input: I, context: Any = None) -> O:
        """
        Thread input through every step, left to right.

        The first raising step aborts the run; its exception is re-raised
        unchanged apart from the attached provenance.
        """
        if self.is_async:
            raise PipelineConfigurationError(f"pipeline '{self._name}' is async; use apply_async()")
        value: Any = input
        for stage, index, step in self._iter_plan():
            try:
                value = step.execute(value, context)
            except Exception as exc:
                self._annotate(exc, stage, index, step)
                raise
        return value

    def run(self, input: I, context: Any = None) -> O:
        """Alias of apply()."""
        return self.apply(input, context)

    def __call__(self, input: I, context: Any = None) -> O:
        return self.apply(input, context)

    async def apply_async(self, input: I, context: Any = None) -> O:
        value: Any = input
        for stage, index, step in self._iter_plan():
            try:
                value = await step.execute_async(value, context)
            except Exception as exc:
                self._annotate(exc, stage, index, step)
                raise
        return value

    def _failure(self, exc: Exception) -> PipelineResult[Any]:
        records = [r for r in getattr(exc, "morph_provenance", []) if r.pipeline == self._name]
        if records:
            where = records[-1]
            return pipeline_err(where.step, "step failed", exc, where.stage, self._name)
        return pipeline_err(self._name, "pipeline failed", exc, None, self._name)

    def try_run(self, input: I, context: Any = None) -> PipelineResult[O]:
        """Run without raising: Ok(output) or Err(PipelineError)."""
        try:
            return pipeline_ok(self.apply(input, context))
        except Exception as exc:
            return self._failure(exc)

    async def try_run_async(self, input: I, context: Any = None) -> PipelineResult[O]:
        try:
            return pipeline_ok(await self.apply_async(input, context))
        except Exception as exc:
            return self._failure(exc)

    # -------------------------------------------------------------------------
    # Derived pipelines
    # -------------------------------------------------------------------------

    def as_morph(self, name: Optional[str] = None) -> Morph[I, O]:
        """Wrap this pipeline as a morph so it can be piped into another pipeline."""
        metadata = MorphMetadata(
            pure=all(step.pure for step in self.steps),
            fusible=False,
            cost=self.estimated_cost,
            memoizable=False,
            description=self._build_metadata.description or f"Pipeline: {self._name}",
        )
        if self.is_async:
            async def run_async(input: Any, context: Any = None) -> Any:
                return await self.apply_async(input, context)
            return Morph(name or self._name, run_async, metadata)
        return Morph(name or self._name, self.apply, metadata)

    def optimize(self) -> "Pipeline[I, O]":
        """A copy named '<name>-optimized' with fusion applied."""
        return Pipeline(f"{self._name}-optimized", self._stages, self._build_metadata, fuse=True)

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def describe(self) -> str:
        """Human-readable listing of stages, steps and costs."""
        lines = [f"Pipeline: {self._name}"]
        if self._build_metadata.description:
            lines.append(f"  {self._build_metadata.description}")
        index = 0
        for stage in self._stages:
            indent = "  "
            if not stage.implicit:
                header = f"  Stage: {stage.name}"
                if stage.description:
                    header += f" - {stage.description}"
                lines.append(header)
                indent = "    "
            for step in stage.steps:
                lines.append(f"{indent}{index}. {step.describe()}")
                index += 1
        fused = [step for step in self.plan if step not in self.steps]
        for step in fused:
            lines.append(f"  {step.describe()}")
        lines.append(f"Total cost: {self.estimated_cost:g}")
        return "\n".join(lines) + "\n"

    def __repr__(self) -> str:
        return f"Pipeline({self._name!r}, stages={len(self._stages)}, steps={len(self.steps)})"
