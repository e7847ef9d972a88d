"""
Morphic DSL - Morphs and staged pipelines

A morph is a named transformation (input, context) -> output tagged with
optimization metadata (pure, fusible, cost, memoizable). Pipelines thread a
value through morphs, guarded morphs and map functions, grouped into
optional named stages.

Optimization:
- Fusion: adjacent pure, fusible morphs in a stage run as one step
- Memoization: pure, memoizable morphs cache outputs by input/context fingerprint

Example:
    add_one = create_morph("AddOne", lambda r, ctx: {**r, "count": r["count"] + 1}, fusible=True)
    add_two = create_morph("AddTwo", lambda r, ctx: {**r, "count": r["count"] + 2}, fusible=True)

    pipeline = (
        create_pipeline("Count")
        .stage("increment")
            .pipe(add_one)
            .pipe(add_two)
        .end_stage()
        .build()
    )
    pipeline.apply({"count": 0})  # {"count": 3}
"""

# Result types for non-raising runs
from .catpy import (
    Result, Ok, Err,
    PipelineError, PipelineResult,
    pipeline_ok, pipeline_err,
)

# Morphs
from .morph import (
    Morph, MorphMetadata,
    create_morph, compose_morphs,
    IdentityMorph, ComposedMorph,
)

# Steps and pipelines
from .steps import (
    Guard, Step, MorphStep, GuardedStep, MapStep, FusedStep, StepProvenance,
)
from .pipeline import (
    Stage, BuildMetadata, PipelineBuilder, Pipeline, create_pipeline,
)

# Optimization
from .optimizer import fuse_steps, is_fusible
from .cache import MemoCache, CacheKey, fingerprint, context_fingerprint

# Contexts and guard predicates
from .contexts import (
    TaggedContext, make_context, context_kind, is_kind, when_kind, kind_dispatch,
)
from .operators import (
    context_flag, context_equals, value_field, value_equals, negate, all_of, any_of,
)

# Registry and decorators
from .registry import MorphRegistry, register_morph, register_pipeline
from .decorators import morphism, meta

__all__ = [
    # Results
    "Result", "Ok", "Err",
    "PipelineError", "PipelineResult",
    "pipeline_ok", "pipeline_err",
    # Morphs
    "Morph", "MorphMetadata",
    "create_morph", "compose_morphs",
    "IdentityMorph", "ComposedMorph",
    # Steps and pipelines
    "Guard", "Step", "MorphStep", "GuardedStep", "MapStep", "FusedStep", "StepProvenance",
    "Stage", "BuildMetadata", "PipelineBuilder", "Pipeline", "create_pipeline",
    # Optimization
    "fuse_steps", "is_fusible",
    "MemoCache", "CacheKey", "fingerprint", "context_fingerprint",
    # Contexts
    "TaggedContext", "make_context", "context_kind", "is_kind", "when_kind", "kind_dispatch",
    # Predicates
    "context_flag", "context_equals", "value_field", "value_equals", "negate", "all_of", "any_of",
    # Registry
    "MorphRegistry", "register_morph", "register_pipeline",
    "morphism", "meta",
]
