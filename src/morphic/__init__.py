"""
Morphic - composable record-transformation pipelines

Named, metadata-tagged transformation units ("morphs") composed into
ordered, optionally staged, conditionally branching pipelines, with
build-time fusion and memoization of pure morphs.
"""

__version__ = "0.1.0"

from .morph_exceptions import (
    MorphError,
    PipelineConfigurationError,
    MorphMetadataError,
    MorphInputError,
    CacheError,
    UnfingerprintableError,
)
from .dsl import (
    Morph, MorphMetadata, create_morph, compose_morphs, IdentityMorph, ComposedMorph,
    Pipeline, PipelineBuilder, Stage, BuildMetadata, create_pipeline,
    MemoCache, TaggedContext, make_context,
    MorphRegistry, register_morph, register_pipeline,
    Result, Ok, Err, PipelineError,
)
from .services import EngineSettings, get_settings, load_config, reset_settings

__all__ = [
    "__version__",
    "MorphError", "PipelineConfigurationError", "MorphMetadataError", "MorphInputError", "CacheError",
    "UnfingerprintableError",
    "Morph", "MorphMetadata", "create_morph", "compose_morphs", "IdentityMorph", "ComposedMorph",
    "Pipeline", "PipelineBuilder", "Stage", "BuildMetadata", "create_pipeline",
    "MemoCache", "TaggedContext", "make_context",
    "MorphRegistry", "register_morph", "register_pipeline",
    "Result", "Ok", "Err", "PipelineError",
    "EngineSettings", "get_settings", "load_config", "reset_settings",
]
