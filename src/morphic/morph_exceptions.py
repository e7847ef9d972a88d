"""
Morphic Exception Hierarchy

Contains all exception classes raised by the morph/pipeline engine.

Step errors raised inside a running pipeline are never wrapped in these
types; the engine re-raises the original exception with provenance attached.
"""


class MorphError(Exception):
    """
    Base exception for all engine-defined errors.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    pass


class PipelineConfigurationError(MorphError):
    """
    Raised when a pipeline cannot be assembled or built.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is-in-process Main-Process.
    ::: This is stateless.

    Covers unbalanced stages, empty pipelines, invalid step arguments and
    mixed sync/async steps. After a successful build it is raised only
    when a synchronous entry point is called on an async pipeline or morph.
    """
    pass


class MorphMetadataError(PipelineConfigurationError):
    """
    Raised when morph metadata breaks an invariant (e.g. memoizable but impure).

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    pass


class MorphInputError(MorphError, ValueError):
    """
    Raised by a morph transform when given structurally invalid input.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """

    def __init__(self, morph_name: str, message: str):
        super().__init__(f"{morph_name}: {message}")
        self.morph_name = morph_name


class CacheError(MorphError):
    """
    Raised for invalid memoization cache configuration.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    pass


class UnfingerprintableError(CacheError):
    """
    Raised when a value has no stable fingerprint.

    Morph.apply catches it and invokes the transform without the cache.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    pass


__all__ = [
    "MorphError",
    "PipelineConfigurationError",
    "MorphMetadataError",
    "MorphInputError",
    "CacheError",
    "UnfingerprintableError",
]
