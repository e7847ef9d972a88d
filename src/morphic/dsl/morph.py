"""
Morph - the atomic, named unit of transformation.

A Morph binds a transform function (input, context) -> output to a name and
optimization metadata:

- pure:        same (input, relevant context) always yields an equal output
- fusible:     may be composed with adjacent fusible steps at build time
- cost:        relative weight for diagnostics/planning, never enforced
- memoizable:  output may be cached by input/context fingerprint (requires pure)

Morphs know nothing about pipelines. The only mutable state a Morph owns
is its injected MemoCache.
"""

from __future__ import annotations

import dataclasses
import inspect
import math
from dataclasses import dataclass
from numbers import Real
from typing import (
    Any, Awaitable, Callable, Dict, Generic, Mapping, Optional,
    Sequence, Tuple, TypeVar, Union
)

from ..logging_config import configure_logger_for_trace
from ..morph_exceptions import (
    MorphMetadataError, PipelineConfigurationError, UnfingerprintableError
)
from ..services.config_loader import get_settings
from .cache import CacheKey, MemoCache, context_fingerprint, fingerprint

logger = configure_logger_for_trace(__name__)

I = TypeVar("I")
O = TypeVar("O")
V = TypeVar("V")

Transform = Callable[[Any, Any], Any]


def is_async_callable(fn: Any) -> bool:
    """True for coroutine functions and objects with an async __call__."""
    if fn is None:
        return False
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


# =============================================================================
# Metadata
# =============================================================================

@dataclass(frozen=True)
class MorphMetadata:
    """Optimization metadata declared by a morph.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    pure: bool = True
    fusible: bool = False
    cost: float = 1
    memoizable: bool = False
    description: Optional[str] = None
    # Dotted context paths the morph reads; None means "the whole context"
    context_keys: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        for flag in ("pure", "fusible", "memoizable"):
            if not isinstance(getattr(self, flag), bool):
                raise MorphMetadataError(f"'{flag}' must be a bool, got {getattr(self, flag)!r}")
        if (isinstance(self.cost, bool) or not isinstance(self.cost, Real)
                or math.isnan(self.cost) or self.cost < 0):
            raise MorphMetadataError(f"'cost' must be a non-negative number, got {self.cost!r}")
        if self.memoizable and not self.pure:
            raise MorphMetadataError(
                "memoizable morphs must be pure: caching an impure morph would replay stale output"
            )
        if self.context_keys is not None:
            if isinstance(self.context_keys, str):
                keys: Tuple[str, ...] = (self.context_keys,)
            else:
                keys = tuple(self.context_keys)
            if not all(isinstance(k, str) and k for k in keys):
                raise MorphMetadataError(f"'context_keys' must be non-empty strings, got {keys!r}")
            object.__setattr__(self, "context_keys", keys)

    @classmethod
    def coerce(cls, value: Union[None, "MorphMetadata", Mapping[str, Any]] = None,
               **overrides: Any) -> "MorphMetadata":
        """Build metadata from None, an instance, or a mapping, plus keyword overrides."""
        if value is None:
            fields: Dict[str, Any] = {}
        elif isinstance(value, MorphMetadata):
            fields = dataclasses.asdict(value)
        elif isinstance(value, Mapping):
            fields = dict(value)
        else:
            raise MorphMetadataError(f"metadata must be a mapping or MorphMetadata, got {type(value).__name__}")
        fields.update(overrides)

        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(fields) - known)
        if unknown:
            raise MorphMetadataError(f"unknown metadata fields: {', '.join(unknown)}")
        return cls(**fields)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


# =============================================================================
# Morph
# =============================================================================

class Morph(Generic[I, O]):
    """
    A named, metadata-tagged transformation.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a morph.
    ::: This is-in-process Main-Process.
    ::: This is stateless.

    Call with apply(input, context) (aliases: transform, __call__). When the
    morph is pure and memoizable, apply consults the injected cache before
    invoking the transform function.
    """

    def __init__(
        self,
        name: str,
        fn: Transform,
        metadata: Union[None, MorphMetadata, Mapping[str, Any]] = None,
        cache: Optional[MemoCache] = None,
    ):
        if not isinstance(name, str) or not name.strip():
            raise PipelineConfigurationError(f"morph name must be a non-empty string, got {name!r}")
        if not callable(fn):
            raise PipelineConfigurationError(f"morph '{name}' transform must be callable")

        self._name = name
        self._fn = fn
        self._metadata = MorphMetadata.coerce(metadata)
        self._is_async = is_async_callable(fn)

        if self._metadata.memoizable:
            self._cache: Optional[MemoCache] = cache if cache is not None else MemoCache(
                max_entries=get_settings().cache_max_entries, name=name
            )
        else:
            if cache is not None:
                logger.debug(f"Morph '{name}' is not memoizable; ignoring injected cache")
            self._cache = None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def metadata(self) -> MorphMetadata:
        return self._metadata

    @property
    def fn(self) -> Transform:
        """The raw transform function, bypassing memoization."""
        return self._fn

    @property
    def cache(self) -> Optional[MemoCache]:
        return self._cache

    @property
    def is_async(self) -> bool:
        return self._is_async

    @property
    def pure(self) -> bool:
        return self._metadata.pure

    @property
    def fusible(self) -> bool:
        return self._metadata.fusible

    @property
    def cost(self) -> float:
        return self._metadata.cost

    @property
    def memoizable(self) -> bool:
        return self._metadata.memoizable

    # -------------------------------------------------------------------------
    # Invocation
    # -------------------------------------------------------------------------

    def _memo_active(self) -> bool:
        return (
            self._cache is not None
            and self._metadata.pure
            and self._metadata.memoizable
            and get_settings().memoization_enabled
        )

    def cache_key(self, input: Any, context: Any = None) -> CacheKey:
        """
        Memoization key for (input, context) under this morph's name.

        Raises:
            UnfingerprintableError: input or context has no stable fingerprint
        """
        return CacheKey(
            self._name,
            fingerprint(input),
            context_fingerprint(context, self._metadata.context_keys),
        )

    def _memo_key(self, input: Any, context: Any) -> Optional[CacheKey]:
        """Cache key when memoization applies to this call, else None."""
        if not self._memo_active():
            return None
        try:
            return self.cache_key(input, context)
        except UnfingerprintableError as e:
            logger.debug(f"Morph '{self._name}' bypassing cache: {e}")
            return None

    def apply(self, input: I, context: Any = None) -> O:
        """Run the transform, consulting the cache for pure memoizable morphs."""
        if self._is_async:
            raise PipelineConfigurationError(
                f"morph '{self._name}' is async; use apply_async()"
            )
        key = self._memo_key(input, context)
        if key is None:
            return self._fn(input, context)

        found, cached = self._cache.lookup(key)
        if found:
            logger.debug(f"Cache hit for morph '{self._name}'")
            return cached
        logger.debug(f"Cache miss for morph '{self._name}'")
        result = self._fn(input, context)
        self._cache.store(key, result)
        return result

    def transform(self, input: I, context: Any = None) -> O:
        """Alias of apply()."""
        return self.apply(input, context)

    def __call__(self, input: I, context: Any = None) -> O:
        return self.apply(input, context)

    async def apply_async(self, input: I, context: Any = None) -> O:
        """Async invocation; works for both sync and coroutine transforms."""
        key = self._memo_key(input, context)
        if key is not None:
            found, cached = self._cache.lookup(key)
            if found:
                logger.debug(f"Cache hit for morph '{self._name}'")
                return cached
            logger.debug(f"Cache miss for morph '{self._name}'")

        result = self._fn(input, context)
        if inspect.isawaitable(result):
            result = await result

        if key is not None:
            self._cache.store(key, result)
        return result

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    def then(self, next_morph: "Morph[O, V]") -> "Morph[I, V]":
        """Compose: self then next_morph."""
        return compose_morphs(self, next_morph)

    def with_cache(self, cache: MemoCache) -> "Morph[I, O]":
        """Same transform and metadata, bound to a different cache."""
        return Morph(self._name, self._fn, self._metadata, cache=cache)

    def __repr__(self) -> str:
        m = self._metadata
        return (
            f"Morph({self._name!r}, pure={m.pure}, fusible={m.fusible}, "
            f"cost={m.cost}, memoizable={m.memoizable})"
        )


def create_morph(
    name: str,
    transform: Transform,
    metadata: Union[None, MorphMetadata, Mapping[str, Any]] = None,
    *,
    cache: Optional[MemoCache] = None,
    **overrides: Any,
) -> Morph:
    """
    Create a morph. Nothing is registered globally.

    Example:
        add_one = create_morph(
            "AddOne",
            lambda rec, ctx: {**rec, "count": rec["count"] + 1},
            fusible=True,
        )

    Args:
        name: Identifier used for diagnostics and memoization keys
        transform: Function (input, context) -> output; must not mutate its arguments
        metadata: MorphMetadata or mapping; defaults pure=True, fusible=False,
            cost=1, memoizable=False
        cache: MemoCache to use when the morph is memoizable
        **overrides: Individual metadata fields

    Returns:
        Morph
    """
    return Morph(name, transform, MorphMetadata.coerce(metadata, **overrides), cache=cache)


def _chain(morphs: Sequence[Morph], post_process: Optional[Callable[[Any, Any], Any]] = None) -> Transform:
    """Build a transform running morphs in order, then the optional post-processor."""
    if any(m.is_async for m in morphs) or is_async_callable(post_process):
        async def run_async(input: Any, context: Any = None) -> Any:
            value = input
            for morph in morphs:
                value = await morph.apply_async(value, context)
            if post_process is not None:
                value = post_process(value, context)
                if inspect.isawaitable(value):
                    value = await value
            return value
        return run_async

    def run(input: Any, context: Any = None) -> Any:
        value = input
        for morph in morphs:
            value = morph.apply(value, context)
        if post_process is not None:
            value = post_process(value, context)
        return value
    return run


def compose_morphs(first: Morph, second: Morph, name: Optional[str] = None) -> Morph:
    """
    Compose two morphs into one.

    Metadata is the conjunction of the flags and the sum of the costs.
    """
    if name is None:
        name = f"{first.name}➝{second.name}"
    pure = first.pure and second.pure
    return Morph(
        name,
        _chain((first, second)),
        MorphMetadata(
            pure=pure,
            fusible=first.fusible and second.fusible,
            cost=first.cost + second.cost,
            memoizable=pure and first.memoizable and second.memoizable,
        ),
    )


class IdentityMorph(Morph[I, I]):
    """
    A morph that returns its input unchanged.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a morph.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """

    def __init__(self, name: str = "IdentityMorph"):
        super().__init__(
            name,
            lambda input, context=None: input,
            MorphMetadata(pure=True, fusible=True, cost=0, memoizable=True),
        )


class ComposedMorph(Morph[I, O]):
    """
    Several morphs applied in sequence, with optional post-processing.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a morph.
    ::: This is-in-process Main-Process.
    ::: This is stateless.

    Derived metadata: pure only when every step is pure and there is no
    post-processor; fusible only without a post-processor; cost is the sum
    of step costs plus 1 for the post-processor. Explicit metadata fields
    override the derived ones.
    """

    def __init__(
        self,
        name: str,
        steps: Sequence[Morph],
        metadata: Union[None, MorphMetadata, Mapping[str, Any]] = None,
        post_process: Optional[Callable[[Any, Any], Union[Any, Awaitable[Any]]]] = None,
        cache: Optional[MemoCache] = None,
    ):
        steps = tuple(steps)
        if not steps:
            raise PipelineConfigurationError(f"ComposedMorph '{name}' needs at least one step")
        for step in steps:
            if not isinstance(step, Morph):
                raise PipelineConfigurationError(
                    f"ComposedMorph '{name}' steps must be Morphs, got {type(step).__name__}"
                )
        if post_process is not None and not callable(post_process):
            raise PipelineConfigurationError(f"ComposedMorph '{name}' post_process must be callable")

        has_post = post_process is not None
        pure = not has_post and all(s.pure for s in steps)
        derived = {
            "pure": pure,
            "fusible": not has_post and all(s.fusible for s in steps),
            "cost": sum(s.cost for s in steps) + (1 if has_post else 0),
            "memoizable": pure and all(s.memoizable for s in steps),
        }
        if isinstance(metadata, MorphMetadata):
            resolved = metadata
        else:
            overrides = dict(metadata or {})
            fields = {**derived, **overrides}
            # An explicit pure=False drops the derived memoizable flag
            if "memoizable" not in overrides:
                fields["memoizable"] = derived["memoizable"] and fields["pure"] is True
            resolved = MorphMetadata.coerce(fields)

        self._steps = steps
        self._post_process = post_process
        super().__init__(name, _chain(steps, post_process), resolved, cache=cache)

    @property
    def steps(self) -> Tuple[Morph, ...]:
        return self._steps

    @property
    def post_process(self) -> Optional[Callable[[Any, Any], Any]]:
        return self._post_process

    @classmethod
    def compose(cls, name: str, morphs: Sequence[Morph],
                metadata: Union[None, MorphMetadata, Mapping[str, Any]] = None,
                post_process: Optional[Callable[[Any, Any], Any]] = None) -> "ComposedMorph":
        """Create a composed morph from a sequence of morphs."""
        return cls(name, morphs, metadata, post_process)
