"""
Tagged contexts.

The engine treats the context as opaque. Morphs that behave differently per
mode should match on an explicit `kind` and pass the value through for any
kind they do not handle:

    ctx = make_context("edit", enabled=True)
    by_mode = kind_dispatch("ByMode", {"edit": edit_morph, "view": view_morph})

    pipeline.apply(record, ctx)
"""

from dataclasses import dataclass, field, replace
from collections.abc import Mapping
from typing import Any, Dict, Mapping as MappingType, Optional

from ..morph_exceptions import PipelineConfigurationError
from .morph import Morph, MorphMetadata


@dataclass(frozen=True)
class TaggedContext:
    """Execution context with a `kind` discriminant.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a context.
    ::: This is-in-process Main-Process.
    ::: This is stateless.

    Fields in `data` are readable as attributes (ctx.enabled) or by key.
    """
    kind: str
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.kind, str) or not self.kind:
            raise PipelineConfigurationError(f"context kind must be a non-empty string, got {self.kind!r}")

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or name == "data":
            raise AttributeError(name)
        data = self.__dict__.get("data", {})
        if name in data:
            return data[name]
        raise AttributeError(f"{type(self).__name__} of kind '{self.kind}' has no field '{name}'")

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def with_data(self, **kwargs) -> "TaggedContext":
        """Create a new context with additional fields."""
        return replace(self, data={**self.data, **kwargs})

    def with_kind(self, kind: str) -> "TaggedContext":
        return replace(self, kind=kind)


def make_context(kind: str, **data: Any) -> TaggedContext:
    return TaggedContext(kind, dict(data))


def context_kind(context: Any) -> Optional[str]:
    """The `kind` of a context: attribute or mapping key, else None."""
    if context is None:
        return None
    if isinstance(context, Mapping):
        kind = context.get("kind")
    else:
        kind = getattr(context, "kind", None)
    return kind if isinstance(kind, str) else None


def is_kind(context: Any, *kinds: str) -> bool:
    return context_kind(context) in kinds


def when_kind(*kinds: str):
    """Guard predicate for .conditionally(): true when the context kind matches."""
    def predicate(value: Any, context: Any) -> bool:
        return is_kind(context, *kinds)
    return predicate


def kind_dispatch(name: str, handlers: MappingType[str, Morph],
                  default: Optional[Morph] = None) -> Morph:
    """
    Route on context kind.

    Args:
        name: Name of the resulting morph
        handlers: kind -> morph
        default: Morph for unmatched kinds; None means identity

    Returns:
        Morph whose metadata is the most conservative over all handlers;
        never memoizable, since the routing depends on the context kind
    """
    if not handlers:
        raise PipelineConfigurationError(f"kind_dispatch '{name}' needs at least one handler")
    routes = dict(handlers)
    candidates = list(routes.values()) + ([default] if default is not None else [])
    for morph in candidates:
        if not isinstance(morph, Morph):
            raise PipelineConfigurationError(
                f"kind_dispatch '{name}' handlers must be Morphs, got {type(morph).__name__}"
            )
        if morph.is_async:
            raise PipelineConfigurationError(f"kind_dispatch '{name}' does not accept async morph '{morph.name}'")

    def dispatch(value: Any, context: Any = None) -> Any:
        morph = routes.get(context_kind(context), default)
        if morph is None:
            return value
        return morph.apply(value, context)

    return Morph(
        name,
        dispatch,
        MorphMetadata(
            pure=all(m.pure for m in candidates),
            fusible=all(m.fusible for m in candidates),
            cost=max(m.cost for m in candidates),
            memoizable=False,
            description=f"Dispatch on context kind: {', '.join(sorted(routes))}",
        ),
    )
