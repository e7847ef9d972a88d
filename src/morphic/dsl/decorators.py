"""
Morph Decorators

- @morphism: turn a function (input, context) -> output into a Morph
- @meta:  attach registry category/tags, applied BEFORE @morphism
"""

from typing import Any, Callable, Optional, Union

from .cache import MemoCache
from .morph import Morph, MorphMetadata
from .registry import MorphRegistry


def morphism(
    name: Optional[str] = None,
    *,
    cache: Optional[MemoCache] = None,
    register: Union[bool, str] = False,
    **metadata: Any,
) -> Callable[[Callable], Morph]:
    """
    Decorator to define a morph.

    Example:
        @morphism("Strip", fusible=True, memoizable=True, register=True)
        @meta(category="text", tags=["clean"])
        def strip(record, ctx):
            return {**record, "text": record["text"].strip()}

        strip.apply({"text": "  hi "})

    Args:
        name: Morph name; defaults to the function name
        cache: MemoCache for memoizable morphs
        register: True to register under the morph name, or a registry id
        **metadata: MorphMetadata fields (pure, fusible, cost, memoizable,
            description, context_keys)

    Returns:
        Decorator producing a Morph
    """
    def decorator(func: Callable) -> Morph:
        fields = dict(metadata)
        if "description" not in fields and func.__doc__:
            fields["description"] = func.__doc__.strip().split("\n")[0]
        result = Morph(name or func.__name__, func, MorphMetadata.coerce(fields), cache=cache)

        if register:
            registry_meta = getattr(func, "_morphic_meta", {})
            MorphRegistry.register_morph(
                register if isinstance(register, str) else result.name,
                result,
                category=registry_meta.get("category"),
                tags=registry_meta.get("tags"),
            )
        return result

    return decorator


def meta(**kwargs) -> Callable:
    """
    Decorator to add registry metadata to a morph function.

    Must be applied BEFORE @morphism (i.e. listed below it).

    Common keys:
    - category: Registry category
    - tags: List of tags for filtering
    """
    def decorator(func: Callable) -> Callable:
        if not hasattr(func, "_morphic_meta"):
            func._morphic_meta = {}
        func._morphic_meta.update(kwargs)
        return func

    return decorator
