"""
Guard Operators - Predicate combinators for conditional steps

Predicates passed to .conditionally() take (value, context) and return a
bool. This module builds common ones:
- context_flag / value_field: read a dotted path from the context or value
- negate: invert a predicate ('unless' behavior)
- all_of / any_of: combine predicates
"""

from typing import Any, Callable

from .cache import MISSING, resolve_path

Predicate = Callable[[Any, Any], bool]


def _resolve(source: Any, path: str, default: Any) -> Any:
    value = resolve_path(source, path)
    return default if value is MISSING else value


def context_flag(path: str, default: bool = False) -> Predicate:
    """
    True when the context field at `path` is truthy.

    Example:
        .conditionally(context_flag("options.enabled"), enrich)
    """
    def predicate(value: Any, context: Any) -> bool:
        return bool(_resolve(context, path, default))
    return predicate


def context_equals(path: str, expected: Any) -> Predicate:
    def predicate(value: Any, context: Any) -> bool:
        return _resolve(context, path, MISSING) == expected
    return predicate


def value_field(path: str, default: bool = False) -> Predicate:
    """True when the threaded value's field at `path` is truthy."""
    def predicate(value: Any, context: Any) -> bool:
        return bool(_resolve(value, path, default))
    return predicate


def value_equals(path: str, expected: Any) -> Predicate:
    def predicate(value: Any, context: Any) -> bool:
        return _resolve(value, path, MISSING) == expected
    return predicate


def negate(predicate: Predicate) -> Predicate:
    """Invert a predicate."""
    def inverted(value: Any, context: Any) -> bool:
        return not predicate(value, context)
    return inverted


def all_of(*predicates: Predicate) -> Predicate:
    """True when every predicate holds (short-circuits)."""
    def combined(value: Any, context: Any) -> bool:
        return all(p(value, context) for p in predicates)
    return combined


def any_of(*predicates: Predicate) -> Predicate:
    """True when at least one predicate holds (short-circuits)."""
    def combined(value: Any, context: Any) -> bool:
        return any(p(value, context) for p in predicates)
    return combined
