"""
catpy.py - Result types for non-raising pipeline runs.

Pipeline.apply raises; Pipeline.try_run returns one of these instead so
callers can branch on success without a try block:
- Result (Ok/Err): success value or a PipelineError describing the failure
- PipelineError: step/stage provenance plus the original exception
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Optional,
    TypeVar,
)

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

class Result(ABC, Generic[T, E]):
    """
    Tagged union for success or failure with an error value.
    - Ok(value)
    - Err(error)

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """

    @classmethod
    def pure(cls, x: U) -> "Result[U, E]":
        return Ok(x)

    def is_ok(self) -> bool:
        return isinstance(self, Ok)

    def is_err(self) -> bool:
        return isinstance(self, Err)

    def unwrap(self) -> T:
        """Get the value or raise if Err.

        An Err carrying a PipelineError re-raises the original exception.
        """
        if isinstance(self, Ok):
            return self.value
        error = self.error  # type: ignore[attr-defined]
        if isinstance(error, PipelineError) and error.cause is not None:
            raise error.cause
        raise ValueError(f"Cannot unwrap Err: {self}")

    def unwrap_or(self, default: T) -> T:
        """Get the value or return default if Err."""
        if isinstance(self, Ok):
            return self.value
        return default

    def fmap(self, f: Callable[[T], U]) -> "Result[U, E]":
        if isinstance(self, Ok):
            return Ok(f(self.value))
        return self  # type: ignore[return-value]

    def bind(self, f: Callable[[T], "Result[U, E]"]) -> "Result[U, E]":
        if isinstance(self, Ok):
            return f(self.value)
        return self  # type: ignore[return-value]

    def map_err(self, f: Callable[[E], E]) -> "Result[T, E]":
        """Map a function over the error value."""
        if isinstance(self, Err):
            return Err(f(self.error))
        return self


@dataclass(frozen=True)
class Ok(Result[T, E]):
    """Represents a successful result.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Result[Any, E]):
    """Represents a failed result with error information.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    error: E

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# ---------------------------------------------------------------------------
# Pipeline Error Type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineError:
    """Error that occurred during pipeline execution.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    """
    step: str
    message: str
    cause: Optional[BaseException] = None
    stage: Optional[str] = None
    pipeline: Optional[str] = None

    @property
    def kind(self) -> str:
        """Class name of the underlying exception, or 'error'."""
        return type(self.cause).__name__ if self.cause is not None else "error"

    def __str__(self) -> str:
        where = self.step if self.stage is None else f"{self.stage}/{self.step}"
        if self.cause is not None:
            return f"[{where}] {self.message}: {self.cause}"
        return f"[{where}] {self.message}"


# Type alias for pipeline results
PipelineResult = Result[T, PipelineError]


def pipeline_ok(value: T) -> PipelineResult[T]:
    """Create a successful pipeline result."""
    return Ok(value)


def pipeline_err(step: str, message: str, cause: Optional[BaseException] = None,
                 stage: Optional[str] = None, pipeline: Optional[str] = None) -> PipelineResult[Any]:
    """Create a failed pipeline result."""
    return Err(PipelineError(step, message, cause, stage, pipeline))
