"""
Build-time fusion of adjacent pure, fusible morph steps.

Fusion operates on one stage at a time and only on bare MorphSteps:
guarded steps, map steps and impure or non-fusible morphs end a run.
The declared steps are never changed; fusion produces an execution plan.
"""

from typing import List, Sequence, Tuple

from ..logging_config import configure_logger_for_trace
from .steps import FusedStep, MorphStep, Step

logger = configure_logger_for_trace(__name__)


def is_fusible(step: Step) -> bool:
    """A step may join a fused run only if it is a bare pure, fusible morph."""
    return isinstance(step, MorphStep) and step.morph.pure and step.morph.fusible


def fuse_steps(steps: Sequence[Step], stage_name: str = "") -> Tuple[Step, ...]:
    """
    Replace each run of two or more fusible steps with one FusedStep.

    Args:
        steps: Declared steps of a single stage
        stage_name: Used for debug logging only

    Returns:
        Execution-plan steps, same behavior as the input
    """
    plan: List[Step] = []
    run: List[MorphStep] = []

    def flush() -> None:
        if len(run) >= 2:
            fused = FusedStep(tuple(s.morph for s in run))
            logger.debug(f"Fused {len(run)} steps in stage '{stage_name}': {fused.label}")
            plan.append(fused)
        else:
            plan.extend(run)
        run.clear()

    for step in steps:
        if is_fusible(step):
            run.append(step)
        else:
            flush()
            plan.append(step)
    flush()

    return tuple(plan)
