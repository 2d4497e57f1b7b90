"""Step results and a small sequential step runner.

Each saga step is declared once with its failure policy:

  FATAL     — an error stops the run; no later step executes
  TOLERATE  — an error is logged and recorded, the run continues

The runner never retries.  ``ProviderAuthError`` is fatal regardless of the
step's declared policy.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from shortstay.errors import ProviderAuthError, ShortStayError

log = logging.getLogger("shortstay.saga.steps")

Ctx = TypeVar("Ctx")


class StepPolicy(str, Enum):
    FATAL = "fatal"
    TOLERATE = "tolerate"


class StepStatus(str, Enum):
    OK = "ok"
    FATAL = "fatal"
    TOLERATED = "tolerated"


@dataclass
class StepResult:
    """Outcome of a single step."""

    step: str
    status: StepStatus
    error: Optional[ShortStayError] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.OK

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "step": self.step,
            "status": self.status.value,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }
        if self.error is not None:
            d["error"] = self.error.code
            d["message"] = self.error.message
        return d


@dataclass
class SagaStep(Generic[Ctx]):
    """One state of the saga: an async action and its failure policy."""

    name: str
    action: Callable[[Ctx], Awaitable[None]]
    policy: StepPolicy = StepPolicy.FATAL


@dataclass
class RunOutcome:
    results: list[StepResult] = field(default_factory=list)

    @property
    def failed(self) -> Optional[StepResult]:
        for result in self.results:
            if result.status is StepStatus.FATAL:
                return result
        return None

    @property
    def tolerated(self) -> list[StepResult]:
        return [r for r in self.results if r.status is StepStatus.TOLERATED]

    @property
    def completed_steps(self) -> list[str]:
        return [r.step for r in self.results if r.ok]


async def run_steps(steps: list[SagaStep[Ctx]], ctx: Ctx, run_id: str = "") -> RunOutcome:
    """Execute ``steps`` in order against ``ctx`` until one fails fatally.

    An exception that is not a ``ShortStayError`` is logged with its traceback
    and recorded as an internal error, then classified by the step's policy
    like any other failure.
    """
    outcome = RunOutcome()

    for step in steps:
        started = time.perf_counter()
        try:
            await step.action(ctx)
        except ShortStayError as exc:
            error = exc
        except Exception:
            log.exception("[%s] step %s raised unexpectedly", run_id, step.name)
            error = ShortStayError(f"Unexpected error in {step.name}")
        else:
            elapsed = (time.perf_counter() - started) * 1000
            outcome.results.append(StepResult(step.name, StepStatus.OK, elapsed_ms=elapsed))
            log.info("[%s] step %s ok (%.0f ms)", run_id, step.name, elapsed)
            continue

        elapsed = (time.perf_counter() - started) * 1000
        fatal = step.policy is StepPolicy.FATAL or isinstance(error, ProviderAuthError)
        status = StepStatus.FATAL if fatal else StepStatus.TOLERATED
        outcome.results.append(StepResult(step.name, status, error, elapsed))
        if fatal:
            log.error("[%s] step %s failed: %s", run_id, step.name, error.message)
            return outcome
        log.warning("[%s] step %s failed (tolerated): %s", run_id, step.name, error.message)

    return outcome
