"""Booking orchestration: the step runner and the booking saga."""

from .booking import BookingSaga, SagaMode
from .cards import classify_card
from .steps import StepPolicy, StepResult, StepStatus, run_steps

__all__ = [
    "BookingSaga",
    "SagaMode",
    "StepPolicy",
    "StepResult",
    "StepStatus",
    "classify_card",
    "run_steps",
]
