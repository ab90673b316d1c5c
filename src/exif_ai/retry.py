"""
Bounded, sequential retries of a provider call until its output is good enough.

The loop is a small state machine::

    ATTEMPTING --(acceptable result)--> ACCEPTED
    ATTEMPTING --(no attempts left)---> EXHAUSTED

Each call is captured as an `Outcome` (a value or the exception it raised), so an
error from one attempt can never escape the loop; it is logged and the next
attempt runs. Attempts never overlap.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Generic, TypeVar

from loguru import logger


T = TypeVar("T")


class AttemptState(StrEnum):
    ATTEMPTING = "attempting"
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a single call: either a value or the error it raised."""

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class AttemptReport(Generic[T]):
    """Final state of a retry run."""

    state: AttemptState = AttemptState.ATTEMPTING
    value: T | None = None
    attempts: int = 0
    errors: list[Exception] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.state is AttemptState.ACCEPTED


async def _capture(call: Callable[[], Awaitable[T]]) -> Outcome[T]:
    try:
        return Outcome(value=await call())
    except Exception as exc:  # noqa: BLE001
        return Outcome(error=exc)


async def run_attempts(
    call: Callable[[], Awaitable[T]],
    is_acceptable: Callable[[T], bool],
    repeat: int = 0,
    *,
    label: str = "provider_call",
) -> AttemptReport[T]:
    """
    Call `call` up to `repeat + 1` times and stop at the first acceptable result.

    Args:
        call: Zero-argument coroutine factory, invoked once per attempt
        is_acceptable: Predicate deciding whether a successful result is good enough
        repeat: Number of retries after the first attempt (0 means a single attempt)
        label: Name used in log events

    Returns:
        AttemptReport in ACCEPTED state with the value, or EXHAUSTED without one.

    """
    if repeat < 0:
        msg = f"repeat must be >= 0, got {repeat}"
        raise ValueError(msg)

    report: AttemptReport[T] = AttemptReport()
    max_attempts = repeat + 1
    while report.state is AttemptState.ATTEMPTING:
        report.attempts += 1
        _t0 = time.perf_counter()
        outcome = await _capture(call)
        elapsed = round(time.perf_counter() - _t0, 3)

        if not outcome.ok:
            report.errors.append(outcome.error)  # type: ignore[arg-type]
            logger.debug(
                f"{label}_failed",
                attempt=report.attempts,
                max_attempts=max_attempts,
                seconds=elapsed,
                error=repr(outcome.error),
            )
        elif is_acceptable(outcome.value):  # type: ignore[arg-type]
            report.value = outcome.value
            report.state = AttemptState.ACCEPTED
            logger.debug(f"{label}_accepted", attempt=report.attempts, seconds=elapsed)
            break
        else:
            logger.debug(
                f"{label}_rejected",
                attempt=report.attempts,
                max_attempts=max_attempts,
                seconds=elapsed,
            )

        if report.attempts >= max_attempts:
            report.state = AttemptState.EXHAUSTED

    if report.state is AttemptState.EXHAUSTED:
        logger.debug(f"{label}_exhausted", attempts=report.attempts, errors=len(report.errors))
    return report


async def attempt(
    call: Callable[[], Awaitable[T]],
    is_acceptable: Callable[[T], bool],
    repeat: int = 0,
    *,
    label: str = "provider_call",
) -> T | None:
    """Return the first acceptable result of `call`, or None once all attempts are used."""
    report = await run_attempts(call, is_acceptable, repeat, label=label)
    return report.value if report.accepted else None
