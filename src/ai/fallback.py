"""Ordered candidate iteration: first success wins, failures are aggregated."""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar, Union

from src.providers.base import GatewayFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CandidateSkipped:
    """A candidate passed over before any Gateway call."""

    model_id: str
    reason: str


@dataclass
class FallbackResult(Generic[T]):
    """Outcome of trying every candidate in order.

    Attributes:
        value: First successful value, or None when every candidate failed or was skipped.
        index: Position of the successful candidate (0 = primary).
        failures: Gateway failures in attempt order.
        skipped: Candidates skipped before any Gateway call.
    """

    value: Optional[T] = None
    index: Optional[int] = None
    failures: list[GatewayFailure] = field(default_factory=list)
    skipped: list[CandidateSkipped] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.value is not None

    @property
    def last_failure(self) -> Optional[GatewayFailure]:
        return self.failures[-1] if self.failures else None


async def try_candidates(
    candidates: Sequence[str],
    attempt: Callable[[str, int], Awaitable[Union[T, GatewayFailure, CandidateSkipped]]],
) -> FallbackResult[T]:
    """Call `attempt` for each candidate in order until one succeeds.

    Candidates are tried strictly sequentially; a candidate is never retried.

    Args:
        candidates: Model ids in attempt order.
        attempt: Coroutine taking (model_id, index) and returning a success
            value, a GatewayFailure or a CandidateSkipped.

    Returns:
        FallbackResult with the first success or the collected failures.
    """
    result: FallbackResult[T] = FallbackResult()
    for index, model_id in enumerate(candidates):
        outcome = await attempt(model_id, index)
        if isinstance(outcome, CandidateSkipped):
            result.skipped.append(outcome)
            continue
        if isinstance(outcome, GatewayFailure):
            result.failures.append(outcome)
            if index + 1 < len(candidates):
                logger.info(
                    f"fallback_next_candidate: failed={model_id}, kind={outcome.kind.value}, "
                    f"next={candidates[index + 1]}"
                )
            continue
        result.value = outcome
        result.index = index
        return result
    return result
