"""First-success combinator over an ordered list of candidates."""

import logging
from typing import Awaitable, Callable, Iterable, Tuple, TypeVar

from city_dashboard.providers.errors import CandidatesExhausted

logger = logging.getLogger(__name__)

C = TypeVar("C")
R = TypeVar("R")


async def first_success(
    candidates: Iterable[C],
    attempt: Callable[[C], Awaitable[R]],
    is_retryable: Callable[[BaseException], bool]
) -> Tuple[C, R, int]:
    """Try candidates strictly in order and return the first success.

    Candidates are attempted one at a time; a later candidate is never started
    before the previous one has finished.

    Args:
        candidates: Ordered candidates
        attempt: Coroutine function run for each candidate
        is_retryable: Decides whether a failure moves on to the next candidate.
            Failures it rejects propagate unchanged.

    Returns:
        Tuple of (winning candidate, its result, number of attempts made)

    Raises:
        CandidatesExhausted: If every candidate failed with a retryable error
    """
    attempts = 0
    last_error = None

    for candidate in candidates:
        attempts += 1
        try:
            result = await attempt(candidate)
        except Exception as e:
            if not is_retryable(e):
                raise
            logger.warning(f"Candidate {candidate} failed ({type(e).__name__}): {e}")
            last_error = e
            continue
        return candidate, result, attempts

    raise CandidatesExhausted(attempts, last_error)
