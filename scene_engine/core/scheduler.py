"""Bounded worker pool with ordered recombination.

WHY: Frames are independent, so they render in parallel, but an
unbounded fan-out holds every frame buffer in memory at once, and the
encoder needs results in strict index order no matter which worker
finished first. This module owns both guarantees so the renderer only
has to describe one unit of work.

HOW: run_ordered() keeps at most ``max_in_flight`` futures submitted to
a ThreadPoolExecutor. Each future is tagged with the index it was
assigned. As futures complete, results are stored at their index and
new work is submitted to refill the window. The first failure cancels
everything not yet started, waits for running work to drain, and is
re-raised.

RULES:
- Results are returned as a list ordered by input index
- Never more than max_in_flight tasks are submitted-but-unfinished
- Threads (not processes): Pillow and numpy release the GIL for the
  heavy resampling work, and the canvas is shared read-only
- A failure re-raises the original exception after in-flight work stops
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def run_ordered(
    func: Callable[[T], R],
    items: Sequence[T],
    max_workers: int,
    max_in_flight: int,
    on_complete: Optional[Callable[[int, int], None]] = None,
) -> List[R]:
    """Apply ``func`` to every item in parallel and return results in order.

    Args:
        func: Work function for one item.
        items: Work items; the result list matches their order.
        max_workers: Thread pool size.
        max_in_flight: Upper bound on submitted-but-unfinished tasks.
        on_complete: Optional callback(done_count, total) after each task.

    Returns:
        [func(items[0]), func(items[1]), ...]

    Raises:
        The first exception raised by ``func``.
    """
    total = len(items)
    if total == 0:
        return []

    max_workers = max(1, max_workers)
    window = max(1, max_in_flight)
    results: List[Optional[R]] = [None] * total
    pending: Dict[Future, int] = {}
    next_index = 0
    done_count = 0

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        try:
            while next_index < total or pending:
                while next_index < total and len(pending) < window:
                    future = executor.submit(func, items[next_index])
                    pending[future] = next_index
                    next_index += 1

                finished, _ = wait(list(pending), return_when=FIRST_COMPLETED)
                for future in finished:
                    index = pending.pop(future)
                    results[index] = future.result()
                    done_count += 1
                    if on_complete is not None:
                        on_complete(done_count, total)
        except BaseException:
            for future in pending:
                future.cancel()
            logger.debug(
                "Ordered run aborted after %d/%d tasks, cancelled %d pending",
                done_count, total, len(pending),
            )
            raise

    return results  # type: ignore[return-value]
