"""Run many inbound messages through a processor concurrently.

Each message is an independent unit of work submitted to a
``ThreadPoolExecutor`` with a bounded submission window, so large inputs
(e.g. a JSONL backlog) are consumed lazily. Results come back in input order.

Units are isolated: the processor already turns per-message problems into a
``ProcessingResult``, and anything it still raises is converted into a
``FAILED`` result for that message alone; the remaining messages keep going.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

from .logging_setup import get_logger
from .models import InboundMessage
from .pipeline import MessageProcessor, Outcome, ProcessingResult, Stage

logger = get_logger("sms_ledger.runner")

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def bounded_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight.

    The output preserves input order. ``mapper`` is expected not to raise; if
    it does, the error propagates after the pool drains.
    """

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    it = enumerate(iterable)
    results: dict[int, OutT] = {}
    future_to_idx: dict[Future, int] = {}

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        return fut

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                results[future_to_idx.pop(fut)] = fut.result()
            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)

    return [results[i] for i in range(len(results))]


def process_concurrently(
    processor: MessageProcessor,
    messages: Iterable[InboundMessage],
    *,
    concurrency: int = 4,
) -> list[ProcessingResult]:
    """Process ``messages`` on a thread pool; one result per message, in order."""

    def _unit(message: InboundMessage) -> ProcessingResult:
        try:
            return processor.process(message)
        except Exception as e:  # noqa: BLE001
            logger.exception("unexpected error processing message from %s", message.sender)
            return ProcessingResult(Outcome.FAILED, Stage.RECEIVED, f"unexpected error: {e}")

    results = bounded_map(messages, _unit, concurrency=concurrency)
    logger.info(
        "processed %d messages: %d recorded, %d skipped, %d failed",
        len(results),
        sum(r.outcome is Outcome.RECORDED for r in results),
        sum(r.outcome is Outcome.SKIPPED for r in results),
        sum(r.outcome is Outcome.FAILED for r in results),
    )
    return results


__all__ = ["bounded_map", "process_concurrently"]
