"""Bounded concurrency driver for multi-object operations."""

from concurrent.futures import FIRST_COMPLETED
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import wait
from s3api.errors import InvalidArgumentError
from s3api.progress import AggregateProgress

import logging


logger = logging.getLogger(__name__)


def run_bounded(
    items,
    per_item,
    concurrency=1,
    sizes=None,
    progress=None,
    progress_interval=0.25,
):
    """Run ``per_item(item, progress_callback)`` for every item.

    At most ``concurrency`` items are in flight; as soon as one finishes
    the next queued item starts. ``per_item`` may return a byte count,
    otherwise the item's size is counted. Item sizes come from ``sizes``
    or from each item's ``size`` attribute.

    On the first failure no further items are started, in-flight items
    are drained and the first error is re-raised with a ``completed``
    attribute listing the items that finished. Finished items are not
    undone.

    Returns ``(count, total_bytes)``.
    """
    if concurrency is None:
        concurrency = 1
    if not isinstance(concurrency, int) or concurrency < 1:
        raise InvalidArgumentError(
            f"Concurrency must be a positive integer, got {concurrency!r}"
        )
    items = list(items)
    if sizes is None:
        sizes = [getattr(item, "size", 0) or 0 for item in items]
    aggregate = AggregateProgress(
        progress, sum(sizes), interval=progress_interval
    )

    queue = iter(enumerate(items))
    in_flight = {}
    completed = []
    total_bytes = 0
    first_error = None

    logger.debug(
        "Running %d items with concurrency %d (%d bytes)",
        len(items),
        concurrency,
        aggregate.total,
    )

    with ThreadPoolExecutor(max_workers=concurrency) as executor:

        def start_next():
            for slot, item in queue:
                future = executor.submit(per_item, item, aggregate.item_callback(slot))
                in_flight[future] = slot
                return True
            return False

        while len(in_flight) < concurrency and start_next():
            pass

        while in_flight:
            done, _not_done = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in done:
                slot = in_flight.pop(future)
                try:
                    result = future.result()
                except Exception as e:
                    aggregate.discard(slot)
                    if first_error is None:
                        first_error = e
                        logger.debug("Item %d failed, draining: %s", slot, e)
                    continue
                completed.append(items[slot])
                total_bytes += sizes[slot] if result is None else result
                aggregate.complete(slot, sizes[slot])
            if first_error is None:
                while len(in_flight) < concurrency and start_next():
                    pass

    if first_error is not None:
        first_error.completed = completed
        raise first_error
    logger.debug("All %d items completed (%d bytes)", len(completed), total_bytes)
    return len(completed), total_bytes
