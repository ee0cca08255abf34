"""
ConversionStore - id-keyed store of reconciled conversions

Holds every conversion seen since the last clear() and owns the timers that
expire the "new" badge. The merge itself is the pure reconcile() below.
"""

import itertools
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from services.conversion_models import ConversionRecord

logger = logging.getLogger(__name__)

DEFAULT_NEW_FLAG_SECONDS = 5.0

Incoming = Union[ConversionRecord, Mapping[str, Any]]


def _incoming_id(item: Incoming) -> int:
    if isinstance(item, ConversionRecord):
        return item.id
    if 'id' not in item:
        raise ValueError(f"Incoming conversion has no id: {dict(item)!r}")
    try:
        return int(item['id'])
    except (TypeError, ValueError):
        raise ValueError(f"Invalid conversion id: {item['id']!r}")


def reconcile(existing: Mapping[int, ConversionRecord],
              incoming: Iterable[Incoming]) -> Dict[int, ConversionRecord]:
    """
    Merge incoming conversions into the existing ones, by id.

    Returns a new mapping, `existing` is left untouched. Known ids are merged
    field by field (incoming wins) and come out with is_new=False, unknown ids
    are inserted with is_new=True. Nothing is ever removed.

    Incoming items are either full ConversionRecords or partial mappings such
    as {"id": 1, "price": 9.99}, in which case only the given keys override.
    """
    result = dict(existing)

    for item in incoming:
        conversion_id = _incoming_id(item)
        updates = item.__dict__ if isinstance(item, ConversionRecord) else {**item, 'id': conversion_id}

        if conversion_id in existing:
            base = result[conversion_id]
            result[conversion_id] = base.merged_with(updates).merged_with({'is_new': False})
        elif conversion_id in result:
            # Repeated id inside one batch, still first seen in this cycle
            result[conversion_id] = result[conversion_id].merged_with(updates).merged_with({'is_new': True})
        elif isinstance(item, ConversionRecord):
            result[conversion_id] = item.merged_with({'is_new': True})
        else:
            result[conversion_id] = ConversionRecord(id=conversion_id).merged_with(updates).merged_with(
                {'is_new': True}
            )

    return result


class ConversionStore:
    """
    Thread-safe holder of the reconciled conversions.

    Every id that merge() flags as new gets a fire-once timer which clears the
    flag after `new_flag_seconds`. clear() cancels all pending timers.
    """

    def __init__(self,
                 new_flag_seconds: float = DEFAULT_NEW_FLAG_SECONDS,
                 timer_factory: Optional[Callable[..., Any]] = None):
        """
        Args:
            new_flag_seconds: How long a record keeps is_new=True
            timer_factory: Callable(interval, function, args) returning an object
                with start() and cancel(), threading.Timer by default
        """
        self.new_flag_seconds = new_flag_seconds
        self._timer_factory = timer_factory or threading.Timer
        self._records: Dict[int, ConversionRecord] = {}
        self._timers: Dict[int, Any] = {}
        self._generations: Dict[int, int] = {}
        self._generation_counter = itertools.count(1)
        self._lock = threading.RLock()

    def merge(self, incoming: Iterable[Incoming]) -> Dict[str, int]:
        """
        Reconcile a batch into the store.

        Returns:
            Counts of the batch: {'received', 'new', 'updated', 'total'}
        """
        batch = list(incoming)

        with self._lock:
            merged = reconcile(self._records, batch)
            new_ids = [cid for cid in merged if cid not in self._records]
            updated = len({_incoming_id(item) for item in batch}) - len(new_ids)
            self._records = merged

            for conversion_id in new_ids:
                self._schedule_expiry(conversion_id)

            counts = {
                'received': len(batch),
                'new': len(new_ids),
                'updated': updated,
                'total': len(self._records)
            }

        logger.debug("Merged conversions into store", extra=counts)
        return counts

    def _schedule_expiry(self, conversion_id: int) -> None:
        previous = self._timers.pop(conversion_id, None)
        if previous is not None:
            previous.cancel()

        generation = next(self._generation_counter)
        self._generations[conversion_id] = generation

        timer = self._timer_factory(self.new_flag_seconds, self._expire_new_flag,
                                    args=(conversion_id, generation))
        # threading.Timer must not keep the process alive
        if hasattr(timer, 'daemon'):
            timer.daemon = True
        self._timers[conversion_id] = timer
        timer.start()

    def _expire_new_flag(self, conversion_id: int, generation: int) -> None:
        with self._lock:
            if self._generations.get(conversion_id) != generation:
                return

            self._timers.pop(conversion_id, None)
            self._generations.pop(conversion_id, None)

            record = self._records.get(conversion_id)
            if record is not None and record.is_new:
                self._records = dict(self._records)
                self._records[conversion_id] = record.merged_with({'is_new': False})

    def clear(self) -> int:
        """
        Drop every record and cancel every pending expiry timer.

        Returns:
            Number of records dropped
        """
        with self._lock:
            dropped = len(self._records)
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._generations.clear()
            self._records = {}

        logger.info(f"Cleared conversion store ({dropped} records)")
        return dropped

    def get(self, conversion_id: int) -> Optional[ConversionRecord]:
        with self._lock:
            return self._records.get(conversion_id)

    def snapshot(self) -> Dict[int, ConversionRecord]:
        """Copy of the id -> record mapping."""
        with self._lock:
            return dict(self._records)

    def records(self) -> List[ConversionRecord]:
        with self._lock:
            return list(self._records.values())

    def pending_timer_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, conversion_id: object) -> bool:
        with self._lock:
            return conversion_id in self._records
