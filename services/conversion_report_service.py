"""
ConversionReportService - fetch, reconcile and page the conversion reports

Runs one fetch cycle against both conversion sources, feeds the normalized
records into the ConversionStore and serves the reports table from it.
"""

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from services.common.exceptions import MalformedPayloadError, SourceAPIError
from services.common.result import PagedResult, Result
from services.conversion_models import ConversionRecord, ReportQuery, ReportViewState
from services.conversion_store import ConversionStore
from services.conversion_view import (
    apply_view, clamp_page, export_csv, filter_records, sort_records, toggle_sort, total_pages
)

logger = logging.getLogger(__name__)


class ConversionSource:
    """A source client paired with the normalizer for its payload shape"""

    def __init__(self, name: str, client: Any, normalizer: Callable[[Dict[str, Any]], ConversionRecord]):
        self.name = name
        self.client = client
        self.normalizer = normalizer

    def fetch(self, query: ReportQuery) -> Tuple[List[ConversionRecord], int]:
        response = self.client.get_conversions(query)
        try:
            raw_records = response['records']
            total_count = int(response['total_count'])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedPayloadError(self.name, f"Unexpected client response: {e}")
        try:
            records = [self.normalizer(raw) for raw in raw_records]
        except SourceAPIError:
            raise
        except Exception as e:
            raise MalformedPayloadError(self.name, f"Could not normalize conversion: {e}")
        return records, total_count


class ConversionReportService:
    """Service behind the conversion reports panel"""

    def __init__(self,
                 sources: Iterable[ConversionSource],
                 store: Optional[ConversionStore] = None,
                 view_state: Optional[ReportViewState] = None,
                 fetch_limit: int = 10,
                 exclude_bot_traffic: bool = False):
        """
        Args:
            sources: Conversion sources queried on every fetch cycle
            store: Store holding the reconciled conversions
            view_state: Initial table state
            fetch_limit: Rows requested per source by refresh()
            exclude_bot_traffic: Passed through to sources that support it
        """
        self.sources = list(sources)
        self.store = store or ConversionStore()
        self.view_state = view_state or ReportViewState()
        self.fetch_limit = fetch_limit
        self.exclude_bot_traffic = exclude_bot_traffic
        self.total_rows = 0
        self.last_error: Optional[str] = None
        self.last_refreshed: Optional[datetime] = None

        self._sequence = itertools.count(1)
        self._latest_sequence = 0
        self._lock = threading.Lock()

    # ===== Fetching =====

    def _next_sequence(self) -> int:
        with self._lock:
            self._latest_sequence = next(self._sequence)
            return self._latest_sequence

    def _discard_held_records(self) -> int:
        """Clear the store and turn every in-flight cycle stale."""
        with self._lock:
            self._latest_sequence = next(self._sequence)
            dropped = self.store.clear()
            self.total_rows = 0
        return dropped

    def _fetch_all(self, query: ReportQuery) -> Tuple[List[ConversionRecord], int]:
        """Query every source concurrently. Any failure fails the whole cycle."""
        with ThreadPoolExecutor(max_workers=max(len(self.sources), 1),
                                thread_name_prefix='conversion-fetch') as executor:
            futures = [(source, executor.submit(source.fetch, query)) for source in self.sources]

            records: List[ConversionRecord] = []
            total = 0
            errors = []
            for source, future in futures:
                try:
                    source_records, source_total = future.result()
                except SourceAPIError as e:
                    errors.append(str(e))
                    continue
                records.extend(source_records)
                total += source_total

        if errors:
            raise SourceAPIError('conversions', '; '.join(errors))
        return records, total

    def fetch_conversions(self, query: ReportQuery) -> Result[Dict[str, Any]]:
        """
        Run one fetch cycle and reconcile it into the store.

        A cycle that completes after a newer one started is discarded
        (STALE_RESPONSE) and leaves the store as it is.

        Returns:
            Result with received/new/updated counts and total_rows
        """
        sequence = self._next_sequence()
        logger.info(f"Starting conversion fetch #{sequence}", extra={
            "start_date": query.start_date.isoformat(),
            "end_date": query.end_date.isoformat(),
            "page": query.page,
            "page_size": query.page_size
        })

        try:
            records, total = self._fetch_all(query)
        except SourceAPIError as e:
            with self._lock:
                is_stale = sequence != self._latest_sequence
                if not is_stale:
                    self.last_error = str(e)
            logger.error(f"Conversion fetch #{sequence} failed: {e}")
            if is_stale:
                return Result.failure("Discarded stale response", code="STALE_RESPONSE",
                                      metadata={'sequence': sequence})
            return Result.failure(str(e), code="FETCH_ERROR", metadata={'sequence': sequence})

        with self._lock:
            if sequence != self._latest_sequence:
                logger.info(f"Discarding stale conversion fetch #{sequence}", extra={
                    "latest_sequence": self._latest_sequence
                })
                return Result.failure("Discarded stale response", code="STALE_RESPONSE",
                                      metadata={'sequence': sequence})

            counts = self.store.merge(records)
            self.total_rows = total
            self.last_error = None
            self.last_refreshed = datetime.now()

        logger.info(
            f"Conversion fetch #{sequence} completed: {counts['received']} received, "
            f"{counts['new']} new, {counts['updated']} updated, {total} total rows"
        )

        return Result.success({
            'received': counts['received'],
            'new': counts['new'],
            'updated': counts['updated'],
            'total_rows': total
        }, metadata={'sequence': sequence})

    def refresh(self) -> Result[Dict[str, Any]]:
        """Fetch the first page for the current date range and sort."""
        state = self.view_state
        query = ReportQuery(
            start_date=state.start_date,
            end_date=state.end_date,
            page=1,
            page_size=self.fetch_limit,
            sort_field=state.sort_field,
            sort_direction=state.sort_direction,
            exclude_bot_traffic=self.exclude_bot_traffic
        )
        return self.fetch_conversions(query)

    # ===== Table view =====

    def get_page(self, state: Optional[ReportViewState] = None) -> PagedResult[List[Dict[str, Any]]]:
        """
        Current page of the table as JSON-ready dicts.

        `total` counts the held records that pass the filter. The sources'
        own row count is reported as metadata.
        """
        state = state or self.view_state
        records = self.store.records()
        filtered = filter_records(records, state.filter_value)
        page = apply_view(records, state)

        return PagedResult.paginated(
            data=[record.to_dict() for record in page],
            total=len(filtered),
            page=state.current_page,
            per_page=state.rows_per_page,
            metadata={
                'total_rows': self.total_rows,
                'sort_field': state.sort_field,
                'sort_direction': state.sort_direction,
                'filter_value': state.filter_value,
                'last_error': self.last_error,
                'last_refreshed': self.last_refreshed.isoformat() if self.last_refreshed else None
            }
        )

    def _visible_count(self) -> int:
        return len(filter_records(self.store.records(), self.view_state.filter_value))

    def set_date_range(self, start_date: datetime, end_date: datetime) -> Result[ReportViewState]:
        """New date range: back to page 1, and the old range's records are dropped."""
        if end_date < start_date:
            return Result.failure("end_date is before start_date", code="INVALID_DATE_RANGE")

        self.view_state = replace(self.view_state, start_date=start_date, end_date=end_date, current_page=1)
        self._discard_held_records()
        return Result.success(self.view_state)

    def set_page(self, page: int) -> Result[ReportViewState]:
        last_page = total_pages(self._visible_count(), self.view_state.rows_per_page)
        if page < 1 or page > max(last_page, 1):
            return Result.failure(f"Page {page} is out of range (1-{max(last_page, 1)})",
                                  code="PAGE_OUT_OF_RANGE")

        self.view_state = replace(self.view_state, current_page=page)
        return Result.success(self.view_state)

    def set_rows_per_page(self, rows_per_page: int) -> Result[ReportViewState]:
        if rows_per_page < 1:
            return Result.failure("rows_per_page must be at least 1", code="INVALID_PAGE_SIZE")

        self.view_state = replace(self.view_state, rows_per_page=rows_per_page, current_page=1)
        return Result.success(self.view_state)

    def set_sort_field(self, sort_field: str) -> Result[ReportViewState]:
        try:
            self.view_state = toggle_sort(self.view_state, sort_field)
        except ValueError as e:
            return Result.failure(str(e), code="INVALID_SORT_FIELD")
        return Result.success(self.view_state)

    def set_filter(self, filter_value: str) -> Result[ReportViewState]:
        self.view_state = clamp_page(
            replace(self.view_state, filter_value=filter_value or ''),
            self._visible_count_for(filter_value)
        )
        return Result.success(self.view_state)

    def _visible_count_for(self, filter_value: str) -> int:
        return len(filter_records(self.store.records(), filter_value))

    def clamp_current_page(self) -> ReportViewState:
        """Re-clamp after the record count changed under the current page."""
        self.view_state = clamp_page(self.view_state, self._visible_count())
        return self.view_state

    def reset(self) -> Result[Dict[str, int]]:
        """Drop every held record and pending new-flag timer."""
        dropped = self._discard_held_records()
        self.view_state = replace(self.view_state, current_page=1)
        return Result.success({'dropped': dropped})

    # ===== Export =====

    def export_csv(self, ids: Optional[Iterable[int]] = None) -> Result[str]:
        """
        CSV of the selected conversions, or of the current page when no ids
        are given.
        """
        if ids is None:
            records = apply_view(self.store.records(), self.view_state)
        else:
            wanted = set(ids)
            if not wanted:
                return Result.failure("Select at least one conversion to export", code="NOTHING_SELECTED")
            records = sort_records(
                [record for record in self.store.records() if record.id in wanted],
                self.view_state.sort_field,
                self.view_state.sort_direction
            )

        return Result.success(export_csv(records), metadata={'count': len(records)})
