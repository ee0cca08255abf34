"""
Sorting, filtering, pagination and CSV export for the conversion reports table.

Pure functions over lists of ConversionRecord and ReportViewState. Page
slices are returned in sorted order, never reversed.
"""

import csv
import io
import locale
from dataclasses import replace
from datetime import datetime
from numbers import Number
from typing import Any, Iterable, List, Optional, Sequence

from services.conversion_models import (
    ConversionRecord, ReportViewState, SORT_ASC, SORT_DESC, SORT_DIRECTIONS
)
from utils.datetime_utils import ensure_utc

DEFAULT_SORT_DIRECTION = SORT_ASC

SORTABLE_FIELDS = (
    'id', 'timestamp', 'offer_id', 'offer_name', 'deploy_id',
    'mailer_id', 'entity_id', 'price', 'source_name', 'is_new'
)

FILTER_FIELDS = ('deploy_id', 'mailer_id', 'entity_id')

CSV_HEADERS = ['ID', 'Date', 'Offer ID', 'Offer Name', 'Sponsor', 'Mailer', 'Entity', 'Price']

# Rank of each value kind, so mixed-type columns still sort deterministically
_NUMBER, _DATETIME, _TEXT, _OTHER = range(4)


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (0,)
    if isinstance(value, Number):
        return (1, _NUMBER, value)
    if isinstance(value, datetime):
        return (1, _DATETIME, ensure_utc(value).timestamp())
    if isinstance(value, str):
        return (1, _TEXT, locale.strxfrm(value.casefold()), value)
    return (1, _OTHER, str(value))


def sort_records(records: Iterable[ConversionRecord],
                 sort_field: str,
                 sort_direction: str = SORT_ASC) -> List[ConversionRecord]:
    """
    Stable, type-aware sort of conversions by one field.

    None sorts before every value ascending, and so after every value
    descending. Records with equal keys keep their input order either way.
    Text compares casefolded through locale.strxfrm, so the order follows
    the process LC_COLLATE (set by create_app from the environment). Under
    the C locale that is plain code point order.

    Raises:
        ValueError: Unknown field or direction
    """
    if sort_field not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by {sort_field!r}")
    if sort_direction not in SORT_DIRECTIONS:
        raise ValueError(f"Invalid sort direction {sort_direction!r}")

    return sorted(
        records,
        key=lambda record: _sort_key(getattr(record, sort_field)),
        reverse=sort_direction == SORT_DESC
    )


def paginate(records: Sequence[ConversionRecord], page: int, page_size: int) -> List[ConversionRecord]:
    """
    Slice one 1-based page out of `records`.

    No clamping: a page past the end is an empty list.
    """
    if page < 1:
        raise ValueError("page is 1-based")
    if page_size < 1:
        raise ValueError("page_size must be at least 1")

    start = (page - 1) * page_size
    return list(records[start:start + page_size])


def total_pages(total_count: int, page_size: int) -> int:
    if page_size < 1:
        return 0
    return (total_count + page_size - 1) // page_size


def clamp_page(state: ReportViewState, total_count: int) -> ReportViewState:
    """Move current_page back onto the last non-empty page when it ran past it."""
    last_page = max(total_pages(total_count, state.rows_per_page), 1)
    if state.current_page > last_page:
        return replace(state, current_page=last_page)
    if state.current_page < 1:
        return replace(state, current_page=1)
    return state


def toggle_sort(state: ReportViewState, sort_field: str) -> ReportViewState:
    """
    Same field flips the direction, a new field starts ascending.
    Both go back to the first page.
    """
    if sort_field not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by {sort_field!r}")

    if state.sort_field == sort_field:
        direction = SORT_DESC if state.sort_direction == SORT_ASC else SORT_ASC
    else:
        direction = DEFAULT_SORT_DIRECTION

    return replace(state, sort_field=sort_field, sort_direction=direction, current_page=1)


def filter_records(records: Iterable[ConversionRecord], filter_value: Optional[str]) -> List[ConversionRecord]:
    """Case-insensitive substring match on deploy, mailer and entity ids."""
    needle = (filter_value or '').strip().casefold()
    if not needle:
        return list(records)

    return [
        record for record in records
        if any(needle in getattr(record, name).casefold() for name in FILTER_FIELDS)
    ]


def apply_view(records: Iterable[ConversionRecord], state: ReportViewState) -> List[ConversionRecord]:
    """Filter, sort and slice the page described by `state`."""
    rows = sort_records(filter_records(records, state.filter_value), state.sort_field, state.sort_direction)
    return paginate(rows, state.current_page, state.rows_per_page)


def export_csv(records: Iterable[ConversionRecord]) -> str:
    """
    Render conversions as CSV text with the dashboard's export columns.
    The "Sponsor" column carries the deploy id.
    """
    output = io.StringIO()
    writer = csv.writer(output, lineterminator='\n')
    writer.writerow(CSV_HEADERS)

    for record in records:
        writer.writerow([
            record.id,
            record.timestamp.isoformat() if record.timestamp else '',
            record.offer_id,
            record.offer_name,
            record.deploy_id,
            record.mailer_id,
            record.entity_id,
            f"{record.price:.2f}"
        ])

    return output.getvalue()
