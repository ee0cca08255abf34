"""
Conversion report data types

ConversionRecord is the one shape both sources are normalized into.
ReportQuery scopes a fetch, ReportViewState is what the reports table shows.
"""

from dataclasses import dataclass, field, fields, replace, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from utils.datetime_utils import end_of_day, start_of_day, utc_now

SORT_ASC = 'asc'
SORT_DESC = 'desc'
SORT_DIRECTIONS = (SORT_ASC, SORT_DESC)


@dataclass(frozen=True)
class ConversionRecord:
    """One observed conversion event"""

    id: int
    timestamp: Optional[datetime] = None
    offer_id: str = ''
    offer_name: str = ''
    deploy_id: str = ''
    mailer_id: str = ''
    entity_id: str = ''
    price: float = 0.0
    source_name: str = ''
    is_new: bool = False

    @classmethod
    def field_names(cls) -> frozenset:
        return frozenset(f.name for f in fields(cls))

    def merged_with(self, updates: Dict[str, Any]) -> 'ConversionRecord':
        """Shallow merge: values in `updates` win over the ones on this record."""
        known = self.field_names()
        return replace(self, **{k: v for k, v in updates.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat() if self.timestamp else None
        return data


@dataclass(frozen=True)
class ReportQuery:
    """
    Parameters of one fetch cycle.

    Both dates are inclusive. `page` is 1-based, -1 asks each source for its
    last page.
    """

    start_date: datetime
    end_date: datetime
    page: int = 1
    page_size: int = 10
    sort_field: str = 'timestamp'
    sort_direction: str = SORT_DESC
    exclude_bot_traffic: bool = False

    def __post_init__(self):
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")
        if self.page == 0 or self.page < -1:
            raise ValueError("page must be 1-based or -1 for the last page")
        if self.sort_direction not in SORT_DIRECTIONS:
            raise ValueError(f"sort_direction must be one of {SORT_DIRECTIONS}")

    @property
    def sort_descending(self) -> bool:
        return self.sort_direction == SORT_DESC


def _today_start() -> datetime:
    return start_of_day(utc_now()).replace(tzinfo=None)


def _today_end() -> datetime:
    return end_of_day(utc_now()).replace(tzinfo=None)


@dataclass(frozen=True)
class ReportViewState:
    """What the reports table currently shows. Replaced, never mutated."""

    current_page: int = 1
    rows_per_page: int = 10
    sort_field: str = 'timestamp'
    sort_direction: str = SORT_DESC
    filter_value: str = ''
    start_date: datetime = field(default_factory=_today_start)
    end_date: datetime = field(default_factory=_today_end)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['start_date'] = self.start_date.isoformat()
        data['end_date'] = self.end_date.isoformat()
        return data
