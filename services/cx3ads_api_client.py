"""
CX3ads API Client

Source A of the conversion reports. Handles:
- Authentication (api_key / affiliate_id query params)
- Row-offset pagination, including the "last page" count request
- Error handling (every failure surfaces as SourceAPIError, no retries)
"""

import logging
import time
from typing import Any, Dict, Optional

import requests
from flask import current_app, has_app_context

from config import ConfigurationError
from logging_config import performance_logger
from services.common.exceptions import MalformedPayloadError, SourceAPIError
from services.conversion_models import ReportQuery
from utils.datetime_utils import format_cx3ads_datetime

logger = logging.getLogger(__name__)

SOURCE_NAME = 'CX3ads'
LAST_PAGE = -1

# ConversionRecord field -> CX3ads sort_field
SORT_FIELD_MAP = {
    'id': 'conversion_id',
    'timestamp': 'conversion_date',
    'offer_id': 'offer_id',
    'offer_name': 'offer_name',
    'price': 'price',
}
DEFAULT_SORT_FIELD = 'conversion_date'


def _config(key: str, default: Any = None) -> Any:
    if has_app_context():
        return current_app.config.get(key, default)
    return default


class CX3AdsAPIClient:
    """Client for the CX3ads affiliate Reports/Conversions endpoint"""

    def __init__(self,
                 api_key: Optional[str] = None,
                 affiliate_id: Optional[str] = None,
                 base_url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the CX3ads client.

        Args:
            api_key: CX3ads API key (taken from app config if not provided)
            affiliate_id: Affiliate id the key belongs to
            base_url: Base URL of the affiliate API
            timeout: Read timeout in seconds
            session: Optional requests session (tests inject a mock)
        """
        self.api_key = api_key or _config('CX3ADS_API_KEY')
        self.affiliate_id = affiliate_id or _config('CX3ADS_AFFILIATE_ID')
        self.base_url = (base_url or _config('CX3ADS_BASE_URL')
                         or 'https://publisher.cx3ads.com/affiliates/api').rstrip('/')
        self.timeout = (5, timeout or _config('HTTP_TIMEOUT_SECONDS', 30))
        self.session = session or requests.Session()

        if not self.api_key:
            raise ConfigurationError("CX3ads API key not configured")

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        GET an endpoint and return the decoded JSON body.

        Raises:
            SourceAPIError: Transport failure or non-2xx status
            MalformedPayloadError: Body is not a JSON object
        """
        url = f"{self.base_url}/{endpoint}"
        request_params = dict(params, api_key=self.api_key, affiliate_id=self.affiliate_id)
        started = time.monotonic()

        logger.debug(f"Making GET request to {endpoint}", extra={
            "start_at_row": params.get('start_at_row'),
            "row_limit": params.get('row_limit')
        })

        try:
            response = self.session.get(url, params=request_params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"CX3ads request failed for {endpoint}", extra={"error": str(e)})
            raise SourceAPIError(SOURCE_NAME, f"Request failed: {e}")

        performance_logger.log_api_call(
            SOURCE_NAME, endpoint, (time.monotonic() - started) * 1000, response.status_code
        )

        if not response.ok:
            logger.error(f"CX3ads returned HTTP {response.status_code}", extra={
                "endpoint": endpoint,
                "body": response.text[:200]
            })
            raise SourceAPIError(SOURCE_NAME, f"HTTP {response.status_code}: {response.text}",
                                 status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            raise MalformedPayloadError(SOURCE_NAME, "Response is not valid JSON")

        if not isinstance(payload, dict):
            raise MalformedPayloadError(SOURCE_NAME, "Invalid data received from API")

        return payload

    def _fetch_rows(self, query: ReportQuery, start_at_row: int, row_limit: int) -> Dict[str, Any]:
        params = {
            'start_date': format_cx3ads_datetime(query.start_date),
            'end_date': format_cx3ads_datetime(query.end_date),
            'exclude_bot_traffic': str(query.exclude_bot_traffic).lower(),
            'start_at_row': start_at_row,
            'row_limit': row_limit,
            'sort_field': SORT_FIELD_MAP.get(query.sort_field, DEFAULT_SORT_FIELD),
            'sort_descending': str(query.sort_descending).lower(),
        }
        payload = self._get('Reports/Conversions', params)

        if payload.get('success') is False:
            raise SourceAPIError(SOURCE_NAME, payload.get('message') or "API reported failure")
        if not isinstance(payload.get('data'), list) or 'row_count' not in payload:
            raise MalformedPayloadError(SOURCE_NAME, "Invalid data received from API")

        return payload

    def get_row_count(self, query: ReportQuery) -> int:
        """Ask for a single row to learn how many rows the date range holds."""
        payload = self._fetch_rows(query, start_at_row=1, row_limit=1)
        try:
            return int(payload['row_count'])
        except (TypeError, ValueError):
            raise MalformedPayloadError(SOURCE_NAME, f"Invalid row_count: {payload['row_count']!r}")

    def get_conversions(self, query: ReportQuery) -> Dict[str, Any]:
        """
        Fetch one page of conversions.

        CX3ads pages by 1-based row offset. A query page of -1 first requests
        row_count, then fetches the final page.

        Returns:
            {'records': [raw conversion dicts], 'total_count': int}
        """
        page = query.page
        if page == LAST_PAGE:
            row_count = self.get_row_count(query)
            page = max((row_count + query.page_size - 1) // query.page_size, 1)

        start_at_row = (page - 1) * query.page_size + 1

        logger.info("Fetching conversions from CX3ads", extra={
            "start_date": query.start_date.isoformat(),
            "end_date": query.end_date.isoformat(),
            "page": page,
            "limit": query.page_size
        })

        payload = self._fetch_rows(query, start_at_row, query.page_size)
        try:
            total_count = int(payload['row_count'])
        except (TypeError, ValueError):
            raise MalformedPayloadError(SOURCE_NAME, f"Invalid row_count: {payload['row_count']!r}")

        logger.info(f"Fetched {len(payload['data'])} conversions from CX3ads", extra={
            "total_count": total_count
        })

        return {'records': payload['data'], 'total_count': total_count}
