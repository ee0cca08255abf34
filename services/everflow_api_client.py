"""
Everflow API Client

Source B of the conversion reports: the Everflow affiliate reporting API.
Conversions are queried with a JSON POST, paging goes in the query string.
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

logger = logging.getLogger(__name__)

SOURCE_NAME = 'Everflow'
LAST_PAGE = -1
CONVERSIONS_ENDPOINT = 'affiliates/reporting/conversions'


def _config(key: str, default: Any = None) -> Any:
    if has_app_context():
        return current_app.config.get(key, default)
    return default


class EverflowAPIClient:
    """Client for the Everflow affiliate conversions report"""

    def __init__(self,
                 api_key: Optional[str] = None,
                 base_url: Optional[str] = None,
                 timezone_id: Optional[int] = None,
                 timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key or _config('EVERFLOW_API_KEY')
        self.base_url = (base_url or _config('EVERFLOW_BASE_URL') or 'https://api.eflow.team/v1').rstrip('/')
        self.timezone_id = timezone_id if timezone_id is not None else _config('EVERFLOW_TIMEZONE_ID', 90)
        self.timeout = (5, timeout or _config('HTTP_TIMEOUT_SECONDS', 30))
        self.session = session or requests.Session()

        if not self.api_key:
            raise ConfigurationError("Everflow API key not configured")

    def _build_body(self, query: ReportQuery) -> Dict[str, Any]:
        return {
            'timezone_id': self.timezone_id,
            'from': query.start_date.strftime('%Y-%m-%d'),
            'to': query.end_date.strftime('%Y-%m-%d'),
            'show_events': False,
            'show_conversions': True,
            'query': {
                'filters': [],
                'search_terms': []
            }
        }

    def _post(self, query: ReportQuery, page: int, page_size: int) -> Dict[str, Any]:
        """
        POST the conversions report for one page.

        Raises:
            SourceAPIError: Transport failure or non-2xx status
            MalformedPayloadError: Missing conversions list or paging block
        """
        url = f"{self.base_url}/{CONVERSIONS_ENDPOINT}"
        headers = {
            'X-Eflow-API-Key': self.api_key,
            'Content-Type': 'application/json'
        }
        started = time.monotonic()

        try:
            response = self.session.post(
                url,
                headers=headers,
                params={'page': page, 'page_size': page_size},
                json=self._build_body(query),
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error("Everflow request failed", extra={"error": str(e)})
            raise SourceAPIError(SOURCE_NAME, f"Request failed: {e}")

        performance_logger.log_api_call(
            SOURCE_NAME, CONVERSIONS_ENDPOINT, (time.monotonic() - started) * 1000, response.status_code
        )

        if not response.ok:
            logger.error(f"Everflow returned HTTP {response.status_code}", extra={
                "body": response.text[:200]
            })
            raise SourceAPIError(SOURCE_NAME, f"HTTP {response.status_code}: {response.text}",
                                 status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            raise MalformedPayloadError(SOURCE_NAME, "Response is not valid JSON")

        if not isinstance(payload, dict) or not isinstance(payload.get('conversions'), list):
            raise MalformedPayloadError(SOURCE_NAME, "Response has no conversions list")
        if not isinstance(payload.get('paging'), dict) or 'total_count' not in payload['paging']:
            raise MalformedPayloadError(SOURCE_NAME, "Response has no paging.total_count")

        return payload

    @staticmethod
    def _total_count(payload: Dict[str, Any]) -> int:
        try:
            return int(payload['paging']['total_count'])
        except (TypeError, ValueError):
            raise MalformedPayloadError(SOURCE_NAME, "Invalid paging.total_count")

    def get_total_count(self, query: ReportQuery) -> int:
        return self._total_count(self._post(query, page=1, page_size=1))

    def get_conversions(self, query: ReportQuery) -> Dict[str, Any]:
        """
        Fetch one page of conversions.

        Everflow pages by page number. A query page of -1 requests total_count
        with page_size=1 first, then fetches the final page.

        Returns:
            {'records': [raw conversion dicts], 'total_count': int}
        """
        page = query.page
        if page == LAST_PAGE:
            total = self.get_total_count(query)
            page = max((total + query.page_size - 1) // query.page_size, 1)

        logger.info("Fetching conversions from Everflow", extra={
            "from_date": query.start_date.strftime('%Y-%m-%d'),
            "to_date": query.end_date.strftime('%Y-%m-%d'),
            "page": page,
            "page_size": query.page_size
        })

        payload = self._post(query, page, query.page_size)
        total_count = self._total_count(payload)

        logger.info(f"Fetched {len(payload['conversions'])} conversions from Everflow", extra={
            "total_count": total_count
        })

        return {'records': payload['conversions'], 'total_count': total_count}
