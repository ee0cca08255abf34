"""
Unit tests for EverflowAPIClient
"""

import pytest
import requests
from datetime import datetime
from unittest.mock import Mock

from config import ConfigurationError
from services.common.exceptions import MalformedPayloadError, SourceAPIError
from services.conversion_models import ReportQuery
from services.everflow_api_client import EverflowAPIClient
from tests.fixtures.factories import EverflowConversionFactory


def _response(payload=None, status_code=200, text=''):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text
    response.json = Mock(return_value=payload)
    return response


@pytest.fixture
def session():
    return Mock()


@pytest.fixture
def client(session):
    return EverflowAPIClient(api_key='eflow-key', base_url='https://eflow.test/v1',
                             timezone_id=80, session=session)


@pytest.fixture
def query():
    return ReportQuery(start_date=datetime(2024, 3, 1), end_date=datetime(2024, 3, 3, 23, 59, 59),
                       page=1, page_size=25)


class TestEverflowAPIClient:

    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError):
            EverflowAPIClient(api_key=None, session=Mock())

    def test_posts_report_body_with_api_key_header(self, client, session, query):
        conversions = EverflowConversionFactory.build_batch(3)
        session.post.return_value = _response({'conversions': conversions,
                                               'paging': {'page': 1, 'page_size': 25, 'total_count': 3}})

        result = client.get_conversions(query)

        assert result == {'records': conversions, 'total_count': 3}
        args, kwargs = session.post.call_args
        assert args[0] == 'https://eflow.test/v1/affiliates/reporting/conversions'
        assert kwargs['headers']['X-Eflow-API-Key'] == 'eflow-key'
        assert kwargs['params'] == {'page': 1, 'page_size': 25}
        assert kwargs['json'] == {
            'timezone_id': 80,
            'from': '2024-03-01',
            'to': '2024-03-03',
            'show_events': False,
            'show_conversions': True,
            'query': {'filters': [], 'search_terms': []}
        }

    def test_last_page_requests_total_count(self, client, session):
        session.post.side_effect = [
            _response({'conversions': [EverflowConversionFactory.build()], 'paging': {'total_count': 51}}),
            _response({'conversions': [EverflowConversionFactory.build()], 'paging': {'total_count': 51}}),
        ]
        query = ReportQuery(start_date=datetime(2024, 3, 1), end_date=datetime(2024, 3, 1),
                            page=-1, page_size=25)

        client.get_conversions(query)

        count_request, final = session.post.call_args_list
        assert count_request.kwargs['params'] == {'page': 1, 'page_size': 1}
        assert final.kwargs['params'] == {'page': 3, 'page_size': 25}

    def test_http_error_raises_source_error(self, client, session, query):
        session.post.return_value = _response(status_code=401, text='unauthorized')

        with pytest.raises(SourceAPIError) as excinfo:
            client.get_conversions(query)

        assert excinfo.value.source == 'Everflow'
        assert excinfo.value.status_code == 401

    def test_timeout_raises_source_error(self, client, session, query):
        session.post.side_effect = requests.exceptions.Timeout('read timed out')

        with pytest.raises(SourceAPIError):
            client.get_conversions(query)

    @pytest.mark.parametrize("payload", [
        {'paging': {'total_count': 1}},
        {'conversions': []},
        {'conversions': [], 'paging': {}},
        {'conversions': [], 'paging': {'total_count': 'many'}},
    ])
    def test_malformed_payload(self, client, session, query, payload):
        session.post.return_value = _response(payload)

        with pytest.raises(MalformedPayloadError):
            client.get_conversions(query)
