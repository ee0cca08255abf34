"""
Unit tests for CX3AdsAPIClient

The requests session is mocked; no network traffic.
"""

import pytest
import requests
from datetime import datetime
from unittest.mock import Mock

from config import ConfigurationError
from services.common.exceptions import MalformedPayloadError, SourceAPIError
from services.conversion_models import ReportQuery
from services.cx3ads_api_client import CX3AdsAPIClient
from tests.fixtures.factories import CX3AdsRowFactory


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
    return CX3AdsAPIClient(api_key='secret', affiliate_id='4262',
                           base_url='https://cx3.test/api', session=session)


@pytest.fixture
def query():
    return ReportQuery(
        start_date=datetime(2024, 3, 1, 0, 0, 0),
        end_date=datetime(2024, 3, 1, 23, 59, 59, 990000),
        page=2,
        page_size=10
    )


class TestCX3AdsAPIClient:

    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError):
            CX3AdsAPIClient(api_key=None, session=Mock())

    def test_get_conversions_builds_row_offset_query(self, client, session, query):
        rows = CX3AdsRowFactory.build_batch(2)
        session.get.return_value = _response({'row_count': 42, 'data': rows, 'success': True})

        result = client.get_conversions(query)

        assert result == {'records': rows, 'total_count': 42}
        args, kwargs = session.get.call_args
        assert args[0] == 'https://cx3.test/api/Reports/Conversions'
        params = kwargs['params']
        assert params['start_date'] == '2024-03-01T00:00:00.00'
        assert params['end_date'] == '2024-03-01T23:59:59.99'
        assert params['start_at_row'] == 11
        assert params['row_limit'] == 10
        assert params['sort_field'] == 'conversion_date'
        assert params['sort_descending'] == 'true'
        assert params['exclude_bot_traffic'] == 'false'
        assert params['api_key'] == 'secret'
        assert params['affiliate_id'] == '4262'

    def test_sort_field_is_mapped(self, client, session):
        session.get.return_value = _response({'row_count': 0, 'data': []})
        query = ReportQuery(start_date=datetime(2024, 3, 1), end_date=datetime(2024, 3, 2),
                            sort_field='price', sort_direction='asc')

        client.get_conversions(query)

        params = session.get.call_args.kwargs['params']
        assert params['sort_field'] == 'price'
        assert params['sort_descending'] == 'false'

    def test_last_page_requests_row_count_first(self, client, session):
        session.get.side_effect = [
            _response({'row_count': 25, 'data': [CX3AdsRowFactory.build()]}),
            _response({'row_count': 25, 'data': CX3AdsRowFactory.build_batch(5)}),
        ]
        query = ReportQuery(start_date=datetime(2024, 3, 1), end_date=datetime(2024, 3, 2),
                            page=-1, page_size=10)

        result = client.get_conversions(query)

        assert len(result['records']) == 5
        count_request, final = session.get.call_args_list
        assert count_request.kwargs['params']['start_at_row'] == 1
        assert count_request.kwargs['params']['row_limit'] == 1
        assert final.kwargs['params']['start_at_row'] == 21
        assert final.kwargs['params']['row_limit'] == 10

    def test_http_error_raises_source_error(self, client, session, query):
        session.get.return_value = _response(status_code=500, text='boom')

        with pytest.raises(SourceAPIError) as excinfo:
            client.get_conversions(query)

        assert excinfo.value.status_code == 500
        assert 'HTTP 500: boom' in str(excinfo.value)

    def test_transport_error_raises_source_error(self, client, session, query):
        session.get.side_effect = requests.exceptions.ConnectionError('refused')

        with pytest.raises(SourceAPIError) as excinfo:
            client.get_conversions(query)

        assert 'refused' in str(excinfo.value)
        assert session.get.call_count == 1

    def test_api_failure_flag_raises_with_message(self, client, session, query):
        session.get.return_value = _response({'success': False, 'message': 'Invalid API key',
                                              'row_count': 0, 'data': []})

        with pytest.raises(SourceAPIError) as excinfo:
            client.get_conversions(query)

        assert 'Invalid API key' in str(excinfo.value)

    @pytest.mark.parametrize("payload", [
        {'data': []},
        {'row_count': 3},
        {'row_count': 3, 'data': None},
        ['not', 'an', 'object'],
    ])
    def test_malformed_payload(self, client, session, query, payload):
        session.get.return_value = _response(payload)

        with pytest.raises(MalformedPayloadError):
            client.get_conversions(query)

    def test_invalid_json_is_malformed(self, client, session, query):
        response = _response()
        response.json.side_effect = ValueError('no json')
        session.get.return_value = response

        with pytest.raises(MalformedPayloadError):
            client.get_conversions(query)
