"""
Tests for the text tool routes
"""

import pytest
import requests
from unittest.mock import Mock

from services.html_extractor_service import HtmlExtractorService


class TestToolsRoutes:

    def test_extract_one_type(self, client):
        response = client.post('/api/tools/extract', json={'text': 'a@b.io and a@b.io', 'type': 'emails'})

        assert response.status_code == 200
        assert response.get_json()['data'] == ['a@b.io']

    def test_extract_all_types(self, client):
        body = client.post('/api/tools/extract', json={'text': 'host 10.1.2.3'}).get_json()
        assert body['data']['ips'] == ['10.1.2.3']

    def test_extract_unknown_type(self, client):
        response = client.post('/api/tools/extract', json={'text': 'x', 'type': 'nope'})
        assert response.status_code == 400

    def test_random_string(self, client):
        body = client.post('/api/tools/random-string', json={'length': 12, 'include_numbers': True}).get_json()

        assert body['success'] is True
        assert len(body['data']['value']) == 12
        assert body['data']['strength'] in ('weak', 'medium', 'strong')

    def test_random_string_bad_length(self, client):
        assert client.post('/api/tools/random-string', json={'length': 'long'}).status_code == 400

    def test_random_string_word_entries_over_cap(self, client):
        response = client.post('/api/tools/random-string',
                               json={'word_entries': [{'word': 'a', 'times': 100000}]})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_LENGTH'


@pytest.fixture
def html_session():
    session = Mock()
    response = Mock(status_code=200, text='<html><body><a href="https://a.example.com/x">Go</a></body></html>')
    session.get.return_value = response
    return session


@pytest.fixture
def html_client(app, html_session):
    app.services.register('html_extractor', HtmlExtractorService(timeout=1, session=html_session))
    return app.test_client()


class TestHtmlExtractorRoutes:

    def test_extract(self, html_client, html_session):
        response = html_client.post('/api/tools/html/extract', json={'url': 'example.com'})

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['url'] == 'https://example.com'
        assert data['text'] == 'Go'
        assert data['attributes'] == [{'tag': 'a', 'attributes': {'href': 'https://a.example.com/x'}}]

    def test_extract_requires_url(self, html_client):
        response = html_client.post('/api/tools/html/extract', json={})
        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_URL'

    def test_fetch_failure_is_bad_gateway(self, html_client, html_session):
        html_session.get.side_effect = requests.exceptions.Timeout('slow')
        response = html_client.post('/api/tools/html/extract', json={'url': 'example.com'})
        assert response.status_code == 502

    def test_content_mode(self, html_client):
        html_client.post('/api/tools/html/extract', json={'url': 'example.com'})

        response = html_client.get('/api/tools/html?mode=text')
        assert response.get_json()['data'] == 'Go'

    def test_replace_and_revert_domains(self, html_client):
        html_client.post('/api/tools/html/extract', json={'url': 'example.com'})

        replaced = html_client.post('/api/tools/html/replace-domains', json={'domain': 'mine.io'}).get_json()
        assert 'https://mine.io/x' in replaced['data']['clean']

        reverted = html_client.post('/api/tools/html/revert-domains').get_json()
        assert 'https://a.example.com/x' in reverted['data']['clean']

    def test_replace_before_extract_conflicts(self, html_client):
        response = html_client.post('/api/tools/html/replace-domains', json={'domain': 'mine.io'})
        assert response.status_code == 409


class TestDetailsRoutes:

    def test_format(self, client):
        response = client.post('/api/tools/details', json={'deploy_id': '77', 'send_types': ['DKIM']})

        assert response.status_code == 200
        text = response.get_json()['data']
        assert 'Deploy ID : 77' in text
        assert 'Send Type : DKIM' in text

    def test_format_invalid(self, client):
        assert client.post('/api/tools/details', json={'test_after': 150}).status_code == 400

    def test_toggle_send_type(self, client):
        response = client.post('/api/tools/details/send-types/toggle',
                               json={'send_types': ['SPF'], 'send_type': 'DMARC'})
        assert response.get_json()['data'] == ['SPF', 'DMARC']

    def test_toggle_unknown_send_type(self, client):
        response = client.post('/api/tools/details/send-types/toggle', json={'send_type': 'SMTP'})
        assert response.status_code == 400
