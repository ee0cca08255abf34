# tests/conftest.py
"""
Shared fixtures for the pytest test suite.

- app / client: Flask app built with TestingConfig
- fake_timer_factory: drop-in for threading.Timer that only fires when told to
- report_service: ConversionReportService over two mocked sources, registered
  on the app so the routes use it
"""
import os
import pytest
from datetime import datetime
from unittest.mock import Mock

os.environ['FLASK_ENV'] = 'testing'

from app import create_app
from services.conversion_models import ReportViewState
from services.conversion_normalizer import normalize_cx3ads_record, normalize_everflow_record
from services.conversion_report_service import ConversionReportService, ConversionSource
from services.conversion_store import ConversionStore


class FakeTimer:
    """Records what would have been scheduled. Call fire() to run it."""

    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.started = False
        self.cancelled = False
        self.daemon = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function(*self.args)


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=()):
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    def fire_all(self):
        for timer in list(self.timers):
            timer.fire()


@pytest.fixture
def fake_timer_factory():
    return FakeTimerFactory()


@pytest.fixture
def store(fake_timer_factory):
    return ConversionStore(new_flag_seconds=5, timer_factory=fake_timer_factory)


@pytest.fixture
def mock_cx3ads_client():
    mock = Mock()
    mock.get_conversions = Mock(return_value={'records': [], 'total_count': 0})
    return mock


@pytest.fixture
def mock_everflow_client():
    mock = Mock()
    mock.get_conversions = Mock(return_value={'records': [], 'total_count': 0})
    return mock


@pytest.fixture
def report_service(mock_cx3ads_client, mock_everflow_client, store):
    return ConversionReportService(
        sources=[
            ConversionSource('CX3ads', mock_cx3ads_client, normalize_cx3ads_record),
            ConversionSource('Everflow', mock_everflow_client, normalize_everflow_record),
        ],
        store=store,
        view_state=ReportViewState(
            start_date=datetime(2024, 3, 1),
            end_date=datetime(2024, 3, 1, 23, 59, 59)
        ),
        fetch_limit=10
    )


@pytest.fixture
def app():
    """Flask app with TestingConfig"""
    app = create_app(config_name='testing')
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_with_report_service(app, report_service):
    """App whose 'conversion_reports' service is the mocked-source one"""
    app.services.register('conversion_reports', report_service)
    return app


@pytest.fixture
def reports_client(app_with_report_service):
    return app_with_report_service.test_client()
