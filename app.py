# app.py

from flask import Flask, g, jsonify
from config import get_config
import locale
import os
import uuid
from werkzeug.middleware.proxy_fix import ProxyFix
from logging_config import setup_logging, get_logger

# Configure logging as early as possible
setup_logging(app_name="conversion-reports", log_level=os.environ.get('LOG_LEVEL', 'INFO'))
logger = get_logger(__name__)


def init_sentry(app):
    """Initialize Sentry error tracking in production."""
    sentry_dsn = app.config.get('SENTRY_DSN')
    if sentry_dsn and os.environ.get('FLASK_ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration(transaction_style='endpoint')],
            traces_sample_rate=0.1,
            environment=os.environ.get('FLASK_ENV', 'development'),
            release=os.environ.get('GIT_SHA', 'unknown')
        )
        logger.info("Sentry error tracking initialized")


def init_collation():
    """Use the environment's LC_COLLATE for text sorting in the reports table."""
    try:
        locale.setlocale(locale.LC_COLLATE, '')
    except locale.Error as e:
        logger.warning("Collation locale not available, text sorts by code point", error=str(e))


def create_app(config_name=None, test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__)

    config_class = get_config(config_name)
    app.config.from_object(config_class)
    config_class.init_app(app)

    if test_config:
        app.config.update(test_config)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)
    init_sentry(app)
    init_collation()

    from services.registry import ServiceRegistry
    registry = ServiceRegistry()
    registry.register_factory('conversion_reports', lambda: _create_conversion_report_service(app.config))
    registry.register_factory('text_tools', _create_text_tools_service)
    registry.register_factory('html_extractor', lambda: _create_html_extractor_service(app.config))
    registry.register_factory('details', _create_details_service)
    app.services = registry

    from routes.report_routes import reports_bp
    from routes.tools_routes import tools_bp
    app.register_blueprint(reports_bp)
    app.register_blueprint(tools_bp)

    @app.before_request
    def assign_request_id():
        g.request_id = str(uuid.uuid4())

    @app.route('/health')
    def health_check():
        """Health check endpoint for monitoring."""
        return jsonify({
            'status': 'healthy',
            'service': 'conversion-reports',
            'services': registry.list_services()
        }), 200

    logger.info("Application created", config=config_class.__name__)
    return app


def _create_conversion_report_service(config):
    """Wire both conversion sources into the report service"""
    from functools import partial
    from services.conversion_models import ReportViewState
    from services.conversion_normalizer import (
        CX3ADS_SOURCE_NAME, EVERFLOW_SOURCE_NAME, normalize_cx3ads_record, normalize_everflow_record
    )
    from services.conversion_report_service import ConversionReportService, ConversionSource
    from services.conversion_store import ConversionStore
    from services.cx3ads_api_client import CX3AdsAPIClient
    from services.everflow_api_client import EverflowAPIClient

    cx3ads_client = CX3AdsAPIClient(
        api_key=config.get('CX3ADS_API_KEY'),
        affiliate_id=config.get('CX3ADS_AFFILIATE_ID'),
        base_url=config.get('CX3ADS_BASE_URL'),
        timeout=config.get('HTTP_TIMEOUT_SECONDS')
    )
    everflow_client = EverflowAPIClient(
        api_key=config.get('EVERFLOW_API_KEY'),
        base_url=config.get('EVERFLOW_BASE_URL'),
        timezone_id=config.get('EVERFLOW_TIMEZONE_ID'),
        timeout=config.get('HTTP_TIMEOUT_SECONDS')
    )

    sources = [
        ConversionSource(
            CX3ADS_SOURCE_NAME,
            cx3ads_client,
            partial(normalize_cx3ads_record, source_timezone=config.get('CX3ADS_SOURCE_TIMEZONE', 'UTC'))
        ),
        ConversionSource(EVERFLOW_SOURCE_NAME, everflow_client, normalize_everflow_record),
    ]

    return ConversionReportService(
        sources=sources,
        store=ConversionStore(new_flag_seconds=config.get('REPORTS_NEW_FLAG_SECONDS', 5)),
        view_state=ReportViewState(rows_per_page=config.get('REPORTS_DEFAULT_ROWS_PER_PAGE', 10)),
        fetch_limit=config.get('REPORTS_FETCH_LIMIT', 10),
        exclude_bot_traffic=config.get('REPORTS_EXCLUDE_BOT_TRAFFIC', False)
    )


def _create_text_tools_service():
    from services.text_tools_service import TextToolsService
    return TextToolsService()


def _create_html_extractor_service(config):
    from services.html_extractor_service import HtmlExtractorService
    return HtmlExtractorService(timeout=config.get('HTTP_TIMEOUT_SECONDS', 30))


def _create_details_service():
    from services.details_service import DetailsService
    return DetailsService()


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
